"""Structural types for the database capabilities sieveQL consumes.

sieveQL ships no driver.  Anything matching these protocols (an asyncpg /
aiomysql adapter, a test double) can be plugged in.
"""

from __future__ import annotations

from collections.abc import Awaitable, Sequence
from typing import Any, Protocol, runtime_checkable

from sieveql.compile.base import CompiledSQL


@runtime_checkable
class Executor(Protocol):
    """Runs one compiled statement and returns its rows."""

    def __call__(self, compiled: CompiledSQL) -> Awaitable[list[Any]]: ...


@runtime_checkable
class Connection(Protocol):
    """A single pooled connection able to drive a transaction."""

    async def begin(self) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...

    async def execute(self, query: str, values: Sequence[Any]) -> Any: ...


@runtime_checkable
class Pool(Protocol):
    """Hands out connections.  ``release`` may be sync or async."""

    async def acquire(self) -> Connection: ...

    def release(self, connection: Connection) -> Awaitable[None] | None: ...
