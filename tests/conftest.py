"""Shared pytest fixtures: recording test doubles for the executor and pool."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from sieveql.compile.base import CompiledSQL
from sieveql.config import reset_settings


class RecordingExecutor:
    """Async executor that records every statement it receives."""

    def __init__(self, rows: list[Any] | None = None, error: Exception | None = None) -> None:
        self.rows = rows if rows is not None else []
        self.error = error
        self.calls: list[CompiledSQL] = []

    async def __call__(self, compiled: CompiledSQL) -> list[Any]:
        self.calls.append(compiled)
        if self.error is not None:
            raise self.error
        return self.rows


class FakeConnection:
    """Connection double; ``calls`` lists every driver call in order."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[tuple[Any, ...]] = []

    async def _record(self, *call: Any) -> None:
        self.calls.append(call)
        if call[0] == self.fail_on:
            raise RuntimeError(f"{call[0]} failed")

    async def begin(self) -> None:
        await self._record("begin")

    async def commit(self) -> None:
        await self._record("commit")

    async def rollback(self) -> None:
        await self._record("rollback")

    async def execute(self, query: str, values: Sequence[Any]) -> list[Any]:
        await self._record("execute", query, list(values))
        return []

    @property
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


class FakePool:
    """Pool double handing out a single connection.

    ``async_release`` switches ``release`` between a coroutine and a plain call.
    """

    def __init__(self, connection: FakeConnection, async_release: bool = True) -> None:
        self.connection = connection
        self.async_release = async_release
        self.acquired = 0
        self.released: list[FakeConnection] = []

    async def acquire(self) -> FakeConnection:
        self.acquired += 1
        return self.connection

    def release(self, connection: FakeConnection):
        if not self.async_release:
            self.released.append(connection)
            return None

        async def _release() -> None:
            self.released.append(connection)

        return _release()


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch):
    """Every test starts from default settings, whatever the environment says."""
    for name in ("DEFAULT_DIALECT", "DEFAULT_LIMIT", "DEFAULT_OFFSET", "LOG_LEVEL", "LOG_FORMAT"):
        monkeypatch.delenv(f"SIEVEQL_{name}", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture()
def executor() -> RecordingExecutor:
    return RecordingExecutor(rows=[{"id": 1}])


@pytest.fixture()
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture()
def pool(connection: FakeConnection) -> FakePool:
    return FakePool(connection)


@pytest.fixture()
def make_pool():
    """Factory for pools whose connection fails on a given call name."""

    def _make(fail_on: str | None = None, async_release: bool = True) -> FakePool:
        return FakePool(FakeConnection(fail_on=fail_on), async_release=async_release)

    return _make


@pytest.fixture()
def make_executor():
    def _make(rows: list[Any] | None = None, error: Exception | None = None) -> RecordingExecutor:
        return RecordingExecutor(rows=rows, error=error)

    return _make
