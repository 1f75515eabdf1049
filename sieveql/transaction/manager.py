"""Transaction manager.

:meth:`TransactionManager.execute` scopes a unit of work to one pooled
connection::

    async def transfer(conn: Connection) -> None:
        await conn.execute("UPDATE accounts SET ...", [...])
        await conn.execute("UPDATE accounts SET ...", [...])

    await TransactionManager.execute(
        transfer,
        pool=pool,
        isolation_level="SERIALIZABLE",
        timeout=5,
    )

The connection is acquired once, the transaction is begun (and its
isolation level set), then committed when the work succeeds or rolled back
when it fails or times out.  The connection is released exactly once.

State machine
-------------
CREATED → BEGUN → COMMITTED | ROLLED_BACK → RELEASED

``RELEASED`` is absorbing; ``release()`` may be called again without effect.
"""

from __future__ import annotations

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

import structlog

from sieveql.errors import (
    InvalidIsolationLevelError,
    TransactionStateError,
    TransactionTimeoutError,
)
from sieveql.protocols import Connection, Pool

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class IsolationLevel(str, Enum):
    """SQL transaction isolation levels."""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"

    @classmethod
    def parse(cls, value: IsolationLevel | str) -> IsolationLevel:
        """Resolve a level from a member, an SQL token, or a member name.

        ``"READ COMMITTED"``, ``"read committed"`` and ``"read_committed"``
        all resolve to :attr:`READ_COMMITTED`.

        Raises:
            InvalidIsolationLevelError: On anything else.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            token = " ".join(value.replace("_", " ").split()).upper()
            for level in cls:
                if level.value == token:
                    return level
        raise InvalidIsolationLevelError(value, [level.value for level in cls])


class TransactionState(str, Enum):
    CREATED = "CREATED"
    BEGUN = "BEGUN"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"
    RELEASED = "RELEASED"


class TransactionManager:
    """Drives one transaction on one connection.

    Most callers use :meth:`execute`; the step methods exist for callers
    that need to control the lifecycle themselves.

    Args:
        connection: The connection the transaction runs on.
        isolation_level: Optional isolation level (member or token).
        pool: Pool the connection is returned to by :meth:`release`.
        transaction_id: Correlation label used in logs and timeout errors;
            a random hex id is generated when omitted.

    Raises:
        InvalidIsolationLevelError: If ``isolation_level`` is not recognised.
    """

    def __init__(
        self,
        connection: Connection,
        isolation_level: IsolationLevel | str | None = None,
        *,
        pool: Pool | None = None,
        transaction_id: str | None = None,
    ) -> None:
        self.connection = connection
        self.isolation_level = (
            IsolationLevel.parse(isolation_level) if isolation_level is not None else None
        )
        self.transaction_id = transaction_id or uuid.uuid4().hex
        self.state = TransactionState.CREATED
        self._pool = pool

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------

    async def begin(self) -> None:
        """Start the transaction, then apply the isolation level if one is set."""
        self._require(TransactionState.CREATED, "begin")
        await self.connection.begin()
        self.state = TransactionState.BEGUN
        if self.isolation_level is not None:
            await self.connection.execute(
                f"SET TRANSACTION ISOLATION LEVEL {self.isolation_level.value}", []
            )

    async def commit(self) -> None:
        self._require(TransactionState.BEGUN, "commit")
        await self.connection.commit()
        self.state = TransactionState.COMMITTED

    async def rollback(self) -> None:
        self._require(TransactionState.BEGUN, "rollback")
        await self.connection.rollback()
        self.state = TransactionState.ROLLED_BACK

    async def release(self) -> None:
        """Return the connection to the pool.  Safe to call more than once."""
        if self.state is TransactionState.RELEASED:
            return
        self.state = TransactionState.RELEASED
        if self._pool is None:
            return
        result = self._pool.release(self.connection)
        if inspect.isawaitable(result):
            await result

    def _require(self, expected: TransactionState, action: str) -> None:
        if self.state is not expected:
            raise TransactionStateError(action, self.state.value)

    # ------------------------------------------------------------------
    # Managed execution
    # ------------------------------------------------------------------

    @classmethod
    async def execute(
        cls,
        work: Callable[[Connection], Awaitable[T]],
        *,
        pool: Pool,
        isolation_level: IsolationLevel | str | None = None,
        timeout: float | None = None,
        transaction_id: str | None = None,
    ) -> T:
        """Run ``work`` inside a transaction on a freshly acquired connection.

        Args:
            work: Async callable receiving the transaction's connection; its
                result is returned.
            pool: Connection pool.
            isolation_level: Optional isolation level (member or token).
            timeout: Seconds the work may run; ``None`` waits indefinitely.
            transaction_id: Correlation label for logs and timeout errors.

        Returns:
            Whatever ``work`` returns.

        Raises:
            InvalidIsolationLevelError: Before any connection is acquired.
            TransactionTimeoutError: When ``timeout`` expires; the work has
                been cancelled and the transaction rolled back.
            Exception: Any error raised by ``work`` or the driver, unchanged,
                after rollback.  A ``TimeoutError`` raised by the work itself
                is not relabelled as a transaction timeout.
        """
        level = IsolationLevel.parse(isolation_level) if isolation_level is not None else None
        connection = await pool.acquire()
        manager = cls(connection, level, pool=pool, transaction_id=transaction_id)
        start = time.perf_counter()
        try:
            await manager.begin()
            result = await manager._run(work, timeout)
            await manager.commit()
        except BaseException as exc:
            await manager._abort(exc, start)
            raise
        else:
            manager._log("transaction.committed", start)
            return result
        finally:
            await manager.release()

    async def _run(self, work: Callable[[Connection], Awaitable[T]], timeout: float | None) -> T:
        """Await ``work``; only the expiry of ``timeout`` becomes a timeout error.

        The work runs as its own task so that whatever it raises (including a
        driver ``TimeoutError``) comes back through ``task.result()`` as is.
        On expiry the task is cancelled and awaited before returning, so
        rollback never overlaps it on the connection.
        """
        if timeout is None:
            return await work(self.connection)
        task = asyncio.ensure_future(work(self.connection))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except BaseException:
            task.cancel()
            await asyncio.wait({task})
            raise
        if task in done:
            return task.result()
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "transaction.work_failed_after_timeout",
                transaction_id=self.transaction_id,
                error=repr(task.exception()),
            )
        raise TransactionTimeoutError(self.transaction_id, timeout)

    async def _abort(self, exc: BaseException, start: float) -> None:
        if self.state is TransactionState.BEGUN:
            try:
                await self.rollback()
            except Exception:
                logger.exception(
                    "transaction.rollback_failed",
                    transaction_id=self.transaction_id,
                )
        if isinstance(exc, TransactionTimeoutError):
            self._log("transaction.timed_out", start, level="warning", timeout=exc.timeout)
        else:
            self._log("transaction.rolled_back", start, level="warning", error=repr(exc))

    def _log(self, event: str, start: float, level: str = "info", **extra: Any) -> None:
        getattr(logger, level)(
            event,
            transaction_id=self.transaction_id,
            isolation_level=self.isolation_level.value if self.isolation_level else None,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **extra,
        )
