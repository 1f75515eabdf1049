"""Unit tests for TransactionManager."""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from sieveql.errors import (
    InvalidIsolationLevelError,
    TransactionStateError,
    TransactionTimeoutError,
)
from sieveql.transaction.manager import IsolationLevel, TransactionManager, TransactionState


class BoomError(Exception):
    pass


class DriverTimeout(asyncio.TimeoutError):
    """A driver-side timeout, e.g. a server statement timeout."""


# ---------------------------------------------------------------------------
# IsolationLevel
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "token",
    ["READ COMMITTED", "read committed", "read_committed", " Read   Committed "],
)
def test_isolation_level_tokens(token):
    assert IsolationLevel.parse(token) is IsolationLevel.READ_COMMITTED


def test_isolation_level_member_passes_through():
    assert IsolationLevel.parse(IsolationLevel.SERIALIZABLE) is IsolationLevel.SERIALIZABLE


@pytest.mark.parametrize("token", ["SNAPSHOT", "", 3])
def test_invalid_isolation_level(token):
    with pytest.raises(InvalidIsolationLevelError) as exc_info:
        IsolationLevel.parse(token)
    assert "REPEATABLE READ" in exc_info.value.details["allowed"]


def test_constructor_rejects_invalid_level(connection):
    with pytest.raises(InvalidIsolationLevelError):
        TransactionManager(connection, "CHAOS")


# ---------------------------------------------------------------------------
# Managed execution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_commit_path(pool, connection):
    async def work(conn) -> str:
        await conn.execute("UPDATE t SET a = $1", [1])
        return "done"

    result = await TransactionManager.execute(work, pool=pool, isolation_level="SERIALIZABLE")

    assert result == "done"
    assert connection.calls == [
        ("begin",),
        ("execute", "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE", []),
        ("execute", "UPDATE t SET a = $1", [1]),
        ("commit",),
    ]
    assert pool.released == [connection]


@pytest.mark.asyncio
async def test_no_isolation_statement_without_level(pool, connection):
    async def work(conn) -> None:
        return None

    await TransactionManager.execute(work, pool=pool)
    assert connection.names == ["begin", "commit"]


@pytest.mark.asyncio
async def test_work_failure_rolls_back_once_and_reraises(pool, connection):
    error = BoomError("work failed")

    async def work(conn) -> None:
        raise error

    with pytest.raises(BoomError) as exc_info:
        await TransactionManager.execute(work, pool=pool)

    assert exc_info.value is error
    assert connection.names.count("rollback") == 1
    assert "commit" not in connection.names
    assert pool.released == [connection]


@pytest.mark.asyncio
async def test_commit_failure_rolls_back(make_pool):
    pool = make_pool(fail_on="commit")

    async def work(conn) -> int:
        return 1

    with pytest.raises(RuntimeError, match="commit failed"):
        await TransactionManager.execute(work, pool=pool)
    assert pool.connection.names == ["begin", "commit", "rollback"]
    assert len(pool.released) == 1


@pytest.mark.asyncio
async def test_rollback_failure_keeps_original_error(make_pool):
    pool = make_pool(fail_on="rollback")

    async def work(conn) -> None:
        raise BoomError("original")

    with capture_logs() as logs:
        with pytest.raises(BoomError, match="original"):
            await TransactionManager.execute(work, pool=pool)
    assert "transaction.rollback_failed" in [e["event"] for e in logs]
    assert len(pool.released) == 1


@pytest.mark.asyncio
async def test_begin_failure_releases_without_rollback(make_pool):
    pool = make_pool(fail_on="begin")

    async def work(conn) -> None:
        raise AssertionError("work must not run")

    with pytest.raises(RuntimeError, match="begin failed"):
        await TransactionManager.execute(work, pool=pool)
    assert pool.connection.names == ["begin"]
    assert len(pool.released) == 1


@pytest.mark.asyncio
async def test_timeout_rolls_back_and_releases(pool, connection):
    finished = []

    async def work(conn) -> str:
        await asyncio.sleep(1)
        finished.append(True)
        return "late"

    with pytest.raises(TransactionTimeoutError) as exc_info:
        await TransactionManager.execute(work, pool=pool, timeout=0.01, transaction_id="tx-42")

    assert str(exc_info.value).startswith("Transaction (tx-42) timed out")
    assert exc_info.value.label == "tx-42"
    assert finished == []
    assert connection.names == ["begin", "rollback"]
    assert pool.released == [connection]


@pytest.mark.asyncio
async def test_work_timeout_error_without_timeout_is_not_wrapped(pool):
    async def work(conn) -> None:
        raise asyncio.TimeoutError()

    with pytest.raises(asyncio.TimeoutError) as exc_info:
        await TransactionManager.execute(work, pool=pool)
    assert not isinstance(exc_info.value, TransactionTimeoutError)


@pytest.mark.asyncio
async def test_work_receives_the_connection(pool, connection):
    seen = []

    async def work(conn):
        seen.append(conn)

    await TransactionManager.execute(work, pool=pool)
    assert len(seen) == 1
    assert seen[0] is connection


@pytest.mark.asyncio
async def test_driver_timeout_under_a_deadline_is_not_relabelled(pool, connection):
    error = DriverTimeout("statement timeout")

    async def work(conn):
        raise error

    with capture_logs() as logs:
        with pytest.raises(DriverTimeout) as exc_info:
            await TransactionManager.execute(work, pool=pool, timeout=30)

    assert exc_info.value is error
    assert not isinstance(exc_info.value, TransactionTimeoutError)
    assert connection.names == ["begin", "rollback"]
    assert pool.released == [connection]
    events = [e["event"] for e in logs]
    assert "transaction.rolled_back" in events
    assert "transaction.timed_out" not in events


@pytest.mark.asyncio
async def test_driver_timeout_after_await_is_not_relabelled(pool, connection):
    async def work(conn):
        await conn.execute("SELECT pg_sleep(10)", [])
        raise DriverTimeout("canceling statement due to statement timeout")

    with pytest.raises(DriverTimeout):
        await TransactionManager.execute(work, pool=pool, timeout=30)
    assert connection.names.count("rollback") == 1
    assert len(pool.released) == 1


@pytest.mark.asyncio
async def test_invalid_level_fails_before_acquire(pool):
    async def work(conn) -> None:
        return None

    with pytest.raises(InvalidIsolationLevelError):
        await TransactionManager.execute(work, pool=pool, isolation_level="SOMETIMES")
    assert pool.acquired == 0
    assert pool.released == []


@pytest.mark.asyncio
async def test_sync_release_is_supported(make_pool):
    pool = make_pool(async_release=False)

    async def work(conn) -> int:
        return 7

    assert await TransactionManager.execute(work, pool=pool) == 7
    assert len(pool.released) == 1


@pytest.mark.asyncio
async def test_outcome_is_logged(pool):
    async def work(conn) -> None:
        return None

    with capture_logs() as logs:
        await TransactionManager.execute(
            work, pool=pool, isolation_level="read_committed", transaction_id="abc"
        )
    (entry,) = [e for e in logs if e["event"] == "transaction.committed"]
    assert entry["transaction_id"] == "abc"
    assert entry["isolation_level"] == "READ COMMITTED"
    assert "duration_ms" in entry


@pytest.mark.asyncio
async def test_timeout_is_logged(pool):
    async def work(conn) -> None:
        await asyncio.sleep(1)

    with capture_logs() as logs:
        with pytest.raises(TransactionTimeoutError):
            await TransactionManager.execute(work, pool=pool, timeout=0.01)
    assert "transaction.timed_out" in [e["event"] for e in logs]


# ---------------------------------------------------------------------------
# Step methods
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_state_machine(pool, connection):
    tx = TransactionManager(connection, pool=pool)
    assert tx.state is TransactionState.CREATED
    await tx.begin()
    assert tx.state is TransactionState.BEGUN
    await tx.rollback()
    assert tx.state is TransactionState.ROLLED_BACK
    await tx.release()
    await tx.release()
    assert tx.state is TransactionState.RELEASED
    assert pool.released == [connection]


@pytest.mark.asyncio
async def test_commit_before_begin_is_rejected(connection):
    tx = TransactionManager(connection)
    with pytest.raises(TransactionStateError):
        await tx.commit()
    assert connection.calls == []


def test_generated_transaction_id(connection):
    a = TransactionManager(connection)
    b = TransactionManager(connection)
    assert a.transaction_id != b.transaction_id
    assert TransactionManager(connection, transaction_id="x").transaction_id == "x"
