"""Unit tests for QueryBuilder and QueryBuilderFactory (both dialects)."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from sieveql.compile.builder import QueryBuilder, QueryBuilderFactory
from sieveql.errors import (
    CompilationError,
    InvalidJoinError,
    InvalidOrderError,
    OrGroupError,
    ValidationError,
)
from sieveql.schema.search import UNSET, JoinSpec, UpdateColumn


def _pg(executor, source="users", **kwargs) -> QueryBuilder:
    return QueryBuilder(source, executor, dialect="postgres", **kwargs)


def _my(executor, source="users", **kwargs) -> QueryBuilder:
    return QueryBuilder(source, executor, dialect="mysql", **kwargs)


# ---------------------------------------------------------------------------
# SELECT
# ---------------------------------------------------------------------------


def test_default_select_star(executor):
    assert _pg(executor).compile().query == "SELECT * FROM users;"


def test_select_replaces_columns(executor):
    qb = _pg(executor).select(["id"]).select(["id", "name"])
    assert qb.compile().query == "SELECT id, name FROM users;"


def test_where_numbered(executor):
    r = _pg(executor).select(["id"]).where({"status": "active", "age": {"$gte": 18}}).compile()
    assert r.query == "SELECT id FROM users WHERE status = $1 AND age >= $2;"
    assert r.values == ["active", 18]
    assert r.dialect == "postgres"


def test_where_unnumbered(executor):
    r = _my(executor).where({"status": "active", "id": {"$in": [1, 2]}}).compile()
    assert r.query == "SELECT * FROM users WHERE status = ? AND id IN (?);"
    assert r.values == ["active", [1, 2]]
    assert r.dialect == "mysql"


def test_repeated_where_is_anded(executor):
    r = _pg(executor).where({"a": 1}).where({"b": 2}).compile()
    assert r.query == "SELECT * FROM users WHERE a = $1 AND (b = $2);"
    assert r.values == [1, 2]


def test_empty_where_is_noop(executor):
    qb = _pg(executor).where({"a": UNSET}).where()
    assert qb.compile().query == "SELECT * FROM users;"
    assert qb.cursor == 0


def test_where_with_or_alternatives(executor):
    r = _pg(executor).where({}, [{"a": 1}, {"b": 2}]).compile()
    assert r.query == "SELECT * FROM users WHERE 1=1 AND ((a = $1) OR (b = $2));"


def test_where_validation_error_leaves_builder_untouched(executor):
    qb = _pg(executor).where({"a": 1})
    with pytest.raises(OrGroupError):
        qb.where({}, [{"b": 2}])
    assert qb.compile().values == [1]
    assert qb.cursor == 1


def test_raw_where_appends(executor):
    r = _pg(executor).raw_where("deleted_at IS NULL").where({"a": 1}).compile()
    assert r.query == "SELECT * FROM users WHERE deleted_at IS NULL AND (a = $1);"


def test_where_and_having_never_share_numbers(executor):
    r = (
        _pg(executor)
        .select(["dept", "COUNT(*) AS n"])
        .where({"status": "active", "age": {"$between": [18, 65]}})
        .group_by(["dept"])
        .having({"COUNT(*)": {"$gt": 5}})
        .compile()
    )
    assert r.query == (
        "SELECT dept, COUNT(*) AS n FROM users "
        "WHERE status = $1 AND age BETWEEN $2 AND $3 "
        "GROUP BY dept HAVING COUNT(*) > $4;"
    )
    assert r.values == ["active", 18, 65, 5]


def test_where_and_having_unnumbered_bind_in_text_order(executor):
    r = _my(executor).where({"a": 1}).group_by(["a"]).having({"n": 2}).compile()
    assert r.query == "SELECT * FROM users WHERE a = ? GROUP BY a HAVING n = ?;"
    assert r.values == [1, 2]


def test_where_values_after_having_values_are_rejected(executor):
    qb = _my(executor).having({"n": 1})
    with pytest.raises(CompilationError):
        qb.where({"a": 2})
    qb.where({"deleted_at": None})
    assert qb.compile().query == "SELECT * FROM users WHERE deleted_at IS NULL HAVING n = ?;"


# ---------------------------------------------------------------------------
# JOIN / ORDER BY / LIMIT
# ---------------------------------------------------------------------------


def test_joins_use_source_alias(executor):
    r = (
        _pg(executor, "users AS u")
        .left_join(
            {"target_table": "orders", "target_alias": "o", "target_field": "user_id",
             "source_field": "id"}
        )
        .inner_join(JoinSpec(target_table="teams", target_field="id", source_field="team_id"))
        .compile()
    )
    assert r.query == (
        "SELECT * FROM users AS u "
        "LEFT JOIN orders AS o ON o.user_id = u.id "
        "INNER JOIN teams ON teams.id = u.team_id;"
    )


def test_right_full_and_raw_join(executor):
    r = (
        _pg(executor)
        .right_join({"target_table": "a", "target_field": "uid", "source_field": "id"})
        .full_outer_join(
            {"target_table": "b", "target_field": "aid", "source_field": "id", "source_table": "a"}
        )
        .raw_join("CROSS JOIN c")
        .compile()
    )
    assert r.query == (
        "SELECT * FROM users RIGHT JOIN a ON a.uid = users.id "
        "FULL OUTER JOIN b ON b.aid = a.id CROSS JOIN c;"
    )


@pytest.mark.parametrize(
    "spec",
    [
        {"target_table": "orders", "source_field": "id"},
        {"target_table": "orders", "target_field": "uid", "source_field": "id", "on": "x"},
        "orders",
    ],
)
def test_malformed_join_is_a_validation_error(executor, spec):
    qb = _pg(executor)
    with pytest.raises(InvalidJoinError) as exc_info:
        qb.left_join(spec)
    assert isinstance(exc_info.value, ValidationError)
    assert exc_info.value.code == "INVALID_JOIN"
    assert qb.compile().query == "SELECT * FROM users;"


def test_join_error_names_the_missing_field(executor):
    with pytest.raises(InvalidJoinError) as exc_info:
        _pg(executor).inner_join({"target_table": "orders", "source_field": "id"})
    fields = [e["field"] for e in exc_info.value.details["errors"]]
    assert fields == ["target_field"]


def test_malformed_order_item_is_a_validation_error(executor):
    with pytest.raises(InvalidOrderError) as exc_info:
        _pg(executor).order_by({"ordering": "ASC"})
    assert isinstance(exc_info.value, ValidationError)


def test_order_by_and_pagination(executor):
    r = (
        _pg(executor)
        .where({"a": 1})
        .order_by([{"order_by": "name", "ordering": "desc"}])
        .pagination(limit=10, offset=30)
        .compile()
    )
    assert r.query == "SELECT * FROM users WHERE a = $1 ORDER BY name DESC LIMIT 10 OFFSET 30;"


def test_pagination_defaults(executor):
    assert _pg(executor).pagination().compile().query == "SELECT * FROM users LIMIT 20 OFFSET 0;"


def test_pagination_coerces_integral_floats_and_drops_negatives(executor):
    qb = _pg(executor).pagination(limit=10.0, offset=-3)
    assert qb.compile().query == "SELECT * FROM users LIMIT 10 OFFSET 0;"
    qb.pagination(limit=2.5)
    assert qb.compile().query == "SELECT * FROM users LIMIT 20 OFFSET 0;"


def test_order_by_outside_allow_list_fails_before_execute(executor):
    qb = _pg(executor, sortable_fields=["id", "name"])
    with pytest.raises(InvalidOrderError):
        qb.order_by({"order_by": "password"})
    assert executor.calls == []


# ---------------------------------------------------------------------------
# clone / subqueries
# ---------------------------------------------------------------------------


def test_clone_is_independent(executor):
    base = _pg(executor).select(["id"]).where({"status": "active"})
    before = base.compile()

    branch = base.clone().select(["id", "name"]).where({"age": 30})
    assert branch.compile().query == (
        "SELECT id, name FROM users WHERE status = $1 AND (age = $2);"
    )
    assert branch.compile().values == ["active", 30]

    after = base.compile()
    assert after.query == before.query
    assert after.values == before.values == ["active"]


def test_subquery_values_precede_outer_values(executor):
    inner = _pg(executor, "orders").select(["user_id"]).where({"total": {"$gt": 100}})
    outer = _pg(executor).from_(inner, alias="big").where({"user_id": {"$ne": 7}})
    r = outer.compile()
    assert r.query == (
        "SELECT * FROM (SELECT user_id FROM orders WHERE total > $1) AS big "
        "WHERE user_id <> $2;"
    )
    assert r.values == [100, 7]


def test_to_subquery_handle(executor):
    handle = _my(executor, "orders").where({"a": 1, "b": 2}).to_subquery("o")
    assert handle.sql == "SELECT * FROM orders WHERE a = ? AND b = ?"
    assert handle.values == (1, 2)
    assert handle.end_cursor == 2
    assert handle.alias == "o"

    r = _my(executor, handle).where({"c": 3}).compile()
    assert r.query == "SELECT * FROM (SELECT * FROM orders WHERE a = ? AND b = ?) AS o WHERE c = ?;"
    assert r.values == [1, 2, 3]


def test_subquery_dialect_mismatch(executor):
    handle = _my(executor, "orders").to_subquery("o")
    with pytest.raises(CompilationError):
        _pg(executor, handle)


def test_builder_source_requires_alias(executor):
    with pytest.raises(CompilationError):
        _pg(executor).from_(_pg(executor, "orders"))


def test_source_with_values_after_where_is_rejected(executor):
    inner = _pg(executor, "orders").where({"a": 1})
    qb = _pg(executor).where({"b": 2})
    with pytest.raises(CompilationError):
        qb.from_(inner, alias="o")
    assert qb.compile().query == "SELECT * FROM users WHERE b = $1;"


def test_plain_source_swap_after_where(executor):
    r = _pg(executor).where({"b": 2}).from_("accounts").compile()
    assert r.query == "SELECT * FROM accounts WHERE b = $1;"


# ---------------------------------------------------------------------------
# INSERT / UPDATE / DELETE
# ---------------------------------------------------------------------------


def test_insert_single_row(executor):
    r = _pg(executor).insert({"name": "ann", "age": 30, "nick": UNSET}).returning(["id"]).compile()
    assert r.query == "INSERT INTO users(name,age) VALUES($1,$2) RETURNING id;"
    assert r.values == ["ann", 30]


def test_insert_many_rows_with_on_conflict(executor):
    r = _my(executor).insert(
        [{"a": 1, "b": 2}, {"a": 3, "b": 4}],
        on_conflict="ON DUPLICATE KEY UPDATE b = VALUES(b)",
    ).compile()
    assert r.query == (
        "INSERT INTO users(a,b) VALUES(?,?),(?,?) ON DUPLICATE KEY UPDATE b = VALUES(b);"
    )
    assert r.values == [1, 2, 3, 4]


def test_insert_rows_must_share_columns(executor):
    with pytest.raises(CompilationError):
        _pg(executor).insert([{"a": 1}, {"b": 2}])


def test_insert_all_unset_is_rejected(executor):
    with pytest.raises(CompilationError):
        _pg(executor).insert({"a": UNSET})


def test_update_then_where_numbering(executor):
    r = _pg(executor).update({"name": "bob", "age": UNSET, "score": 9}).where({"id": 4}).compile()
    assert r.query == "UPDATE users SET name = $1, score = $2 WHERE id = $3;"
    assert r.values == ["bob", 9, 4]


def test_update_stamps_timestamp_column(executor):
    r = (
        _pg(executor)
        .update({"name": "bob"}, update_column={"title": "updated_at", "type": "timestamp"})
        .where({"id": 4})
        .compile()
    )
    assert r.query == "UPDATE users SET name = $1, updated_at = NOW() WHERE id = $2;"
    assert r.values == ["bob", 4]


def test_update_stamps_unix_timestamp_column(executor):
    r = _pg(executor).update(
        {"name": "bob"}, update_column=UpdateColumn(title="updated_ms", type="unix_timestamp")
    ).compile()
    assert r.query == (
        "UPDATE users SET name = $1, "
        "updated_ms = ROUND((EXTRACT(EPOCH FROM NOW()) * (1000)::NUMERIC));"
    )
    assert r.values == ["bob"]


def test_insert_stamps_every_row(executor):
    r = _my(executor).insert(
        [{"a": 1}, {"a": 2}],
        update_column={"title": "created_ms", "type": "unix_timestamp"},
    ).compile()
    assert r.query == (
        "INSERT INTO users(a,created_ms) VALUES"
        "(?,ROUND(UNIX_TIMESTAMP(NOW(3)) * 1000)),(?,ROUND(UNIX_TIMESTAMP(NOW(3)) * 1000));"
    )
    assert r.values == [1, 2]


def test_insert_stamp_binds_no_value(executor):
    r = (
        _pg(executor)
        .insert({"a": 1, "b": 2}, update_column={"title": "created_at", "type": "timestamp"})
        .returning(["id"])
        .compile()
    )
    assert r.query == "INSERT INTO users(a,b,created_at) VALUES($1,$2,NOW()) RETURNING id;"
    assert r.values == [1, 2]


@pytest.mark.parametrize(
    "update_column",
    [{"title": "updated_at", "type": "date"}, {"name": "updated_at"}],
)
def test_invalid_update_column_is_rejected(executor, update_column):
    with pytest.raises(CompilationError) as exc_info:
        _pg(executor).update({"name": "bob"}, update_column=update_column)
    assert exc_info.value.clause == "UPDATE"
    with pytest.raises(CompilationError):
        _pg(executor).insert({"name": "bob"}, update_column=update_column)


def test_update_after_where_is_rejected(executor):
    qb = _pg(executor).where({"id": 4})
    with pytest.raises(CompilationError):
        qb.update({"name": "bob"})


def test_delete(executor):
    r = _pg(executor).delete().where({"id": 4}).returning(["id"]).compile()
    assert r.query == "DELETE FROM users WHERE id = $1 RETURNING id;"
    assert r.values == [4]


def test_dml_on_subquery_is_rejected(executor):
    handle = _pg(executor, "orders").to_subquery("o")
    with pytest.raises(CompilationError):
        _pg(executor, handle).delete()
    with pytest.raises(CompilationError):
        _pg(executor).update({"a": 1}).from_(handle)


# ---------------------------------------------------------------------------
# execute / factory
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_execute_passes_compiled_statement(executor):
    rows = await _pg(executor).where({"id": 1}).execute()
    assert rows == [{"id": 1}]
    (call,) = executor.calls
    assert call.query == "SELECT * FROM users WHERE id = $1;"
    assert call.values == [1]


@pytest.mark.asyncio
async def test_execute_logs_success(executor):
    with capture_logs() as logs:
        await _pg(executor).execute()
    (entry,) = [e for e in logs if e["event"] == "query.executed"]
    assert entry["sql"] == "SELECT * FROM users;"
    assert entry["value_count"] == 0
    assert "duration_ms" in entry


@pytest.mark.asyncio
async def test_execute_propagates_driver_error(make_executor):
    failing = make_executor(error=RuntimeError("connection reset"))
    with capture_logs() as logs:
        with pytest.raises(RuntimeError, match="connection reset"):
            await _pg(failing).execute()
    assert [e["event"] for e in logs] == ["query.failed"]


@pytest.mark.asyncio
async def test_factory_creates_builders(executor):
    factory = QueryBuilderFactory(executor, dialect="mysql", sortable_fields=["id"])
    qb = factory.create("users AS u").where({"u.id": 3}).order_by({"order_by": "id"})
    await qb.execute()
    assert executor.calls[0].query == "SELECT * FROM users AS u WHERE u.id = ? ORDER BY id ASC;"
    with pytest.raises(InvalidOrderError):
        factory.create("users").order_by({"order_by": "name"})
    assert factory.create("users", sortable_fields=["name"]).order_by({"order_by": "name"})
