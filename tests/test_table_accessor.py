import asyncio

import pytest

from db.connection import ConnectionPool
from db.errors import QueryError
from models.query import QueryInfo
from repositories.table_accessor import TableAccessor


async def _accessor(pool, table="users"):
    accessor = TableAccessor(table, pool)
    await accessor.ready()
    return accessor


def test_rejects_invalid_table_name(pool):
    with pytest.raises(ValueError):
        TableAccessor("users; DROP TABLE users", pool)


@pytest.mark.asyncio
async def test_construction_issues_one_discovery_query(pool, driver):
    accessor = TableAccessor("users", pool)
    assert accessor.fields == []

    fields = await accessor.ready()

    assert fields == ["id", "name", "email"]
    assert accessor.fields == fields
    assert driver.queries == ["SELECT * FROM users LIMIT 1;"]


@pytest.mark.asyncio
async def test_create_before_discovery_drops_every_field(pool, driver):
    accessor = TableAccessor("users", pool)

    await accessor.create({"name": "Ann"})
    await accessor.ready()

    assert "INSERT INTO users SET ;" in driver.queries


@pytest.mark.asyncio
async def test_discovery_failure_is_reported_by_ready(pool, driver):
    driver.fail_queries = 1
    accessor = TableAccessor("users", pool)

    with pytest.raises(QueryError):
        await accessor.ready()
    assert accessor.fields == []


@pytest.mark.asyncio
async def test_discovery_notifies_early_select_observers(pool):
    accessor = TableAccessor("users", pool)
    seen = []
    accessor.register_observer(["SELECT"], seen.append)

    await accessor.ready()
    await asyncio.sleep(0)

    assert seen == ["SELECT"]


@pytest.mark.asyncio
async def test_create_escapes_values_and_skips_unknown_keys(pool, driver):
    accessor = await _accessor(pool)

    result = await accessor.create({"name": "O'Brien", "nickname": "ob"})

    assert driver.queries[-1] == "INSERT INTO users SET `name` = 'O\\'Brien';"
    assert result.info == QueryInfo(affected_rows=1, insert_id=42)


@pytest.mark.asyncio
async def test_create_callback_receives_info(pool):
    accessor = await _accessor(pool)
    got = []

    await accessor.create({"name": "Ann"}, lambda *args: got.append(args))
    await asyncio.sleep(0)

    assert got == [(None, None, QueryInfo(affected_rows=1, insert_id=42))]


@pytest.mark.asyncio
async def test_select_with_only_callback(pool, driver):
    accessor = await _accessor(pool)
    got = []

    await accessor.select(lambda *args: got.append(args))
    assert got == []

    await asyncio.sleep(0)
    assert driver.queries[-1] == "SELECT * FROM users;"
    assert got == [(None, driver.rows, driver.columns)]


@pytest.mark.asyncio
async def test_select_truncates_limit(pool, driver):
    accessor = await _accessor(pool)

    result = await accessor.select({"fields": ["name"], "limit": "3abc", "where": [("name", "=", "O'Brien")]})

    assert driver.queries[-1] == "SELECT `name` FROM users WHERE `name` = 'O'Brien'  LIMIT 3;"
    assert result.rows == driver.rows


@pytest.mark.asyncio
async def test_update_and_remove_statements(pool, driver):
    accessor = await _accessor(pool)
    where = {"where": [("id", "=", 1)]}

    await accessor.update(where, {"email": "ann@example.org"})
    await accessor.remove(where)

    assert driver.queries[-2:] == [
        "UPDATE users SET `email` = 'ann@example.org' WHERE `id` = '1' ;",
        "DELETE FROM users WHERE `id` = '1' ;",
    ]


@pytest.mark.asyncio
async def test_observers_are_scheduled_before_caller_callback(pool):
    accessor = await _accessor(pool)
    order = []
    accessor.register_observer(["UPDATE"], lambda event: order.append(event))

    await accessor.update({}, {"name": "Bo"}, lambda *args: order.append("callback"))
    assert order == []

    await asyncio.sleep(0)
    assert order == ["UPDATE", "callback"]


@pytest.mark.asyncio
async def test_init_observer_runs_during_registration(pool):
    accessor = await _accessor(pool)
    calls = []

    assert accessor.register_observer(["INIT"], calls.append) is True
    assert calls == ["INIT"]


@pytest.mark.asyncio
async def test_query_error_goes_to_callback(pool, driver):
    accessor = await _accessor(pool)
    driver.fail_queries = 1
    got = []

    result = await accessor.select({}, lambda *args: got.append(args))
    await asyncio.sleep(0)

    assert result is None
    error, rows, fields = got[0]
    assert isinstance(error, QueryError)
    assert rows is None and fields is None


@pytest.mark.asyncio
async def test_query_error_is_raised_without_callback(pool, driver):
    accessor = await _accessor(pool)
    driver.fail_queries = 1
    removed = []
    accessor.register_observer(["REMOVE"], removed.append)

    with pytest.raises(QueryError) as exc_info:
        await accessor.remove({"where": [("id", "=", 1)]})

    assert exc_info.value.sql == "DELETE FROM users WHERE `id` = '1' ;"
    assert removed == ["REMOVE"]


@pytest.mark.asyncio
async def test_failed_queries_do_not_leak_connections(db_config, driver):
    pool = ConnectionPool(db_config, driver=driver, max_size=1)
    accessor = await _accessor(pool)
    driver.fail_queries = 3

    for _ in range(3):
        with pytest.raises(QueryError):
            await accessor.update({"where": [("id", "=", 1)]}, {"name": "x"})

    conn = await asyncio.wait_for(pool.acquire(), timeout=1)
    pool.release(conn)
    result = await accessor.select()
    assert result.rows == driver.rows
    assert len(driver.connections) == 1


@pytest.mark.asyncio
async def test_broken_connections_are_replaced(db_config, driver):
    pool = ConnectionPool(db_config, driver=driver, max_size=1)
    accessor = await _accessor(pool)
    driver.fail_queries = 2
    driver.break_on_failure = True

    for _ in range(2):
        with pytest.raises(QueryError):
            await accessor.select()

    result = await asyncio.wait_for(accessor.select(), timeout=1)
    assert result.fields == driver.columns
    assert len(driver.connections) == 3
    assert pool.size == 1


@pytest.mark.asyncio
async def test_accessors_share_a_small_pool(db_config, driver):
    pool = ConnectionPool(db_config, driver=driver, max_size=1)
    users = await _accessor(pool, "users")
    orders = await _accessor(pool, "shop.orders")

    results = await asyncio.gather(*(a.select() for a in (users, orders, users, orders)))

    assert all(r.rows == driver.rows for r in results)
    assert len(driver.connections) == 1
    await pool.close()
    assert pool.size == 0


@pytest.mark.asyncio
async def test_bad_where_never_widens_update_or_remove(pool, driver):
    accessor = await _accessor(pool)

    await accessor.remove({"where": [("id", "IN", "(1,2)")]})
    await accessor.remove({"where": [("id", 5)]})
    await accessor.update({"where": [("deleted_at", "IS", "gone")]}, {"name": "x"})

    assert driver.queries[-3:] == [
        "DELETE FROM users WHERE;",
        "DELETE FROM users WHERE;",
        "UPDATE users SET `name` = 'x' WHERE;",
    ]
    assert "DELETE FROM users;" not in driver.queries


@pytest.mark.asyncio
async def test_update_and_remove_with_extended_operators(pool, driver):
    accessor = await _accessor(pool)

    await accessor.update({"where": [("email", "IS", None)]}, {"name": "x"})
    await accessor.remove({"where": [("id", "IN", [1, 2])]})

    assert driver.queries[-2:] == [
        "UPDATE users SET `name` = 'x' WHERE `email` IS NULL ;",
        "DELETE FROM users WHERE `id` IN ('1','2') ;",
    ]
