"""
repositories/table_accessor.py
------------------------------
Generic data access for a single table.

A TableAccessor learns its table's columns with a one-row SELECT right after
construction, then offers flat CRUD (create / select / update / remove) built
from plain dicts and WHERE clause items. Every operation:

    1. builds its SQL synchronously,
    2. runs it on a pooled connection (always released afterwards),
    3. notifies the observers registered for that operation,
    4. hands the outcome to the caller on a later loop tick.
"""

import asyncio
import re
from typing import Any, Callable, Mapping

from db.connection import ConnectionPool
from db.driver import escape as mysql_escape
from db.errors import DatabaseError, QueryError
from models.events import EventKind
from models.query import QueryResult, SelectOptions
from repositories import sql_builder
from repositories.observers import ObserverRegistry
from utils.logger import get_logger

logger = get_logger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*(\.[A-Za-z_][A-Za-z0-9_$]*)?$")


class TableAccessor:
    """
    CRUD façade over one table.

    Must be created inside a running event loop: the constructor schedules
    the one-row SELECT that fills `fields`. Until `ready()` resolves the field list is
    empty, so create/update issued before that drop every field.

    Args:
        table_name: Plain table identifier, optionally `schema.table`.
        pool: Shared connection pool; the accessor never closes it.
        escape: Value-to-literal function for SET clauses (MySQL by default).
    """

    def __init__(
        self,
        table_name: str,
        pool: ConnectionPool,
        escape: Callable[[Any], str] | None = None,
    ):
        if not isinstance(table_name, str) or not _TABLE_NAME.match(table_name):
            raise ValueError(f"Invalid table name: {table_name!r}")

        self._table_name = table_name
        self._pool = pool
        self._escape = escape or mysql_escape
        self._fields: list[str] = []
        self._observers = ObserverRegistry()
        self._discovery_error: DatabaseError | None = None
        self._discovery = asyncio.get_running_loop().create_task(self._collect_fields())

        logger.info(f"{table_name} Accessor instance created")

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def fields(self) -> list[str]:
        """Column names learned at construction (empty until it finishes)."""
        return list(self._fields)

    async def ready(self) -> list[str]:
        """
        Wait for the column discovery query.

        Returns:
            The inferred field list.

        Raises:
            DatabaseError: The error column discovery failed with.
        """
        await self._discovery
        if self._discovery_error is not None:
            raise self._discovery_error
        return self.fields

    async def _collect_fields(self) -> None:
        try:
            result = await self.select({"limit": 1, "offset": 0})
        except DatabaseError as e:
            logger.error(f"Could not collect fields of {self._table_name}: {e}")
            self._discovery_error = e
            return
        self._fields = list(result.fields)

    # ── Observers ─────────────────────────────────────────

    def register_observer(self, events, callback) -> bool:
        """
        Subscribe `callback` to events ("SELECT", "UPDATE", "CREATE",
        "REMOVE", "INIT").

        The callback is called with the event name as its only argument, so
        one function can observe several events; INIT observers run
        immediately with "INIT".
        """
        return self._observers.register(events, callback)

    def notify(self, event) -> None:
        self._observers.notify(event)

    # ── CREATE ────────────────────────────────────────────

    async def create(self, fields: Mapping[str, Any], callback: Callable | None = None):
        """
        INSERT a row. Keys that aren't columns of the table are dropped.

        Returns:
            QueryResult whose `info` holds affected rows and the insert id.
        """
        field_values = sql_builder.build_field_values(fields, self._fields, self._escape)
        sql = sql_builder.build_insert(self._table_name, field_values)
        return await self._execute(EventKind.CREATE, sql, callback)

    # ── READ ──────────────────────────────────────────────

    async def select(self, options=None, callback: Callable | None = None):
        """
        SELECT rows.

        Accepts `select(options, callback)`, `select(options)` or
        `select(callback)`. Options: `fields` (columns to project), `where`
        (clause items), `limit` and `offset`.

        Returns:
            QueryResult with `rows` and `fields`.
        """
        if callable(options) and callback is None:
            options, callback = None, options

        sql = sql_builder.build_select(self._table_name, SelectOptions.coerce(options))
        return await self._execute(EventKind.SELECT, sql, callback)

    # ── UPDATE ────────────────────────────────────────────

    async def update(self, options, fields: Mapping[str, Any], callback: Callable | None = None):
        """UPDATE the rows matching `options["where"]` with `fields`."""
        field_values = sql_builder.build_field_values(fields, self._fields, self._escape)
        where = SelectOptions.coerce(options).where
        sql = sql_builder.build_update(self._table_name, field_values, where)
        return await self._execute(EventKind.UPDATE, sql, callback)

    # ── DELETE ────────────────────────────────────────────

    async def remove(self, options, callback: Callable | None = None):
        """DELETE the rows matching `options["where"]` (all rows when it is absent or empty)."""
        where = SelectOptions.coerce(options).where
        sql = sql_builder.build_delete(self._table_name, where)
        return await self._execute(EventKind.REMOVE, sql, callback)

    # ── Helpers ───────────────────────────────────────────

    async def _execute(self, event: EventKind, sql: str, callback: Callable | None):
        """
        Run `sql`, notify `event` observers, then deliver the outcome.

        With a callback, errors go to its first argument and are not raised;
        select callbacks get (error, rows, fields), the others
        (error, None, info). Without one, errors are raised.
        """
        error = None
        result: QueryResult | None = None
        try:
            result = await self._query(sql)
        except DatabaseError as e:
            error = e

        self.notify(event)

        if callback is not None:
            if event is EventKind.SELECT:
                args = (error, result.rows, result.fields) if result else (error, None, None)
            else:
                args = (error, None, result.info) if result else (error, None, None)
            asyncio.get_running_loop().call_soon(callback, *args)
            return result

        await asyncio.sleep(0)
        if error is not None:
            raise error
        return result

    async def _query(self, sql: str) -> QueryResult:
        async with self._pool.connection() as conn:
            try:
                return await conn.query(sql)
            except QueryError as e:
                logger.error(f"ERROR: Database query error, detail: {e}, queried: {sql}")
                raise
