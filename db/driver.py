"""
db/driver.py
------------
The driver contract the pool and the accessors rely on, and its
MySQL implementation on top of aiomysql.

A driver only needs to:
    - open a connection (`Driver.connect`),
    - switch it to the target database (`Connection.select_database`),
    - run a statement (`Connection.query`),
    - close it (`Connection.close`).
"""

from typing import Any, Protocol

import aiomysql
from pymysql import err as mysql_err
from pymysql.constants import CR
from pymysql.converters import escape_item

from config import DatabaseConfig
from db.errors import QueryError
from models.query import QueryInfo, QueryResult
from utils.logger import get_logger

logger = get_logger(__name__)

# Client error codes meaning the session itself is gone. Every other
# OperationalError (unknown column, lock wait timeout, deadlock, ...) leaves
# the connection usable.
_CONNECTION_LOST = frozenset({
    CR.CR_SERVER_GONE_ERROR,
    CR.CR_SERVER_LOST,
    CR.CR_SERVER_LOST_EXTENDED,
})


class Connection(Protocol):
    """A live database session owned by the pool."""

    @property
    def closed(self) -> bool: ...

    async def select_database(self, name: str) -> None: ...

    async def query(self, sql: str) -> QueryResult: ...

    def close(self) -> None: ...


class Driver(Protocol):
    """Factory for new connections."""

    async def connect(self, config: DatabaseConfig) -> Connection: ...


def escape(value: Any, charset: str = "utf8mb4") -> str:
    """
    Render a Python value as a MySQL literal.

    Strings are quoted with backslash escaping ("O'Brien" -> 'O\\'Brien'),
    None becomes NULL, numbers are left bare.
    """
    return escape_item(value, charset)


class MySQLConnection:
    """aiomysql connection wrapped to the `Connection` contract."""

    def __init__(self, raw: aiomysql.Connection):
        self._raw = raw
        self._broken = False

    @property
    def closed(self) -> bool:
        return self._broken or self._raw.closed

    async def select_database(self, name: str) -> None:
        await self._raw.select_db(name)

    async def query(self, sql: str) -> QueryResult:
        """
        Execute a single statement.

        Returns:
            Rows and column names for statements with a result set,
            otherwise a QueryInfo with affected rows and the insert id.

        Raises:
            QueryError: On any driver error. Losing the connection also
                marks it broken so the pool won't reuse it; statement errors
                leave it reusable.
        """
        try:
            async with self._raw.cursor(aiomysql.DictCursor) as cur:
                await cur.execute(sql)
                if cur.description is None:
                    return QueryResult(
                        info=QueryInfo(affected_rows=cur.rowcount, insert_id=cur.lastrowid or None)
                    )
                rows = await cur.fetchall()
                return QueryResult(
                    rows=list(rows),
                    fields=[d[0] for d in cur.description],
                )
        except mysql_err.MySQLError as e:
            if self._is_connection_lost(e):
                self._broken = True
                logger.error(f"DB ERROR: connection broken: {e}")
            raise QueryError(str(e), sql) from e

    def _is_connection_lost(self, e: mysql_err.MySQLError) -> bool:
        if self._raw.closed or isinstance(e, mysql_err.InterfaceError):
            return True
        if isinstance(e, mysql_err.OperationalError):
            return bool(e.args) and e.args[0] in _CONNECTION_LOST
        return False

    def close(self) -> None:
        if not self._raw.closed:
            self._raw.close()


class MySQLDriver:
    """Opens autocommit aiomysql connections with no default schema."""

    def __init__(self, connect_timeout: float = 10):
        self.connect_timeout = connect_timeout

    async def connect(self, config: DatabaseConfig) -> MySQLConnection:
        raw = await aiomysql.connect(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            charset=config.charset,
            autocommit=True,
            connect_timeout=self.connect_timeout,
        )
        return MySQLConnection(raw)
