import asyncio

import pytest

from config import DatabaseConfig
from db.connection import ConnectionPool
from db.errors import QueryError
from models.query import QueryInfo, QueryResult


class FakeConnection:
    def __init__(self, driver, ident):
        self.driver = driver
        self.ident = ident
        self.database = None
        self._closed = False

    @property
    def closed(self):
        return self._closed

    async def select_database(self, name):
        await asyncio.sleep(0)
        if self.driver.select_error is not None:
            raise self.driver.select_error
        self.database = name

    async def query(self, sql):
        self.driver.queries.append(sql)
        await asyncio.sleep(0)
        return self.driver.respond(sql, self)

    def close(self):
        self._closed = True
        self.driver.closed.append(self.ident)

    def __repr__(self):
        return f"FakeConnection({self.ident})"


class FakeDriver:
    """Records SQL and answers with scripted results; no database involved."""

    def __init__(self, columns=("id", "name", "email"), rows=None):
        self.columns = list(columns)
        self.rows = rows if rows is not None else [{"id": 1, "name": "Ann", "email": "ann@example.com"}]
        self.queries = []
        self.connections = []
        self.closed = []
        self.connect_error = None
        self.select_error = None
        self.fail_queries = 0
        self.break_on_failure = False

    async def connect(self, config):
        await asyncio.sleep(0)
        if self.connect_error is not None:
            raise self.connect_error
        conn = FakeConnection(self, len(self.connections) + 1)
        self.connections.append(conn)
        return conn

    def respond(self, sql, conn):
        if self.fail_queries > 0:
            self.fail_queries -= 1
            if self.break_on_failure:
                conn._closed = True
            raise QueryError("You have an error in your SQL syntax", sql)
        if sql.startswith("SELECT"):
            return QueryResult(rows=[dict(r) for r in self.rows], fields=list(self.columns))
        return QueryResult(info=QueryInfo(affected_rows=1, insert_id=42 if sql.startswith("INSERT") else None))


@pytest.fixture
def db_config():
    return DatabaseConfig(host="db.test", user="tester", password="secret", database="shop")


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def pool(db_config, driver):
    return ConnectionPool(db_config, driver=driver)
