"""
db/errors.py
------------
Typed errors raised by the pool, the driver adapter and the accessors.
"""


class DatabaseError(Exception):
    """Base class for every error raised by the database layer."""


class PoolError(DatabaseError):
    """The pool was used incorrectly (e.g. releasing a foreign connection)."""


class PoolClosedError(PoolError):
    """Acquire was attempted on, or interrupted by, a closed pool."""


class ConnectionCreateError(DatabaseError):
    """The driver failed to open a new connection."""


class DatabaseSelectError(ConnectionCreateError):
    """The connection opened but the target database could not be selected."""

    def __init__(self, database: str, message: str):
        super().__init__(message)
        self.database = database


class QueryError(DatabaseError):
    """
    The driver reported an error while executing a statement.

    Attributes:
        sql: The statement that failed.
    """

    def __init__(self, message: str, sql: str):
        super().__init__(message)
        self.sql = sql
