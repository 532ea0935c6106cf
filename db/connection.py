"""
db/connection.py
----------------
Manages the MySQL connection pool.

Connections are created lazily, up to `max_size`, and reused. Callers that
find the pool exhausted are queued and served in arrival order as soon as a
connection is released or a slot frees up. Idle connections are closed after
`idle_timeout_ms`. The pool is meant to be created once at startup, shared by
every TableAccessor and closed on shutdown:

    async with ConnectionPool(DatabaseConfig.from_env()) as pool:
        users = TableAccessor("users", pool)
        ...
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager

from config import DatabaseConfig
from db.driver import Connection, Driver, MySQLDriver
from db.errors import (
    ConnectionCreateError,
    DatabaseSelectError,
    PoolClosedError,
    PoolError,
)
from utils.logger import get_logger

logger = get_logger(__name__)

# Handed to a waiter instead of a connection: a slot was reserved for it
# and it must open the connection itself.
_SLOT = object()


class ConnectionPool:
    """
    Bounded pool of lazily created connections.

    Idle connections are reused LIFO; waiters are served FIFO. A connection is
    either idle or held by exactly one caller, and `size` (idle + in use +
    being created) never exceeds `max_size`.

    Args:
        config: Credentials and pool defaults.
        driver: Connection factory (defaults to MySQLDriver).
        max_size: Overrides config.max_connections.
        idle_timeout_ms: Overrides config.idle_timeout_ms.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        driver: Driver | None = None,
        max_size: int | None = None,
        idle_timeout_ms: int | None = None,
    ):
        self.config = config
        self.driver = driver or MySQLDriver()
        self.max_size = max_size if max_size is not None else config.max_connections
        self.idle_timeout_ms = (
            idle_timeout_ms if idle_timeout_ms is not None else config.idle_timeout_ms
        )
        if self.max_size < 1:
            raise ValueError("max_size must be at least 1")
        if self.idle_timeout_ms <= 0:
            raise ValueError("idle_timeout_ms must be positive")

        self._live = 0
        self._idle: deque = deque()
        self._idle_timers: dict = {}
        self._in_use: set = set()
        self._waiters: deque = deque()
        self._closed = False

    # ── Introspection ─────────────────────────────────────

    @property
    def size(self) -> int:
        """Live connections, including ones still being opened."""
        return self._live

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    @property
    def waiting_count(self) -> int:
        return sum(1 for fut in self._waiters if not fut.done())

    @property
    def closed(self) -> bool:
        return self._closed

    def stats(self) -> dict:
        return {
            "max_size": self.max_size,
            "size": self.size,
            "idle": self.idle_count,
            "in_use": self.in_use_count,
            "waiting": self.waiting_count,
            "closed": self._closed,
        }

    # ── Acquire / release ─────────────────────────────────

    async def acquire(self) -> Connection:
        """
        Get a connection for exclusive use.

        Returns an idle connection if there is one, opens a new one if the
        pool is below `max_size`, otherwise waits for a release.

        Raises:
            PoolClosedError: If the pool is (or gets) closed.
            ConnectionCreateError: If opening the connection this call
                triggered failed.
            DatabaseSelectError: If the target database could not be selected.
        """
        if self._closed:
            raise PoolClosedError("Connection pool is closed.")

        while self._idle:
            conn = self._idle.pop()
            self._idle_timers.pop(conn).cancel()
            if conn.closed:
                logger.warning("Discarding closed idle connection.")
                self._destroy(conn)
                continue
            self._in_use.add(conn)
            return conn

        if self._live < self.max_size:
            self._live += 1
            return await self._open_reserved()

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            granted = await fut
        except asyncio.CancelledError:
            if fut in self._waiters:
                self._waiters.remove(fut)
            elif fut.done() and not fut.cancelled():
                self._return_grant(fut.result())
            raise

        if granted is _SLOT:
            return await self._open_reserved()
        return granted

    def release(self, conn: Connection) -> None:
        """
        Give a connection back.

        Healthy connections go to the oldest waiter or become idle; closed
        (broken) connections and connections released after teardown are
        destroyed.

        Raises:
            PoolError: If the connection isn't currently held from this pool.
        """
        if conn not in self._in_use:
            raise PoolError("Connection does not belong to this pool or was already released.")
        self._in_use.discard(conn)

        if self._closed or conn.closed:
            self._destroy(conn)
            return

        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                self._in_use.add(conn)
                fut.set_result(conn)
                return

        timer = asyncio.get_running_loop().call_later(
            self.idle_timeout_ms / 1000, self._evict, conn
        )
        self._idle_timers[conn] = timer
        self._idle.append(conn)

    def destroy(self, conn: Connection) -> None:
        """Close a held connection instead of returning it to the pool."""
        if conn not in self._in_use:
            raise PoolError("Connection does not belong to this pool or was already released.")
        self._in_use.discard(conn)
        self._destroy(conn)

    @asynccontextmanager
    async def connection(self):
        """
        Acquire a connection for the duration of a `with` block.

        The connection is always released; on cancellation it is destroyed,
        since the statement it was running may still be in flight.
        """
        conn = await self.acquire()
        try:
            yield conn
        except asyncio.CancelledError:
            self.destroy(conn)
            raise
        except BaseException:
            self.release(conn)
            raise
        else:
            self.release(conn)

    # ── Teardown ──────────────────────────────────────────

    async def close(self) -> None:
        """
        Close the pool.

        Idle connections are closed now, connections in use are closed when
        they are released, and queued acquirers fail with PoolClosedError.
        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True

        while self._idle:
            conn = self._idle.pop()
            self._idle_timers.pop(conn).cancel()
            self._destroy(conn)

        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_exception(PoolClosedError("Connection pool closed while waiting."))

        logger.info(f"Database connection pool closed ({len(self._in_use)} still in use).")

    async def __aenter__(self) -> "ConnectionPool":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ── Internals ─────────────────────────────────────────

    async def _open_reserved(self) -> Connection:
        """Open a connection into a slot already counted in `_live`."""
        try:
            conn = await self._create()
        except BaseException:
            self._live -= 1
            self._grant_slot()
            raise

        if self._closed:
            self._live -= 1
            conn.close()
            raise PoolClosedError("Connection pool closed while connecting.")

        self._in_use.add(conn)
        return conn

    async def _create(self) -> Connection:
        """Connect, then select the target database; both must succeed."""
        try:
            conn = await self.driver.connect(self.config)
        except Exception as e:
            logger.error(f"DB ERROR: cannot connect to {self.config.host}:{self.config.port}: {e}")
            raise ConnectionCreateError(f"Cannot connect to database server: {e}") from e

        try:
            await conn.select_database(self.config.database)
        except Exception as e:
            logger.error(f"DB ERROR: Database cannot select db {self.config.database!r}, detail: {e}")
            conn.close()
            raise DatabaseSelectError(
                self.config.database, f"Cannot select database {self.config.database!r}: {e}"
            ) from e

        logger.info(f"Opened database connection ({self._live}/{self.max_size}).")
        return conn

    def _destroy(self, conn: Connection) -> None:
        self._live -= 1
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"Error while closing connection: {e}")
        logger.info(f"Closed database connection ({self._live}/{self.max_size}).")
        self._grant_slot()

    def _grant_slot(self) -> None:
        """Let the oldest waiter open a connection into a freed slot."""
        if self._closed:
            return
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                self._live += 1
                fut.set_result(_SLOT)
                return

    def _return_grant(self, granted) -> None:
        """Undo a grant made to a waiter that was cancelled before resuming."""
        if granted is _SLOT:
            self._live -= 1
            self._grant_slot()
        else:
            self.release(granted)

    def _evict(self, conn: Connection) -> None:
        if conn not in self._idle_timers:
            return
        del self._idle_timers[conn]
        self._idle.remove(conn)
        logger.info(f"Evicting connection idle for more than {self.idle_timeout_ms} ms.")
        self._destroy(conn)
