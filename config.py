"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


# ── MySQL ─────────────────────────────────────────────────
DB_HOST: str = os.getenv("DB_HOST", "localhost")
DB_PORT: int = int(os.getenv("DB_PORT", "3306"))
DB_NAME: str = os.getenv("DB_NAME", "app")
DB_USER: str = os.getenv("DB_USER", "root")
DB_PASS: str = os.getenv("DB_PASS", "")
DB_CHARSET: str = os.getenv("DB_CHARSET", "utf8mb4")

# ── Connection pool ───────────────────────────────────────
DB_POOL_MAX: int = int(os.getenv("DB_POOL_MAX", "10"))
DB_POOL_IDLE_TIMEOUT_MS: int = int(os.getenv("DB_POOL_IDLE_TIMEOUT_MS", "30000"))

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Connection settings handed to the pool and the driver.

    Attributes:
        host: MySQL server host name.
        port: MySQL server port.
        user: Login user.
        password: Login password.
        database: Schema selected right after connecting.
        charset: Connection character set.
        max_connections: Upper bound on live pooled connections.
        idle_timeout_ms: Idle connections older than this are closed.
    """
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "app"
    charset: str = "utf8mb4"
    max_connections: int = 10
    idle_timeout_ms: int = 30000

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Build the config from the module-level environment constants."""
        return cls(
            host=DB_HOST,
            port=DB_PORT,
            user=DB_USER,
            password=DB_PASS,
            database=DB_NAME,
            charset=DB_CHARSET,
            max_connections=DB_POOL_MAX,
            idle_timeout_ms=DB_POOL_IDLE_TIMEOUT_MS,
        )

    def __repr__(self) -> str:
        return (
            f"DatabaseConfig(host={self.host!r}, port={self.port}, user={self.user!r}, "
            f"database={self.database!r}, max_connections={self.max_connections}, "
            f"idle_timeout_ms={self.idle_timeout_ms})"
        )
