"""
Database coordinator for SQLite.

Owns the connection manager and runs schema creation at startup. Repositories
in ``scanguard.repositories`` do the per-table work and receive a connection
from ``read()`` or ``transaction()``.

Lifecycle:
    1. ``await get_db().initialize()`` at program startup
    2. ``async with get_db().transaction() as conn: ...`` for writes
    3. ``await get_db().shutdown()`` at program end
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncContextManager

import aiosqlite

from scanguard.database.db_connection import ConnectionManager
from scanguard.database.db_schema import SchemaManager
from scanguard.util.logger import get_logger

logger = get_logger("database")

DB_PATH = Path("./data/app.db").resolve()


class Database:
    """
    Central database coordinator.

    Attributes:
        db_path: Path of the SQLite file. Tests point this at ``tmp_path``.
    """

    def __init__(self, db_path: Path = DB_PATH):
        self.db_path = db_path
        self._connection_manager = ConnectionManager()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self, db_path: Path | None = None) -> bool:
        """
        Open the connection and create the schema.

        Args:
            db_path: Optional override of the path given at construction.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        if db_path is not None:
            self.db_path = db_path

        try:
            await self._connection_manager.open(self.db_path)
            async with self._connection_manager.transaction() as conn:
                await SchemaManager.initialize_schema(conn)

            self._initialized = True
            logger.info("[DATABASE] Database initialized at %s", self.db_path)
            return True

        except Exception as e:
            logger.error("[DATABASE] Database initialization failed: %s", e)
            await self._connection_manager.close()
            return False

    async def shutdown(self) -> None:
        """Close the connection. Safe to call more than once."""
        if not self._initialized:
            return

        await self._connection_manager.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    def transaction(self) -> AsyncContextManager[aiosqlite.Connection]:
        """Serialised write transaction (see ConnectionManager.transaction)."""
        return self._connection_manager.transaction()

    def read(self) -> AsyncContextManager[aiosqlite.Connection]:
        """Read-only access to the shared connection."""
        return self._connection_manager.read()


# Global Database instance
database = Database()


def get_db() -> Database:
    """
    Get the global Database instance.

    Returns:
        Database: The global Database manager instance.
    """
    return database
