"""
Async SQLite connection provider shared by the durable store and the
session memory store.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import structlog

logger = structlog.get_logger(__name__)


class AsyncSQLiteConnection:
    """Opens a connection per unit of work, committing on success"""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def ensure_parent_dir(self) -> None:
        Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection; roll back and re-raise on failure"""
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                logger.exception("Database operation failed, transaction rolled back", db_path=self.db_path)
                raise
