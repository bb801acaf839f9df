from .connection import AsyncSQLiteConnection
from .database import SQLiteDatabase

__all__ = ["AsyncSQLiteConnection", "SQLiteDatabase"]
