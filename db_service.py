"""
Database Service (DAL - Data Access Layer)
==========================================

Centralized SQLite access for users, courses, lessons, activities and
API configurations.
"""

import sqlite3
import logging
import threading
from typing import Optional, List, Dict, Any, Tuple
from contextlib import contextmanager

logger = logging.getLogger("DB_SERVICE")


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chat_id TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        is_verified INTEGER NOT NULL DEFAULT 0,
        is_banned INTEGER NOT NULL DEFAULT 0,
        order_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS courses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        content TEXT NOT NULL DEFAULT '',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS course_subcontents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        course_id INTEGER NOT NULL REFERENCES courses(id),
        title TEXT NOT NULL,
        content TEXT NOT NULL DEFAULT '',
        url TEXT,
        order_index INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT NOT NULL,
        description TEXT NOT NULL,
        user_id INTEGER,
        admin_id INTEGER,
        chat_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_configurations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        url TEXT NOT NULL DEFAULT '',
        credentials TEXT NOT NULL DEFAULT '{}',
        is_active INTEGER NOT NULL DEFAULT 1,
        updated_by INTEGER,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_subcontents_course ON course_subcontents(course_id)",
    "CREATE INDEX IF NOT EXISTS idx_activities_created ON activities(created_at)",
)


class DatabaseConnectionPool:
    """Per-thread SQLite connections for the bot and the admin API."""

    def __init__(self, db_path: str = "course_bot.db"):
        self.db_path = db_path
        self._connections: Dict[int, sqlite3.Connection] = {}
        self._lock = threading.Lock()

    def get_connection(self) -> sqlite3.Connection:
        """Connection bound to the calling thread, opened on first use."""
        thread_id = threading.get_ident()

        with self._lock:
            if thread_id not in self._connections:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                self._connections[thread_id] = conn
            return self._connections[thread_id]

    def init_schema(self) -> None:
        """Create tables if they do not exist yet."""
        conn = self.get_connection()
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)
        conn.commit()
        logger.info(f"✅ Database schema ready ({self.db_path})")

    def close_all(self):
        """Close every pooled connection (shutdown and tests)."""
        with self._lock:
            for conn in self._connections.values():
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"⚠️ Error closing connection: {e}")
            self._connections.clear()


class BaseRepository:
    """
    Row access for one table.

    Rows come back as plain dicts; the record store turns them into schemas.
    """

    def __init__(self, table_name: str, pool: DatabaseConnectionPool):
        self.table_name = table_name
        self.pool = pool

    @contextmanager
    def _get_cursor(self):
        """Cursor that commits on success and rolls back on error."""
        conn = self.pool.get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"❌ {self.table_name} query failed: {e}")
            raise

    def get_by_id(self, id: int) -> Optional[Dict[str, Any]]:
        """Row with this primary key or None."""
        with self._get_cursor() as cursor:
            cursor.execute(
                f"SELECT * FROM {self.table_name} WHERE id = ?",
                (id,)
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def create(self, **kwargs) -> Dict[str, Any]:
        """Insert a row and return it as stored."""
        columns = ", ".join(kwargs.keys())
        placeholders = ", ".join(["?"] * len(kwargs))

        with self._get_cursor() as cursor:
            cursor.execute(
                f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders})",
                tuple(kwargs.values())
            )
            record_id = cursor.lastrowid

        return self.get_by_id(record_id)

    def update(self, id: int, **kwargs) -> Optional[Dict[str, Any]]:
        """Update columns of one row; returns the updated row."""
        if not kwargs:
            return self.get_by_id(id)

        set_clause = ", ".join([f"{k} = ?" for k in kwargs.keys()])
        values = list(kwargs.values()) + [id]

        with self._get_cursor() as cursor:
            cursor.execute(
                f"UPDATE {self.table_name} SET {set_clause} WHERE id = ?",
                values
            )

        return self.get_by_id(id)

    def find(self, order_by: Optional[str] = None, limit: Optional[int] = None,
             **where_clause) -> List[Dict[str, Any]]:
        """Rows matching every column=value pair."""
        query = f"SELECT * FROM {self.table_name}"
        params: Tuple = tuple(where_clause.values())
        if where_clause:
            query += " WHERE " + " AND ".join(f"{k} = ?" for k in where_clause.keys())
        if order_by:
            query += f" ORDER BY {order_by}"
        if limit:
            query += f" LIMIT {int(limit)}"

        with self._get_cursor() as cursor:
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def find_one(self, **where_clause) -> Optional[Dict[str, Any]]:
        rows = self.find(limit=1, **where_clause)
        return rows[0] if rows else None
