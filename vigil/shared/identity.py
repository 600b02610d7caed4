"""Minimal identity store: user ids and usernames.

Authentication and credential storage belong to the session layer in
front of Vigil. This table only backs the identifier contract the core
consumes (resolve an id, look up by username, register a name).
"""

import asyncio
import logging
import sqlite3

import aiosqlite

from vigil.exceptions import DuplicateUsernameError, PersistenceError, UserNotFoundError, ValidationError
from vigil.shared.db import fits_integer_column, open_connection, read_errors
from vigil.shared.models import User, format_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)


def _row_to_user(row: aiosqlite.Row) -> User:
    return User(id=row["id"], username=row["username"], created_at=parse_timestamp(row["created_at"]))


class UserStore:
    """Async SQLite store for user accounts."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and ensure the users table exists."""
        self._conn = await open_connection(self.db_path)
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            )
        """)
        await self._conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def create_user(self, username: str) -> User:
        """Register a username. Raises DuplicateUsernameError if it is taken."""
        if not self._conn:
            raise RuntimeError("UserStore not initialized")
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username must not be empty")

        created_at = utcnow()
        async with self._write_lock:
            try:
                cursor = await self._conn.execute(
                    "INSERT INTO users (username, created_at) VALUES (?, ?)",
                    (username, format_timestamp(created_at)),
                )
                await self._conn.commit()
            except sqlite3.IntegrityError:
                await self._conn.rollback()
                raise DuplicateUsernameError(username) from None
            except sqlite3.Error as exc:
                await self._conn.rollback()
                raise PersistenceError(f"Could not create user: {exc}") from exc

        logger.info("Created user %s (id=%d)", username, cursor.lastrowid)
        return User(id=cursor.lastrowid, username=username, created_at=created_at)

    async def get_user(self, user_id: int) -> User:
        """Return the user with ``user_id`` or raise UserNotFoundError."""
        if not self._conn:
            raise RuntimeError("UserStore not initialized")
        if not fits_integer_column(user_id):
            raise UserNotFoundError(f"User {user_id} not found")
        with read_errors("load user"):
            cursor = await self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
        if row is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return _row_to_user(row)

    async def get_user_by_username(self, username: str) -> User:
        if not self._conn:
            raise RuntimeError("UserStore not initialized")
        with read_errors("load user"):
            cursor = await self._conn.execute("SELECT * FROM users WHERE username = ?", (username.strip(),))
            row = await cursor.fetchone()
        if row is None:
            raise UserNotFoundError(f"User '{username}' not found")
        return _row_to_user(row)
