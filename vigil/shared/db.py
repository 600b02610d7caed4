"""SQLite connection setup shared by the Vigil stores.

Users, sensors and presence events live in one database file so the
foreign keys between them are enforced by SQLite. Each store opens its own
connection; WAL mode lets readers proceed while another connection writes.
"""

import contextlib
import os
import sqlite3
from collections.abc import Iterator

import aiosqlite

from vigil.exceptions import PersistenceError

# SQLite INTEGER is a signed 64-bit value
SQLITE_MAX_INTEGER = 2**63 - 1


def fits_integer_column(value: int) -> bool:
    """True if ``value`` can be bound to an INTEGER parameter."""
    return -SQLITE_MAX_INTEGER - 1 <= value <= SQLITE_MAX_INTEGER


@contextlib.contextmanager
def read_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite3 errors from a read as PersistenceError."""
    try:
        yield
    except sqlite3.Error as exc:
        raise PersistenceError(f"Could not {action}: {exc}") from exc


async def open_connection(db_path: str) -> aiosqlite.Connection:
    """Open a connection with WAL, busy timeout and foreign keys enabled."""
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=5000")
    await conn.execute("PRAGMA foreign_keys=ON")
    return conn
