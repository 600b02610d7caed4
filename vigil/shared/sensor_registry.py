"""Sensor registry: ownership and ingestion tokens.

Tokens are bearer credentials. Only their SHA-256 digest is stored, under
a UNIQUE index, so uniqueness is enforced by SQLite at insert time and the
plaintext is handed out exactly once, by register_sensor().
"""

import asyncio
import hashlib
import hmac
import logging
import secrets
import sqlite3
from collections.abc import Callable

import aiosqlite

from vigil.exceptions import (
    InvalidTokenError,
    PersistenceError,
    SensorNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from vigil.shared.db import fits_integer_column, open_connection, read_errors
from vigil.shared.models import Sensor, format_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_BYTES = 32
MAX_TOKEN_ATTEMPTS = 3


def generate_token(nbytes: int = DEFAULT_TOKEN_BYTES) -> str:
    """Return a URL-safe random token with ``nbytes`` of entropy."""
    return secrets.token_urlsafe(nbytes)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _row_to_sensor(row: aiosqlite.Row) -> Sensor:
    return Sensor(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        registered_at=parse_timestamp(row["registered_at"]),
    )


class SensorRegistry:
    """Async SQLite store mapping sensors to owners and tokens."""

    def __init__(self, db_path: str, token_factory: Callable[[], str] | None = None):
        """Initialize the registry.

        Args:
            db_path: Path to the SQLite database shared with the user and event stores
            token_factory: Zero-argument token generator (defaults to generate_token)
        """
        self.db_path = db_path
        self.token_factory = token_factory or generate_token
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and ensure the sensors table exists."""
        self._conn = await open_connection(self.db_path)
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS sensors (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id),
                name TEXT NOT NULL,
                token_hash TEXT NOT NULL,
                registered_at TEXT NOT NULL
            )
        """)
        await self._conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_sensors_token ON sensors(token_hash)")
        await self._conn.execute("CREATE INDEX IF NOT EXISTS idx_sensors_user ON sensors(user_id, registered_at)")
        await self._conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("SensorRegistry not initialized")
        return self._conn

    # ── Write methods ───────────────────────────────────────────────────

    async def register_sensor(self, user_id: int, name: str) -> Sensor:
        """Create a sensor for ``user_id`` and issue its ingestion token.

        The returned Sensor is the only one that carries the plaintext token.

        Raises:
            ValidationError: name is empty or blank
            UserNotFoundError: user_id does not reference a user
            PersistenceError: storage failure, or no unique token after retries
        """
        conn = self._connection()
        name = (name or "").strip()
        if not name:
            raise ValidationError("Sensor name must not be empty")
        if not fits_integer_column(user_id):
            raise UserNotFoundError(f"User {user_id} not found")

        registered_at = utcnow()
        async with self._write_lock:
            for attempt in range(1, MAX_TOKEN_ATTEMPTS + 1):
                token = self.token_factory()
                try:
                    cursor = await conn.execute(
                        """INSERT INTO sensors (user_id, name, token_hash, registered_at)
                           VALUES (?, ?, ?, ?)""",
                        (user_id, name, hash_token(token), format_timestamp(registered_at)),
                    )
                    await conn.commit()
                except sqlite3.IntegrityError as exc:
                    await conn.rollback()
                    message = str(exc)
                    if "FOREIGN KEY" in message:
                        raise UserNotFoundError(f"User {user_id} not found") from None
                    if "token_hash" in message:
                        logger.warning("Token collision on sensor registration (attempt %d)", attempt)
                        continue
                    raise PersistenceError(f"Could not create sensor: {exc}") from exc
                except sqlite3.Error as exc:
                    await conn.rollback()
                    raise PersistenceError(f"Could not create sensor: {exc}") from exc

                logger.info("Registered sensor %r (id=%d) for user %d", name, cursor.lastrowid, user_id)
                return Sensor(
                    id=cursor.lastrowid,
                    user_id=user_id,
                    name=name,
                    registered_at=registered_at,
                    token=token,
                )

        raise PersistenceError(f"Could not generate a unique token after {MAX_TOKEN_ATTEMPTS} attempts")

    # ── Read methods ────────────────────────────────────────────────────

    async def list_sensors(self, user_id: int) -> list[Sensor]:
        """Sensors owned by ``user_id``, oldest registration first."""
        if not fits_integer_column(user_id):
            return []
        with read_errors("list sensors"):
            cursor = await self._connection().execute(
                """SELECT id, user_id, name, registered_at FROM sensors
                   WHERE user_id = ?
                   ORDER BY registered_at ASC, id ASC""",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_sensor(row) for row in rows]

    async def count_sensors(self, user_id: int | None = None) -> int:
        """Number of sensors owned by ``user_id``, or all sensors when None."""
        if user_id is not None and not fits_integer_column(user_id):
            return 0
        with read_errors("count sensors"):
            if user_id is None:
                cursor = await self._connection().execute("SELECT COUNT(*) FROM sensors")
            else:
                cursor = await self._connection().execute("SELECT COUNT(*) FROM sensors WHERE user_id = ?", (user_id,))
            row = await cursor.fetchone()
        return row[0]

    async def get_sensor(self, sensor_id: int) -> Sensor:
        """Fetch a sensor by id without any ownership check.

        Callers exposing the result to a user must use get_owned_sensor().
        """
        if not fits_integer_column(sensor_id):
            raise SensorNotFoundError(f"Sensor {sensor_id} not found")
        with read_errors("load sensor"):
            cursor = await self._connection().execute(
                "SELECT id, user_id, name, registered_at FROM sensors WHERE id = ?",
                (sensor_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            raise SensorNotFoundError(f"Sensor {sensor_id} not found")
        return _row_to_sensor(row)

    async def get_owned_sensor(self, user_id: int, sensor_id: int) -> Sensor:
        """Fetch a sensor only if ``user_id`` owns it.

        A sensor owned by someone else is reported exactly like a missing one.
        """
        sensor = await self.get_sensor(sensor_id)
        if sensor.user_id != user_id:
            raise SensorNotFoundError(f"Sensor {sensor_id} not found")
        return sensor

    async def resolve_token(self, token: str) -> Sensor:
        """Return the sensor bound to ``token`` or raise InvalidTokenError.

        The lookup is by digest, so the index walk depends on the digest
        and not on how much of a guessed token matches a real one.

        Raises:
            InvalidTokenError: no sensor holds ``token``
            PersistenceError: the lookup itself failed
        """
        digest = hash_token(token or "")
        with read_errors("resolve token"):
            cursor = await self._connection().execute(
                "SELECT id, user_id, name, token_hash, registered_at FROM sensors WHERE token_hash = ?",
                (digest,),
            )
            row = await cursor.fetchone()
        if row is None or not hmac.compare_digest(row["token_hash"], digest):
            raise InvalidTokenError("Invalid token")
        return _row_to_sensor(row)
