"""SQLite event store for presence detections.

Append-only: rows are inserted by the ingestion gateway and never updated
or deleted. Per-sensor order is (registered_at, id); ``id`` is the store
sequence and breaks timestamp ties.
"""

import asyncio
import contextlib
import logging
import sqlite3
from collections.abc import AsyncIterator, Sequence
from datetime import datetime

import aiosqlite

from vigil.exceptions import PersistenceError, SensorNotFoundError
from vigil.shared.db import open_connection, read_errors
from vigil.shared.models import PresenceEvent, SensorRollup, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def _row_to_event(row: aiosqlite.Row) -> PresenceEvent:
    return PresenceEvent(
        id=row["id"],
        sensor_id=row["sensor_id"],
        type=row["type"],
        registered_at=parse_timestamp(row["registered_at"]),
    )


def _placeholders(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


def _log_detached_append(task: asyncio.Future) -> None:
    """Report an append whose caller was cancelled before it finished."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Event append failed after its request was cancelled: %s", exc)
    else:
        event = task.result()
        logger.warning("Event %d for sensor %d committed after its request was cancelled", event.id, event.sensor_id)


class PresenceEventStore:
    """Async SQLite store for presence events."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database, enable WAL mode, and ensure schema exists."""
        self._conn = await open_connection(self.db_path)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS presence_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sensor_id INTEGER NOT NULL REFERENCES sensors(id),
                type TEXT NOT NULL,
                registered_at TEXT NOT NULL
            )
        """)
        await self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_pe_sensor ON presence_events(sensor_id, registered_at, id)"
        )
        await self._conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("PresenceEventStore not initialized")
        return self._conn

    @contextlib.asynccontextmanager
    async def snapshot(self) -> AsyncIterator["PresenceEventStore"]:
        """Hold off appends on this store while several reads run together."""
        async with self._write_lock:
            yield self

    # ── Write methods ───────────────────────────────────────────────────

    async def append(self, sensor_id: int, event_type: str, registered_at: datetime) -> PresenceEvent:
        """Insert one event and commit it.

        The insert and commit run shielded from the caller: if the caller is
        cancelled (request timeout) the event is still committed whole, never
        left half-written in an open transaction. The caller then never learns
        the outcome, so the detached insert logs it instead. Delivery is
        at-least-once: a sensor retrying after a timeout may record the
        same detection twice.

        Raises:
            SensorNotFoundError: sensor_id does not reference a sensor
            PersistenceError: any other storage failure
        """
        conn = self._connection()
        timestamp = format_timestamp(registered_at)
        insert = asyncio.ensure_future(self._insert(conn, sensor_id, event_type, timestamp))
        try:
            return await asyncio.shield(insert)
        except asyncio.CancelledError:
            insert.add_done_callback(_log_detached_append)
            raise

    async def _insert(self, conn: aiosqlite.Connection, sensor_id: int, event_type: str, timestamp: str) -> PresenceEvent:
        async with self._write_lock:
            try:
                cursor = await conn.execute(
                    "INSERT INTO presence_events (sensor_id, type, registered_at) VALUES (?, ?, ?)",
                    (sensor_id, event_type, timestamp),
                )
                await conn.commit()
            except sqlite3.IntegrityError as exc:
                await conn.rollback()
                if "FOREIGN KEY" in str(exc):
                    raise SensorNotFoundError(f"Sensor {sensor_id} not found") from None
                raise PersistenceError(f"Could not append event: {exc}") from exc
            except sqlite3.Error as exc:
                await conn.rollback()
                raise PersistenceError(f"Could not append event: {exc}") from exc

        return PresenceEvent(
            id=cursor.lastrowid,
            sensor_id=sensor_id,
            type=event_type,
            registered_at=parse_timestamp(timestamp),
        )

    # ── Read methods ────────────────────────────────────────────────────

    async def count_by_sensors(self, sensor_ids: Sequence[int]) -> int:
        """Total number of events across ``sensor_ids``."""
        if not sensor_ids:
            return 0
        with read_errors("count events"):
            cursor = await self._connection().execute(
                f"SELECT COUNT(*) FROM presence_events WHERE sensor_id IN ({_placeholders(sensor_ids)})",
                tuple(sensor_ids),
            )
            row = await cursor.fetchone()
        return row[0]

    async def latest_by_sensor(self, sensor_id: int) -> PresenceEvent | None:
        """Most recent event for one sensor, or None."""
        with read_errors("load latest event"):
            cursor = await self._connection().execute(
                """SELECT * FROM presence_events
                   WHERE sensor_id = ?
                   ORDER BY registered_at DESC, id DESC
                   LIMIT 1""",
                (sensor_id,),
            )
            row = await cursor.fetchone()
        return _row_to_event(row) if row else None

    async def latest_across_sensors(self, sensor_ids: Sequence[int]) -> PresenceEvent | None:
        """Most recent event across ``sensor_ids``, or None."""
        if not sensor_ids:
            return None
        with read_errors("load latest event"):
            cursor = await self._connection().execute(
                f"""SELECT * FROM presence_events
                    WHERE sensor_id IN ({_placeholders(sensor_ids)})
                    ORDER BY registered_at DESC, id DESC
                    LIMIT 1""",
                tuple(sensor_ids),
            )
            row = await cursor.fetchone()
        return _row_to_event(row) if row else None

    async def list_by_sensor(self, sensor_id: int) -> list[PresenceEvent]:
        """Full history for one sensor, oldest first."""
        with read_errors("load event history"):
            cursor = await self._connection().execute(
                """SELECT * FROM presence_events
                   WHERE sensor_id = ?
                   ORDER BY registered_at ASC, id ASC""",
                (sensor_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    async def sensor_rollups(self, sensor_ids: Sequence[int]) -> dict[int, SensorRollup]:
        """Count and latest event for each sensor in ``sensor_ids``.

        One windowed query over the requested sensors only. Sensors without
        events are returned with a zero count and no latest event.
        """
        rollups = {sensor_id: SensorRollup(sensor_id=sensor_id) for sensor_id in sensor_ids}
        if not sensor_ids:
            return rollups
        with read_errors("aggregate events"):
            cursor = await self._connection().execute(
                f"""SELECT id, sensor_id, type, registered_at, total FROM (
                        SELECT id, sensor_id, type, registered_at,
                               ROW_NUMBER() OVER (
                                   PARTITION BY sensor_id ORDER BY registered_at DESC, id DESC
                               ) AS rn,
                               COUNT(*) OVER (PARTITION BY sensor_id) AS total
                        FROM presence_events
                        WHERE sensor_id IN ({_placeholders(sensor_ids)})
                    ) WHERE rn = 1""",
                tuple(sensor_ids),
            )
            rows = await cursor.fetchall()
        for row in rows:
            rollups[row["sensor_id"]] = SensorRollup(
                sensor_id=row["sensor_id"],
                total_detections=row["total"],
                last_presence=_row_to_event(row),
            )
        return rollups

    async def total_count(self) -> int:
        """Total number of events in the store."""
        with read_errors("count events"):
            cursor = await self._connection().execute("SELECT COUNT(*) FROM presence_events")
            row = await cursor.fetchone()
        return row[0]
