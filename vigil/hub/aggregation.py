"""Read-side aggregation for the dashboard and sensor detail views."""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from vigil.exceptions import PersistenceError
from vigil.shared.event_store import PresenceEventStore
from vigil.shared.models import PresenceEvent, Sensor
from vigil.shared.sensor_registry import SensorRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SensorSummary:
    """A sensor with its last presence and detection count attached."""

    sensor: Sensor
    total_detections: int
    last_presence: PresenceEvent | None

    def to_dict(self) -> dict[str, Any]:
        data = self.sensor.to_dict()
        data["total_detections"] = self.total_detections
        data["last_presence"] = self.last_presence.to_dict() if self.last_presence else None
        return data


@dataclass(frozen=True)
class DashboardSummary:
    """Per-user rollup. Built whole or not at all."""

    user_id: int
    total_sensors: int
    total_detections: int
    last_detection_at: datetime | None
    sensors: list[SensorSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "total_sensors": self.total_sensors,
            "total_detections": self.total_detections,
            "last_detection_at": self.last_detection_at.isoformat() if self.last_detection_at else None,
            "sensors": [s.to_dict() for s in self.sensors],
        }


@dataclass(frozen=True)
class SensorDetail:
    sensor: Sensor
    events: list[PresenceEvent]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sensor": self.sensor.to_dict(),
            "events": [e.to_dict() for e in self.events],
        }


class AggregationEngine:
    """Builds read models from the registry and event store; never writes."""

    def __init__(self, registry: SensorRegistry, events: PresenceEventStore):
        self.registry = registry
        self.events = events

    async def dashboard_summary(self, user_id: int) -> DashboardSummary:
        """Summarize every sensor owned by ``user_id``.

        Per-sensor rollups come from one windowed join over the owned sensors;
        the totals are two scalar queries over the same set. All three run
        under one event-store snapshot so they agree with each other.

        Raises:
            PersistenceError: any read failed; no partial summary is returned
        """
        try:
            sensors = await self.registry.list_sensors(user_id)
            sensor_ids = [s.id for s in sensors]
            async with self.events.snapshot():
                rollups = await self.events.sensor_rollups(sensor_ids)
                total_detections = await self.events.count_by_sensors(sensor_ids)
                latest = await self.events.latest_across_sensors(sensor_ids)
        except PersistenceError:
            logger.exception("Dashboard aggregation failed for user %d", user_id)
            raise
        except sqlite3.Error as exc:
            logger.exception("Dashboard aggregation failed for user %d", user_id)
            raise PersistenceError(f"Could not build dashboard summary: {exc}") from exc

        summaries = [
            SensorSummary(
                sensor=sensor,
                total_detections=rollups[sensor.id].total_detections,
                last_presence=rollups[sensor.id].last_presence,
            )
            for sensor in sensors
        ]
        return DashboardSummary(
            user_id=user_id,
            total_sensors=len(sensors),
            total_detections=total_detections,
            last_detection_at=latest.registered_at if latest else None,
            sensors=summaries,
        )

    async def sensor_detail(self, user_id: int, sensor_id: int) -> SensorDetail:
        """Sensor plus its full history, oldest first, if ``user_id`` owns it.

        Raises:
            SensorNotFoundError: missing, or owned by another user
        """
        sensor = await self.registry.get_owned_sensor(user_id, sensor_id)
        try:
            history = await self.events.list_by_sensor(sensor.id)
        except PersistenceError:
            logger.exception("Could not load history for sensor %d", sensor.id)
            raise
        except sqlite3.Error as exc:
            logger.exception("Could not load history for sensor %d", sensor.id)
            raise PersistenceError(f"Could not load sensor history: {exc}") from exc
        return SensorDetail(sensor=sensor, events=history)
