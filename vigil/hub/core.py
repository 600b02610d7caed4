"""Vigil Hub - store lifecycle and the operations behind the API."""

import logging
from datetime import UTC, datetime
from typing import Any

from vigil.hub.aggregation import AggregationEngine
from vigil.hub.gateway import IngestionGateway
from vigil.shared.event_store import PresenceEventStore
from vigil.shared.identity import UserStore
from vigil.shared.sensor_registry import SensorRegistry, generate_token

logger = logging.getLogger(__name__)


class PresenceHub:
    """Owns the stores and wires the gateway and aggregation engine onto them."""

    def __init__(self, db_path: str, token_bytes: int | None = None):
        """Initialize presence hub.

        Args:
            db_path: Path to the SQLite database holding users, sensors and events
            token_bytes: Entropy of issued sensor tokens (default 32 bytes)
        """
        self.db_path = db_path
        self.users = UserStore(db_path)
        token_factory = (lambda: generate_token(token_bytes)) if token_bytes else None
        self.sensors = SensorRegistry(db_path, token_factory=token_factory)
        self.events = PresenceEventStore(db_path)
        self.gateway = IngestionGateway(self.sensors, self.events)
        self.aggregation = AggregationEngine(self.sensors, self.events)
        self._running = False
        self._start_time: datetime | None = None
        self._request_count: int = 0

    async def initialize(self):
        """Open all stores. Parent tables are created before the tables referencing them."""
        logger.info("Initializing Vigil hub (db=%s)", self.db_path)
        await self.users.initialize()
        await self.sensors.initialize()
        await self.events.initialize()
        self._running = True
        self._start_time = datetime.now(tz=UTC)
        logger.info("Hub initialized successfully")

    async def shutdown(self):
        """Close all stores. Safe to call more than once."""
        logger.info("Shutting down Vigil hub...")
        self._running = False
        for store in (self.events, self.sensors, self.users):
            try:
                await store.close()
            except Exception as e:
                logger.error(f"Error closing {type(store).__name__}: {e}")
        logger.info("Hub shutdown complete")

    def is_running(self) -> bool:
        return self._running

    def get_uptime_seconds(self) -> float:
        """Get hub uptime in seconds."""
        if self._start_time is None:
            return 0.0
        return (datetime.now(tz=UTC) - self._start_time).total_seconds()

    async def health_check(self) -> dict[str, Any]:
        """Perform health check on hub and stores.

        Returns:
            Health check results
        """
        return {
            "status": "ok" if self._running else "stopped",
            "uptime_seconds": round(self.get_uptime_seconds()),
            "sensors": await self.sensors.count_sensors(),
            "events": await self.events.total_count(),
            "requests_total": self._request_count,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
