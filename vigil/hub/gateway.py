"""Ingestion gateway: authenticate a sensor by token and record its event."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from vigil.exceptions import InvalidTokenError, ValidationError
from vigil.shared.event_store import PresenceEventStore
from vigil.shared.models import PresenceEvent, utcnow
from vigil.shared.sensor_registry import SensorRegistry

logger = logging.getLogger(__name__)

REJECT_INVALID_TOKEN = "invalid_token"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one webhook call: accepted with the stored event, or rejected."""

    accepted: bool
    event: PresenceEvent | None = None
    reason: str | None = None

    @classmethod
    def rejected(cls, reason: str) -> "IngestResult":
        return cls(accepted=False, reason=reason)


class IngestionGateway:
    """Translate an authenticated webhook call into a durable presence event.

    Each call is independent; the only shared state is the database.
    """

    def __init__(
        self,
        registry: SensorRegistry,
        events: PresenceEventStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.registry = registry
        self.events = events
        self.clock = clock

    async def ingest(self, token: str, event_type: str) -> IngestResult:
        """Record one detection for the sensor holding ``token``.

        An unknown token ends the call with a rejection; nothing is written.
        The timestamp is read from the gateway clock, never from the caller.

        Raises:
            ValidationError: event_type is empty or blank
            PersistenceError: the token lookup or the append failed; the event
                is not recorded
        """
        try:
            sensor = await self.registry.resolve_token(token)
        except InvalidTokenError:
            logger.warning("Rejected detection with unknown token")
            return IngestResult.rejected(REJECT_INVALID_TOKEN)

        if not isinstance(event_type, str) or not event_type.strip():
            raise ValidationError("Event type must be a non-empty string")

        event = await self.events.append(sensor.id, event_type, self.clock())
        logger.debug("Recorded %r event %d for sensor %d", event_type, event.id, sensor.id)
        return IngestResult(accepted=True, event=event)
