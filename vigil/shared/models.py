"""Shared data models for users, sensors and presence events."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 column value, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Normalize to UTC ISO 8601 with microseconds so text ordering matches time ordering."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class User:
    """Account identifier supplied by the identity layer."""

    id: int
    username: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.username, "created_at": self.created_at.isoformat()}


@dataclass(frozen=True)
class Sensor:
    """A physical presence sensor owned by exactly one user.

    ``token`` is only populated on the value returned at registration;
    the store keeps a digest and never hands the plaintext back.
    """

    id: int
    user_id: int
    name: str
    registered_at: datetime
    token: str | None = field(default=None, repr=False)

    def to_dict(self, include_token: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "registered_at": self.registered_at.isoformat(),
        }
        if include_token:
            data["token"] = self.token
        return data


@dataclass(frozen=True)
class PresenceEvent:
    """One detection reported by a sensor."""

    id: int
    sensor_id: int
    type: str
    registered_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sensor_id": self.sensor_id,
            "type": self.type,
            "registered_at": self.registered_at.isoformat(),
        }


@dataclass(frozen=True)
class SensorRollup:
    """Per-sensor aggregate: detection count and most recent event."""

    sensor_id: int
    total_detections: int = 0
    last_presence: PresenceEvent | None = None
