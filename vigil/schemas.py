"""Shared TypedDict schema definitions for the dashboard JSON contract.

The rendering layer reads these keys from GET /api/dashboard. Used for
runtime validation (warn on missing keys) and contract testing.
"""

from typing import Any, TypedDict


class PresencePayload(TypedDict):
    id: int
    sensor_id: int
    type: str
    registered_at: str


class SensorSummaryPayload(TypedDict):
    """One entry of ``sensors`` in the dashboard payload."""

    id: int
    user_id: int
    name: str
    registered_at: str
    total_detections: int
    last_presence: PresencePayload | None


class DashboardPayload(TypedDict):
    """Top-level keys returned by DashboardSummary.to_dict()."""

    user_id: int
    total_sensors: int
    total_detections: int
    last_detection_at: str | None
    sensors: list[SensorSummaryPayload]


REQUIRED_DASHBOARD_KEYS: set[str] = set(DashboardPayload.__annotations__)
REQUIRED_SENSOR_SUMMARY_KEYS: set[str] = set(SensorSummaryPayload.__annotations__)


def validate_dashboard_payload(data: dict[str, Any]) -> list[str]:
    """Validate that a dashboard payload contains all required keys.

    Returns sorted missing key names; sensor-level keys are reported as
    ``sensors[i].key``. Empty list means valid.
    Does NOT raise — callers decide whether to warn or error.
    """
    missing = sorted(REQUIRED_DASHBOARD_KEYS - set(data.keys()))
    for i, sensor in enumerate(data.get("sensors") or []):
        missing.extend(f"sensors[{i}].{key}" for key in sorted(REQUIRED_SENSOR_SUMMARY_KEYS - set(sensor.keys())))
    return missing
