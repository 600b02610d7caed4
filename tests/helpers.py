"""Timestamp helpers shared by the test suite."""

from datetime import UTC, datetime, timedelta

T0 = datetime(2025, 1, 15, 8, 0, tzinfo=UTC)


def at(minutes: float) -> datetime:
    """Timestamp ``minutes`` after T0."""
    return T0 + timedelta(minutes=minutes)
