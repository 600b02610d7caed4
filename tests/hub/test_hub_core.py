"""Tests for PresenceHub lifecycle."""

import os

import pytest

from vigil.hub.core import PresenceHub


async def test_initialize_creates_database(tmp_path):
    db_path = tmp_path / "nested" / "vigil.db"
    hub = PresenceHub(str(db_path))
    await hub.initialize()
    try:
        assert os.path.exists(db_path)
        assert hub.is_running()
    finally:
        await hub.shutdown()


async def test_shutdown_closes_stores_and_is_idempotent(hub):
    await hub.shutdown()
    assert not hub.is_running()
    assert hub.events._conn is None
    assert hub.sensors._conn is None
    assert hub.users._conn is None
    await hub.shutdown()


async def test_data_survives_restart(db_path):
    hub = PresenceHub(db_path)
    await hub.initialize()
    user = await hub.users.create_user("alice")
    sensor = await hub.sensors.register_sensor(user.id, "Door")
    await hub.gateway.ingest(sensor.token, "enter")
    await hub.shutdown()

    reopened = PresenceHub(db_path)
    await reopened.initialize()
    try:
        assert (await reopened.sensors.resolve_token(sensor.token)).id == sensor.id
        summary = await reopened.aggregation.dashboard_summary(user.id)
        assert summary.total_detections == 1
    finally:
        await reopened.shutdown()


async def test_health_check(hub, alice):
    health = await hub.health_check()
    assert health["status"] == "ok"
    assert health["sensors"] == 0
    assert health["events"] == 0
    assert health["uptime_seconds"] >= 0


def test_uptime_zero_before_start(tmp_path):
    hub = PresenceHub(str(tmp_path / "vigil.db"))
    assert hub.get_uptime_seconds() == 0.0
    assert not hub.is_running()


@pytest.mark.parametrize("nbytes", [16, 48])
async def test_token_bytes_configures_issued_tokens(tmp_path, nbytes):
    hub = PresenceHub(str(tmp_path / "vigil.db"), token_bytes=nbytes)
    await hub.initialize()
    try:
        user = await hub.users.create_user("alice")
        sensor = await hub.sensors.register_sensor(user.id, "Door")
        # token_urlsafe encodes n bytes as ceil(4n/3) characters, no padding
        assert len(sensor.token) == -(-4 * nbytes // 3)
    finally:
        await hub.shutdown()
