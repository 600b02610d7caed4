"""Tests for vigil.hub.aggregation — dashboard summary and sensor detail."""

import sqlite3
from unittest.mock import AsyncMock

import pytest

from tests.helpers import at
from vigil.exceptions import PersistenceError, SensorNotFoundError


class TestDashboardSummary:
    async def test_zero_sensors(self, hub, alice):
        summary = await hub.aggregation.dashboard_summary(alice.id)
        assert summary.total_sensors == 0
        assert summary.total_detections == 0
        assert summary.last_detection_at is None
        assert summary.sensors == []

    async def test_sensors_without_events(self, hub, alice):
        await hub.sensors.register_sensor(alice.id, "Quiet")
        summary = await hub.aggregation.dashboard_summary(alice.id)
        assert summary.total_sensors == 1
        assert summary.total_detections == 0
        assert summary.last_detection_at is None
        assert summary.sensors[0].total_detections == 0
        assert summary.sensors[0].last_presence is None

    async def test_per_sensor_join_not_conflated_with_global_latest(self, hub, alice):
        """S1: 3 events latest T3; S2: 1 event at T5 > T3."""
        s1 = await hub.sensors.register_sensor(alice.id, "S1")
        s2 = await hub.sensors.register_sensor(alice.id, "S2")
        for minute in (1, 2, 3):
            await hub.events.append(s1.id, "enter", at(minute))
        await hub.events.append(s2.id, "enter", at(5))

        summary = await hub.aggregation.dashboard_summary(alice.id)

        assert summary.total_sensors == 2
        assert summary.total_detections == 4
        assert summary.last_detection_at == at(5)
        by_name = {item.sensor.name: item for item in summary.sensors}
        assert by_name["S1"].total_detections == 3
        assert by_name["S1"].last_presence.registered_at == at(3)
        assert by_name["S2"].total_detections == 1
        assert by_name["S2"].last_presence.registered_at == at(5)

    async def test_totals_match_sum_of_sensors(self, hub, alice):
        sensors = [await hub.sensors.register_sensor(alice.id, f"s{i}") for i in range(4)]
        for i, sensor in enumerate(sensors):
            for j in range(i):
                await hub.events.append(sensor.id, "enter", at(10 * i + j))
        summary = await hub.aggregation.dashboard_summary(alice.id)
        assert summary.total_detections == sum(s.total_detections for s in summary.sensors) == 6

    async def test_other_users_events_never_surface(self, hub, alice, bob):
        mine = await hub.sensors.register_sensor(alice.id, "Mine")
        theirs = await hub.sensors.register_sensor(bob.id, "Theirs")
        await hub.events.append(mine.id, "enter", at(1))
        await hub.events.append(theirs.id, "enter", at(99))
        await hub.events.append(theirs.id, "exit", at(100))

        summary = await hub.aggregation.dashboard_summary(alice.id)
        assert summary.total_sensors == 1
        assert summary.total_detections == 1
        assert summary.last_detection_at == at(1)
        assert [s.sensor.id for s in summary.sensors] == [mine.id]

    async def test_sensor_order_is_registration_order(self, hub, alice):
        names = ["c", "a", "b"]
        for name in names:
            await hub.sensors.register_sensor(alice.id, name)
        summary = await hub.aggregation.dashboard_summary(alice.id)
        assert [s.sensor.name for s in summary.sensors] == names

    async def test_to_dict_shape(self, hub, alice):
        s1 = await hub.sensors.register_sensor(alice.id, "S1")
        await hub.events.append(s1.id, "enter", at(3))
        data = (await hub.aggregation.dashboard_summary(alice.id)).to_dict()
        assert data["total_detections"] == 1
        assert data["last_detection_at"] == at(3).isoformat()
        assert data["sensors"][0]["last_presence"]["type"] == "enter"
        assert "token" not in data["sensors"][0]

    async def test_storage_failure_gives_no_partial_summary(self, hub, alice):
        await hub.sensors.register_sensor(alice.id, "S1")
        hub.events.latest_across_sensors = AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error"))
        with pytest.raises(PersistenceError):
            await hub.aggregation.dashboard_summary(alice.id)

    async def test_summary_does_not_write(self, hub, alice):
        s1 = await hub.sensors.register_sensor(alice.id, "S1")
        await hub.events.append(s1.id, "enter", at(1))
        await hub.aggregation.dashboard_summary(alice.id)
        assert await hub.events.total_count() == 1


class TestSensorDetail:
    async def test_detail_with_history_oldest_first(self, hub, alice):
        sensor = await hub.sensors.register_sensor(alice.id, "Door")
        await hub.events.append(sensor.id, "exit", at(20))
        await hub.events.append(sensor.id, "enter", at(10))

        detail = await hub.aggregation.sensor_detail(alice.id, sensor.id)
        assert detail.sensor.id == sensor.id
        assert [e.registered_at for e in detail.events] == [at(10), at(20)]

    async def test_detail_requires_ownership(self, hub, alice, bob):
        sensor = await hub.sensors.register_sensor(alice.id, "Door")
        with pytest.raises(SensorNotFoundError):
            await hub.aggregation.sensor_detail(bob.id, sensor.id)

    async def test_detail_missing_sensor(self, hub, alice):
        with pytest.raises(SensorNotFoundError):
            await hub.aggregation.sensor_detail(alice.id, 12345)
