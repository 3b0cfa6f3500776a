"""Tests for the device registry, liveness correction and snapshots."""

import json
import logging

import pytest

from database import JsonStore
from errors import Conflict, InvalidInput, NotFound
from heartbeat import handle_heartbeat
from models import DeviceType, PowerState, TaskKind
from registry import Registry
from scheduler import TaskScheduler


class TestRegister:
    async def test_creates_device_with_defaults(self, registry):
        device = await registry.register("esp-1", "Office PC", DeviceType.desktop)

        assert device.id == "esp-1"
        assert device.name == "Office PC"
        assert device.online is False
        assert device.last_seen_ts is None
        assert device.power_state is PowerState.unknown
        assert device.shutdown is False and device.wakeup is False
        assert device.shutdown_tasks == [] and device.wakeup_tasks == []
        # 32 random bytes, hex encoded
        assert len(device.token) == 64

    async def test_name_defaults_to_id(self, registry):
        device = await registry.register("esp-2")
        assert device.name == "esp-2"

    async def test_tokens_are_unique(self, registry):
        a = await registry.register("a")
        b = await registry.register("b")
        assert a.token != b.token

    async def test_empty_id_rejected(self, registry):
        with pytest.raises(InvalidInput):
            await registry.register("")
        with pytest.raises(InvalidInput):
            await registry.register("   ")
        assert registry.devices == {}

    async def test_padded_id_rejected(self, registry):
        with pytest.raises(InvalidInput, match="whitespace"):
            await registry.register(" esp-1 ")
        assert registry.devices == {}

        device = await registry.register("esp-1")
        assert device.id == "esp-1"

    async def test_duplicate_id_rejected(self, registry):
        first = await registry.register("esp-1")
        with pytest.raises(Conflict):
            await registry.register("esp-1", "Other")
        assert registry.devices["esp-1"] is first

    async def test_get_unknown(self, registry):
        with pytest.raises(NotFound):
            await registry.get("nope")


class TestLiveness:
    async def test_goes_offline_after_timeout(self, registry, desktop, clock):
        await handle_heartbeat(registry, "esp-1", desktop.token)
        assert (await registry.get("esp-1")).online is True

        clock.advance(31)

        listed = await registry.list()
        assert listed[0].online is False

    async def test_stays_online_within_timeout(self, registry, desktop, clock):
        await handle_heartbeat(registry, "esp-1", desktop.token)
        clock.advance(29)
        assert (await registry.list())[0].online is True

    async def test_read_corrects_stale_record(self, registry, desktop, clock):
        await handle_heartbeat(registry, "esp-1", desktop.token)
        clock.advance(120)

        # the raw record is only corrected when it is read
        assert registry.peek("esp-1").online is True
        assert (await registry.get("esp-1")).online is False
        assert registry.peek("esp-1").online is False

    async def test_heartbeat_brings_device_back(self, registry, desktop, clock):
        await handle_heartbeat(registry, "esp-1", desktop.token)
        clock.advance(600)
        await registry.list()

        await handle_heartbeat(registry, "esp-1", desktop.token)
        device = await registry.get("esp-1")
        assert device.online is True
        assert device.last_seen_ts == clock()


class TestSnapshot:
    async def test_register_writes_snapshot(self, registry, settings):
        await registry.register("esp-1", "Office PC")
        await registry.flush()

        data = json.loads(settings.data_file.read_text())
        record = data["esp-1"]
        assert record["name"] == "Office PC"
        assert record["type"] == "desktop"
        assert record["powerState"] == "unknown"
        assert record["lastSeenTs"] is None
        assert record["shutdownTasks"] == []

    async def test_tasks_saved_without_timer_handles(self, registry, scheduler, desktop, settings):
        task = await scheduler.create("esp-1", TaskKind.shutdown, 2, 30)
        await registry.flush()

        saved = json.loads(settings.data_file.read_text())["esp-1"]["shutdownTasks"]
        assert len(saved) == 1
        assert set(saved[0]) == {"id", "hour", "minute", "active", "createdAt"}
        assert saved[0]["id"] == task.id
        assert saved[0]["active"] is True

    async def test_reopen_restores_devices(self, registry, scheduler, desktop, settings, clock):
        await handle_heartbeat(registry, "esp-1", desktop.token, "on")
        await scheduler.create("esp-1", TaskKind.wakeup, 7, 0)
        await registry.close()

        reopened = Registry.open(settings, clock=clock)
        device = reopened.peek("esp-1")
        assert device.token == desktop.token
        assert device.power_state is PowerState.on
        assert device.last_seen_ts == clock()
        assert [(t.hour, t.minute) for t in device.wakeup_tasks] == [(7, 0)]

    async def test_missing_file_is_created(self, settings):
        assert not settings.data_file.exists()
        reg = Registry.open(settings)
        assert reg.devices == {}
        assert json.loads(settings.data_file.read_text()) == {}

    async def test_legacy_snapshot_loads(self, settings):
        settings.data_file.write_text(json.dumps({
            "pc-1": {
                "id": "pc-1",
                "name": "pc-1",
                "token": "abc",
                "online": True,
                "lastSeen": "2025/1/1 10:00:00",
                "lastSeenTs": 1735725600000,
                "shutdown": False,
                "shutdownTimer": None,
            }
        }))

        device = Registry.open(settings).peek("pc-1")
        assert device.last_seen_ts.year == 2025
        assert device.type is DeviceType.desktop
        assert device.wakeup_tasks == []

    async def test_flush_failure_is_logged_not_raised(self, settings, clock, caplog):
        class BrokenStore(JsonStore):
            def save(self, data):
                raise OSError("disk full")

        reg = Registry(settings, store=BrokenStore(settings.data_file), clock=clock)

        with caplog.at_level(logging.ERROR, logger="registry"):
            device = await reg.register("esp-1")
            await reg.flush()

        assert reg.peek("esp-1") is device
        assert "Failed to write device snapshot" in caplog.text

    async def test_unexpected_flush_error_keeps_flusher_alive(self, settings, clock, caplog):
        calls = []

        class FlakyStore(JsonStore):
            def save(self, data):
                calls.append(sorted(data))
                if len(calls) == 1:
                    raise ValueError("not serializable")
                super().save(data)

        reg = Registry(settings, store=FlakyStore(settings.data_file), clock=clock)

        with caplog.at_level(logging.ERROR, logger="registry"):
            await reg.register("esp-1")
            await reg.flush()
        assert "ValueError" in caplog.text

        await reg.register("esp-2")
        await reg.flush()

        assert sorted(json.loads(settings.data_file.read_text())) == ["esp-1", "esp-2"]

    async def test_writes_are_coalesced(self, settings, clock):
        writes = []

        class CountingStore(JsonStore):
            def save(self, data):
                writes.append(sorted(data))

        reg = Registry(settings, store=CountingStore(settings.data_file), clock=clock)
        for i in range(5):
            await reg.register(f"dev-{i}")
        await reg.flush()

        assert 1 <= len(writes) <= 5
        assert writes[-1] == [f"dev-{i}" for i in range(5)]


class TestLifecycle:
    async def test_close_writes_final_snapshot(self, settings, clock):
        reg = Registry.open(settings, clock=clock)
        sched = TaskScheduler(reg)
        await reg.register("esp-1")
        await sched.create("esp-1", TaskKind.shutdown, 23, 0)

        await sched.stop_all()
        await reg.close()

        data = json.loads(settings.data_file.read_text())
        assert data["esp-1"]["shutdownTasks"][0]["hour"] == 23
        assert not sched.is_running("esp-1", data["esp-1"]["shutdownTasks"][0]["id"])
