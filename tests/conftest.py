"""Shared fixtures for the Power Pulse tests."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from config import Settings
from registry import Registry
from scheduler import TaskScheduler


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        _env_file=None,
        data_file=tmp_path / "devices.json",
        sessions_file=tmp_path / "sessions.json",
        admin_username="admin",
        admin_password="s3cret",
        heartbeat_timeout=30,
        wake_freshness=300,
        token_length=32,
        timezone="UTC",
    )


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc))


@pytest.fixture()
async def registry(settings, clock):
    reg = Registry.open(settings, clock=clock)
    yield reg
    await reg.flush()


@pytest.fixture()
async def scheduler(registry):
    sched = TaskScheduler(registry)
    yield sched
    await sched.stop_all()


@pytest.fixture()
async def desktop(registry):
    return await registry.register("esp-1", "Office PC")


@pytest.fixture()
def client(settings):
    from main import create_app

    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture()
def admin_headers(client):
    r = client.post("/api/login", json={"username": "admin", "password": "s3cret"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}
