# ─────────────────────────────────────────────────────────────────
# registry.py - Device Registry
#
# The single owner of every Device record for the life of the
# process. Built once in main.py's lifespan and handed to routes
# through app.state.
#
# LOCKING:
#   Each device id has its own asyncio.Lock. Anything that reads a
#   device and then writes it (heartbeat, commands, task changes,
#   scheduled triggers) runs inside `async with registry.locked(id)`.
#   Critical sections never await anything but the lock itself.
#
# PERSISTENCE:
#   Mutations call request_flush() AFTER releasing the lock. A single
#   background flusher snapshots the registry on the event loop and
#   writes it from a worker thread, so a slow disk never holds up a
#   heartbeat. Write errors are logged and the in-memory state stays
#   authoritative; the next successful flush catches the file up.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional

import commands
import liveness
from config import Settings
from database import JsonStore, devices_from_snapshot, devices_to_snapshot
from errors import Conflict, InvalidInput, NotFound
from models import Device, DeviceType, TaskKind, utcnow

logger = logging.getLogger("registry")


class Registry:
    def __init__(
        self,
        settings: Settings,
        store: Optional[JsonStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.store = store if store is not None else JsonStore(settings.data_file)
        self.clock = clock

        self.devices: Dict[str, Device] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._register_lock = asyncio.Lock()

        self._dirty = False
        self._flusher: Optional[asyncio.Task] = None

    # ── lifecycle ──────────────────────────────────────────────────

    @classmethod
    def open(cls, settings: Settings, **kwargs) -> "Registry":
        """Build a registry from the last snapshot on disk."""

        registry = cls(settings, **kwargs)
        registry.devices = devices_from_snapshot(registry.store.load())
        return registry

    async def close(self) -> None:
        """Write one final snapshot and wait for it."""

        self.request_flush()
        await self.flush()

    def now(self) -> datetime:
        return self.clock()

    # ── locking ────────────────────────────────────────────────────

    def lock_for(self, device_id: str) -> asyncio.Lock:
        lock = self._locks.get(device_id)
        if lock is None:
            lock = self._locks[device_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def locked(self, device_id: str) -> AsyncIterator[Device]:
        """
        Hold the device's lock and yield its record.
        Raises NotFound if the id is unknown.
        """

        if device_id not in self.devices:
            raise NotFound(f"Device '{device_id}' not found")

        async with self.lock_for(device_id):
            device = self.devices.get(device_id)
            if device is None:
                raise NotFound(f"Device '{device_id}' not found")
            yield device

    def peek(self, device_id: str) -> Optional[Device]:
        """The raw record, liveness not corrected. For callers that already hold the lock."""
        return self.devices.get(device_id)

    # ── operations ─────────────────────────────────────────────────

    async def register(self, device_id: str, name: Optional[str] = None,
                       type: DeviceType = DeviceType.desktop) -> Device:
        """
        Create a new device with a fresh token.

        Flow:
        1. Reject an empty or whitespace-padded id
        2. Reject a duplicate id
        3. Store the record with default fields and empty task lists
        4. Ask for a snapshot write
        """

        if not device_id or not device_id.strip():
            raise InvalidInput("Device id must not be empty")
        if device_id != device_id.strip():
            raise InvalidInput("Device id must not have leading or trailing whitespace")

        async with self._register_lock:
            if device_id in self.devices:
                raise Conflict(f"Device '{device_id}' already exists")

            device = Device(
                id=device_id,
                name=name or device_id,
                type=type,
                token=secrets.token_hex(self.settings.token_length),
            )
            self.devices[device_id] = device

        self.request_flush()
        logger.info(f"New device registered: '{device_id}' ({device.type.value})")
        return device

    async def get(self, device_id: str) -> Device:
        async with self.locked(device_id) as device:
            liveness.refresh(device, self.now(), self.settings.heartbeat_timeout)
            return device

    async def list(self) -> List[Device]:
        """All devices, with `online` corrected for stale heartbeats."""

        now = self.now()
        devices = []
        for device_id in list(self.devices):
            async with self.lock_for(device_id):
                device = self.devices.get(device_id)
                if device is None:
                    continue
                liveness.refresh(device, now, self.settings.heartbeat_timeout)
                devices.append(device)
        return devices

    async def send_command(self, device_id: str, kind: TaskKind) -> str:
        """
        Manual "shutdown now" / "wakeup now".
        Raises InvalidState when a guard refuses the command.
        """

        async with self.locked(device_id) as device:
            now = self.now()
            liveness.refresh(device, now, self.settings.heartbeat_timeout)
            commands.check_manual(device, kind, now, self.settings.wake_freshness)
            commands.raise_flag(device, kind)

        self.request_flush()
        logger.info(f"{kind.value} command queued for '{device_id}'")
        return f"{kind.value.capitalize()} command sent to '{device_id}'"

    # ── persistence ────────────────────────────────────────────────

    def snapshot(self) -> dict:
        return devices_to_snapshot(self.devices.values())

    def request_flush(self) -> None:
        """Mark the registry dirty and make sure a flusher is running."""

        self._dirty = True
        if self._flusher is None or self._flusher.done():
            self._flusher = asyncio.get_running_loop().create_task(self._write_pending())

    async def flush(self) -> None:
        """Wait until every requested write has been attempted."""

        while self._flusher is not None and not self._flusher.done():
            await self._flusher

    async def _write_pending(self) -> None:
        while self._dirty:
            self._dirty = False
            snapshot = self.snapshot()
            try:
                await asyncio.to_thread(self.store.save, snapshot)
            except Exception:
                logger.exception(f"Failed to write device snapshot to {self.store.path}")
