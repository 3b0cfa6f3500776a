# ─────────────────────────────────────────────────────────────────
# routes/devices.py - Device Endpoints
#
# Two routers share the /api/devices prefix:
#   admin_router  - everything the dashboard calls, bearer session required
#   device_router - the heartbeat, authenticated by X-Device-Token
#
# Handlers stay thin: they unpack the request, call the registry,
# heartbeat handler or scheduler, and shape the reply. Domain errors
# bubble up to the handler installed in main.py.
# ─────────────────────────────────────────────────────────────────

from typing import List, Optional

from fastapi import APIRouter, Depends, Header

from heartbeat import handle_heartbeat
from models import (
    CommandOut,
    DelayedShutdown,
    Device,
    DeviceCreate,
    DeviceView,
    HeartbeatIn,
    HeartbeatOut,
    TaskKind,
)
from registry import Registry
from routes.deps import get_registry, get_scheduler, require_admin
from scheduler import TaskScheduler

admin_router = APIRouter(
    prefix="/api/devices",
    tags=["Devices"],
    dependencies=[Depends(require_admin)],
)

device_router = APIRouter(
    prefix="/api/devices",
    tags=["Device poll"],
)


# ─────────────────────────────────────────────────────────────────
# POST /api/devices - Register a device
# ─────────────────────────────────────────────────────────────────

@admin_router.post("", status_code=201, response_model=Device)
async def register_device(body: DeviceCreate, registry: Registry = Depends(get_registry)):
    """
    Registers a new device and returns its record.

    The response includes the device token. This is the only time
    it is ever shown; flash it onto the device now.
    """

    return await registry.register(body.id, body.name, body.type)


# ─────────────────────────────────────────────────────────────────
# GET /api/devices - List devices
# ─────────────────────────────────────────────────────────────────

@admin_router.get("", response_model=List[DeviceView])
async def list_devices(
    registry: Registry = Depends(get_registry),
    scheduler: TaskScheduler = Depends(get_scheduler),
):
    return [
        DeviceView.from_device(d, scheduler.has_delayed_shutdown(d.id))
        for d in await registry.list()
    ]


@admin_router.get("/{device_id}", response_model=DeviceView)
async def get_device(
    device_id: str,
    registry: Registry = Depends(get_registry),
    scheduler: TaskScheduler = Depends(get_scheduler),
):
    device = await registry.get(device_id)
    return DeviceView.from_device(device, scheduler.has_delayed_shutdown(device_id))


# ─────────────────────────────────────────────────────────────────
# POST /api/devices/{device_id}/heartbeat - Device poll
# ─────────────────────────────────────────────────────────────────

@device_router.post("/{device_id}/heartbeat", response_model=HeartbeatOut)
async def heartbeat(
    device_id: str,
    body: Optional[HeartbeatIn] = None,
    x_device_token: Optional[str] = Header(None),
    registry: Registry = Depends(get_registry),
):
    """
    Called by the ESP32 / RemoteClient every few seconds.

    Body (optional): {"powerState": "on"}
    Reply: {"shutdown": bool, "wakeup": bool}, each true at most once
    per command raised.
    """

    power_state = body.power_state if body is not None else None
    return await handle_heartbeat(registry, device_id, x_device_token, power_state)


# ─────────────────────────────────────────────────────────────────
# Manual commands
# ─────────────────────────────────────────────────────────────────

@admin_router.post("/{device_id}/shutdown", response_model=CommandOut)
async def shutdown_now(device_id: str, registry: Registry = Depends(get_registry)):
    """Queues a shutdown for the next heartbeat. Refused if the device is offline."""

    message = await registry.send_command(device_id, TaskKind.shutdown)
    return CommandOut(message=message)


@admin_router.post("/{device_id}/wakeup", response_model=CommandOut)
async def wakeup_now(device_id: str, registry: Registry = Depends(get_registry)):
    """
    Queues a wake pulse for the next heartbeat.
    Refused for non-desktop devices, and for machines that reported
    powerState "on" within the last few minutes.
    """

    message = await registry.send_command(device_id, TaskKind.wakeup)
    return CommandOut(message=message)


# ─────────────────────────────────────────────────────────────────
# One-shot delayed shutdown
# ─────────────────────────────────────────────────────────────────

@admin_router.post("/{device_id}/schedule-shutdown", response_model=CommandOut)
async def schedule_shutdown(
    device_id: str,
    body: DelayedShutdown,
    scheduler: TaskScheduler = Depends(get_scheduler),
):
    await scheduler.schedule_delayed_shutdown(device_id, body.delay)
    return CommandOut(message=f"Device '{device_id}' will shut down in {body.delay} seconds")


@admin_router.post("/{device_id}/cancel-schedule-shutdown", response_model=CommandOut)
async def cancel_schedule_shutdown(device_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    await scheduler.cancel_delayed_shutdown(device_id)
    return CommandOut(message="Scheduled shutdown cancelled")
