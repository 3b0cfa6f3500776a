# ─────────────────────────────────────────────────────────────────
# models.py - Data Models (Pydantic Schemas)
#
# Two groups live here:
#   1. Records  - Device and ScheduledTask, the state we own and persist
#   2. Payloads - the shapes of request bodies and responses
#
# Records use camelCase aliases so devices.json keeps the same keys
# the ESP32 / RemoteClient tooling already reads.
# ─────────────────────────────────────────────────────────────────

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceType(str, Enum):
    desktop = "desktop"
    other = "other"


class PowerState(str, Enum):
    unknown = "unknown"
    on = "on"


class TaskKind(str, Enum):
    shutdown = "shutdown"
    wakeup = "wakeup"


class Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ─────────────────────────────────────────────────────────────────
# RECORDS
# ─────────────────────────────────────────────────────────────────

class ScheduledTask(Record):
    """
    A recurring daily job for one device.

    Only the declarative fields live here. The cron job for an
    active task is kept by the scheduler.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    hour: int
    minute: int
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Device(Record):
    id: str
    name: str
    type: DeviceType = DeviceType.desktop
    token: str
    online: bool = False
    last_seen_ts: Optional[datetime] = None
    power_state: PowerState = PowerState.unknown

    # single-slot command mailbox
    shutdown: bool = False
    wakeup: bool = False

    shutdown_tasks: List[ScheduledTask] = Field(default_factory=list)
    wakeup_tasks: List[ScheduledTask] = Field(default_factory=list)

    @field_validator("last_seen_ts", mode="before")
    @classmethod
    def _accept_epoch_millis(cls, value):
        # older devices.json files stored Date.now() milliseconds
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        return value

    def tasks(self, kind: TaskKind) -> List[ScheduledTask]:
        if kind is TaskKind.shutdown:
            return self.shutdown_tasks
        return self.wakeup_tasks

    def find_task(self, kind: TaskKind, task_id: str) -> Optional[ScheduledTask]:
        for task in self.tasks(kind):
            if task.id == task_id:
                return task
        return None


class Session(Record):
    username: str
    token: str
    expires_at: datetime


# ─────────────────────────────────────────────────────────────────
# REQUEST BODIES
# ─────────────────────────────────────────────────────────────────

class DeviceCreate(BaseModel):
    """
    Body for POST /api/devices

    {
        "id": "esp-1",
        "name": "Office PC",
        "type": "desktop"
    }
    """

    id: str
    name: Optional[str] = None
    type: DeviceType = DeviceType.desktop


class HeartbeatIn(Record):
    power_state: Optional[str] = None


class TaskCreate(BaseModel):
    hour: int
    minute: int


class DelayedShutdown(BaseModel):
    delay: int  # seconds from now


class LoginRequest(BaseModel):
    username: str
    password: str


# ─────────────────────────────────────────────────────────────────
# RESPONSES
# ─────────────────────────────────────────────────────────────────

class HeartbeatOut(BaseModel):
    shutdown: bool
    wakeup: bool


class CommandOut(BaseModel):
    ok: bool = True
    message: str


class TaskView(Record):
    id: str
    hour: int
    minute: int
    active: bool
    created_at: datetime
    running: bool
    next_run_at: Optional[datetime] = None


class DeviceView(Record):
    """Device as shown to the admin dashboard. The token is never included."""

    id: str
    name: str
    type: DeviceType
    online: bool
    last_seen_ts: Optional[datetime]
    power_state: PowerState
    shutdown: bool
    wakeup: bool
    shutdown_task_count: int
    wakeup_task_count: int
    delayed_shutdown_pending: bool = False

    @classmethod
    def from_device(cls, device: Device, delayed_shutdown_pending: bool = False) -> "DeviceView":
        return cls(
            id=device.id,
            name=device.name,
            type=device.type,
            online=device.online,
            last_seen_ts=device.last_seen_ts,
            power_state=device.power_state,
            shutdown=device.shutdown,
            wakeup=device.wakeup,
            shutdown_task_count=len(device.shutdown_tasks),
            wakeup_task_count=len(device.wakeup_tasks),
            delayed_shutdown_pending=delayed_shutdown_pending,
        )


class LoginOut(Record):
    token: str
    expires_at: datetime
