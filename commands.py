# ─────────────────────────────────────────────────────────────────
# commands.py - Single-Slot Command Mailbox
#
# Every device carries two flags, `shutdown` and `wakeup`. The admin
# and the scheduler raise them; only a heartbeat drains them. All
# functions here act on a Device the caller has already locked.
# ─────────────────────────────────────────────────────────────────

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Tuple

from errors import InvalidState
from liveness import appears_awake
from models import Device, DeviceType, TaskKind


@dataclass(frozen=True)
class CommandRule:
    """What a command kind is allowed to do, looked up by TaskKind."""

    desktop_only: bool
    requires_online: bool       # manual sends only
    skip_when_awake: bool       # manual and scheduled sends
    label: str


COMMAND_RULES: Dict[TaskKind, CommandRule] = {
    TaskKind.shutdown: CommandRule(
        desktop_only=False,
        requires_online=True,
        skip_when_awake=False,
        label="shutdown",
    ),
    TaskKind.wakeup: CommandRule(
        desktop_only=True,
        requires_online=False,
        skip_when_awake=True,
        label="wakeup",
    ),
}


def raise_flag(device: Device, kind: TaskKind) -> None:
    # raising an already raised flag is a no-op
    setattr(device, kind.value, True)


def drain(device: Device) -> Tuple[bool, bool]:
    """Read both flags and clear them. Returns the values from before the reset."""

    pending = (device.shutdown, device.wakeup)
    device.shutdown = False
    device.wakeup = False
    return pending


def check_desktop(device: Device, kind: TaskKind) -> None:
    if COMMAND_RULES[kind].desktop_only and device.type is not DeviceType.desktop:
        raise InvalidState(f"Device '{device.id}' is not a desktop and cannot be woken up")


def should_skip(device: Device, kind: TaskKind, now: datetime, freshness: float) -> bool:
    """True when a scheduled send of `kind` would be redundant."""

    return COMMAND_RULES[kind].skip_when_awake and appears_awake(device, now, freshness)


def check_manual(device: Device, kind: TaskKind, now: datetime, freshness: float) -> None:
    """
    Guards for the "shutdown now" / "wakeup now" endpoints.
    Raises InvalidState with the reason when the command is refused.
    """

    rule = COMMAND_RULES[kind]

    if rule.requires_online and not device.online:
        raise InvalidState(f"Device '{device.id}' is offline, cannot send {rule.label}")

    check_desktop(device, kind)

    if should_skip(device, kind, now, freshness):
        raise InvalidState(f"Device '{device.id}' is already powered on")
