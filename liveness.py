# ─────────────────────────────────────────────────────────────────
# liveness.py - Online / Offline Inference
#
# `online` is only ever set to True by a heartbeat. Going offline
# has no trigger of its own: it is worked out from the age of
# last_seen_ts whenever a device is read. No background sweep.
# ─────────────────────────────────────────────────────────────────

from datetime import datetime, timedelta

from models import Device, PowerState


def refresh(device: Device, now: datetime, timeout: float) -> bool:
    """
    Correct device.online in place if the last heartbeat is too old.
    Returns the (possibly corrected) online flag.
    """

    if device.last_seen_ts is not None and now - device.last_seen_ts > timedelta(seconds=timeout):
        device.online = False
    return device.online


def mark_seen(device: Device, now: datetime) -> None:
    device.online = True
    device.last_seen_ts = now


def appears_awake(device: Device, now: datetime, freshness: float) -> bool:
    """
    True when a wake pulse would be redundant: the device was heard from
    within `freshness` seconds and said it is powered on.

    Does not read `online`. That flag drops after the heartbeat timeout,
    which is much shorter than the freshness window.

    Shared by the manual wake endpoint and scheduled wakeup tasks.
    """

    if device.last_seen_ts is None:
        return False
    if now - device.last_seen_ts > timedelta(seconds=freshness):
        return False
    return device.power_state is PowerState.on
