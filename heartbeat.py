# ─────────────────────────────────────────────────────────────────
# heartbeat.py - Device Poll Handling
#
# A device has no push channel. It polls this endpoint every few
# seconds; the reply is the only way it learns it must shut down
# or wake a machine.
# ─────────────────────────────────────────────────────────────────

import logging
import secrets
from typing import Optional

import commands
import liveness
from errors import Unauthorized
from models import HeartbeatOut, PowerState
from registry import Registry

logger = logging.getLogger("heartbeat")


def token_matches(expected: str, presented: Optional[str]) -> bool:
    if not presented:
        return False
    return secrets.compare_digest(expected.encode(), presented.encode())


async def handle_heartbeat(
    registry: Registry,
    device_id: str,
    token: Optional[str],
    power_state: Optional[str] = None,
) -> HeartbeatOut:
    """
    Record a poll and hand over any pending commands.

    Flow:
    1. Unknown id -> NotFound, wrong token -> Unauthorized
    2. Mark the device online and stamp last_seen_ts
    3. Only a report of "on" changes power_state; a device about to
       shut down may still poll once more, so silence is not "off"
    4. Drain the mailbox in the same critical section
    5. Snapshot after the lock is released
    """

    async with registry.locked(device_id) as device:
        if not token_matches(device.token, token):
            raise Unauthorized("Invalid device token")

        liveness.mark_seen(device, registry.now())
        if power_state == PowerState.on.value:
            device.power_state = PowerState.on

        shutdown, wakeup = commands.drain(device)

    registry.request_flush()

    if shutdown or wakeup:
        logger.info(f"Heartbeat: '{device_id}' | delivered shutdown={shutdown} wakeup={wakeup}")
    else:
        logger.info(f"Heartbeat: '{device_id}'")

    return HeartbeatOut(shutdown=shutdown, wakeup=wakeup)
