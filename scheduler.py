# ─────────────────────────────────────────────────────────────────
# scheduler.py - Recurring Shutdown / Wakeup Timers
#
# Every active ScheduledTask has exactly one APScheduler job with a
# daily CronTrigger at hour:minute in the server's time zone. When
# it fires it raises the device's mailbox flag.
#
# Jobs are looked up by (device_id, task_id). They are never written
# to disk: restore_all() rebuilds them from the persisted task
# records when the process starts.
#
# Every place that flips task.active also adds or removes the job,
# and both happen under the device lock.
# ─────────────────────────────────────────────────────────────────

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

import commands
import liveness
from errors import InvalidInput, InvalidState, NotFound
from models import ScheduledTask, TaskKind, TaskView
from registry import Registry

logger = logging.getLogger("scheduler")

TimerKey = Tuple[str, str]

# a daily run delayed by a busy loop or a brief suspend still counts
MISFIRE_GRACE_SECONDS = 60


def validate_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise InvalidInput("Invalid time: hour must be 0-23 and minute 0-59")


def daily_trigger(hour: int, minute: int, timezone=None) -> CronTrigger:
    return CronTrigger(hour=hour, minute=minute, timezone=timezone)


def job_id(device_id: str, task_id: str) -> str:
    # task ids are uuid hex, so the last ":" always splits the pair
    return f"{device_id}:{task_id}"


class TaskScheduler:
    def __init__(self, registry: Registry, timezone: Optional[str] = None):
        self.registry = registry
        self.timezone = timezone or registry.settings.timezone
        if self.timezone:
            self.jobs = AsyncIOScheduler(timezone=self.timezone)
        else:
            self.jobs = AsyncIOScheduler()
        self._delayed: Dict[str, asyncio.Task] = {}

    # ─────────────────────────────────────────────────────────────
    # JOB INDEX - only touched with the device lock held
    # ─────────────────────────────────────────────────────────────

    def _arm(self, device_id: str, kind: TaskKind, task: ScheduledTask) -> None:
        if not self.jobs.running:
            self.jobs.start()

        self.jobs.add_job(
            self.fire,
            trigger=daily_trigger(task.hour, task.minute, self.jobs.timezone),
            args=[device_id, kind, task.id],
            id=job_id(device_id, task.id),
            name=f"{kind.value}-task:{device_id}",
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )

    def _disarm(self, key: TimerKey) -> None:
        try:
            self.jobs.remove_job(job_id(*key))
        except JobLookupError:
            pass

    def is_running(self, device_id: str, task_id: str) -> bool:
        return self.jobs.get_job(job_id(device_id, task_id)) is not None

    def next_run_at(self, device_id: str, task_id: str) -> Optional[datetime]:
        job = self.jobs.get_job(job_id(device_id, task_id))
        if job is None:
            return None
        return getattr(job, "next_run_time", None)

    # ─────────────────────────────────────────────────────────────
    # TRIGGER
    # ─────────────────────────────────────────────────────────────

    async def fire(self, device_id: str, kind: TaskKind, task_id: str) -> bool:
        """
        Run one trigger of a recurring task. Returns True if a flag was raised.

        The device and task are looked up again under the lock; if either
        is gone, or the task was paused meanwhile, nothing happens.
        """

        if self.registry.peek(device_id) is None:
            return False

        raised = False
        async with self.registry.lock_for(device_id):
            device = self.registry.peek(device_id)
            if device is None:
                return False
            task = device.find_task(kind, task_id)
            if task is None or not task.active:
                return False

            now = self.registry.now()
            if commands.should_skip(device, kind, now, self.registry.settings.wake_freshness):
                logger.info(f"Scheduled wakeup skipped for '{device_id}': already powered on")
            else:
                commands.raise_flag(device, kind)
                raised = True

        self.registry.request_flush()
        if raised:
            logger.info(f"Daily {kind.value} command queued for '{device_id}' (task {task_id})")
        return raised

    # ─────────────────────────────────────────────────────────────
    # TASK OPERATIONS
    # ─────────────────────────────────────────────────────────────

    async def create(self, device_id: str, kind: TaskKind, hour: int, minute: int) -> ScheduledTask:
        """
        Add a daily task and schedule its job right away.

        Flow:
        1. hour/minute out of range -> InvalidInput
        2. unknown device -> NotFound
        3. wakeup on a non-desktop -> InvalidState
        4. append the task (active) and add its cron job
        """

        validate_time(hour, minute)

        async with self.registry.locked(device_id) as device:
            commands.check_desktop(device, kind)
            task = ScheduledTask(hour=hour, minute=minute)
            device.tasks(kind).append(task)
            self._arm(device_id, kind, task)

        self.registry.request_flush()
        logger.info(f"Daily {kind.value} task {task.id} for '{device_id}' at {hour:02d}:{minute:02d}")
        return task

    async def list(self, device_id: str, kind: TaskKind) -> List[TaskView]:
        async with self.registry.locked(device_id) as device:
            return [
                TaskView(
                    id=task.id,
                    hour=task.hour,
                    minute=task.minute,
                    active=task.active,
                    created_at=task.created_at,
                    running=self.is_running(device_id, task.id),
                    next_run_at=self.next_run_at(device_id, task.id),
                )
                for task in device.tasks(kind)
            ]

    async def pause(self, device_id: str, kind: TaskKind, task_id: str) -> ScheduledTask:
        async with self.registry.locked(device_id) as device:
            task = self._require_task(device, kind, task_id)
            if not task.active:
                raise InvalidState(f"Task '{task_id}' is already paused")

            task.active = False
            self._disarm((device_id, task_id))

        self.registry.request_flush()
        logger.info(f"{kind.value} task {task_id} for '{device_id}' paused")
        return task

    async def resume(self, device_id: str, kind: TaskKind, task_id: str) -> ScheduledTask:
        async with self.registry.locked(device_id) as device:
            task = self._require_task(device, kind, task_id)
            if task.active:
                raise InvalidState(f"Task '{task_id}' is already running")

            task.active = True
            self._arm(device_id, kind, task)

        self.registry.request_flush()
        logger.info(f"{kind.value} task {task_id} for '{device_id}' resumed")
        return task

    async def delete(self, device_id: str, kind: TaskKind, task_id: str) -> None:
        async with self.registry.locked(device_id) as device:
            task = self._require_task(device, kind, task_id)
            self._disarm((device_id, task_id))
            device.tasks(kind).remove(task)

        self.registry.request_flush()
        logger.info(f"{kind.value} task {task_id} for '{device_id}' deleted")

    @staticmethod
    def _require_task(device, kind: TaskKind, task_id: str) -> ScheduledTask:
        task = device.find_task(kind, task_id)
        if task is None:
            raise NotFound(f"Task '{task_id}' not found")
        return task

    # ─────────────────────────────────────────────────────────────
    # ONE-SHOT DELAYED SHUTDOWN
    # Not persisted: a restart forgets it.
    # ─────────────────────────────────────────────────────────────

    async def schedule_delayed_shutdown(self, device_id: str, delay: int) -> None:
        if delay is None or delay <= 0:
            raise InvalidInput("Delay must be greater than 0 seconds")

        async with self.registry.locked(device_id) as device:
            liveness.refresh(device, self.registry.now(), self.registry.settings.heartbeat_timeout)
            if not device.online:
                raise InvalidState(f"Device '{device_id}' is offline, cannot schedule a shutdown")

            previous = self._delayed.pop(device_id, None)
            if previous is not None:
                previous.cancel()
                logger.info(f"Replacing pending delayed shutdown for '{device_id}'")

            self._delayed[device_id] = asyncio.get_running_loop().create_task(
                self._run_delayed(device_id, delay),
                name=f"delayed-shutdown:{device_id}",
            )

        logger.info(f"Shutdown for '{device_id}' scheduled in {delay}s")

    async def cancel_delayed_shutdown(self, device_id: str) -> None:
        async with self.registry.locked(device_id):
            timer = self._delayed.pop(device_id, None)
            if timer is None or timer.done():
                raise InvalidState(f"No scheduled shutdown to cancel for '{device_id}'")
            timer.cancel()

        logger.info(f"Delayed shutdown for '{device_id}' cancelled")

    def has_delayed_shutdown(self, device_id: str) -> bool:
        timer = self._delayed.get(device_id)
        return timer is not None and not timer.done()

    async def _run_delayed(self, device_id: str, delay: int):
        try:
            await asyncio.sleep(delay)
            async with self.registry.lock_for(device_id):
                if self._delayed.get(device_id) is not asyncio.current_task():
                    return
                del self._delayed[device_id]
                device = self.registry.peek(device_id)
                if device is None:
                    return
                commands.raise_flag(device, TaskKind.shutdown)
        except asyncio.CancelledError:
            return

        self.registry.request_flush()
        logger.info(f"Delayed shutdown command queued for '{device_id}'")

    # ─────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────

    async def restore_all(self) -> int:
        """
        Add a cron job for every persisted task with active=True.
        Paused tasks stay dormant until resumed. Returns how many were armed.
        """

        armed = 0
        for device_id in list(self.registry.devices):
            async with self.registry.lock_for(device_id):
                device = self.registry.peek(device_id)
                if device is None:
                    continue
                for kind in TaskKind:
                    for task in device.tasks(kind):
                        if task.active:
                            self._arm(device_id, kind, task)
                            armed += 1

        logger.info(f"Restored {armed} scheduled task timer(s)")
        return armed

    async def stop_all(self) -> None:
        """Drop every daily job and cancel pending delayed shutdowns."""

        self.jobs.remove_all_jobs()
        if self.jobs.running:
            self.jobs.shutdown(wait=False)

        timers = list(self._delayed.values())
        self._delayed.clear()
        for timer in timers:
            timer.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
