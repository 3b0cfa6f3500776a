# ─────────────────────────────────────────────────────────────────
# routes/tasks.py - Recurring Daily Tasks
#
# {kind} is "shutdown" or "wakeup"; FastAPI rejects anything else
# with a 422 before the handler runs.
# ─────────────────────────────────────────────────────────────────

from typing import List

from fastapi import APIRouter, Depends

from models import CommandOut, ScheduledTask, TaskCreate, TaskKind, TaskView
from routes.deps import get_scheduler, require_admin
from scheduler import TaskScheduler

router = APIRouter(
    prefix="/api/devices/{device_id}/tasks/{kind}",
    tags=["Tasks"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=List[TaskView])
async def list_tasks(device_id: str, kind: TaskKind, scheduler: TaskScheduler = Depends(get_scheduler)):
    return await scheduler.list(device_id, kind)


@router.post("", status_code=201, response_model=ScheduledTask)
async def create_task(
    device_id: str,
    kind: TaskKind,
    body: TaskCreate,
    scheduler: TaskScheduler = Depends(get_scheduler),
):
    """
    Adds a task that fires every day at hour:minute (server local time).

    Body: {"hour": 2, "minute": 30}
    """

    return await scheduler.create(device_id, kind, body.hour, body.minute)


@router.post("/{task_id}/pause", response_model=ScheduledTask)
async def pause_task(device_id: str, kind: TaskKind, task_id: str,
                     scheduler: TaskScheduler = Depends(get_scheduler)):
    """Stops the timer but keeps the task. Resume picks up at the next hour:minute."""

    return await scheduler.pause(device_id, kind, task_id)


@router.post("/{task_id}/resume", response_model=ScheduledTask)
async def resume_task(device_id: str, kind: TaskKind, task_id: str,
                      scheduler: TaskScheduler = Depends(get_scheduler)):
    return await scheduler.resume(device_id, kind, task_id)


@router.delete("/{task_id}", response_model=CommandOut)
async def delete_task(device_id: str, kind: TaskKind, task_id: str,
                      scheduler: TaskScheduler = Depends(get_scheduler)):
    await scheduler.delete(device_id, kind, task_id)
    return CommandOut(message=f"Task '{task_id}' deleted")
