import logging
from datetime import datetime, timezone
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.task import Task, TASK_STATUSES, STATUS_COMPLETED
from app.models.user import User
from app.services.assignment import get_worker_loads

logger = logging.getLogger(__name__)


class InvalidStatusTransition(ValueError):
    pass


def check_status_transition(current: str, new: str) -> None:
    """Statuses only move forward: Pending -> In Progress -> Completed."""
    if new not in TASK_STATUSES:
        raise InvalidStatusTransition(f"Unknown status: {new}")
    if current in TASK_STATUSES and TASK_STATUSES.index(new) < TASK_STATUSES.index(current):
        raise InvalidStatusTransition(f"Cannot move task from {current} back to {new}")


async def update_task_status(db: AsyncSession, task: Task, new_status: str) -> Task:
    check_status_transition(task.status, new_status)
    if task.status == new_status:
        return task

    logger.info("Task %s status %s -> %s", task.id, task.status, new_status)
    task.status = new_status
    if new_status == STATUS_COMPLETED:
        task.completed_at = datetime.now(timezone.utc)
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


async def reassign_task(db: AsyncSession, task: Task, worker: User) -> Task:
    previous = task.assigned_to_id
    task.assigned_to_id = worker.id
    db.add(task)
    await db.commit()
    await db.refresh(task)
    logger.info("Task %s reassigned from %s to %s", task.id, previous, worker.id)
    return task


async def count_assigned_tasks(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(Task.id)).where(Task.assigned_to_id == user_id)
    )
    return result.scalar_one()


async def build_admin_dashboard(db: AsyncSession) -> dict:
    status_rows = await db.execute(
        select(Task.status, func.count(Task.id)).group_by(Task.status)
    )
    by_status = {status: 0 for status in TASK_STATUSES}
    for status, count in status_rows.all():
        by_status[status] = count

    unassigned = await db.execute(
        select(func.count(Task.id)).where(Task.assigned_to_id.is_(None))
    )

    workers = [
        {"id": worker.id, "name": worker.name, "email": worker.email, "task_count": count}
        for worker, count in await get_worker_loads(db)
    ]

    return {
        "tasks": {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "unassigned": unassigned.scalar_one(),
        },
        "workers": workers,
    }
