"""
Repair task intake: create the task, then hand it to the least-loaded worker.

A task that has been created is never rolled back because of what happens
during assignment. Assignment problems are logged and the task stays
unassigned (or the write is silently dropped), while the caller is still told
the task was created.
"""
import logging
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.task import Task, STATUS_PENDING
from app.models.user import User, ROLE_WORKER
from app.schemas.task import TaskCreate, ActionResult, first_error_message
from app.services.cache import ADMIN_DASHBOARD_TAG, revalidate_tag

logger = logging.getLogger(__name__)

ASSIGNED_MESSAGE = "Task created and assigned successfully!"
NO_WORKER_MESSAGE = "Task created, but no worker is available to assign it."
INTERNAL_ERROR_MESSAGE = "Internal server error"


def _worker_load_query():
    task_count = func.count(Task.id)
    return (
        select(User, task_count.label("task_count"))
        .outerjoin(Task, Task.assigned_to_id == User.id)
        .where(User.role == ROLE_WORKER)
        .where(User.is_active.is_(True))
        .group_by(User.id)
        # lowest id wins a tie so the pick is reproducible
        .order_by(task_count.asc(), User.id.asc())
    )


async def get_worker_loads(db: AsyncSession) -> List[Tuple[User, int]]:
    """Active workers with their task counts, least loaded first."""
    result = await db.execute(_worker_load_query())
    return [(worker, count) for worker, count in result.all()]


async def get_worker_with_least_tasks(db: AsyncSession) -> Optional[User]:
    """Return the active worker holding the fewest tasks, or None if there are no workers."""
    result = await db.execute(_worker_load_query().limit(1))
    row = result.first()
    if row is None:
        return None
    worker, count = row
    logger.debug("Least loaded worker: id=%s with %d task(s)", worker.id, count)
    return worker


async def create_task_record(db: AsyncSession, task_in: TaskCreate) -> Task:
    task = Task(
        description=task_in.description,
        customer_name=task_in.customer_name,
        customer_phone=task_in.customer_phone,
        laptop_brand=task_in.laptop_brand,
        laptop_model=task_in.laptop_model,
        total_cost=task_in.total_cost,
        status=STATUS_PENDING,
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    logger.info("Task %s created for %s", task.id, task.customer_name)
    return task


async def assign_task_to_worker(db: AsyncSession, worker_id: int, task_id: int) -> bool:
    """
    Add the task to the worker's task collection and persist it.

    Returns False when the worker (or task) no longer exists or the worker
    is inactive. Storage errors are raised to the caller.
    """
    worker = await db.get(User, worker_id)
    if worker is None or worker.role != ROLE_WORKER or not worker.is_active:
        logger.warning("Cannot assign task %s: worker %s not found or not active", task_id, worker_id)
        return False

    task = await db.get(Task, task_id)
    if task is None:
        logger.warning("Cannot assign task %s to worker %s: task not found", task_id, worker_id)
        return False

    if any(existing.id == task.id for existing in worker.tasks):
        return True

    worker.tasks.append(task)
    await db.commit()
    logger.info("Task %s assigned to worker %s", task_id, worker_id)
    return True


async def add_task_action(db: AsyncSession, payload: Any) -> ActionResult:
    """
    Entry point for the "add task" form.

    Validates the payload, creates the task, then assigns it to the least
    loaded worker. Only validation and task creation can produce an error
    result; everything after the task exists is reported as success.
    """
    try:
        task_in = TaskCreate.model_validate(payload)
    except ValidationError as exc:
        message = first_error_message(exc)
        logger.info("Task payload rejected: %s", message)
        return ActionResult(status="error", message=message)

    try:
        task = await create_task_record(db, task_in)
    except SQLAlchemyError:
        logger.exception("Failed to create task")
        await db.rollback()
        return ActionResult(status="error", message=INTERNAL_ERROR_MESSAGE)

    # rollback expires ORM instances, only plain ids are used from here on
    task_id = task.id

    try:
        worker = await get_worker_with_least_tasks(db)
        worker_id = worker.id if worker is not None else None
    except SQLAlchemyError:
        logger.exception("Failed to look up workers for task %s", task_id)
        await db.rollback()
        worker_id = None

    if worker_id is None:
        logger.warning("No worker available, task %s left unassigned", task_id)
        message = NO_WORKER_MESSAGE
    else:
        try:
            if not await assign_task_to_worker(db, worker_id, task_id):
                logger.warning("Task %s was created but not assigned", task_id)
        except SQLAlchemyError:
            # Soft failure: the task exists, the user still gets a success
            logger.exception("Failed to assign task %s to worker %s", task_id, worker_id)
            await db.rollback()
        message = ASSIGNED_MESSAGE

    revalidate_tag(ADMIN_DASHBOARD_TAG)
    return ActionResult(status="success", message=message)
