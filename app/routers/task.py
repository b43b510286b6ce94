from typing import Optional, Literal
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from app.database import get_db
from app.core.auth import get_current_staff, get_current_admin
from app.models.task import Task
from app.models.user import User, ROLE_ADMIN, ROLE_WORKER
from app.schemas.task import ActionResult, TaskAssign, TaskListResponse, TaskResponse, TaskUpdateStatus
from app.services.assignment import add_task_action
from app.services.cache import ADMIN_DASHBOARD_TAG, revalidate_tag
from app.services.tasks import InvalidStatusTransition, update_task_status, reassign_task

router = APIRouter(prefix="/tasks", tags=["tasks"])


async def get_task_or_404(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id)
    if not task:
        raise HTTPException(404, "Task not found")
    return task


def ensure_can_access(task: Task, user: User) -> None:
    # Admins see everything, workers only what is assigned to them
    if user.role != ROLE_ADMIN and task.assigned_to_id != user.id:
        raise HTTPException(403, "You can only access tasks assigned to you")


@router.post("", response_model=ActionResult)
async def create_task(
    payload: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_staff)
):
    # Validation and storage problems come back in the result, not as HTTP errors
    return await add_task_action(db, payload)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    status: Optional[Literal["Pending", "In Progress", "Completed"]] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_staff)
):
    query = select(Task)
    count_query = select(func.count(Task.id))
    if current_user.role != ROLE_ADMIN:
        query = query.where(Task.assigned_to_id == current_user.id)
        count_query = count_query.where(Task.assigned_to_id == current_user.id)
    if status:
        query = query.where(Task.status == status)
        count_query = count_query.where(Task.status == status)

    total = await db.execute(count_query)
    result = await db.execute(
        query.order_by(Task.created_at.desc(), Task.id.desc()).offset(skip).limit(limit)
    )
    return TaskListResponse(total=total.scalar_one(), tasks=result.scalars().all())


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_staff)
):
    task = await get_task_or_404(db, task_id)
    ensure_can_access(task, current_user)
    return task


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def change_task_status(
    task_id: int,
    status_in: TaskUpdateStatus,
    db: AsyncSession = Depends(get_db),
    current_user = Depends(get_current_staff)
):
    task = await get_task_or_404(db, task_id)
    ensure_can_access(task, current_user)

    try:
        task = await update_task_status(db, task, status_in.status)
    except InvalidStatusTransition as e:
        raise HTTPException(400, str(e))

    revalidate_tag(ADMIN_DASHBOARD_TAG)
    return task


@router.patch("/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: int,
    assign_in: TaskAssign,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    task = await get_task_or_404(db, task_id)

    worker = await db.get(User, assign_in.worker_id)
    if not worker or worker.role != ROLE_WORKER or not worker.is_active:
        raise HTTPException(400, "Worker not found or not active")

    task = await reassign_task(db, task, worker)
    revalidate_tag(ADMIN_DASHBOARD_TAG)
    return task


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    task = await get_task_or_404(db, task_id)
    await db.delete(task)
    await db.commit()

    revalidate_tag(ADMIN_DASHBOARD_TAG)
    return {"message": "Task deleted successfully"}
