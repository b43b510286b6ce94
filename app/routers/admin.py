from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.config import settings
from app.database import get_db
from app.core.auth import get_current_admin
from app.models.user import User, ROLE_WORKER
from app.schemas.user import UserCreate, UserResponse, WorkerLoadResponse
from app.services.assignment import get_worker_loads
from app.services.cache import ADMIN_DASHBOARD_TAG, get_cache, revalidate_tag
from app.services.tasks import build_admin_dashboard, count_assigned_tasks
from app.utils.password import hash_password


router = APIRouter(prefix="/admin", tags=["admin"])

DASHBOARD_CACHE_KEY = "admin-dashboard:summary"


@router.get("/dashboard")
async def admin_dashboard(
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    return await get_cache().get_or_fetch(
        DASHBOARD_CACHE_KEY,
        lambda: build_admin_dashboard(db),
        ttl=settings.DASHBOARD_CACHE_TTL,
        tags=(ADMIN_DASHBOARD_TAG,),
    )


@router.post("/users", response_model=UserResponse)
async def add_user(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    result = await db.execute(select(User).where(User.email == user_in.email))
    if result.scalar_one_or_none():
        raise HTTPException(400, "Email already registered")

    user = User(
        email=user_in.email,
        name=user_in.name,
        image=user_in.image,
        role=user_in.role,
        hashed_password=hash_password(user_in.password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    revalidate_tag(ADMIN_DASHBOARD_TAG)
    return user


@router.get("/workers", response_model=List[WorkerLoadResponse])
async def list_workers(
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    return [
        WorkerLoadResponse(
            id=worker.id,
            name=worker.name,
            email=worker.email,
            image=worker.image,
            task_count=count,
        )
        for worker, count in await get_worker_loads(db)
    ]


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin = Depends(get_current_admin)
):
    if user_id == admin.id:
        raise HTTPException(400, "You cannot delete your own account")

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")

    if user.role == ROLE_WORKER and await count_assigned_tasks(db, user.id):
        raise HTTPException(400, "Worker still has assigned tasks; reassign or delete them first")

    await db.delete(user)
    await db.commit()

    revalidate_tag(ADMIN_DASHBOARD_TAG)
    return {"message": "User deleted successfully"}
