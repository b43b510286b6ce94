# app/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from sqlalchemy import exc as sa_exc
from app.config import settings
from app.database import engine, Base
from app.models.user import User  # noqa: F401  registers the users table
from app.models.task import Task  # noqa: F401  registers the tasks table
from app.routers import auth, task, admin

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def create_tables():
    # create tables (async). ignore duplicate-object errors from previous partial runs.
    async with engine.begin() as conn:
        try:
            await conn.run_sync(Base.metadata.create_all)
        except sa_exc.IntegrityError as e:
            msg = str(getattr(e, "orig", e))
            if "duplicate key value violates unique constraint" in msg or "already exists" in msg:
                logger.warning("Ignored duplicate DDL error during create_all: %s", msg)
            else:
                raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create DB Tables (for demo only, use Alembic in prod)
    await create_tables()
    yield
    await engine.dispose()


app = FastAPI(title="Repair Desk - task intake and assignment", version="1.0", lifespan=lifespan)

# Include Routers
app.include_router(auth.router)
app.include_router(task.router)
app.include_router(admin.router)


@app.get("/")
def read_root():
    return {"message": "Welcome to the Repair Desk backend"}

@app.get("/health")
async def health():
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
