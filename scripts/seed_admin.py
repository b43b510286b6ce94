"""Create the first admin account so the admin endpoints can be used."""
import asyncio
import logging
import os
from sqlalchemy import select, func
from app.database import AsyncSessionLocal, engine, Base
from app.models.user import User, ROLE_ADMIN
from app.models.task import Task  # noqa: F401  registers the tasks table
from app.utils.password import hash_password

logger = logging.getLogger("seed_admin")


async def seed_admin(email: str, password: str, name: str) -> bool:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(func.count(User.id)).where(User.role == ROLE_ADMIN))
        if result.scalar_one() > 0:
            logger.info("Admin already exists; skipping admin seed.")
            return False

        db.add(User(email=email, name=name, role=ROLE_ADMIN, hashed_password=hash_password(password)))
        await db.commit()
        logger.info("Seeded admin user: %s", email)
        return True


def main():
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_admin(
        os.environ.get("SEED_ADMIN_EMAIL", "admin@example.com"),
        os.environ.get("SEED_ADMIN_PASSWORD", "admin12345"),
        os.environ.get("SEED_ADMIN_NAME", "Admin"),
    ))


if __name__ == "__main__":
    main()
