# app/seed.py
"""Create the tables and the bootstrap admin account.

    python -m app.seed
"""
import asyncio
import logging

from sqlalchemy import select

from app.config import settings
from app.database import AsyncSessionLocal, Base, engine
from app.models import user, evaluation, kpi  # noqa: F401
from app.models.user import Admin
from app.utils.password import hash_password

logger = logging.getLogger(__name__)


async def seed_admin(db, username: str, password: str) -> bool:
    """Insert the admin unless one with ``username`` exists; True when created."""
    result = await db.execute(select(Admin).where(Admin.username == username))
    if result.scalar_one_or_none():
        logger.info("Admin %r already exists", username)
        return False
    db.add(Admin(username=username, password_hash=hash_password(password)))
    await db.commit()
    logger.info("Created admin %r", username)
    return True


async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as db:
        await seed_admin(db, settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    asyncio.run(main())
