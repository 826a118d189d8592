from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.security import ROLE_ADMIN, ROLE_USER, create_access_token
from app.database import Base, get_db
from app.main import app
from app.models.evaluation import Evaluation, EvaluationPeriod
from app.models.user import Admin, Group, User
from app.services.evaluation import result_label
from app.utils.datetimes import utcnow
from app.utils.password import hash_password


def auth_headers(principal_id: int, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(principal_id, role)}"}


class Factory:
    """Inserts rows through short-lived sessions so API calls see committed data."""

    def __init__(self, sessionmaker):
        self.sessionmaker = sessionmaker

    async def _save(self, obj):
        async with self.sessionmaker() as db:
            db.add(obj)
            await db.commit()
        return obj

    async def admin(self, username="admin", password="admin123"):
        return await self._save(Admin(username=username, password_hash=hash_password(password)))

    async def group(self, name):
        return await self._save(Group(name=name))

    async def user(self, full_name, group, manager=None, login=None, password=None, can_access_platform=False):
        return await self._save(User(
            full_name=full_name,
            position="Engineer",
            group_id=group.id,
            manager_id=manager.id if manager else None,
            login=login,
            password_hash=hash_password(password) if password else None,
            can_access_platform=can_access_platform,
        ))

    async def lead(self, group, user):
        async with self.sessionmaker() as db:
            row = await db.get(Group, group.id)
            row.leader_id = user.id
            await db.commit()
        group.leader_id = user.id
        return group

    async def period(self, name="2026 H2", is_active=True, start=None):
        start = start or utcnow() - timedelta(days=10)
        return await self._save(EvaluationPeriod(
            name=name, start_date=start, end_date=start + timedelta(days=180), is_active=is_active,
        ))

    async def evaluation(self, period, evaluator, evaluatee, average, form_type="employee"):
        return await self._save(Evaluation(
            period_id=period.id,
            evaluator_id=evaluator.id,
            evaluatee_id=evaluatee.id,
            form_type=form_type,
            scores={},
            average_score=average,
            result=result_label(average),
        ))


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def factory(sessionmaker):
    return Factory(sessionmaker)


@pytest.fixture
async def client(sessionmaker):
    async def override_get_db():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def admin_headers(factory):
    admin = await factory.admin()
    return auth_headers(admin.id, ROLE_ADMIN)


@pytest.fixture
def user_headers():
    def make(user):
        return auth_headers(user.id, ROLE_USER)
    return make
