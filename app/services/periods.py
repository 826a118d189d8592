from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.evaluation import EvaluationPeriod
from app.utils.datetimes import make_aware


def select_current_period(periods: Iterable[EvaluationPeriod]) -> Optional[EvaluationPeriod]:
    """The active period with the latest start date; ties go to the newest id."""
    active = [p for p in periods if p.is_active]
    if not active:
        return None
    return max(active, key=lambda p: (make_aware(p.start_date), p.id or 0))


async def get_current_period(db: AsyncSession) -> Optional[EvaluationPeriod]:
    result = await db.execute(select(EvaluationPeriod).where(EvaluationPeriod.is_active.is_(True)))
    return select_current_period(result.scalars().all())


async def get_period_or_404(db: AsyncSession, period_id: int, for_update: bool = False) -> EvaluationPeriod:
    """``for_update`` locks the period row; upserts keyed on the period take it first."""
    query = select(EvaluationPeriod).where(EvaluationPeriod.id == period_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    period = result.scalar_one_or_none()
    if period is None:
        raise NotFoundError("Period not found")
    return period


async def resolve_period(db: AsyncSession, period_id: Optional[int]) -> Optional[EvaluationPeriod]:
    """Explicit ``period_id`` (404 if missing), else the current period or ``None``."""
    if period_id is not None:
        return await get_period_or_404(db, period_id)
    return await get_current_period(db)
