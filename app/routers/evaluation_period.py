import logging
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.auth import get_current_admin
from app.core.exceptions import ValidationError
from app.models.evaluation import Evaluation, EvaluationPeriod, GroupScore
from app.schemas.base import MessageResponse
from app.schemas.evaluation import PeriodCreate, PeriodUpdate, PeriodResponse, PeriodWithCountResponse
from app.services.periods import get_current_period, get_period_or_404
from app.utils.datetimes import make_aware

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/evaluation-periods",
    tags=["evaluation-periods"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("", response_model=List[PeriodWithCountResponse])
async def list_periods(db: AsyncSession = Depends(get_db)):
    counts = (
        select(Evaluation.period_id, func.count(Evaluation.id).label("evaluation_count"))
        .group_by(Evaluation.period_id)
        .subquery()
    )
    result = await db.execute(
        select(EvaluationPeriod, func.coalesce(counts.c.evaluation_count, 0))
        .outerjoin(counts, counts.c.period_id == EvaluationPeriod.id)
        .order_by(EvaluationPeriod.start_date.desc(), EvaluationPeriod.id.desc())
    )
    periods = []
    for period, evaluation_count in result.all():
        item = PeriodWithCountResponse.model_validate(period)
        item.evaluation_count = evaluation_count
        periods.append(item)
    return periods


@router.get("/current", response_model=Optional[PeriodResponse])
async def read_current_period(db: AsyncSession = Depends(get_db)):
    return await get_current_period(db)


@router.get("/{period_id}", response_model=PeriodResponse)
async def get_period(period_id: int, db: AsyncSession = Depends(get_db)):
    return await get_period_or_404(db, period_id)


@router.post("", response_model=PeriodResponse, status_code=201)
async def create_period(period_in: PeriodCreate, db: AsyncSession = Depends(get_db)):
    period = EvaluationPeriod(**period_in.model_dump())
    db.add(period)
    await db.commit()
    await db.refresh(period)
    logger.info("Created evaluation period %s (%s)", period.id, period.name)
    return period


@router.put("/{period_id}", response_model=PeriodResponse)
async def update_period(period_id: int, period_in: PeriodUpdate, db: AsyncSession = Depends(get_db)):
    period = await get_period_or_404(db, period_id)
    for field, value in period_in.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(period, field, value)

    if make_aware(period.end_date) < make_aware(period.start_date):
        raise ValidationError("End date must not be before start date")

    await db.commit()
    await db.refresh(period)
    return period


@router.delete("/{period_id}", response_model=MessageResponse)
async def delete_period(period_id: int, db: AsyncSession = Depends(get_db)):
    period = await get_period_or_404(db, period_id)
    # Evaluations and cached scores go with the period
    for model in (Evaluation, GroupScore):
        await db.execute(
            delete(model).where(model.period_id == period_id)
            .execution_options(synchronize_session=False)
        )
    await db.delete(period)
    await db.commit()
    logger.info("Deleted evaluation period %s", period_id)
    return MessageResponse(message="Evaluation period deleted successfully")
