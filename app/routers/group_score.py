import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.core.auth import get_current_admin
from app.core.exceptions import NotFoundError, ValidationError
from app.models.evaluation import GroupScore
from app.models.user import Group
from app.schemas.group_score import (
    CalculateRequest, CalculateResponse, GroupScoreDetailResponse,
    GroupScoreSummaryResponse, GroupScoreTreeResponse, StoredGroupScore,
)
from app.services.group_scores import (
    get_group_detail, get_score_tree, get_summary, recalculate_group_scores,
)
from app.services.periods import get_period_or_404, resolve_period

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/group-scores", tags=["group-scores"], dependencies=[Depends(get_current_admin)])


@router.get("", response_model=GroupScoreTreeResponse)
async def get_group_score_tree(
    period_id: Optional[int] = Query(None, alias="periodId"),
    db: AsyncSession = Depends(get_db)
):
    period = await resolve_period(db, period_id)
    if period is None:
        return GroupScoreTreeResponse(period=None, groups=[])
    return GroupScoreTreeResponse(period=period, groups=await get_score_tree(db, period.id))


@router.get("/summary", response_model=GroupScoreSummaryResponse)
async def get_group_score_summary(
    period_id: Optional[int] = Query(None, alias="periodId"),
    db: AsyncSession = Depends(get_db)
):
    period = await resolve_period(db, period_id)
    if period is None:
        return GroupScoreSummaryResponse()
    return await get_summary(db, period)


@router.post("/calculate", response_model=CalculateResponse)
async def calculate_group_scores(request: CalculateRequest, db: AsyncSession = Depends(get_db)):
    if request.period_id is None:
        raise ValidationError("Period ID is required")
    period = await get_period_or_404(db, request.period_id, for_update=True)

    rows = await recalculate_group_scores(db, period.id)
    await db.commit()
    for row in rows:
        await db.refresh(row)
    return CalculateResponse(
        message="Group scores calculated successfully",
        count=len(rows),
        scores=[StoredGroupScore.model_validate(row) for row in rows],
    )


@router.get("/stored", response_model=List[StoredGroupScore])
async def get_stored_scores(
    period_id: Optional[int] = Query(None, alias="periodId"),
    db: AsyncSession = Depends(get_db)
):
    period = await resolve_period(db, period_id)
    if period is None:
        return []
    result = await db.execute(
        select(GroupScore).where(GroupScore.period_id == period.id).order_by(GroupScore.group_id)
    )
    return result.scalars().all()


@router.get("/{group_id}", response_model=GroupScoreDetailResponse)
async def get_group_score_detail(
    group_id: int,
    period_id: Optional[int] = Query(None, alias="periodId"),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Group)
        .options(selectinload(Group.leader), selectinload(Group.users))
        .where(Group.id == group_id)
    )
    group = result.scalar_one_or_none()
    if not group:
        raise NotFoundError("Group not found")

    period = await resolve_period(db, period_id)
    if period is None:
        return GroupScoreDetailResponse()
    detail = await get_group_detail(db, group, period.id)
    return GroupScoreDetailResponse(period=period, **detail)
