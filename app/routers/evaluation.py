import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.core.auth import Caller, get_current_admin, get_current_caller, get_current_user
from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.models.evaluation import Evaluation
from app.models.user import User
from app.schemas.evaluation import (
    EvaluationCreate, EvaluationResponse, EvaluationFormsResponse,
    PendingEvaluationsResponse, PendingSubordinate,
)
from app.services.evaluation import (
    EMPLOYEE_FORM, FORM_PARAMETERS, MANAGER_FORM, record_evaluation, select_form_type,
)
from app.services.periods import get_current_period, get_period_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/evaluations", tags=["evaluations"])


def _evaluation_options():
    return (
        selectinload(Evaluation.period),
        selectinload(Evaluation.evaluator).selectinload(User.group),
        selectinload(Evaluation.evaluatee).selectinload(User.group),
    )


async def _get_evaluation(db: AsyncSession, evaluation_id: int) -> Evaluation:
    result = await db.execute(
        select(Evaluation)
        .options(*_evaluation_options())
        .where(Evaluation.id == evaluation_id)
        .execution_options(populate_existing=True)
    )
    evaluation = result.scalar_one_or_none()
    if not evaluation:
        raise NotFoundError("Evaluation not found")
    return evaluation


@router.get("/forms", response_model=EvaluationFormsResponse)
async def get_forms(caller: Caller = Depends(get_current_caller)):
    return EvaluationFormsResponse(
        manager=FORM_PARAMETERS[MANAGER_FORM],
        employee=FORM_PARAMETERS[EMPLOYEE_FORM],
    )


@router.get("/subordinates/pending", response_model=PendingEvaluationsResponse)
async def get_pending_subordinates(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    period = await get_current_period(db)
    if period is None:
        return PendingEvaluationsResponse(period=None, subordinates=[])

    result = await db.execute(
        select(User)
        .options(selectinload(User.group), selectinload(User.subordinates))
        .where(User.manager_id == caller.id)
        .order_by(User.full_name)
    )
    subordinates = result.scalars().all()

    existing = await db.execute(
        select(Evaluation).where(
            Evaluation.period_id == period.id,
            Evaluation.evaluator_id == caller.id,
        )
    )
    by_evaluatee = {e.evaluatee_id: e for e in existing.scalars().all()}

    items = []
    for user in subordinates:
        has_subordinates = bool(user.subordinates)
        items.append(PendingSubordinate(
            id=user.id,
            full_name=user.full_name,
            position=user.position,
            group=user.group,
            can_access_platform=user.can_access_platform,
            has_subordinates=has_subordinates,
            form_type=select_form_type(has_subordinates, user.can_access_platform),
            evaluation=by_evaluatee.get(user.id),
        ))
    return PendingEvaluationsResponse(period=period, subordinates=items)


@router.get("/my", response_model=List[EvaluationResponse])
async def get_my_evaluations(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    result = await db.execute(
        select(Evaluation)
        .options(*_evaluation_options())
        .where(Evaluation.evaluator_id == caller.id)
        .order_by(Evaluation.created_at.desc(), Evaluation.id.desc())
    )
    return result.scalars().all()


@router.post("", response_model=EvaluationResponse, status_code=201)
async def create_evaluation(
    evaluation_in: EvaluationCreate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    period = await get_period_or_404(db, evaluation_in.period_id, for_update=True)
    evaluation = await record_evaluation(
        db,
        evaluator_id=caller.id,
        period=period,
        evaluatee_id=evaluation_in.evaluatee_id,
        scores=evaluation_in.scores,
        comments=evaluation_in.comments,
    )
    await db.commit()
    return await _get_evaluation(db, evaluation.id)


@router.get("", response_model=List[EvaluationResponse])
async def list_evaluations(
    period_id: Optional[int] = Query(None, alias="periodId"),
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    query = select(Evaluation).options(*_evaluation_options())
    if period_id is not None:
        query = query.where(Evaluation.period_id == period_id)
    result = await db.execute(query.order_by(Evaluation.created_at.desc(), Evaluation.id.desc()))
    return result.scalars().all()


@router.get("/{evaluation_id}", response_model=EvaluationResponse)
async def get_evaluation(
    evaluation_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller)
):
    evaluation = await _get_evaluation(db, evaluation_id)
    if not caller.is_admin and evaluation.evaluator_id != caller.id:
        raise PermissionDeniedError("Access denied")
    return evaluation
