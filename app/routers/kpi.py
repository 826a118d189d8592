import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.core.auth import Caller, get_current_admin, get_current_caller, get_current_user
from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.models.kpi import Kpi, KpiAssignment, KpiBlock, KpiStatus, KpiTask
from app.models.user import User
from app.schemas.base import MessageResponse
from app.schemas.kpi import (
    KpiCreate, KpiUpdate, KpiResponse,
    BlockCreate, BlockUpdate, TaskCreate, TaskUpdate,
    AssignRequest, AssignmentResponse, RejectRequest, FactsRequest,
    MyKpiAssignmentResponse, SubmitResultsResponse,
)
from app.services import kpi as kpi_service
from app.utils.datetimes import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/kpis", tags=["kpis"])


def _assignment_options():
    return (
        selectinload(KpiAssignment.kpi).selectinload(Kpi.approver),
        selectinload(KpiAssignment.kpi).selectinload(Kpi.blocks).selectinload(KpiBlock.tasks),
        selectinload(KpiAssignment.kpi).selectinload(Kpi.assignments),
        selectinload(KpiAssignment.fact_values),
    )


async def _get_my_assignment(db: AsyncSession, kpi_id: int, user_id: int, for_update: bool = False) -> KpiAssignment:
    if for_update:
        # Lock the kpi row first so concurrent submits see each other's flags
        await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    result = await db.execute(
        select(KpiAssignment)
        .options(*_assignment_options())
        .where(KpiAssignment.kpi_id == kpi_id, KpiAssignment.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFoundError("KPI not found or not assigned to you")
    return assignment


def _my_assignment_payload(assignment: KpiAssignment, response_class=MyKpiAssignmentResponse, **extra):
    return response_class(
        id=assignment.id,
        kpi_id=assignment.kpi_id,
        user_id=assignment.user_id,
        is_submitted=assignment.is_submitted,
        submitted_at=assignment.submitted_at,
        kpi=assignment.kpi,
        fact_values=assignment.fact_values,
        fulfillment=kpi_service.score_breakdown(assignment.kpi, assignment),
        **extra,
    )


# ---- Employee ----

@router.get("/my", response_model=List[MyKpiAssignmentResponse])
async def get_my_kpis(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    result = await db.execute(
        select(KpiAssignment)
        .join(Kpi, Kpi.id == KpiAssignment.kpi_id)
        .options(*_assignment_options())
        .where(
            KpiAssignment.user_id == caller.id,
            Kpi.status.in_([s.value for s in kpi_service.VISIBLE_TO_EMPLOYEE]),
        )
        .order_by(Kpi.deadline, Kpi.id)
    )
    return [_my_assignment_payload(a) for a in result.scalars().all()]


@router.get("/my/{kpi_id}", response_model=MyKpiAssignmentResponse)
async def get_my_kpi(
    kpi_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    assignment = await _get_my_assignment(db, kpi_id, caller.id)
    if assignment.kpi.status not in kpi_service.VISIBLE_TO_EMPLOYEE:
        raise PermissionDeniedError("KPI is not approved yet")
    return _my_assignment_payload(assignment)


@router.put("/my/{kpi_id}/facts", response_model=MyKpiAssignmentResponse)
async def save_fact_values(
    kpi_id: int,
    facts_in: FactsRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    assignment = await _get_my_assignment(db, kpi_id, caller.id, for_update=True)
    kpi_service.ensure_fillable(assignment.kpi, assignment)
    kpi_service.upsert_facts(assignment.kpi, assignment, facts_in.facts)
    await db.commit()
    return _my_assignment_payload(await _get_my_assignment(db, kpi_id, caller.id))


@router.post("/my/{kpi_id}/submit", response_model=SubmitResultsResponse)
async def submit_results(
    kpi_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    assignment = await _get_my_assignment(db, kpi_id, caller.id, for_update=True)
    kpi_service.submit_results(assignment.kpi, assignment, utcnow())
    await db.commit()

    assignment = await _get_my_assignment(db, kpi_id, caller.id)
    return _my_assignment_payload(
        assignment, SubmitResultsResponse, kpi_status=assignment.kpi.status
    )


# ---- Approver ----

@router.get("/pending-approval", response_model=List[KpiResponse])
async def get_pending_approval(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    result = await db.execute(
        select(Kpi)
        .options(*kpi_service.kpi_load_options())
        .where(Kpi.approver_id == caller.id, Kpi.status == KpiStatus.PENDING_APPROVAL.value)
        .order_by(Kpi.submitted_at.desc(), Kpi.id.desc())
    )
    return result.scalars().all()


# ---- Admin ----

@router.get("", response_model=List[KpiResponse])
async def list_kpis(
    status: Optional[KpiStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    query = select(Kpi).options(*kpi_service.kpi_load_options())
    if status is not None:
        query = query.where(Kpi.status == status.value)
    result = await db.execute(query.order_by(Kpi.created_at.desc(), Kpi.id.desc()))
    return result.scalars().all()


@router.post("", response_model=KpiResponse, status_code=201)
async def create_kpi(
    kpi_in: KpiCreate,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    if not await db.get(User, kpi_in.approver_id):
        raise NotFoundError("Approver not found")

    kpi = Kpi(
        title=kpi_in.title,
        description=kpi_in.description,
        deadline=kpi_in.deadline,
        approver_id=kpi_in.approver_id,
        created_by_id=admin.id,
        status=KpiStatus.DRAFT.value,
    )
    db.add(kpi)
    await db.commit()
    logger.info("Created KPI %s (approver=%s)", kpi.id, kpi.approver_id)
    return await kpi_service.get_kpi_or_404(db, kpi.id)


@router.get("/{kpi_id}", response_model=KpiResponse)
async def get_kpi(
    kpi_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller)
):
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.put("/{kpi_id}", response_model=KpiResponse)
async def update_kpi(
    kpi_id: int,
    kpi_in: KpiUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.begin_structural_edit(kpi, "edit")

    if kpi_in.approver_id is not None and not await db.get(User, kpi_in.approver_id):
        raise NotFoundError("Approver not found")

    for field, value in kpi_in.model_dump(exclude_unset=True).items():
        if field == "description" or value is not None:
            setattr(kpi, field, value)

    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.delete("/{kpi_id}", response_model=MessageResponse)
async def delete_kpi(
    kpi_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.ensure_deletable(kpi)
    await db.delete(kpi)
    await db.commit()
    logger.info("Deleted KPI %s", kpi_id)
    return MessageResponse(message="KPI deleted successfully")


# ---- Admin: blocks ----

@router.post("/{kpi_id}/blocks", response_model=KpiResponse, status_code=201)
async def add_block(
    kpi_id: int,
    block_in: BlockCreate,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.begin_structural_edit(kpi, "add blocks to")
    kpi.blocks.append(KpiBlock(
        name=block_in.name,
        weight=block_in.weight,
        order=kpi_service.next_order(kpi.blocks),
    ))
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.put("/{kpi_id}/blocks/{block_id}", response_model=KpiResponse)
async def update_block(
    kpi_id: int,
    block_id: int,
    block_in: BlockUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    block = kpi_service.get_block_or_404(kpi, block_id)
    kpi_service.begin_structural_edit(kpi, "edit blocks of")
    for field, value in block_in.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(block, field, value)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.delete("/{kpi_id}/blocks/{block_id}", response_model=KpiResponse)
async def delete_block(
    kpi_id: int,
    block_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    block = kpi_service.get_block_or_404(kpi, block_id)
    kpi_service.begin_structural_edit(kpi, "delete blocks from")
    kpi.blocks.remove(block)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


# ---- Admin: tasks ----

@router.post("/{kpi_id}/blocks/{block_id}/tasks", response_model=KpiResponse, status_code=201)
async def add_task(
    kpi_id: int,
    block_id: int,
    task_in: TaskCreate,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    block = kpi_service.get_block_or_404(kpi, block_id)
    kpi_service.begin_structural_edit(kpi, "add tasks to")
    task = KpiTask(
        name=task_in.name,
        weight=task_in.weight,
        order=kpi_service.next_order(block.tasks),
    )
    if task_in.unit:
        task.unit = task_in.unit
    if task_in.plan_value is not None:
        task.plan_value = task_in.plan_value
    block.tasks.append(task)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.put("/{kpi_id}/blocks/{block_id}/tasks/{task_id}", response_model=KpiResponse)
async def update_task(
    kpi_id: int,
    block_id: int,
    task_id: int,
    task_in: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    task = kpi_service.get_task_or_404(kpi, block_id, task_id)
    kpi_service.begin_structural_edit(kpi, "edit tasks of")
    for field, value in task_in.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(task, field, value)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.delete("/{kpi_id}/blocks/{block_id}/tasks/{task_id}", response_model=KpiResponse)
async def delete_task(
    kpi_id: int,
    block_id: int,
    task_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    block = kpi_service.get_block_or_404(kpi, block_id)
    task = kpi_service.get_task_or_404(kpi, block_id, task_id)
    kpi_service.begin_structural_edit(kpi, "delete tasks from")
    block.tasks.remove(task)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


# ---- Admin: assignments ----

@router.post("/{kpi_id}/assign", response_model=List[AssignmentResponse], status_code=201)
async def assign_users(
    kpi_id: int,
    assign_in: AssignRequest,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.begin_structural_edit(kpi, "assign users to")

    user_ids = list(dict.fromkeys(assign_in.user_ids))
    result = await db.execute(select(User.id).where(User.id.in_(user_ids)))
    missing = sorted(set(user_ids) - set(result.scalars().all()))
    if missing:
        raise NotFoundError("User not found", errors=[f"User {uid} not found" for uid in missing])

    created = kpi_service.assign_users(kpi, user_ids)
    await db.commit()
    logger.info("KPI %s: assigned %d new user(s)", kpi_id, len(created))

    if not created:
        return []
    result = await db.execute(
        select(KpiAssignment)
        .options(selectinload(KpiAssignment.user))
        .where(KpiAssignment.id.in_([a.id for a in created]))
        .order_by(KpiAssignment.id)
    )
    return result.scalars().all()


@router.delete("/{kpi_id}/assign/{user_id}", response_model=KpiResponse)
async def remove_assignment(
    kpi_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    assignment = kpi_service.find_assignment(kpi, user_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    kpi_service.begin_structural_edit(kpi, "remove assignments from")
    kpi.assignments.remove(assignment)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


# ---- Lifecycle ----

@router.post("/{kpi_id}/submit", response_model=KpiResponse)
async def submit_for_approval(
    kpi_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Caller = Depends(get_current_admin)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.submit_for_approval(kpi, utcnow())
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.post("/{kpi_id}/approve", response_model=KpiResponse)
async def approve_kpi(
    kpi_id: int,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.approve(kpi, caller.id, utcnow())
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)


@router.post("/{kpi_id}/reject", response_model=KpiResponse)
async def reject_kpi(
    kpi_id: int,
    reject_in: RejectRequest,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_user)
):
    kpi = await kpi_service.get_kpi_or_404(db, kpi_id, for_update=True)
    kpi_service.reject(kpi, caller.id, reject_in.reason)
    await db.commit()
    return await kpi_service.get_kpi_or_404(db, kpi_id)
