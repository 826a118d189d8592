"""KPI lifecycle and fulfillment scoring.

    DRAFT ──submit──▶ PENDING_APPROVAL ──approve──▶ APPROVED ──all results in──▶ COMPLETED
      ▲                      │
      └──structural edit── REJECTED ◀──reject──┘

Structure (header, blocks, tasks, assignments) can only change in DRAFT or
REJECTED; editing a rejected KPI sends it back to DRAFT.

The transition functions mutate the ORM objects they are given and leave
committing to the caller, so the checks and the write share one transaction.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.models.kpi import Kpi, KpiAssignment, KpiBlock, KpiStatus, KpiTask, KpiTaskFact
from app.utils.datetimes import make_aware
from app.utils.numbers import round2

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (KpiStatus.DRAFT, KpiStatus.REJECTED)
DELETABLE_STATUSES = (KpiStatus.DRAFT, KpiStatus.REJECTED, KpiStatus.APPROVED)
VISIBLE_TO_EMPLOYEE = (KpiStatus.APPROVED, KpiStatus.COMPLETED)


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

def is_editable(kpi: Kpi) -> bool:
    return kpi.status in EDITABLE_STATUSES


def ensure_editable(kpi: Kpi, action: str = "modify") -> None:
    if not is_editable(kpi):
        raise ValidationError(f"Can only {action} KPI in DRAFT or REJECTED status")


def reopen_if_rejected(kpi: Kpi) -> None:
    if kpi.status == KpiStatus.REJECTED:
        kpi.status = KpiStatus.DRAFT.value
        kpi.rejection_reason = None
        logger.info("KPI %s reopened as DRAFT after edit", kpi.id)


def begin_structural_edit(kpi: Kpi, action: str = "modify") -> None:
    ensure_editable(kpi, action)
    reopen_if_rejected(kpi)


def ensure_deletable(kpi: Kpi) -> None:
    if kpi.status not in DELETABLE_STATUSES:
        raise ValidationError("Cannot delete KPI in PENDING_APPROVAL or COMPLETED status")


def next_order(items: Iterable) -> int:
    return max((item.order for item in items), default=-1) + 1


def weights_match(total: float, tolerance: Optional[float] = None) -> bool:
    if tolerance is None:
        tolerance = settings.WEIGHT_TOLERANCE
    return abs(total - 100) <= tolerance


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------

def submission_errors(kpi: Kpi, now: datetime, tolerance: Optional[float] = None) -> List[str]:
    """Every reason ``kpi`` cannot be sent for approval; empty when it can."""
    errors = []
    if not kpi.blocks:
        errors.append("At least one block is required")

    for block in kpi.blocks:
        if not block.tasks:
            errors.append(f'Block "{block.name}" must have at least one task')
        task_weight = sum(task.weight for task in block.tasks)
        if not weights_match(task_weight, tolerance):
            errors.append(
                f'Tasks in block "{block.name}" must have total weight of 100%, current: {task_weight:g}%'
            )

    block_weight = sum(block.weight for block in kpi.blocks)
    if not weights_match(block_weight, tolerance):
        errors.append(f"Total block weight must be 100%, current: {block_weight:g}%")

    if not kpi.assignments:
        errors.append("At least one employee must be assigned")

    if make_aware(kpi.deadline) <= now:
        errors.append("Deadline must be in the future")
    return errors


def submit_for_approval(kpi: Kpi, now: datetime, tolerance: Optional[float] = None) -> Kpi:
    ensure_editable(kpi, "submit")
    errors = submission_errors(kpi, now, tolerance)
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    kpi.status = KpiStatus.PENDING_APPROVAL.value
    kpi.submitted_at = now
    kpi.rejection_reason = None
    logger.info("KPI %s submitted for approval to user %s", kpi.id, kpi.approver_id)
    return kpi


def _ensure_pending_for(kpi: Kpi, caller_id: int) -> None:
    if kpi.approver_id != caller_id:
        raise PermissionDeniedError("You are not the approver for this KPI")
    if kpi.status != KpiStatus.PENDING_APPROVAL:
        raise ValidationError("KPI is not pending approval")


def approve(kpi: Kpi, caller_id: int, now: datetime) -> Kpi:
    _ensure_pending_for(kpi, caller_id)
    kpi.status = KpiStatus.APPROVED.value
    kpi.approved_at = now
    logger.info("KPI %s approved by user %s", kpi.id, caller_id)
    return kpi


def reject(kpi: Kpi, caller_id: int, reason: Optional[str]) -> Kpi:
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required")
    _ensure_pending_for(kpi, caller_id)
    kpi.status = KpiStatus.REJECTED.value
    kpi.rejection_reason = reason
    logger.info("KPI %s rejected by user %s", kpi.id, caller_id)
    return kpi


# ---------------------------------------------------------------------------
# Fulfillment
# ---------------------------------------------------------------------------

def ensure_fillable(kpi: Kpi, assignment: KpiAssignment, action: str = "update facts") -> None:
    if kpi.status != KpiStatus.APPROVED:
        raise ValidationError(f"Can only {action} for APPROVED KPI")
    if assignment.is_submitted:
        raise ValidationError("Results already submitted")


def kpi_task_ids(kpi: Kpi) -> List[int]:
    return [task.id for block in kpi.blocks for task in block.tasks]


def missing_fact_task_ids(kpi: Kpi, assignment: KpiAssignment) -> List[int]:
    filled = {f.task_id for f in assignment.fact_values if f.fact_value is not None}
    return [task_id for task_id in kpi_task_ids(kpi) if task_id not in filled]


def submit_results(kpi: Kpi, assignment: KpiAssignment, now: datetime) -> KpiAssignment:
    """Lock in the assignment's facts; the kpi completes once every assignment has."""
    ensure_fillable(kpi, assignment, "submit results")

    missing = missing_fact_task_ids(kpi, assignment)
    if missing:
        raise ValidationError("All tasks must have fact values", missing_tasks=missing)
    if now > make_aware(kpi.deadline):
        raise ValidationError("Deadline has passed")

    assignment.is_submitted = True
    assignment.submitted_at = now

    if all(a.is_submitted for a in kpi.assignments):
        kpi.status = KpiStatus.COMPLETED.value
        logger.info("KPI %s completed: all %d assignments submitted", kpi.id, len(kpi.assignments))
    return assignment


# ---------------------------------------------------------------------------
# Scoring (read-time only, never persisted)
# ---------------------------------------------------------------------------

def task_completion(fact_value: Optional[float], plan_value: float) -> float:
    """Percent of plan achieved; a zero plan counts any positive fact as 100%."""
    fact = fact_value or 0
    if not plan_value:
        return 100.0 if fact > 0 else 0.0
    return fact / plan_value * 100


def block_score(block: KpiBlock, facts: Mapping[int, Optional[float]]) -> float:
    total_weight = sum(task.weight for task in block.tasks)
    if not total_weight:
        return 0.0
    weighted = sum(task_completion(facts.get(task.id), task.plan_value) * task.weight for task in block.tasks)
    return weighted / total_weight


def kpi_score(kpi: Kpi, facts: Mapping[int, Optional[float]]) -> float:
    total_weight = sum(block.weight for block in kpi.blocks)
    if not total_weight:
        return 0.0
    weighted = sum(block_score(block, facts) * block.weight for block in kpi.blocks)
    return round2(weighted / total_weight)


def score_breakdown(kpi: Kpi, assignment: KpiAssignment) -> dict:
    facts = {f.task_id: f.fact_value for f in assignment.fact_values}
    return {
        "score": kpi_score(kpi, facts),
        "blocks": [
            {
                "block_id": block.id,
                "score": round2(block_score(block, facts)),
                "tasks": [
                    {"task_id": task.id, "completion": round2(task_completion(facts.get(task.id), task.plan_value))}
                    for task in block.tasks
                ],
            }
            for block in kpi.blocks
        ],
    }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def kpi_load_options():
    return (
        selectinload(Kpi.created_by),
        selectinload(Kpi.approver),
        selectinload(Kpi.blocks).selectinload(KpiBlock.tasks),
        selectinload(Kpi.assignments).selectinload(KpiAssignment.user),
        selectinload(Kpi.assignments).selectinload(KpiAssignment.fact_values),
    )


async def get_kpi_or_404(db: AsyncSession, kpi_id: int, for_update: bool = False) -> Kpi:
    query = select(Kpi).where(Kpi.id == kpi_id).options(*kpi_load_options())
    if for_update:
        query = query.with_for_update(of=Kpi)
    result = await db.execute(query.execution_options(populate_existing=True))
    kpi = result.scalar_one_or_none()
    if kpi is None:
        raise NotFoundError("KPI not found")
    return kpi


def get_block_or_404(kpi: Kpi, block_id: int) -> KpiBlock:
    for block in kpi.blocks:
        if block.id == block_id:
            return block
    raise NotFoundError("Block not found")


def get_task_or_404(kpi: Kpi, block_id: int, task_id: int) -> KpiTask:
    block = get_block_or_404(kpi, block_id)
    for task in block.tasks:
        if task.id == task_id:
            return task
    raise NotFoundError("Task not found")


def find_assignment(kpi: Kpi, user_id: int) -> Optional[KpiAssignment]:
    for assignment in kpi.assignments:
        if assignment.user_id == user_id:
            return assignment
    return None


def assign_users(kpi: Kpi, user_ids: Iterable[int]) -> List[KpiAssignment]:
    """Append assignments for ``user_ids``, silently skipping users already on the kpi."""
    taken = {a.user_id for a in kpi.assignments}
    created = []
    for user_id in user_ids:
        if user_id in taken:
            continue
        taken.add(user_id)
        assignment = KpiAssignment(user_id=user_id, is_submitted=False)
        kpi.assignments.append(assignment)
        created.append(assignment)
    return created


def upsert_facts(kpi: Kpi, assignment: KpiAssignment, facts: Iterable) -> List[KpiTaskFact]:
    """Apply ``facts`` (objects with task_id/fact_value/comment) to the assignment."""
    facts = list(facts)
    valid_ids = set(kpi_task_ids(kpi))
    unknown = sorted({f.task_id for f in facts} - valid_ids)
    if unknown:
        raise ValidationError("Unknown task for this KPI", errors=[f"Task {tid} does not belong to this KPI" for tid in unknown])

    existing: Dict[int, KpiTaskFact] = {f.task_id: f for f in assignment.fact_values}
    saved = []
    for fact in facts:
        row = existing.get(fact.task_id)
        if row is None:
            row = KpiTaskFact(task_id=fact.task_id)
            assignment.fact_values.append(row)
            existing[fact.task_id] = row
        row.fact_value = fact.fact_value
        row.comment = fact.comment or None
        saved.append(row)
    return saved
