"""Score-sheet rules for manager→subordinate evaluations."""
import logging
from typing import Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.models.evaluation import Evaluation, EvaluationPeriod
from app.models.user import User
from app.utils.numbers import round2

logger = logging.getLogger(__name__)

MANAGER_FORM = "manager"
EMPLOYEE_FORM = "employee"

FORM_PARAMETERS: Dict[str, List[str]] = {
    # Form 1: people who lead others or use the platform
    MANAGER_FORM: ["quality", "deadlines", "leadership", "discipline", "noViolations"],
    # Form 2: everyone else
    EMPLOYEE_FORM: ["quality", "deadlines", "initiative", "discipline", "noViolations"],
}

MIN_SCORE = 1
MAX_SCORE = 5

RESULT_EFFICIENT = "efficient"
RESULT_ADEQUATE = "adequate"
RESULT_SATISFACTORY = "satisfactory"
RESULT_UNSATISFACTORY = "unsatisfactory"

RESULT_THRESHOLDS = (
    (4.5, RESULT_EFFICIENT),
    (3.5, RESULT_ADEQUATE),
    (2.5, RESULT_SATISFACTORY),
)


def select_form_type(has_subordinates: bool, can_access_platform: bool) -> str:
    if has_subordinates or can_access_platform:
        return MANAGER_FORM
    return EMPLOYEE_FORM


def validate_scores(form_type: str, scores: Mapping) -> Dict[str, int]:
    """Return the form's parameters in order, each checked to be an int in 1..5.

    Integral floats such as ``4.0`` count as integers.
    """
    validated = {}
    for param in FORM_PARAMETERS[form_type]:
        value = scores.get(param)
        if value is None:
            raise ValidationError(f"Missing score for parameter: {param}")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int) or not MIN_SCORE <= value <= MAX_SCORE:
            raise ValidationError(
                f"Invalid score for parameter: {param}. Must be integer {MIN_SCORE}-{MAX_SCORE}."
            )
        validated[param] = value
    return validated


def average_score(scores: Mapping[str, int]) -> float:
    return round2(sum(scores.values()) / len(scores))


def result_label(average: float) -> str:
    for lower, label in RESULT_THRESHOLDS:
        if average >= lower:
            return label
    return RESULT_UNSATISFACTORY


async def record_evaluation(
    db: AsyncSession,
    evaluator_id: int,
    period: EvaluationPeriod,
    evaluatee_id: int,
    scores: Mapping,
    comments: Optional[Mapping[str, str]] = None,
) -> Evaluation:
    """Create or replace the evaluator's sheet for one direct report in ``period``."""
    if not period.is_active:
        raise ValidationError("Period is not active")

    evaluatee = await db.get(User, evaluatee_id)
    if evaluatee is None:
        raise NotFoundError("Evaluatee not found")
    if evaluatee.manager_id != evaluator_id:
        raise PermissionDeniedError("You can only evaluate your direct subordinates")

    subordinate = await db.execute(select(User.id).where(User.manager_id == evaluatee.id).limit(1))
    form_type = select_form_type(subordinate.first() is not None, evaluatee.can_access_platform)

    validated = validate_scores(form_type, scores)
    average = average_score(validated)

    existing = await db.execute(
        select(Evaluation).where(
            Evaluation.period_id == period.id,
            Evaluation.evaluator_id == evaluator_id,
            Evaluation.evaluatee_id == evaluatee_id,
        )
    )
    evaluation = existing.scalar_one_or_none()
    if evaluation is None:
        evaluation = Evaluation(period_id=period.id, evaluator_id=evaluator_id, evaluatee_id=evaluatee_id)
        db.add(evaluation)

    evaluation.form_type = form_type
    evaluation.scores = validated
    evaluation.comments = dict(comments) if comments else None
    evaluation.average_score = average
    evaluation.result = result_label(average)
    await db.flush()

    logger.info(
        "Evaluation %s: evaluator=%s evaluatee=%s period=%s average=%.2f",
        evaluation.id, evaluator_id, evaluatee_id, period.id, average,
    )
    return evaluation
