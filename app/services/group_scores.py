"""Group scoring for an evaluation period.

Two different per-group numbers live here and they are not interchangeable:

* ``aggregate_scores`` walks the derived group tree. Leaf groups average
  their evaluatees' scores; internal groups average their children's
  scores and ignore their own direct evaluatees.
* ``member_score`` (used by the summary and detail views) averages the
  evaluations of a group's own members, flat, regardless of the tree.

For a group with child groups the two usually differ.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import HierarchyCycleError
from app.models.evaluation import Evaluation, EvaluationPeriod, GroupScore
from app.models.user import Group, User
from app.services.hierarchy import GroupForest, GroupNode, load_group_forest
from app.utils.numbers import mean2

logger = logging.getLogger(__name__)

# Lower bounds of the distribution buckets, checked top-down.
DISTRIBUTION_THRESHOLDS = (
    ("excellent", 4.5),
    ("good", 3.5),
    ("satisfactory", 2.5),
)


@dataclass
class ScoreResult:
    score: Optional[float]
    user_count: int
    is_leaf: bool


def aggregate_scores(forest: GroupForest, leaf_scores: Dict[int, List[float]]) -> Dict[int, ScoreResult]:
    """Score every node of ``forest`` bottom-up.

    ``leaf_scores`` maps group id to the average scores of the evaluations
    whose evaluatee belongs to that group. Traversal is an explicit post-order
    with a memo keyed by group id, so deep trees do not hit the recursion
    limit and a revisited node is reported as a cycle.
    """
    memo: Dict[int, ScoreResult] = {}
    visiting = set()

    for root in forest.roots:
        stack = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if node.id in memo:
                continue
            if not expanded:
                if node.id in visiting:
                    raise HierarchyCycleError({node.id})
                visiting.add(node.id)
                stack.append((node, True))
                for child in reversed(node.children):
                    if child.id not in memo:
                        stack.append((child, False))
                continue
            visiting.discard(node.id)
            memo[node.id] = _score_node(node, memo, leaf_scores)
    return memo


def _score_node(node: GroupNode, memo: Dict[int, ScoreResult], leaf_scores: Dict[int, List[float]]) -> ScoreResult:
    if node.is_leaf:
        scores = leaf_scores.get(node.id, [])
        return ScoreResult(score=mean2(scores), user_count=len(scores), is_leaf=True)

    children = [memo[child.id] for child in node.children]
    valid = [c.score for c in children if c.score is not None]
    if not valid:
        return ScoreResult(score=None, user_count=0, is_leaf=False)
    # Unweighted by headcount: every child group counts once.
    return ScoreResult(
        score=mean2(valid),
        user_count=sum(c.user_count for c in children),
        is_leaf=False,
    )


def build_score_tree(forest: GroupForest, scores: Dict[int, ScoreResult]) -> List[dict]:
    def build(node: GroupNode) -> dict:
        data = scores.get(node.id) or ScoreResult(score=None, user_count=0, is_leaf=True)
        return {
            "group_id": node.id,
            "group_name": node.name,
            "leader_id": node.leader_id,
            "leader_name": node.leader_name,
            "score": data.score,
            "user_count": data.user_count,
            "is_leaf": data.is_leaf,
            "children": [build(child) for child in node.children],
        }

    return [build(root) for root in forest.roots]


def score_bucket(score: float) -> str:
    for bucket, lower in DISTRIBUTION_THRESHOLDS:
        if score >= lower:
            return bucket
    return "poor"


def score_distribution(scores: List[float]) -> Dict[str, int]:
    distribution = {"excellent": 0, "good": 0, "satisfactory": 0, "poor": 0}
    for score in scores:
        distribution[score_bucket(score)] += 1
    return distribution


def member_score(member_evaluations: List[List[float]]) -> Optional[float]:
    """Flat mean over every evaluation received by a group's members."""
    return mean2(score for scores in member_evaluations for score in scores)


async def get_leaf_scores(db: AsyncSession, period_id: int) -> Dict[int, List[float]]:
    result = await db.execute(
        select(User.group_id, Evaluation.average_score)
        .select_from(Evaluation)
        .join(User, User.id == Evaluation.evaluatee_id)
        .where(Evaluation.period_id == period_id)
        .order_by(Evaluation.id)
    )
    leaf_scores: Dict[int, List[float]] = defaultdict(list)
    for group_id, average_score in result.all():
        leaf_scores[group_id].append(average_score)
    return leaf_scores


async def compute_group_scores(db: AsyncSession, period_id: int):
    forest = await load_group_forest(db)
    leaf_scores = await get_leaf_scores(db, period_id)
    return forest, aggregate_scores(forest, leaf_scores)


async def get_score_tree(db: AsyncSession, period_id: int) -> List[dict]:
    forest, scores = await compute_group_scores(db, period_id)
    return build_score_tree(forest, scores)


async def recalculate_group_scores(db: AsyncSession, period_id: int) -> List[GroupScore]:
    """Upsert one ``GroupScore`` row per node with a non-null score.

    The caller commits; rows for nodes whose score became null are left as
    they were.
    """
    forest, scores = await compute_group_scores(db, period_id)

    existing = await db.execute(select(GroupScore).where(GroupScore.period_id == period_id))
    rows = {row.group_id: row for row in existing.scalars().all()}

    saved = []
    for node in forest.walk():
        data = scores[node.id]
        if data.score is None:
            continue
        row = rows.get(node.id)
        if row is None:
            row = GroupScore(group_id=node.id, period_id=period_id)
            db.add(row)
        row.score = data.score
        row.user_count = data.user_count
        row.is_leaf = data.is_leaf
        saved.append(row)

    await db.flush()
    logger.info("Recalculated group scores for period %s: %d rows", period_id, len(saved))
    return saved


async def get_summary(db: AsyncSession, period: EvaluationPeriod) -> dict:
    result = await db.execute(
        select(Evaluation.average_score, Evaluation.form_type, Evaluation.evaluatee_id)
        .where(Evaluation.period_id == period.id)
    )
    evaluations = result.all()
    all_scores = [e.average_score for e in evaluations]

    groups_result = await db.execute(
        select(Group).options(selectinload(Group.leader), selectinload(Group.users)).order_by(Group.name)
    )
    groups = groups_result.scalars().all()

    per_user: Dict[int, List[float]] = defaultdict(list)
    for e in evaluations:
        per_user[e.evaluatee_id].append(e.average_score)

    group_items = []
    for group in groups:
        member_scores = [per_user.get(u.id, []) for u in group.users]
        group_items.append({
            "id": group.id,
            "name": group.name,
            "leader": group.leader.full_name if group.leader else None,
            "user_count": len(group.users),
            "evaluated_count": sum(1 for scores in member_scores if scores),
            "member_score": member_score(member_scores),
        })

    return {
        "period": period,
        "overall_score": mean2(all_scores),
        "groups_evaluated": sum(1 for g in group_items if g["member_score"] is not None),
        "employees_evaluated": len({e.evaluatee_id for e in evaluations}),
        "manager_form_avg": mean2(e.average_score for e in evaluations if e.form_type == "manager"),
        "employee_form_avg": mean2(e.average_score for e in evaluations if e.form_type == "employee"),
        "groups": group_items,
        "distribution": score_distribution(all_scores),
    }


async def get_group_detail(db: AsyncSession, group: Group, period_id: int) -> dict:
    result = await db.execute(
        select(Evaluation)
        .join(User, User.id == Evaluation.evaluatee_id)
        .where(Evaluation.period_id == period_id, User.group_id == group.id)
        .order_by(Evaluation.id)
    )
    by_user: Dict[int, List[Evaluation]] = defaultdict(list)
    for evaluation in result.scalars().all():
        by_user[evaluation.evaluatee_id].append(evaluation)

    employees = []
    for user in group.users:
        received = by_user.get(user.id, [])
        employees.append({
            "id": user.id,
            "full_name": user.full_name,
            "position": user.position,
            "evaluation": received[0] if received else None,
        })

    evaluated = [e for e in employees if e["evaluation"] is not None]
    return {
        "group": {
            "id": group.id,
            "name": group.name,
            "leader": group.leader,
            "member_score": mean2(e["evaluation"].average_score for e in evaluated),
            "evaluated_count": len(evaluated),
            "total_count": len(employees),
        },
        "employees": employees,
    }
