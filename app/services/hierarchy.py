"""Derive the group tree from leadership and reporting lines.

Groups carry no parent pointer. A group's parent is the group led by the
manager of its own leader, so the tree is recomputed from the flat
``Group``/``User`` rows whenever it is needed.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import HierarchyCycleError
from app.models.user import Group


@dataclass
class GroupNode:
    id: int
    name: str
    leader_id: Optional[int] = None
    leader_name: Optional[str] = None
    leader_manager_id: Optional[int] = None
    parent_group_id: Optional[int] = None
    children: List["GroupNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children


@dataclass
class GroupForest:
    nodes: Dict[int, GroupNode]
    roots: List[GroupNode]

    def walk(self) -> Iterable[GroupNode]:
        """Pre-order over every tree, roots in input order."""
        stack = list(reversed(self.roots))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


def resolve_hierarchy(nodes: Iterable[GroupNode]) -> GroupForest:
    """Link ``nodes`` into a forest.

    A node is parented under the group whose leader is its leader's manager.
    Nodes without a leader, whose leader has no manager, or whose leader's
    manager leads no group are roots. If two groups claim the same leader the
    first one wins.

    Raises ``HierarchyCycleError`` when the reporting lines loop, since such
    groups would never be reachable from a root.
    """
    nodes = list(nodes)
    by_id: Dict[int, GroupNode] = {}
    by_leader: Dict[int, GroupNode] = {}
    for node in nodes:
        node.parent_group_id = None
        node.children = []
        by_id[node.id] = node
        if node.leader_id is not None:
            by_leader.setdefault(node.leader_id, node)

    roots: List[GroupNode] = []
    for node in nodes:
        parent = None
        if node.leader_manager_id is not None:
            parent = by_leader.get(node.leader_manager_id)
        if parent is None:
            roots.append(node)
            continue
        node.parent_group_id = parent.id
        parent.children.append(node)

    forest = GroupForest(nodes=by_id, roots=roots)
    reached = {node.id for node in forest.walk()}
    if len(reached) != len(by_id):
        raise HierarchyCycleError(set(by_id) - reached)
    return forest


def node_from_group(group: Group) -> GroupNode:
    leader = group.leader
    return GroupNode(
        id=group.id,
        name=group.name,
        leader_id=group.leader_id,
        leader_name=leader.full_name if leader else None,
        leader_manager_id=leader.manager_id if leader else None,
    )


async def load_group_forest(db: AsyncSession) -> GroupForest:
    result = await db.execute(
        select(Group).options(selectinload(Group.leader)).order_by(Group.id)
    )
    return resolve_hierarchy(node_from_group(g) for g in result.scalars().all())
