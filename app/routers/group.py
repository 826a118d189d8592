import logging
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.core.auth import get_current_admin
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.user import Group, User
from app.models.evaluation import GroupScore
from app.schemas.base import MessageResponse
from app.schemas.group import GroupCreate, GroupUpdate, GroupResponse, GroupDetailResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/groups", tags=["groups"], dependencies=[Depends(get_current_admin)])


async def _get_group(db: AsyncSession, group_id: int) -> Group:
    result = await db.execute(
        select(Group)
        .options(selectinload(Group.leader), selectinload(Group.users))
        .where(Group.id == group_id)
        .execution_options(populate_existing=True)
    )
    group = result.scalar_one_or_none()
    if not group:
        raise NotFoundError("Group not found")
    return group


async def _ensure_unique_name(db: AsyncSession, name: str, exclude_id: int = None):
    query = select(Group.id).where(Group.name == name)
    if exclude_id is not None:
        query = query.where(Group.id != exclude_id)
    if (await db.execute(query)).first() is not None:
        raise ConflictError("Group with this name already exists")


def _detail(group: Group) -> GroupDetailResponse:
    response = GroupDetailResponse.model_validate(group)
    response.user_count = len(group.users)
    return response


@router.get("", response_model=List[GroupResponse])
async def list_groups(db: AsyncSession = Depends(get_db)):
    counts = (
        select(User.group_id, func.count(User.id).label("user_count"))
        .group_by(User.group_id)
        .subquery()
    )
    result = await db.execute(
        select(Group, func.coalesce(counts.c.user_count, 0))
        .outerjoin(counts, counts.c.group_id == Group.id)
        .options(selectinload(Group.leader))
        .order_by(Group.name)
    )
    groups = []
    for group, user_count in result.all():
        item = GroupResponse.model_validate(group)
        item.user_count = user_count
        groups.append(item)
    return groups


@router.get("/{group_id}", response_model=GroupDetailResponse)
async def get_group(group_id: int, db: AsyncSession = Depends(get_db)):
    return _detail(await _get_group(db, group_id))


@router.post("", response_model=GroupDetailResponse, status_code=201)
async def create_group(group_in: GroupCreate, db: AsyncSession = Depends(get_db)):
    await _ensure_unique_name(db, group_in.name)
    group = Group(name=group_in.name)
    db.add(group)
    await db.commit()
    logger.info("Created group %s (%s)", group.id, group.name)
    return _detail(await _get_group(db, group.id))


@router.put("/{group_id}", response_model=GroupDetailResponse)
async def update_group(group_id: int, group_in: GroupUpdate, db: AsyncSession = Depends(get_db)):
    group = await _get_group(db, group_id)

    if group_in.name and group_in.name != group.name:
        await _ensure_unique_name(db, group_in.name, exclude_id=group.id)
        group.name = group_in.name

    if "leader_id" in group_in.model_fields_set:
        if group_in.leader_id is None:
            group.leader_id = None
        else:
            leader = await db.get(User, group_in.leader_id)
            if not leader:
                raise ValidationError("Leader not found")
            if leader.group_id != group.id:
                raise ValidationError("Leader must be a member of this group")
            group.leader_id = leader.id

    await db.commit()
    return _detail(await _get_group(db, group.id))


@router.delete("/{group_id}", response_model=MessageResponse)
async def delete_group(group_id: int, db: AsyncSession = Depends(get_db)):
    group = await _get_group(db, group_id)
    if group.users:
        raise ConflictError(
            f"Cannot delete group with {len(group.users)} member(s). Move or delete them first."
        )
    await db.execute(
        delete(GroupScore).where(GroupScore.group_id == group.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(group)
    await db.commit()
    logger.info("Deleted group %s", group_id)
    return MessageResponse(message="Group deleted successfully")
