import logging
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.core.auth import get_current_admin
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.user import Group, User
from app.models.evaluation import Evaluation
from app.models.kpi import Kpi, KpiAssignment, KpiTaskFact
from app.routers.auth import get_subordinates_tree
from app.schemas.base import MessageResponse
from app.schemas.user import (
    UserCreate, UserUpdate, UserResponse, UserCredentialsResponse,
    GeneratedPasswordResponse, SubordinateItem,
)
from app.utils.credentials import generate_login, generate_password
from app.utils.password import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(get_current_admin)])


def _user_options():
    return (
        selectinload(User.group),
        selectinload(User.manager),
        selectinload(User.subordinates),
        selectinload(User.leads_group),
    )


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User)
        .options(*_user_options())
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


async def _ensure_group(db: AsyncSession, group_id: int) -> Group:
    group = await db.get(Group, group_id)
    if not group:
        raise ValidationError("Group not found")
    return group


async def _ensure_manager(db: AsyncSession, manager_id: int) -> User:
    manager = await db.get(User, manager_id)
    if not manager:
        raise ValidationError("Manager not found")
    return manager


@router.get("", response_model=List[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(User).options(*_user_options()).order_by(User.created_at.desc(), User.id.desc())
    )
    return result.scalars().all()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_user(db, user_id)


@router.post("", response_model=UserCredentialsResponse, status_code=201)
async def create_user(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    group = await _ensure_group(db, user_in.group_id)
    if user_in.manager_id:
        await _ensure_manager(db, user_in.manager_id)

    login = plain_password = password_hash = None
    if user_in.can_access_platform:
        login = await generate_login(db, user_in.full_name)
        plain_password = generate_password()
        password_hash = hash_password(plain_password)

    user = User(
        full_name=user_in.full_name,
        position=user_in.position,
        group_id=user_in.group_id,
        manager_id=user_in.manager_id or None,
        submits_basic_report=user_in.submits_basic_report,
        submits_kpi=user_in.submits_kpi,
        can_access_platform=user_in.can_access_platform,
        login=login,
        password_hash=password_hash,
    )
    db.add(user)
    await db.flush()

    if user_in.is_group_leader:
        group.leader_id = user.id

    await db.commit()
    logger.info("Created user %s (group=%s, platform=%s)", user.id, group.id, user.can_access_platform)

    response = UserCredentialsResponse.model_validate(await _get_user(db, user.id))
    response.generated_login = login
    response.generated_password = plain_password
    return response


@router.put("/{user_id}", response_model=UserCredentialsResponse)
async def update_user(user_id: int, user_in: UserUpdate, db: AsyncSession = Depends(get_db)):
    user = await _get_user(db, user_id)
    fields = user_in.model_fields_set

    new_group_id = user_in.group_id or user.group_id
    if user_in.group_id:
        await _ensure_group(db, user_in.group_id)

    # Leaving the group they led → that group loses its leader
    if user_in.group_id and user_in.group_id != user.group_id and user.leads_group:
        user.leads_group.leader_id = None

    if user_in.manager_id:
        if user_in.manager_id == user.id:
            raise ValidationError("User cannot be their own manager")
        await _ensure_manager(db, user_in.manager_id)

    generated_login = plain_password = None
    if user_in.can_access_platform and not user.can_access_platform:
        if not user.login:
            generated_login = await generate_login(db, user_in.full_name or user.full_name)
            user.login = generated_login
        if not user.password_hash:
            plain_password = generate_password()
            user.password_hash = hash_password(plain_password)

    if user_in.full_name:
        user.full_name = user_in.full_name
    if user_in.position:
        user.position = user_in.position
    user.group_id = new_group_id
    if "manager_id" in fields:
        user.manager_id = user_in.manager_id or None
    for flag in ("submits_basic_report", "submits_kpi", "can_access_platform"):
        value = getattr(user_in, flag)
        if value is not None:
            setattr(user, flag, value)

    await db.flush()
    if user_in.is_group_leader:
        group = await db.get(Group, new_group_id)
        group.leader_id = user.id

    await db.commit()

    response = UserCredentialsResponse.model_validate(await _get_user(db, user.id))
    response.generated_login = generated_login
    response.generated_password = plain_password
    return response


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await _get_user(db, user_id)

    approving = await db.execute(select(func.count(Kpi.id)).where(Kpi.approver_id == user_id))
    approving_count = approving.scalar_one()
    if approving_count:
        raise ConflictError(f"User is the approver of {approving_count} KPI(s). Reassign them first.")

    # Orphan rather than cascade: reports lose their manager, the group its leader
    if user.leads_group:
        user.leads_group.leader_id = None
    await db.execute(
        update(User).where(User.manager_id == user_id).values(manager_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(Evaluation)
        .where(or_(Evaluation.evaluator_id == user_id, Evaluation.evaluatee_id == user_id))
        .execution_options(synchronize_session=False)
    )
    assignment_ids = select(KpiAssignment.id).where(KpiAssignment.user_id == user_id)
    await db.execute(
        delete(KpiTaskFact).where(KpiTaskFact.assignment_id.in_(assignment_ids))
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(KpiAssignment).where(KpiAssignment.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    await db.delete(user)
    await db.commit()
    logger.info("Deleted user %s", user_id)
    return MessageResponse(message="User deleted successfully")


@router.post("/{user_id}/regenerate-password", response_model=GeneratedPasswordResponse)
async def regenerate_password(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if not user.can_access_platform:
        raise ValidationError("User does not have platform access")

    plain_password = generate_password()
    user.password_hash = hash_password(plain_password)
    await db.commit()
    return GeneratedPasswordResponse(generated_password=plain_password)


@router.get("/{user_id}/subordinates", response_model=List[SubordinateItem])
async def get_user_subordinates(user_id: int, db: AsyncSession = Depends(get_db)):
    if not await db.get(User, user_id):
        raise NotFoundError("User not found")
    return await get_subordinates_tree(db, user_id)
