# app/routers/auth.py
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.user import Admin, User
from app.schemas.auth import LoginRequest, LoginResponse, MeResponse, CurrentUserResponse
from app.schemas.base import MessageResponse
from app.schemas.user import SubordinateItem
from app.database import get_db
from app.utils.password import verify_password
from app.core.security import ROLE_ADMIN, ROLE_USER, create_access_token
from app.core.auth import Caller, get_current_caller
from app.core.exceptions import NotFoundError


router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_subordinates_tree(db: AsyncSession, user_id: int) -> List[User]:
    """Every direct and indirect report of ``user_id``, breadth-first."""
    found: List[User] = []
    seen = {user_id}
    frontier = [user_id]
    while frontier:
        result = await db.execute(
            select(User)
            .options(selectinload(User.group))
            .where(User.manager_id.in_(frontier))
            .order_by(User.full_name)
        )
        level = [u for u in result.scalars().all() if u.id not in seen]
        seen.update(u.id for u in level)
        found.extend(level)
        frontier = [u.id for u in level]
    return found


async def _current_user_payload(db: AsyncSession, user_id: int) -> CurrentUserResponse:
    result = await db.execute(
        select(User)
        .options(selectinload(User.group), selectinload(User.manager))
        .where(User.id == user_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    payload = CurrentUserResponse.model_validate(user)
    payload.subordinates_tree = [
        SubordinateItem.model_validate(u) for u in await get_subordinates_tree(db, user.id)
    ]
    return payload


@router.post("/login", response_model=LoginResponse)
async def login(credentials: LoginRequest, db: AsyncSession = Depends(get_db)):
    # 1. Admins take precedence over users with the same login
    result = await db.execute(select(Admin).where(Admin.username == credentials.username))
    admin = result.scalar_one_or_none()
    if admin and verify_password(credentials.password, admin.password_hash):
        return LoginResponse(
            token=create_access_token(admin.id, ROLE_ADMIN),
            role=ROLE_ADMIN,
            admin=admin,
        )

    # 2. Users with platform access
    result = await db.execute(select(User).where(User.login == credentials.username))
    user = result.scalar_one_or_none()
    if (
        user
        and user.can_access_platform
        and user.password_hash
        and verify_password(credentials.password, user.password_hash)
    ):
        return LoginResponse(
            token=create_access_token(user.id, ROLE_USER),
            role=ROLE_USER,
            user=await _current_user_payload(db, user.id),
        )

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/logout", response_model=MessageResponse)
async def logout():
    # Tokens are stateless; the client drops its copy
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
async def read_me(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_current_caller)
):
    if caller.is_admin:
        admin = await db.get(Admin, caller.id)
        return MeResponse(role=ROLE_ADMIN, admin=admin)
    return MeResponse(role=ROLE_USER, user=await _current_user_payload(db, caller.id))
