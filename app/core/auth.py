from dataclasses import dataclass
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.models.user import Admin, User
from app.core.security import ROLE_ADMIN, ROLE_USER, decode_access_token

reusable_oauth2 = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


async def get_current_caller(
    db: AsyncSession = Depends(get_db),
    token: HTTPAuthorizationCredentials = Depends(reusable_oauth2)
) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if token is None:
        raise credentials_exception
    try:
        payload = decode_access_token(token.credentials)
        subject = payload.get("sub")
        role = payload.get("role")
        if subject is None or role not in (ROLE_ADMIN, ROLE_USER):
            raise credentials_exception
        caller = Caller(id=int(subject), role=role)
    except (JWTError, ValueError):
        raise credentials_exception

    # Token may outlive the principal it was issued for
    model = Admin if caller.is_admin else User
    if await db.get(model, caller.id) is None:
        raise credentials_exception
    return caller


async def get_current_admin(
    caller: Caller = Depends(get_current_caller)
) -> Caller:
    if not caller.is_admin:
        raise HTTPException(403, "Forbidden: Admin access required")
    return caller


async def get_current_user(
    caller: Caller = Depends(get_current_caller)
) -> Caller:
    if caller.role != ROLE_USER:
        raise HTTPException(403, "Forbidden: User access required")
    return caller
