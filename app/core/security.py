from datetime import timedelta
from typing import Optional
from jose import jwt
from app.config import settings
from app.utils.datetimes import utcnow

ROLE_ADMIN = "admin"
ROLE_USER = "user"

def create_access_token(subject_id: int, role: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(subject_id), "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_access_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
