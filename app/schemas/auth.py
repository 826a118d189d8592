from pydantic import Field
from datetime import datetime
from typing import List, Optional
from app.schemas.base import CamelModel
from app.schemas.user import GroupBrief, SubordinateItem, UserBrief

class LoginRequest(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class AdminResponse(CamelModel):
    id: int
    username: str
    created_at: Optional[datetime] = None

class CurrentUserResponse(CamelModel):
    id: int
    full_name: str
    position: str
    group_id: int
    group: Optional[GroupBrief] = None
    manager_id: Optional[int]
    manager: Optional[UserBrief] = None
    login: Optional[str]
    submits_basic_report: bool
    submits_kpi: bool
    can_access_platform: bool
    subordinates_tree: List[SubordinateItem] = []

class MeResponse(CamelModel):
    role: str
    admin: Optional[AdminResponse] = None
    user: Optional[CurrentUserResponse] = None

class LoginResponse(MeResponse):
    token: str
