from pydantic import Field
from datetime import datetime
from typing import List, Optional
from app.schemas.base import CamelModel

class UserBrief(CamelModel):
    id: int
    full_name: str
    position: str

class GroupBrief(CamelModel):
    id: int
    name: str

class UserCreate(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    position: str = Field(..., min_length=1, max_length=200)
    group_id: int
    manager_id: Optional[int] = None
    submits_basic_report: bool = False
    submits_kpi: bool = False
    can_access_platform: bool = False
    is_group_leader: bool = False

class UserUpdate(CamelModel):
    # Unset fields keep their value; an explicit null manager_id clears it
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    position: Optional[str] = Field(None, min_length=1, max_length=200)
    group_id: Optional[int] = None
    manager_id: Optional[int] = None
    submits_basic_report: Optional[bool] = None
    submits_kpi: Optional[bool] = None
    can_access_platform: Optional[bool] = None
    is_group_leader: Optional[bool] = None

class UserResponse(CamelModel):
    id: int
    full_name: str
    position: str
    login: Optional[str]
    group_id: int
    manager_id: Optional[int]
    submits_basic_report: bool
    submits_kpi: bool
    can_access_platform: bool
    created_at: Optional[datetime] = None
    group: Optional[GroupBrief] = None
    manager: Optional[UserBrief] = None
    subordinates: List[UserBrief] = []
    leads_group: Optional[GroupBrief] = None

class UserCredentialsResponse(UserResponse):
    # Plain-text credentials are only ever returned once, right after generation
    generated_login: Optional[str] = None
    generated_password: Optional[str] = None

class GeneratedPasswordResponse(CamelModel):
    generated_password: str

class SubordinateItem(UserBrief):
    manager_id: Optional[int]
    group: Optional[GroupBrief] = None
