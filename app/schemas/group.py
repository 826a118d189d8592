from pydantic import Field
from datetime import datetime
from typing import List, Optional
from app.schemas.base import CamelModel
from app.schemas.user import UserBrief

class GroupCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)

class GroupUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    leader_id: Optional[int] = None  # explicit null removes the leader

class GroupResponse(CamelModel):
    id: int
    name: str
    leader_id: Optional[int]
    leader: Optional[UserBrief] = None
    user_count: int = 0
    created_at: Optional[datetime] = None

class GroupDetailResponse(GroupResponse):
    users: List[UserBrief] = []
