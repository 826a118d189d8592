from pydantic import Field, field_validator
from datetime import datetime
from typing import List, Optional
from app.schemas.base import CamelModel
from app.schemas.user import UserBrief
from app.utils.datetimes import to_utc

class KpiCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    deadline: datetime
    approver_id: int

    @field_validator("deadline")
    @classmethod
    def deadline_to_utc(cls, value):
        return to_utc(value)

class KpiUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    approver_id: Optional[int] = None

    @field_validator("deadline")
    @classmethod
    def deadline_to_utc(cls, value):
        return to_utc(value)

class BlockCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=300)
    weight: float = Field(..., ge=0, le=100)

class BlockUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    weight: Optional[float] = Field(None, ge=0, le=100)
    order: Optional[int] = None

class TaskCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=300)
    weight: float = Field(..., ge=0, le=100)
    unit: Optional[str] = None
    plan_value: Optional[float] = Field(None, ge=0)

class TaskUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=300)
    weight: Optional[float] = Field(None, ge=0, le=100)
    unit: Optional[str] = None
    plan_value: Optional[float] = Field(None, ge=0)
    order: Optional[int] = None

class AssignRequest(CamelModel):
    user_ids: List[int] = Field(..., min_length=1)

class RejectRequest(CamelModel):
    reason: Optional[str] = None

class FactIn(CamelModel):
    task_id: int
    fact_value: Optional[float] = None
    comment: Optional[str] = None

class FactsRequest(CamelModel):
    facts: List[FactIn]

class AdminBrief(CamelModel):
    id: int
    username: str

class TaskResponse(CamelModel):
    id: int
    block_id: int
    name: str
    weight: float
    unit: str
    plan_value: float
    order: int

class BlockResponse(CamelModel):
    id: int
    kpi_id: int
    name: str
    weight: float
    order: int
    tasks: List[TaskResponse] = []

class FactResponse(CamelModel):
    id: int
    task_id: int
    assignment_id: int
    fact_value: Optional[float]
    comment: Optional[str]

class AssignmentResponse(CamelModel):
    id: int
    kpi_id: int
    user_id: int
    is_submitted: bool
    submitted_at: Optional[datetime] = None
    user: Optional[UserBrief] = None

class KpiResponse(CamelModel):
    id: int
    title: str
    description: Optional[str]
    deadline: datetime
    status: str
    approver_id: int
    approver: Optional[UserBrief] = None
    created_by: Optional[AdminBrief] = None
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    blocks: List[BlockResponse] = []
    assignments: List[AssignmentResponse] = []

class TaskScore(CamelModel):
    task_id: int
    completion: float

class BlockScore(CamelModel):
    block_id: int
    score: float
    tasks: List[TaskScore] = []

class ScoreBreakdown(CamelModel):
    score: float
    blocks: List[BlockScore] = []

class MyKpi(CamelModel):
    id: int
    title: str
    description: Optional[str]
    deadline: datetime
    status: str
    approver: Optional[UserBrief] = None
    blocks: List[BlockResponse] = []

class MyKpiAssignmentResponse(CamelModel):
    id: int
    kpi_id: int
    user_id: int
    is_submitted: bool
    submitted_at: Optional[datetime] = None
    kpi: MyKpi
    fact_values: List[FactResponse] = []
    fulfillment: ScoreBreakdown

class SubmitResultsResponse(MyKpiAssignmentResponse):
    kpi_status: str
