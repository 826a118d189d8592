from pydantic import Field, field_validator, model_validator
from datetime import datetime
from typing import Any, Dict, List, Optional
from app.schemas.base import CamelModel
from app.schemas.user import GroupBrief
from app.utils.datetimes import to_utc

class PeriodCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    start_date: datetime
    end_date: datetime
    is_active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def dates_to_utc(cls, value):
        return to_utc(value)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self

class PeriodUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def dates_to_utc(cls, value):
        return to_utc(value)

class PeriodResponse(CamelModel):
    id: int
    name: str
    start_date: datetime
    end_date: datetime
    is_active: bool
    created_at: Optional[datetime] = None

class PeriodWithCountResponse(PeriodResponse):
    evaluation_count: int = 0

class EvaluationCreate(CamelModel):
    period_id: int
    evaluatee_id: int
    # Checked per form type by the evaluation service
    scores: Dict[str, Any]
    comments: Optional[Dict[str, str]] = None

class EvaluationParty(CamelModel):
    id: int
    full_name: str
    position: str
    group: Optional[GroupBrief] = None

class EvaluationBrief(CamelModel):
    id: int
    average_score: float
    result: str
    form_type: str
    scores: Dict[str, int] = {}

class EvaluationResponse(CamelModel):
    id: int
    period_id: int
    evaluator_id: int
    evaluatee_id: int
    form_type: str
    scores: Dict[str, int]
    comments: Optional[Dict[str, str]] = None
    average_score: float
    result: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    period: Optional[PeriodResponse] = None
    evaluator: Optional[EvaluationParty] = None
    evaluatee: Optional[EvaluationParty] = None

class PendingSubordinate(CamelModel):
    id: int
    full_name: str
    position: str
    group: Optional[GroupBrief] = None
    can_access_platform: bool
    has_subordinates: bool
    form_type: str
    evaluation: Optional[EvaluationBrief] = None

class PendingEvaluationsResponse(CamelModel):
    period: Optional[PeriodResponse] = None
    subordinates: List[PendingSubordinate] = []

class EvaluationFormsResponse(CamelModel):
    manager: List[str]
    employee: List[str]
