from datetime import datetime
from typing import List, Optional
from app.schemas.base import CamelModel
from app.schemas.evaluation import EvaluationBrief, PeriodResponse
from app.schemas.user import UserBrief

class GroupScoreNode(CamelModel):
    group_id: int
    group_name: str
    leader_id: Optional[int]
    leader_name: Optional[str]
    score: Optional[float]
    user_count: int
    is_leaf: bool
    children: List["GroupScoreNode"] = []

class GroupScoreTreeResponse(CamelModel):
    period: Optional[PeriodResponse] = None
    groups: List[GroupScoreNode] = []

class ScoreDistribution(CamelModel):
    excellent: int = 0
    good: int = 0
    satisfactory: int = 0
    poor: int = 0

class SummaryGroupItem(CamelModel):
    id: int
    name: str
    leader: Optional[str]
    user_count: int
    evaluated_count: int
    # Flat average of the group's own members, not the tree score
    member_score: Optional[float]

class GroupScoreSummaryResponse(CamelModel):
    period: Optional[PeriodResponse] = None
    overall_score: Optional[float] = None
    groups_evaluated: int = 0
    employees_evaluated: int = 0
    manager_form_avg: Optional[float] = None
    employee_form_avg: Optional[float] = None
    groups: List[SummaryGroupItem] = []
    distribution: ScoreDistribution = ScoreDistribution()

class CalculateRequest(CamelModel):
    period_id: Optional[int] = None

class StoredGroupScore(CamelModel):
    id: int
    group_id: int
    period_id: int
    score: float
    user_count: int
    is_leaf: bool
    calculated_at: Optional[datetime] = None

class CalculateResponse(CamelModel):
    message: str
    count: int
    scores: List[StoredGroupScore]

class GroupMemberScore(CamelModel):
    id: int
    full_name: str
    position: str
    evaluation: Optional[EvaluationBrief] = None

class GroupScoreGroupInfo(CamelModel):
    id: int
    name: str
    leader: Optional[UserBrief] = None
    member_score: Optional[float]
    evaluated_count: int
    total_count: int

class GroupScoreDetailResponse(CamelModel):
    period: Optional[PeriodResponse] = None
    group: Optional[GroupScoreGroupInfo] = None
    employees: List[GroupMemberScore] = []
