from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from app.database import Base

class EvaluationPeriod(Base):
    __tablename__ = "evaluation_periods"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    # Several periods may be active at once; see services.periods.select_current_period
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Evaluation(Base):
    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("evaluation_periods.id", ondelete="CASCADE"), nullable=False, index=True)
    evaluator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    evaluatee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    form_type = Column(String, nullable=False)  # "manager" or "employee"
    scores = Column(JSON, nullable=False)       # parameter key -> 1..5
    comments = Column(JSON, nullable=True)      # parameter key -> text
    average_score = Column(Float, nullable=False)
    result = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    period = relationship("EvaluationPeriod")
    evaluator = relationship("User", foreign_keys=[evaluator_id])
    evaluatee = relationship("User", foreign_keys=[evaluatee_id])

    __table_args__ = (
        UniqueConstraint("period_id", "evaluator_id", "evaluatee_id", name="uq_evaluation_period_evaluator_evaluatee"),
    )


class GroupScore(Base):
    __tablename__ = "group_scores"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    period_id = Column(Integer, ForeignKey("evaluation_periods.id", ondelete="CASCADE"), nullable=False)
    score = Column(Float, nullable=False)
    user_count = Column(Integer, default=0, nullable=False)
    is_leaf = Column(Boolean, default=False, nullable=False)
    calculated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("group_id", "period_id", name="uq_group_score_group_period"),
    )
