import enum
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from app.database import Base


class KpiStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class Kpi(Base):
    __tablename__ = "kpis"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, default=KpiStatus.DRAFT.value, nullable=False, index=True)

    created_by_id = Column(Integer, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    created_by = relationship("Admin")
    approver = relationship("User")
    blocks = relationship(
        "KpiBlock", back_populates="kpi", cascade="all, delete-orphan", order_by="KpiBlock.order"
    )
    assignments = relationship(
        "KpiAssignment", back_populates="kpi", cascade="all, delete-orphan", order_by="KpiAssignment.id"
    )


class KpiBlock(Base):
    __tablename__ = "kpi_blocks"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    weight = Column(Float, nullable=False)  # percentage points of the kpi
    order = Column(Integer, default=0, nullable=False)

    kpi = relationship("Kpi", back_populates="blocks")
    tasks = relationship(
        "KpiTask", back_populates="block", cascade="all, delete-orphan", order_by="KpiTask.order"
    )


class KpiTask(Base):
    __tablename__ = "kpi_tasks"

    id = Column(Integer, primary_key=True, index=True)
    block_id = Column(Integer, ForeignKey("kpi_blocks.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    weight = Column(Float, nullable=False)  # percentage points of the block
    unit = Column(String, default="шт", nullable=False)
    plan_value = Column(Float, default=100, nullable=False)
    order = Column(Integer, default=0, nullable=False)

    block = relationship("KpiBlock", back_populates="tasks")
    facts = relationship("KpiTaskFact", back_populates="task", cascade="all, delete-orphan")


class KpiAssignment(Base):
    __tablename__ = "kpi_assignments"

    id = Column(Integer, primary_key=True, index=True)
    kpi_id = Column(Integer, ForeignKey("kpis.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_submitted = Column(Boolean, default=False, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    kpi = relationship("Kpi", back_populates="assignments")
    user = relationship("User")
    fact_values = relationship("KpiTaskFact", back_populates="assignment", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint("kpi_id", "user_id", name="uq_kpi_assignment_kpi_user"),)


class KpiTaskFact(Base):
    __tablename__ = "kpi_task_facts"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("kpi_tasks.id", ondelete="CASCADE"), nullable=False)
    assignment_id = Column(Integer, ForeignKey("kpi_assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    fact_value = Column(Float, nullable=True)
    comment = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    task = relationship("KpiTask", back_populates="facts")
    assignment = relationship("KpiAssignment", back_populates="fact_values")

    __table_args__ = (UniqueConstraint("task_id", "assignment_id", name="uq_kpi_task_fact_task_assignment"),)
