from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from app.database import Base

class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    # users.group_id points back here, so this side is added after both tables exist
    leader_id = Column(
        Integer,
        ForeignKey("users.id", use_alter=True, name="fk_groups_leader_id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    leader = relationship("User", foreign_keys=[leader_id], back_populates="leads_group")
    users = relationship("User", foreign_keys="User.group_id", back_populates="group", order_by="User.full_name")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    position = Column(String, nullable=False)

    # Platform access (null until generated)
    login = Column(String, unique=True, nullable=True)
    password_hash = Column(String, nullable=True)

    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    submits_basic_report = Column(Boolean, default=False, nullable=False)
    submits_kpi = Column(Boolean, default=False, nullable=False)
    can_access_platform = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    group = relationship("Group", foreign_keys=[group_id], back_populates="users")
    manager = relationship("User", remote_side=[id], back_populates="subordinates")
    subordinates = relationship("User", back_populates="manager", order_by="User.full_name")
    leads_group = relationship("Group", foreign_keys="Group.leader_id", back_populates="leader", uselist=False)
