"""SQLAlchemy models for the planner service."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..domain.types import DependencyKind, DependencyStrength, ItemKind


class Base(DeclarativeBase):
    pass


class PlanStatus(enum.Enum):
    ready = "Ready"
    not_ready = "NotReady"
    failed = "Failed"


class PlanRun(Base):
    __tablename__ = "plan_run"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id: Mapped[str] = mapped_column(String, nullable=False)
    run_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[PlanStatus] = mapped_column(Enum(PlanStatus), nullable=False)
    max_item_size: Mapped[int] = mapped_column(Integer, nullable=False)
    critical_path: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    critical_path_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    validation: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    wall_time_ms: Mapped[int | None] = mapped_column(Integer)
    params: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    report_ref: Mapped[str | None] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    items: Mapped[list["PlanItem"]] = relationship(back_populates="plan", cascade="all, delete-orphan")
    iterations: Mapped[list["PlanIteration"]] = relationship(back_populates="plan", cascade="all, delete-orphan")
    dependencies: Mapped[list["PlanDependency"]] = relationship(back_populates="plan", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint("project_id", "run_id", name="uq_plan_project_run"),)


class PlanItem(Base):
    __tablename__ = "plan_item"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_id: Mapped[str] = mapped_column(ForeignKey("plan_run.id"), nullable=False)
    item_id: Mapped[str] = mapped_column(String, nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String)
    kind: Mapped[ItemKind] = mapped_column(Enum(ItemKind), nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    acceptance_criteria: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    wsjf: Mapped[float | None] = mapped_column(Numeric(10, 4))
    priority: Mapped[str | None] = mapped_column(String)
    rank: Mapped[int | None] = mapped_column(Integer)
    iteration_index: Mapped[int | None] = mapped_column(Integer)
    deferred_reason: Mapped[str | None] = mapped_column(Text)

    plan: Mapped[PlanRun] = relationship(back_populates="items")

    __table_args__ = (UniqueConstraint("plan_id", "item_id", name="uq_plan_item"),)


class PlanIteration(Base):
    __tablename__ = "plan_iteration"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_id: Mapped[str] = mapped_column(ForeignKey("plan_run.id"), nullable=False)
    iteration_index: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    plan: Mapped[PlanRun] = relationship(back_populates="iterations")

    __table_args__ = (UniqueConstraint("plan_id", "iteration_index", name="uq_plan_iteration_index"),)


class PlanDependency(Base):
    __tablename__ = "plan_dependency"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    plan_id: Mapped[str] = mapped_column(ForeignKey("plan_run.id"), nullable=False)
    from_item: Mapped[str] = mapped_column(String, nullable=False)
    to_item: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[DependencyKind] = mapped_column(Enum(DependencyKind), nullable=False)
    strength: Mapped[DependencyStrength] = mapped_column(Enum(DependencyStrength), nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="explicit")
    rationale: Mapped[str | None] = mapped_column(Text)

    plan: Mapped[PlanRun] = relationship(back_populates="dependencies")


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    principal: Mapped[str] = mapped_column(String, nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    old_val: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    new_val: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    correlation_id: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)


__all__ = [
    "AuditLog",
    "Base",
    "PlanDependency",
    "PlanItem",
    "PlanIteration",
    "PlanRun",
    "PlanStatus",
]
