"""ORM Models for the workday ops backend — SQLAlchemy 2.0"""
import uuid
import datetime as dt
from datetime import datetime, date, time
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date, Time,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from opsdesk.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── TENANTS ──────────────────────────────────────────────────────────────────
class Tenant(Base):
    __tablename__ = "tenants"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    users: Mapped[list["User"]] = relationship("User", back_populates="tenant")


# ── AUTH ──────────────────────────────────────────────────────────────────────
class Role(Base):
    __tablename__ = "roles"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    users: Mapped[list["User"]] = relationship("User", back_populates="role")


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id"))
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    # Free-text job title; "Trainer" designations get the trainer activity catalog + 8h cap
    designation: Mapped[Optional[str]] = mapped_column(String(100))
    role_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("roles.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    tenant: Mapped[Optional["Tenant"]] = relationship("Tenant", back_populates="users")
    role: Mapped[Optional["Role"]] = relationship("Role", back_populates="users")


# ── DAILY REPORTS ─────────────────────────────────────────────────────────────
class DailyReport(Base):
    __tablename__ = "daily_reports"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_reports_user_date"),
    )
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id"))
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    attendance_status: Mapped[Optional[str]] = mapped_column(String(50))
    general_notes: Mapped[str] = mapped_column(Text, default="")
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))  # NULL = draft
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    activities: Mapped[list["ReportActivity"]] = relationship(
        "ReportActivity", back_populates="report", cascade="all, delete-orphan",
        order_by="ReportActivity.from_time",
    )


class ReportActivity(Base):
    __tablename__ = "report_activities"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    report_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("daily_reports.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    from_time: Mapped[time] = mapped_column(Time, nullable=False)
    to_time: Mapped[time] = mapped_column(Time, nullable=False)
    hours: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False)   # multiple of 0.25
    notes: Mapped[str] = mapped_column(Text, default="")
    is_billable: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    report: Mapped["DailyReport"] = relationship("DailyReport", back_populates="activities")


# ── TASKS ─────────────────────────────────────────────────────────────────────
class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_assignee_due", "assignee_id", "due_date"),
    )
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id"))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    assignee_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    assigned_by_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    priority: Mapped[str] = mapped_column(String(10), default="medium")       # high | medium | low
    status: Mapped[str] = mapped_column(String(20), default="pending")        # pending | in-progress | completed | escalated
    is_billable: Mapped[bool] = mapped_column(Boolean, default=False)
    category: Mapped[str] = mapped_column(String(100), default="misc")
    client: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_time: Mapped[Optional[time]] = mapped_column(Time)                    # set = time-based task
    estimated_hours: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    actual_hours: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    tags: Mapped[Optional[list]] = mapped_column(JSONB, default=list)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_overdue: Mapped[bool] = mapped_column(Boolean, default=False)
    overdue_minutes: Mapped[int] = mapped_column(Integer, default=0)
    escalation_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    comments: Mapped[list["TaskComment"]] = relationship(
        "TaskComment", back_populates="task", cascade="all, delete-orphan",
        order_by="TaskComment.created_at",
    )


class TaskComment(Base):
    __tablename__ = "task_comments"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    task_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"), nullable=False)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    task: Mapped["Task"] = relationship("Task", back_populates="comments")


class TaskWorkLog(Base):
    """Per-day record of a started task; the DCR score reads these."""
    __tablename__ = "task_work_logs"
    __table_args__ = (
        Index("ix_task_work_logs_user_date", "user_id", "work_date"),
    )
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    task_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    task_title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="misc")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_hours: Mapped[float] = mapped_column(Numeric(6, 2), default=0)
    status: Mapped[str] = mapped_column(String(20), default="started")    # started | completed | escalated
    is_overdue: Mapped[bool] = mapped_column(Boolean, default=False)
    overdue_minutes: Mapped[int] = mapped_column(Integer, default=0)


# ── KPI ───────────────────────────────────────────────────────────────────────
class KPIEntry(Base):
    __tablename__ = "kpi_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_kpi_entries_user_date"),
    )
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id"))
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    customer_satisfaction: Mapped[int] = mapped_column(Integer, nullable=False)   # 1–5
    timely_delivery: Mapped[int] = mapped_column(Integer, nullable=False)         # 1–5
    certifications: Mapped[str] = mapped_column(Text, default="")
    lead_generation: Mapped[int] = mapped_column(Integer, default=0)
    dcr_maintenance: Mapped[float] = mapped_column(Numeric(3, 1), nullable=False)  # 1–5
    technical_escalations: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── SALES LEADS ───────────────────────────────────────────────────────────────
class SalesLead(Base):
    __tablename__ = "sales_leads"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    tenant_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("tenants.id"))
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str] = mapped_column(String(255), default="TBD")
    lead_source: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_to_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("users.id"))
    status: Mapped[str] = mapped_column(String(30), default="new")
    demo_date: Mapped[Optional[date]] = mapped_column(Date)
    demo_notes: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
