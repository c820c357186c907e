"""Pydantic response schemas for the workday API (read from domain dataclasses)."""
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TimeEntryOut(_FromDomain):
    id: str
    report_id: Optional[str] = None
    category: str
    from_time: time
    to_time: time
    hours: float
    notes: str
    is_billable: bool
    created_at: Optional[datetime] = None


class DailyTotalsOut(BaseModel):
    total_hours: float
    billable_hours: float
    non_billable_hours: float
    productivity_percentage: float
    entry_count: int
    is_submitted: bool
    is_editable: bool
    daily_cap_hours: Optional[float] = None
    remaining_hours: Optional[float] = None


class DailyReportOut(_FromDomain):
    id: str
    user_id: str
    date: date
    attendance_status: Optional[str] = None
    general_notes: str
    submitted_at: Optional[datetime] = None
    activities: List[TimeEntryOut]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DailyReportView(BaseModel):
    report: Optional[DailyReportOut]
    summary: DailyTotalsOut


class TaskCommentOut(_FromDomain):
    id: str
    task_id: Optional[str] = None
    author_id: str
    comment_text: str
    created_at: Optional[datetime] = None


class TaskOut(_FromDomain):
    id: str
    title: str
    description: str
    assignee_id: Optional[str] = None
    assigned_by_id: Optional[str] = None
    priority: str
    status: str
    is_billable: bool
    category: str
    client: Optional[str] = None
    due_date: date
    due_time: Optional[time] = None
    task_type: str
    estimated_hours: float
    actual_hours: float
    tags: List[str]
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_overdue: bool
    overdue_minutes: int
    escalation_reason: Optional[str] = None
    comments: List[TaskCommentOut]
    can_request_feedback: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class KPIEntryOut(_FromDomain):
    id: str
    user_id: str
    date: date
    customer_satisfaction: int
    timely_delivery: int
    certifications: str
    lead_generation: int
    dcr_maintenance: float
    technical_escalations: int
    notes: str
    created_at: Optional[datetime] = None


class SalesLeadOut(_FromDomain):
    id: str
    company_name: str
    contact_person: str
    lead_source: str
    assigned_to_id: Optional[str] = None
    status: str
    demo_date: Optional[date] = None
    demo_notes: Optional[str] = None
    notes: str
    created_at: Optional[datetime] = None
