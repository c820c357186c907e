"""
Plain domain records shared by the engines and the record stores.

These carry no persistence behaviour; the SQL store maps them to and from the
ORM rows in ``orm_models``, the in-memory store keeps them as-is.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Optional


def new_id() -> str:
    return str(uuid.uuid4())


# Task priority / status vocab
PRIORITIES = ("high", "medium", "low")

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
STATUS_ESCALATED = "escalated"
TASK_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_ESCALATED)

# Work-log status vocab
LOG_STARTED = "started"
LOG_COMPLETED = "completed"
LOG_ESCALATED = "escalated"

LEAD_STATUSES = (
    "new",
    "contacted",
    "demo-scheduled",
    "demo-given",
    "quoted",
    "negotiation",
    "closed-won",
    "closed-lost",
)


@dataclass
class TimeEntry:
    category: str
    from_time: time
    to_time: time
    hours: float
    is_billable: bool
    notes: str = ""
    id: str = field(default_factory=new_id)
    report_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class DailyReport:
    user_id: str
    date: date
    attendance_status: Optional[str] = None
    general_notes: str = ""
    submitted_at: Optional[datetime] = None
    activities: List[TimeEntry] = field(default_factory=list)
    tenant_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None


@dataclass
class TaskComment:
    author_id: str
    comment_text: str
    task_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class Task:
    title: str
    due_date: date
    assignee_id: Optional[str] = None
    assigned_by_id: Optional[str] = None
    description: str = ""
    priority: str = "medium"
    status: str = STATUS_PENDING
    is_billable: bool = False
    category: str = "misc"
    client: Optional[str] = None
    due_time: Optional[time] = None
    estimated_hours: float = 0.0
    actual_hours: float = 0.0
    tags: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_overdue: bool = False
    overdue_minutes: int = 0
    escalation_reason: Optional[str] = None
    comments: List[TaskComment] = field(default_factory=list)
    tenant_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def task_type(self) -> str:
        return "time-based" if self.due_time is not None else "date-based"


@dataclass
class TaskWorkLog:
    """Running time entry a task start registers against the assignee's day."""
    task_id: str
    user_id: str
    work_date: date
    task_title: str
    category: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    actual_hours: float = 0.0
    status: str = LOG_STARTED
    is_overdue: bool = False
    overdue_minutes: int = 0
    id: str = field(default_factory=new_id)


@dataclass
class KPIEntry:
    user_id: str
    date: date
    customer_satisfaction: int
    timely_delivery: int
    dcr_maintenance: float
    certifications: str = ""
    lead_generation: int = 0
    technical_escalations: int = 0
    notes: str = ""
    tenant_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None


@dataclass
class SalesLead:
    company_name: str
    lead_source: str
    status: str = "new"
    contact_person: str = "TBD"
    assigned_to_id: Optional[str] = None
    demo_date: Optional[date] = None
    demo_notes: Optional[str] = None
    notes: str = ""
    tenant_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
