"""
task_engine.py — Task lifecycle state machine.

States:
    pending ──start──> in-progress ──complete──> completed
    pending | in-progress ──escalate──> escalated   (terminal)

complete() derives actual hours (quarter-hour rounded) and, for time-based
tasks, whether the task finished after its due time on the completion day.
The engine mutates and returns the Task it is given; TaskService persists the
result and mirrors it onto the assignee's TaskWorkLog.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Dict, Optional, Tuple

from opsdesk.models.domain import (
    LOG_COMPLETED,
    LOG_ESCALATED,
    PRIORITIES,
    STATUS_COMPLETED,
    STATUS_ESCALATED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    Task,
    TaskComment,
    TaskWorkLog,
)
from opsdesk.services.activity_catalog import FEEDBACK_CATEGORIES
from opsdesk.services.errors import ValidationError
from opsdesk.services.timesheet_engine import quantize_hours

logger = logging.getLogger("workday-tasks")

# Allowed source states per transition
_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "start": (STATUS_PENDING,),
    "complete": (STATUS_IN_PROGRESS,),
    "escalate": (STATUS_PENDING, STATUS_IN_PROGRESS),
}

# Fields an assigner may edit through update_task; status moves only via transitions
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "assignee_id",
    "priority",
    "is_billable",
    "category",
    "client",
    "due_date",
    "due_time",
    "estimated_hours",
    "tags",
})

# Of the editable fields, only these may be cleared with None
NULLABLE_FIELDS = frozenset({"client", "due_time"})


def evaluate_overdue(due_time: Optional[time], completed_at: datetime) -> Tuple[bool, int]:
    """
    Compare a completion instant against ``due_time`` on the completion date.
    Tasks without a due time are never overdue. Minutes late are floored.
    """
    if due_time is None:
        return False, 0
    due_instant = datetime.combine(completed_at.date(), due_time, tzinfo=completed_at.tzinfo)
    if completed_at <= due_instant:
        return False, 0
    late_seconds = (completed_at - due_instant).total_seconds()
    return True, int(late_seconds // 60)


def worked_hours(started_at: datetime, completed_at: datetime) -> float:
    elapsed = (completed_at - started_at).total_seconds() / 3600.0
    return max(0.0, quantize_hours(elapsed))


class TaskLifecycleEngine:
    """Validates and applies task transitions. Holds no state of its own."""

    def _require(self, task: Task, action: str) -> None:
        allowed = _TRANSITIONS[action]
        if task.status not in allowed:
            raise ValidationError(
                f"Cannot {action} a task that is {task.status}; "
                f"allowed from: {', '.join(allowed)}",
                field="status",
            )

    # ── Creation / edits ─────────────────────────────────────────────────────

    def validate_new_task(self, task: Task) -> None:
        if not task.title or not task.title.strip():
            raise ValidationError("Title is required", field="title")
        if not isinstance(task.due_date, date):
            raise ValidationError("Due date is required", field="due_date")
        if task.priority not in PRIORITIES:
            raise ValidationError(
                f"Priority must be one of {', '.join(PRIORITIES)}", field="priority"
            )
        if task.estimated_hours < 0:
            raise ValidationError("Estimated hours cannot be negative", field="estimated_hours")
        if task.status != STATUS_PENDING:
            raise ValidationError("New tasks start as pending", field="status")

    def apply_update(self, task: Task, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply an assigner's edit. Unknown or lifecycle-owned fields are rejected
        before anything on ``task`` changes. Returns the accepted changes.
        """
        rejected = sorted(set(fields) - EDITABLE_FIELDS)
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited directly: {', '.join(rejected)}",
                field=rejected[0],
            )
        cleared = sorted(k for k, v in fields.items() if v is None and k not in NULLABLE_FIELDS)
        if cleared:
            raise ValidationError(f"{cleared[0]} cannot be null", field=cleared[0])
        candidate = Task(**{**task.__dict__, **fields})
        candidate.status = STATUS_PENDING
        self.validate_new_task(candidate)
        for key, value in fields.items():
            setattr(task, key, value)
        return dict(fields)

    # ── Transitions ──────────────────────────────────────────────────────────

    def start(self, task: Task, now: datetime) -> Task:
        self._require(task, "start")
        task.started_at = now
        task.status = STATUS_IN_PROGRESS
        logger.info("task started", extra={"task_id": task.id})
        return task

    def complete(self, task: Task, now: datetime) -> Task:
        self._require(task, "complete")
        if task.started_at is None:
            raise ValidationError("Task has no start time", field="started_at")
        task.completed_at = now
        task.actual_hours = worked_hours(task.started_at, now)
        task.is_overdue, task.overdue_minutes = evaluate_overdue(task.due_time, now)
        task.status = STATUS_COMPLETED
        logger.info(
            "task completed",
            extra={
                "task_id": task.id,
                "actual_hours": task.actual_hours,
                "overdue_minutes": task.overdue_minutes,
            },
        )
        return task

    def escalate(self, task: Task, reason: str, reassign_to: Optional[str] = None) -> Task:
        if not reason or not reason.strip():
            raise ValidationError("Escalation reason is required", field="reason")
        self._require(task, "escalate")
        task.status = STATUS_ESCALATED
        task.escalation_reason = reason.strip()
        if reassign_to:
            task.assignee_id = reassign_to
        logger.info("task escalated", extra={"task_id": task.id})
        return task

    def add_comment(self, task: Task, author_id: str, text: str, now: datetime) -> TaskComment:
        if not text or not text.strip():
            raise ValidationError("Comment text is required", field="comment_text")
        comment = TaskComment(
            author_id=author_id,
            comment_text=text.strip(),
            task_id=task.id,
            created_at=now,
        )
        task.comments.append(comment)
        return comment

    def can_request_feedback(self, task: Task) -> bool:
        return task.status == STATUS_COMPLETED and task.category in FEEDBACK_CATEGORIES

    # ── Work-log mirroring ───────────────────────────────────────────────────

    def open_work_log(self, task: Task) -> TaskWorkLog:
        if task.started_at is None or not task.assignee_id:
            raise ValidationError("Task must be started and assigned", field="assignee_id")
        return TaskWorkLog(
            task_id=task.id,
            user_id=task.assignee_id,
            work_date=task.started_at.date(),
            task_title=task.title,
            category=task.category,
            started_at=task.started_at,
        )

    def close_work_log(self, task: Task) -> Dict[str, Any]:
        """Field changes that mirror a completed or escalated task onto its open log."""
        if task.status == STATUS_COMPLETED:
            return {
                "ended_at": task.completed_at,
                "actual_hours": task.actual_hours,
                "status": LOG_COMPLETED,
                "is_overdue": task.is_overdue,
                "overdue_minutes": task.overdue_minutes,
            }
        if task.status == STATUS_ESCALATED:
            return {"status": LOG_ESCALATED}
        raise ValidationError(f"Task is still {task.status}", field="status")
