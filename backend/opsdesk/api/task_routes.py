"""
Task routes — assignment, lifecycle transitions, comments and DCR insights.

Transitions (start / complete / escalate) go through TaskService so each one
is mirrored onto the assignee's work log.
"""
import logging
from datetime import date, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from opsdesk.api.deps import Actor, get_current_actor, get_task_service, get_tenant_id, resolve_subject
from opsdesk.models.api_schemas import TaskCommentOut, TaskOut
from opsdesk.models.domain import TASK_STATUSES, Task
from opsdesk.services.errors import NotFoundError, ValidationError
from opsdesk.services.task_service import TaskService

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])
logger = logging.getLogger("workday-tasks")


class TaskCreateRequest(BaseModel):
    title: str
    due_date: date
    description: str = ""
    assignee_id: Optional[str] = None   # defaults to the caller
    priority: str = "medium"
    is_billable: bool = False
    category: str = "misc"
    client: Optional[str] = None
    due_time: Optional[time] = None
    estimated_hours: float = Field(0.0, ge=0)
    tags: List[str] = []


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    priority: Optional[str] = None
    is_billable: Optional[bool] = None
    category: Optional[str] = None
    client: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[time] = None
    estimated_hours: Optional[float] = None
    tags: Optional[List[str]] = None


class EscalateRequest(BaseModel):
    reason: str
    reassign_to: Optional[str] = None


class CommentRequest(BaseModel):
    text: str


def _task_out(service: TaskService, task: Task) -> TaskOut:
    out = TaskOut.model_validate(task)
    out.can_request_feedback = service.engine.can_request_feedback(task)
    return out


def _ensure_participant(actor: Actor, task: Task) -> None:
    # Another tenant's task is reported as missing, not forbidden
    if task.tenant_id != actor.tenant_id:
        raise NotFoundError("Task", task.id)
    if actor.is_supervisor or actor.user_id in (task.assignee_id, task.assigned_by_id):
        return
    raise HTTPException(status_code=403, detail="Not a participant in this task")


async def _load(service: TaskService, actor: Actor, task_id: str) -> Task:
    task = await service.get_task(task_id)
    _ensure_participant(actor, task)
    return task


@router.get("", response_model=List[TaskOut])
async def list_tasks(
    assignee_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: TaskService = Depends(get_task_service),
):
    if status is not None and status not in TASK_STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(TASK_STATUSES)}", field="status")
    subject = None if (actor.is_supervisor and not assignee_id) else resolve_subject(actor, assignee_id)
    tasks = await service.get_tasks(subject, tenant_id)
    return [_task_out(service, t) for t in tasks if status is None or t.status == status]


@router.get("/due/{due_date}", response_model=List[TaskOut])
async def tasks_due_on(
    due_date: date,
    assignee_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: TaskService = Depends(get_task_service),
):
    subject = resolve_subject(actor, assignee_id)
    return [_task_out(service, t) for t in await service.get_tasks_for_date(due_date, subject, tenant_id)]


@router.get("/dcr/{work_date}")
async def dcr_insights(
    work_date: date,
    user_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: TaskService = Depends(get_task_service),
):
    """Daily completion rate and the task counts behind it."""
    subject = resolve_subject(actor, user_id)
    insights = await service.dcr_insights(subject, work_date, tenant_id)
    return {"user_id": subject, "date": work_date.isoformat(), **insights}


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    req: TaskCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    task = Task(
        **req.model_dump(exclude={"assignee_id"}),
        assignee_id=resolve_subject(actor, req.assignee_id),
        assigned_by_id=actor.user_id,
        tenant_id=actor.tenant_id,
    )
    return _task_out(service, await service.create_task(task))


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    return _task_out(service, await _load(service, actor, task_id))


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: str,
    req: TaskUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    task = await _load(service, actor, task_id)
    fields = req.model_dump(exclude_unset=True)
    if "assignee_id" in fields:
        fields["assignee_id"] = resolve_subject(actor, fields["assignee_id"])
    updated = await service.update_task(task.id, fields)
    return _task_out(service, updated)


@router.post("/{task_id}/start", response_model=TaskOut)
async def start_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    await _load(service, actor, task_id)
    return _task_out(service, await service.start_task(task_id))


@router.post("/{task_id}/complete", response_model=TaskOut)
async def complete_task(
    task_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    await _load(service, actor, task_id)
    return _task_out(service, await service.complete_task(task_id))


@router.post("/{task_id}/escalate", response_model=TaskOut)
async def escalate_task(
    task_id: str,
    req: EscalateRequest,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    await _load(service, actor, task_id)
    task = await service.escalate_task(task_id, req.reason, req.reassign_to)
    logger.info("Task escalated via API", extra={"task_id": task_id, "user_id": actor.user_id})
    return _task_out(service, task)


@router.post("/{task_id}/comments", response_model=TaskCommentOut, status_code=201)
async def add_comment(
    task_id: str,
    req: CommentRequest,
    actor: Actor = Depends(get_current_actor),
    service: TaskService = Depends(get_task_service),
):
    await _load(service, actor, task_id)
    comment = await service.add_comment(task_id, actor.user_id, req.text)
    return TaskCommentOut.model_validate(comment)
