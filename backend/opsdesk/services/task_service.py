"""
TaskService — task lifecycle over a RecordStore.

Each transition is validated by TaskLifecycleEngine on a freshly fetched
copy, then written together with its mirror on the assignee's TaskWorkLog
(the input to the DCR score) through one save_task_transition call.
"""
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from opsdesk.models.domain import Task, TaskComment
from opsdesk.services.clock import local_now
from opsdesk.services.dcr_engine import dcr_insights
from opsdesk.services.errors import NotFoundError
from opsdesk.services.record_store import RecordStore
from opsdesk.services.task_engine import TaskLifecycleEngine

logger = logging.getLogger("workday-tasks")

_LIFECYCLE_FIELDS = (
    "status",
    "assignee_id",
    "started_at",
    "completed_at",
    "actual_hours",
    "is_overdue",
    "overdue_minutes",
    "escalation_reason",
)


def _lifecycle_fields(task: Task) -> Dict[str, Any]:
    return {name: getattr(task, name) for name in _LIFECYCLE_FIELDS}


class TaskService:

    def __init__(
        self,
        store: RecordStore,
        engine: Optional[TaskLifecycleEngine] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.store = store
        self.engine = engine or TaskLifecycleEngine()
        self.clock = clock

    async def get_task(self, task_id: str) -> Task:
        task = await self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def get_tasks(
        self, assignee_id: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> List[Task]:
        return await self.store.get_tasks(assignee_id, tenant_id=tenant_id)

    async def get_tasks_for_date(
        self,
        due_date: date,
        assignee_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[Task]:
        return await self.store.get_tasks_for_date(due_date, assignee_id, tenant_id=tenant_id)

    async def create_task(self, task: Task) -> Task:
        self.engine.validate_new_task(task)
        created = await self.store.create_task(task)
        logger.info(f"Task created: {created.title}", extra={"task_id": created.id})
        return created

    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Task:
        task = await self.get_task(task_id)
        changes = self.engine.apply_update(task, fields)
        return await self.store.update_task(task_id, changes)

    # ── Transitions ──────────────────────────────────────────────────────────

    async def start_task(self, task_id: str) -> Task:
        task = await self.get_task(task_id)
        self.engine.start(task, self.clock())
        return await self.store.save_task_transition(
            task_id, _lifecycle_fields(task), open_log=self.engine.open_work_log(task)
        )

    async def complete_task(self, task_id: str) -> Task:
        task = await self.get_task(task_id)
        self.engine.complete(task, self.clock())
        return await self._save_closing(task)

    async def escalate_task(
        self, task_id: str, reason: str, reassign_to: Optional[str] = None
    ) -> Task:
        task = await self.get_task(task_id)
        self.engine.escalate(task, reason, reassign_to)
        return await self._save_closing(task)

    async def _save_closing(self, task: Task) -> Task:
        return await self.store.save_task_transition(
            task.id, _lifecycle_fields(task), close_log=self.engine.close_work_log(task)
        )

    async def add_comment(self, task_id: str, author_id: str, text: str) -> TaskComment:
        task = await self.get_task(task_id)
        comment = self.engine.add_comment(task, author_id, text, self.clock())
        return await self.store.add_task_comment(task_id, comment)

    # ── DCR ──────────────────────────────────────────────────────────────────

    async def dcr_insights(
        self, user_id: str, work_date: date, tenant_id: Optional[str] = None
    ) -> Dict[str, Any]:
        logs = await self.store.get_work_logs(user_id, work_date, tenant_id=tenant_id)
        return dcr_insights(logs)
