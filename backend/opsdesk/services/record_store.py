"""
Record-store contract the workday services persist through, plus the
dict-backed adapter used for local-first operation and tests.

Every method is a coroutine: store calls are the only points where a
service operation can block. Upserts on (user_id, date) are last-write-wins;
concurrent writers to the same key overwrite one another undetected.
"""
from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from opsdesk.models.domain import (
    LOG_STARTED,
    DailyReport,
    KPIEntry,
    SalesLead,
    Task,
    TaskComment,
    TaskWorkLog,
    TimeEntry,
)
from opsdesk.services.errors import NotFoundError


class RecordStore(ABC):
    """
    Read methods take an optional ``tenant_id``; when given, only records of
    that tenant are returned. Services acting on the caller's own records may
    omit it.
    """

    # ── Users ────────────────────────────────────────────────────────────────
    @abstractmethod
    async def get_user_designation(
        self, user_id: str, tenant_id: Optional[str] = None
    ) -> Optional[str]: ...

    # ── Daily reports ────────────────────────────────────────────────────────
    @abstractmethod
    async def get_daily_report(
        self, user_id: str, report_date: date, tenant_id: Optional[str] = None
    ) -> Optional[DailyReport]: ...

    @abstractmethod
    async def list_daily_reports(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        tenant_id: Optional[str] = None,
    ) -> List[DailyReport]: ...

    @abstractmethod
    async def upsert_daily_report(self, report: DailyReport) -> DailyReport:
        """Create or replace the header of the report keyed on (user_id, date)."""

    @abstractmethod
    async def add_time_entry(self, report_id: str, entry: TimeEntry) -> TimeEntry: ...

    @abstractmethod
    async def delete_time_entry(self, entry_id: str) -> None: ...

    # ── Tasks ────────────────────────────────────────────────────────────────
    @abstractmethod
    async def get_tasks(
        self, assignee_id: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> List[Task]: ...

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def get_tasks_for_date(
        self,
        due_date: date,
        assignee_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[Task]: ...

    @abstractmethod
    async def create_task(self, task: Task) -> Task: ...

    @abstractmethod
    async def update_task(self, task_id: str, fields: Dict[str, Any]) -> Task: ...

    @abstractmethod
    async def save_task_transition(
        self,
        task_id: str,
        fields: Dict[str, Any],
        open_log: Optional[TaskWorkLog] = None,
        close_log: Optional[Dict[str, Any]] = None,
    ) -> Task:
        """
        Write a lifecycle transition as one unit: the task fields, plus either
        a new work log or the changes that close the task's open log. Nothing
        is written if any part fails.
        """

    @abstractmethod
    async def add_task_comment(self, task_id: str, comment: TaskComment) -> TaskComment: ...

    # ── Task work logs ───────────────────────────────────────────────────────
    @abstractmethod
    async def open_work_log(self, log: TaskWorkLog) -> TaskWorkLog: ...

    @abstractmethod
    async def get_open_work_log(self, task_id: str) -> Optional[TaskWorkLog]: ...

    @abstractmethod
    async def update_work_log(self, log_id: str, fields: Dict[str, Any]) -> TaskWorkLog: ...

    @abstractmethod
    async def get_work_logs(
        self, user_id: str, work_date: date, tenant_id: Optional[str] = None
    ) -> List[TaskWorkLog]: ...

    # ── KPI ──────────────────────────────────────────────────────────────────
    @abstractmethod
    async def upsert_kpi_entry(self, entry: KPIEntry) -> KPIEntry:
        """Full replace of the entry keyed on (user_id, date)."""

    @abstractmethod
    async def get_kpi_entries(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        tenant_id: Optional[str] = None,
    ) -> List[KPIEntry]: ...

    # ── Sales leads ──────────────────────────────────────────────────────────
    @abstractmethod
    async def create_sales_lead(self, lead: SalesLead) -> SalesLead: ...

    @abstractmethod
    async def list_sales_leads(
        self, assigned_to_id: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> List[SalesLead]: ...


def _in_range(value: date, start: Optional[date], end: Optional[date]) -> bool:
    if start and value < start:
        return False
    if end and value > end:
        return False
    return True


def _in_tenant(record: Any, tenant_id: Optional[str]) -> bool:
    return tenant_id is None or record.tenant_id == tenant_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed store. Records are copied on the way in and out so callers
    never hold a live reference to stored state.
    """

    def __init__(self) -> None:
        self._reports: Dict[Tuple[str, date], DailyReport] = {}
        self._entries: Dict[str, TimeEntry] = {}
        self._tasks: Dict[str, Task] = {}
        self._work_logs: Dict[str, TaskWorkLog] = {}
        self._kpis: Dict[Tuple[str, date], KPIEntry] = {}
        self._leads: Dict[str, SalesLead] = {}
        # user_id -> (tenant_id, designation); the SQL store reads the users table
        self._users: Dict[str, Tuple[Optional[str], Optional[str]]] = {}

    def register_user(
        self, user_id: str, tenant_id: Optional[str] = None, designation: Optional[str] = None
    ) -> None:
        self._users[user_id] = (tenant_id, designation)

    # ── Users ────────────────────────────────────────────────────────────────

    async def get_user_designation(self, user_id, tenant_id=None):
        user_tenant, designation = self._users.get(user_id, (None, None))
        if tenant_id is not None and user_tenant != tenant_id:
            return None
        return designation

    # ── Daily reports ────────────────────────────────────────────────────────

    def _with_activities(self, report: DailyReport) -> DailyReport:
        result = copy.deepcopy(report)
        result.activities = [
            copy.deepcopy(e) for e in self._entries.values() if e.report_id == report.id
        ]
        return result

    async def get_daily_report(self, user_id, report_date, tenant_id=None):
        report = self._reports.get((user_id, report_date))
        if report is None or not _in_tenant(report, tenant_id):
            return None
        return self._with_activities(report)

    async def list_daily_reports(self, user_id=None, start=None, end=None, tenant_id=None):
        reports = [
            r for r in self._reports.values()
            if (user_id is None or r.user_id == user_id)
            and _in_range(r.date, start, end)
            and _in_tenant(r, tenant_id)
        ]
        reports.sort(key=lambda r: r.date, reverse=True)
        return [self._with_activities(r) for r in reports]

    async def upsert_daily_report(self, report):
        key = (report.user_id, report.date)
        now = _utcnow()
        existing = self._reports.get(key)
        stored = copy.deepcopy(report)
        stored.activities = []
        if existing:
            stored.id = existing.id
            stored.created_at = existing.created_at
        else:
            stored.created_at = stored.created_at or now
        stored.updated_at = now
        self._reports[key] = stored
        return self._with_activities(stored)

    async def add_time_entry(self, report_id, entry):
        if not any(r.id == report_id for r in self._reports.values()):
            raise NotFoundError("DailyReport", report_id)
        stored = copy.deepcopy(entry)
        stored.report_id = report_id
        stored.created_at = stored.created_at or _utcnow()
        self._entries[stored.id] = stored
        return copy.deepcopy(stored)

    async def delete_time_entry(self, entry_id):
        if self._entries.pop(entry_id, None) is None:
            raise NotFoundError("TimeEntry", entry_id)

    # ── Tasks ────────────────────────────────────────────────────────────────

    async def get_tasks(self, assignee_id=None, tenant_id=None):
        tasks = [
            t for t in self._tasks.values()
            if (assignee_id is None or t.assignee_id == assignee_id) and _in_tenant(t, tenant_id)
        ]
        tasks.sort(key=lambda t: t.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return copy.deepcopy(tasks)

    async def get_task(self, task_id):
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def get_tasks_for_date(self, due_date, assignee_id=None, tenant_id=None):
        return [
            copy.deepcopy(t) for t in self._tasks.values()
            if t.due_date == due_date
            and (assignee_id is None or t.assignee_id == assignee_id)
            and _in_tenant(t, tenant_id)
        ]

    async def create_task(self, task):
        stored = copy.deepcopy(task)
        now = _utcnow()
        stored.created_at = stored.created_at or now
        stored.updated_at = now
        self._tasks[stored.id] = stored
        return copy.deepcopy(stored)

    async def update_task(self, task_id, fields):
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        for key, value in fields.items():
            setattr(task, key, copy.deepcopy(value))
        task.updated_at = _utcnow()
        return copy.deepcopy(task)

    async def save_task_transition(self, task_id, fields, open_log=None, close_log=None):
        snapshot = copy.deepcopy((self._tasks, self._work_logs))
        try:
            updated = await self.update_task(task_id, fields)
            if open_log is not None:
                await self.open_work_log(open_log)
            if close_log is not None:
                log = await self.get_open_work_log(task_id)
                if log is not None:
                    await self.update_work_log(log.id, close_log)
        except Exception:
            self._tasks, self._work_logs = snapshot
            raise
        return updated

    async def add_task_comment(self, task_id, comment):
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        stored = copy.deepcopy(comment)
        stored.task_id = task_id
        stored.created_at = stored.created_at or _utcnow()
        task.comments.append(stored)
        return copy.deepcopy(stored)

    # ── Task work logs ───────────────────────────────────────────────────────

    async def open_work_log(self, log):
        stored = copy.deepcopy(log)
        self._work_logs[stored.id] = stored
        return copy.deepcopy(stored)

    async def get_open_work_log(self, task_id):
        for log in self._work_logs.values():
            if log.task_id == task_id and log.status == LOG_STARTED:
                return copy.deepcopy(log)
        return None

    async def update_work_log(self, log_id, fields):
        log = self._work_logs.get(log_id)
        if log is None:
            raise NotFoundError("TaskWorkLog", log_id)
        for key, value in fields.items():
            setattr(log, key, value)
        return copy.deepcopy(log)

    def _log_tenant(self, log: TaskWorkLog) -> Optional[str]:
        # Work logs carry no tenant of their own; they belong to their task's
        task = self._tasks.get(log.task_id)
        return task.tenant_id if task else None

    async def get_work_logs(self, user_id, work_date, tenant_id=None):
        return [
            copy.deepcopy(log) for log in self._work_logs.values()
            if log.user_id == user_id
            and log.work_date == work_date
            and (tenant_id is None or self._log_tenant(log) == tenant_id)
        ]

    # ── KPI ──────────────────────────────────────────────────────────────────

    async def upsert_kpi_entry(self, entry):
        key = (entry.user_id, entry.date)
        stored = copy.deepcopy(entry)
        existing = self._kpis.get(key)
        if existing:
            stored.id = existing.id
            stored.created_at = existing.created_at
        else:
            stored.created_at = stored.created_at or _utcnow()
        self._kpis[key] = stored
        return copy.deepcopy(stored)

    async def get_kpi_entries(self, user_id=None, start=None, end=None, tenant_id=None):
        entries = [
            e for e in self._kpis.values()
            if (user_id is None or e.user_id == user_id)
            and _in_range(e.date, start, end)
            and _in_tenant(e, tenant_id)
        ]
        entries.sort(key=lambda e: e.date, reverse=True)
        return copy.deepcopy(entries)

    # ── Sales leads ──────────────────────────────────────────────────────────

    async def create_sales_lead(self, lead):
        stored = copy.deepcopy(lead)
        stored.created_at = stored.created_at or _utcnow()
        self._leads[stored.id] = stored
        return copy.deepcopy(stored)

    async def list_sales_leads(self, assigned_to_id=None, tenant_id=None):
        leads = [
            l for l in self._leads.values()
            if (assigned_to_id is None or l.assigned_to_id == assigned_to_id) and _in_tenant(l, tenant_id)
        ]
        leads.sort(key=lambda l: l.created_at, reverse=True)
        return copy.deepcopy(leads)
