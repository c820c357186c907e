"""
SqlRecordStore — RecordStore adapter over the hosted PostgreSQL backend.

One AsyncSession per request (see api.deps.get_record_store). Each write
commits immediately; SQLAlchemy failures surface as PersistenceError and the
session is rolled back so the caller's prior state stays intact.
"""
import functools
import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from opsdesk.models import domain
from opsdesk.models import orm_models as orm
from opsdesk.services.errors import NotFoundError, PersistenceError
from opsdesk.services.record_store import RecordStore

logger = logging.getLogger("workday-db")


def _persistence(operation: str):
    """Translate SQLAlchemy failures into PersistenceError after a rollback."""
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except SQLAlchemyError as exc:
                logger.error(f"{operation} failed: {exc}")
                await self.session.rollback()
                raise PersistenceError(operation, exc) from exc
        return wrapper
    return decorator


# ---------------------------------------------------------------------------
# Row -> domain mappers
# ---------------------------------------------------------------------------

def _entry(row: orm.ReportActivity) -> domain.TimeEntry:
    return domain.TimeEntry(
        id=row.id,
        report_id=row.report_id,
        category=row.category,
        from_time=row.from_time,
        to_time=row.to_time,
        hours=float(row.hours),
        notes=row.notes or "",
        is_billable=bool(row.is_billable),
        created_at=row.created_at,
    )


def _report(row: orm.DailyReport) -> domain.DailyReport:
    return domain.DailyReport(
        id=row.id,
        tenant_id=row.tenant_id,
        user_id=row.user_id,
        date=row.date,
        attendance_status=row.attendance_status,
        general_notes=row.general_notes or "",
        submitted_at=row.submitted_at,
        activities=[_entry(a) for a in row.activities],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _comment(row: orm.TaskComment) -> domain.TaskComment:
    return domain.TaskComment(
        id=row.id,
        task_id=row.task_id,
        author_id=row.author_id,
        comment_text=row.comment_text,
        created_at=row.created_at,
    )


def _task(row: orm.Task) -> domain.Task:
    return domain.Task(
        id=row.id,
        tenant_id=row.tenant_id,
        title=row.title,
        description=row.description or "",
        assignee_id=row.assignee_id,
        assigned_by_id=row.assigned_by_id,
        priority=row.priority,
        status=row.status,
        is_billable=bool(row.is_billable),
        category=row.category,
        client=row.client,
        due_date=row.due_date,
        due_time=row.due_time,
        estimated_hours=float(row.estimated_hours or 0),
        actual_hours=float(row.actual_hours or 0),
        tags=list(row.tags or []),
        started_at=row.started_at,
        completed_at=row.completed_at,
        is_overdue=bool(row.is_overdue),
        overdue_minutes=row.overdue_minutes or 0,
        escalation_reason=row.escalation_reason,
        comments=[_comment(c) for c in row.comments],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _work_log(row: orm.TaskWorkLog) -> domain.TaskWorkLog:
    return domain.TaskWorkLog(
        id=row.id,
        task_id=row.task_id,
        user_id=row.user_id,
        work_date=row.work_date,
        task_title=row.task_title,
        category=row.category,
        started_at=row.started_at,
        ended_at=row.ended_at,
        actual_hours=float(row.actual_hours or 0),
        status=row.status,
        is_overdue=bool(row.is_overdue),
        overdue_minutes=row.overdue_minutes or 0,
    )


def _kpi(row: orm.KPIEntry) -> domain.KPIEntry:
    return domain.KPIEntry(
        id=row.id,
        tenant_id=row.tenant_id,
        user_id=row.user_id,
        date=row.date,
        customer_satisfaction=row.customer_satisfaction,
        timely_delivery=row.timely_delivery,
        certifications=row.certifications or "",
        lead_generation=row.lead_generation or 0,
        dcr_maintenance=float(row.dcr_maintenance),
        technical_escalations=row.technical_escalations or 0,
        notes=row.notes or "",
        created_at=row.created_at,
    )


def _lead(row: orm.SalesLead) -> domain.SalesLead:
    return domain.SalesLead(
        id=row.id,
        tenant_id=row.tenant_id,
        company_name=row.company_name,
        contact_person=row.contact_person,
        lead_source=row.lead_source,
        assigned_to_id=row.assigned_to_id,
        status=row.status,
        demo_date=row.demo_date,
        demo_notes=row.demo_notes,
        notes=row.notes or "",
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# SqlRecordStore
# ---------------------------------------------------------------------------

class SqlRecordStore(RecordStore):

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── Users ────────────────────────────────────────────────────────────────

    @_persistence("get_user_designation")
    async def get_user_designation(self, user_id, tenant_id=None):
        stmt = select(orm.User.designation).where(orm.User.id == user_id)
        if tenant_id:
            stmt = stmt.where(orm.User.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # ── Daily reports ────────────────────────────────────────────────────────

    async def _load_report(
        self, user_id: str, report_date: date, tenant_id: Optional[str] = None
    ) -> Optional[orm.DailyReport]:
        stmt = (
            select(orm.DailyReport)
            .options(selectinload(orm.DailyReport.activities))
            .where(orm.DailyReport.user_id == user_id, orm.DailyReport.date == report_date)
            .execution_options(populate_existing=True)
        )
        if tenant_id:
            stmt = stmt.where(orm.DailyReport.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @_persistence("get_daily_report")
    async def get_daily_report(self, user_id, report_date, tenant_id=None):
        row = await self._load_report(user_id, report_date, tenant_id)
        return _report(row) if row else None

    @_persistence("list_daily_reports")
    async def list_daily_reports(self, user_id=None, start=None, end=None, tenant_id=None):
        stmt = select(orm.DailyReport).options(selectinload(orm.DailyReport.activities))
        if user_id:
            stmt = stmt.where(orm.DailyReport.user_id == user_id)
        if tenant_id:
            stmt = stmt.where(orm.DailyReport.tenant_id == tenant_id)
        if start:
            stmt = stmt.where(orm.DailyReport.date >= start)
        if end:
            stmt = stmt.where(orm.DailyReport.date <= end)
        result = await self.session.execute(stmt.order_by(orm.DailyReport.date.desc()))
        return [_report(r) for r in result.scalars().all()]

    @_persistence("upsert_daily_report")
    async def upsert_daily_report(self, report):
        values = {
            "id": report.id,
            "tenant_id": report.tenant_id,
            "user_id": report.user_id,
            "date": report.date,
            "attendance_status": report.attendance_status,
            "general_notes": report.general_notes,
            "submitted_at": report.submitted_at,
        }
        stmt = pg_insert(orm.DailyReport).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "date"],
            set_={
                "attendance_status": stmt.excluded.attendance_status,
                "general_notes": stmt.excluded.general_notes,
                "submitted_at": stmt.excluded.submitted_at,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()
        row = await self._load_report(report.user_id, report.date)
        return _report(row)

    @_persistence("add_time_entry")
    async def add_time_entry(self, report_id, entry):
        if await self.session.get(orm.DailyReport, report_id) is None:
            raise NotFoundError("DailyReport", report_id)
        row = orm.ReportActivity(
            id=entry.id,
            report_id=report_id,
            category=entry.category,
            from_time=entry.from_time,
            to_time=entry.to_time,
            hours=entry.hours,
            notes=entry.notes,
            is_billable=entry.is_billable,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return _entry(row)

    @_persistence("delete_time_entry")
    async def delete_time_entry(self, entry_id):
        row = await self.session.get(orm.ReportActivity, entry_id)
        if row is None:
            raise NotFoundError("TimeEntry", entry_id)
        await self.session.delete(row)
        await self.session.commit()

    # ── Tasks ────────────────────────────────────────────────────────────────

    def _task_query(self):
        return select(orm.Task).options(selectinload(orm.Task.comments))

    async def _load_task(self, task_id: str) -> Optional[orm.Task]:
        result = await self.session.execute(
            self._task_query()
            .where(orm.Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @_persistence("get_tasks")
    async def get_tasks(self, assignee_id=None, tenant_id=None):
        stmt = self._task_query()
        if assignee_id:
            stmt = stmt.where(orm.Task.assignee_id == assignee_id)
        if tenant_id:
            stmt = stmt.where(orm.Task.tenant_id == tenant_id)
        result = await self.session.execute(stmt.order_by(orm.Task.created_at.desc()))
        return [_task(r) for r in result.scalars().all()]

    @_persistence("get_task")
    async def get_task(self, task_id):
        row = await self._load_task(task_id)
        return _task(row) if row else None

    @_persistence("get_tasks_for_date")
    async def get_tasks_for_date(self, due_date, assignee_id=None, tenant_id=None):
        stmt = self._task_query().where(orm.Task.due_date == due_date)
        if assignee_id:
            stmt = stmt.where(orm.Task.assignee_id == assignee_id)
        if tenant_id:
            stmt = stmt.where(orm.Task.tenant_id == tenant_id)
        result = await self.session.execute(stmt)
        return [_task(r) for r in result.scalars().all()]

    @_persistence("create_task")
    async def create_task(self, task):
        row = orm.Task(
            id=task.id,
            tenant_id=task.tenant_id,
            title=task.title,
            description=task.description,
            assignee_id=task.assignee_id,
            assigned_by_id=task.assigned_by_id,
            priority=task.priority,
            status=task.status,
            is_billable=task.is_billable,
            category=task.category,
            client=task.client,
            due_date=task.due_date,
            due_time=task.due_time,
            estimated_hours=task.estimated_hours,
            actual_hours=task.actual_hours,
            tags=list(task.tags),
        )
        self.session.add(row)
        await self.session.commit()
        return _task(await self._load_task(row.id))

    @_persistence("update_task")
    async def update_task(self, task_id, fields):
        row = await self.session.get(orm.Task, task_id)
        if row is None:
            raise NotFoundError("Task", task_id)
        for key, value in fields.items():
            setattr(row, key, value)
        await self.session.commit()
        return _task(await self._load_task(task_id))

    @_persistence("save_task_transition")
    async def save_task_transition(self, task_id, fields, open_log=None, close_log=None):
        row = await self.session.get(orm.Task, task_id)
        if row is None:
            raise NotFoundError("Task", task_id)
        for key, value in fields.items():
            setattr(row, key, value)
        if open_log is not None:
            self.session.add(self._new_log_row(open_log))
        if close_log is not None:
            log_row = await self._open_log_row(task_id)
            if log_row is not None:
                for key, value in close_log.items():
                    setattr(log_row, key, value)
        # Task and log land in the same commit
        await self.session.commit()
        return _task(await self._load_task(task_id))

    @_persistence("add_task_comment")
    async def add_task_comment(self, task_id, comment):
        if await self.session.get(orm.Task, task_id) is None:
            raise NotFoundError("Task", task_id)
        row = orm.TaskComment(
            id=comment.id,
            task_id=task_id,
            author_id=comment.author_id,
            comment_text=comment.comment_text,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return _comment(row)

    # ── Task work logs ───────────────────────────────────────────────────────

    def _new_log_row(self, log: domain.TaskWorkLog) -> orm.TaskWorkLog:
        return orm.TaskWorkLog(
            id=log.id,
            task_id=log.task_id,
            user_id=log.user_id,
            work_date=log.work_date,
            task_title=log.task_title,
            category=log.category,
            started_at=log.started_at,
            status=log.status,
        )

    async def _open_log_row(self, task_id: str) -> Optional[orm.TaskWorkLog]:
        result = await self.session.execute(
            select(orm.TaskWorkLog)
            .where(orm.TaskWorkLog.task_id == task_id, orm.TaskWorkLog.status == domain.LOG_STARTED)
            .order_by(orm.TaskWorkLog.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @_persistence("open_work_log")
    async def open_work_log(self, log):
        row = self._new_log_row(log)
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return _work_log(row)

    @_persistence("get_open_work_log")
    async def get_open_work_log(self, task_id):
        row = await self._open_log_row(task_id)
        return _work_log(row) if row else None

    @_persistence("update_work_log")
    async def update_work_log(self, log_id, fields):
        row = await self.session.get(orm.TaskWorkLog, log_id)
        if row is None:
            raise NotFoundError("TaskWorkLog", log_id)
        for key, value in fields.items():
            setattr(row, key, value)
        await self.session.commit()
        await self.session.refresh(row)
        return _work_log(row)

    @_persistence("get_work_logs")
    async def get_work_logs(self, user_id, work_date, tenant_id=None):
        stmt = select(orm.TaskWorkLog).where(
            orm.TaskWorkLog.user_id == user_id,
            orm.TaskWorkLog.work_date == work_date,
        )
        if tenant_id:
            stmt = stmt.join(orm.Task, orm.Task.id == orm.TaskWorkLog.task_id).where(
                orm.Task.tenant_id == tenant_id
            )
        result = await self.session.execute(stmt)
        return [_work_log(r) for r in result.scalars().all()]

    # ── KPI ──────────────────────────────────────────────────────────────────

    @_persistence("upsert_kpi_entry")
    async def upsert_kpi_entry(self, entry):
        values: Dict[str, Any] = {
            "id": entry.id,
            "tenant_id": entry.tenant_id,
            "user_id": entry.user_id,
            "date": entry.date,
            "customer_satisfaction": entry.customer_satisfaction,
            "timely_delivery": entry.timely_delivery,
            "certifications": entry.certifications,
            "lead_generation": entry.lead_generation,
            "dcr_maintenance": entry.dcr_maintenance,
            "technical_escalations": entry.technical_escalations,
            "notes": entry.notes,
        }
        replace = {k: v for k, v in values.items() if k not in ("id", "user_id", "date")}
        stmt = pg_insert(orm.KPIEntry).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=["user_id", "date"], set_=replace)
        await self.session.execute(stmt)
        await self.session.commit()
        result = await self.session.execute(
            select(orm.KPIEntry)
            .where(orm.KPIEntry.user_id == entry.user_id, orm.KPIEntry.date == entry.date)
            .execution_options(populate_existing=True)
        )
        return _kpi(result.scalar_one())

    @_persistence("get_kpi_entries")
    async def get_kpi_entries(self, user_id=None, start=None, end=None, tenant_id=None):
        stmt = select(orm.KPIEntry)
        if user_id:
            stmt = stmt.where(orm.KPIEntry.user_id == user_id)
        if tenant_id:
            stmt = stmt.where(orm.KPIEntry.tenant_id == tenant_id)
        if start:
            stmt = stmt.where(orm.KPIEntry.date >= start)
        if end:
            stmt = stmt.where(orm.KPIEntry.date <= end)
        result = await self.session.execute(stmt.order_by(orm.KPIEntry.date.desc()))
        return [_kpi(r) for r in result.scalars().all()]

    # ── Sales leads ──────────────────────────────────────────────────────────

    @_persistence("create_sales_lead")
    async def create_sales_lead(self, lead):
        row = orm.SalesLead(
            id=lead.id,
            tenant_id=lead.tenant_id,
            company_name=lead.company_name,
            contact_person=lead.contact_person,
            lead_source=lead.lead_source,
            assigned_to_id=lead.assigned_to_id,
            status=lead.status,
            demo_date=lead.demo_date,
            demo_notes=lead.demo_notes,
            notes=lead.notes,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return _lead(row)

    @_persistence("list_sales_leads")
    async def list_sales_leads(self, assigned_to_id=None, tenant_id=None):
        stmt = select(orm.SalesLead)
        if assigned_to_id:
            stmt = stmt.where(orm.SalesLead.assigned_to_id == assigned_to_id)
        if tenant_id:
            stmt = stmt.where(orm.SalesLead.tenant_id == tenant_id)
        result = await self.session.execute(stmt.order_by(orm.SalesLead.created_at.desc()))
        return [_lead(r) for r in result.scalars().all()]
