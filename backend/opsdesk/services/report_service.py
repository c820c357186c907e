"""
DailyReportService — daily report workflow over a RecordStore.

Validation happens in TimesheetEngine against a freshly fetched report before
any write, so a rejected action never touches the store.
"""
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from opsdesk.models.domain import DailyReport, TimeEntry
from opsdesk.services.activity_catalog import DEMO_CATEGORY, catalog_for, is_trainer
from opsdesk.services.clock import local_now
from opsdesk.services.errors import NotFoundError, ValidationError
from opsdesk.services.record_store import RecordStore
from opsdesk.services.timesheet_engine import (
    ClockValue,
    FixedDailyCap,
    TimesheetEngine,
    UnlimitedDailyCap,
)

logger = logging.getLogger("workday-reports")

DemoHook = Callable[[DailyReport, TimeEntry], Awaitable[Any]]


class DailyReportService:

    def __init__(
        self,
        store: RecordStore,
        demo_hook: Optional[DemoHook] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.store = store
        self.demo_hook = demo_hook
        self.clock = clock

    def engine_for(self, designation: Optional[str] = None) -> TimesheetEngine:
        """Trainers get the trainer catalog and the fixed daily cap."""
        cap = FixedDailyCap() if is_trainer(designation) else UnlimitedDailyCap()
        return TimesheetEngine(catalog=catalog_for(designation), cap=cap)

    async def _require_report(self, user_id: str, report_date: date) -> DailyReport:
        report = await self.store.get_daily_report(user_id, report_date)
        if report is None:
            raise NotFoundError("DailyReport", f"{user_id}/{report_date.isoformat()}")
        return report

    # ── Reads ────────────────────────────────────────────────────────────────

    async def get_report(
        self, user_id: str, report_date: date, tenant_id: Optional[str] = None
    ) -> Optional[DailyReport]:
        return await self.store.get_daily_report(user_id, report_date, tenant_id=tenant_id)

    async def list_reports(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        tenant_id: Optional[str] = None,
    ) -> List[DailyReport]:
        return await self.store.list_daily_reports(user_id, start, end, tenant_id=tenant_id)

    async def designation_of(self, user_id: str, tenant_id: Optional[str] = None) -> Optional[str]:
        """The designation that picks a person's catalog and daily cap."""
        return await self.store.get_user_designation(user_id, tenant_id=tenant_id)

    def summarize(self, report: DailyReport, designation: Optional[str] = None) -> Dict[str, Any]:
        return self.engine_for(designation).summarize(report, self.clock().date())

    # ── Activities ───────────────────────────────────────────────────────────

    async def add_activity(
        self,
        user_id: str,
        report_date: date,
        category: str,
        from_time: ClockValue,
        to_time: ClockValue,
        notes: str = "",
        designation: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> Tuple[DailyReport, TimeEntry]:
        """
        Log one activity block. Creates the day's draft report on first entry.
        Demo activities are forwarded to the demo hook after the entry is stored.
        """
        engine = self.engine_for(designation)
        today = self.clock().date()
        entry = engine.build_entry(category, from_time, to_time, notes)

        report = await self.store.get_daily_report(user_id, report_date)
        is_new = report is None
        if is_new:
            report = DailyReport(user_id=user_id, date=report_date, tenant_id=tenant_id)
        engine.add_entry(report, entry, today)

        if is_new:
            report = await self.store.upsert_daily_report(report)
        stored = await self.store.add_time_entry(report.id, entry)
        report.activities = [e for e in report.activities if e.id != stored.id] + [stored]

        logger.info(
            f"Added {stored.hours:.2f}h for {stored.category}",
            extra={"user_id": user_id, "report_date": report_date.isoformat()},
        )

        if self.demo_hook and engine.catalog.value_for(category) == DEMO_CATEGORY:
            try:
                await self.demo_hook(report, stored)
            except Exception as e:
                logger.warning(
                    f"Demo hook failed: {e}",
                    extra={"user_id": user_id, "report_date": report_date.isoformat()},
                )
        return report, stored

    async def remove_activity(
        self,
        user_id: str,
        report_date: date,
        entry_id: str,
        designation: Optional[str] = None,
    ) -> DailyReport:
        report = await self._require_report(user_id, report_date)
        self.engine_for(designation).remove_entry(report, entry_id, self.clock().date())
        await self.store.delete_time_entry(entry_id)
        return report

    # ── Draft / submit ───────────────────────────────────────────────────────

    def _apply_header(
        self,
        report: DailyReport,
        attendance_status: Optional[str],
        general_notes: Optional[str],
    ) -> DailyReport:
        if attendance_status is not None:
            report.attendance_status = attendance_status or None
        if general_notes is not None:
            report.general_notes = general_notes
        return report

    async def save_draft(
        self,
        user_id: str,
        report_date: date,
        attendance_status: Optional[str] = None,
        general_notes: Optional[str] = None,
        designation: Optional[str] = None,
    ) -> DailyReport:
        report = await self.store.get_daily_report(user_id, report_date)
        if report is None:
            raise ValidationError("Add at least one activity before saving", field="activities")
        self._apply_header(report, attendance_status, general_notes)
        self.engine_for(designation).validate_draft(report, self.clock().date())
        saved = await self.store.upsert_daily_report(report)
        logger.info("Draft saved", extra={"user_id": user_id, "report_date": report_date.isoformat()})
        return saved

    async def submit_final(
        self,
        user_id: str,
        report_date: date,
        attendance_status: Optional[str] = None,
        general_notes: Optional[str] = None,
        designation: Optional[str] = None,
    ) -> DailyReport:
        report = await self.store.get_daily_report(user_id, report_date)
        if report is None:
            raise ValidationError("Add at least one activity before submitting", field="activities")
        self._apply_header(report, attendance_status, general_notes)
        self.engine_for(designation).validate_submit(report, self.clock().date())
        report.submitted_at = self.clock()
        saved = await self.store.upsert_daily_report(report)
        logger.info("Report submitted", extra={"user_id": user_id, "report_date": report_date.isoformat()})
        return saved
