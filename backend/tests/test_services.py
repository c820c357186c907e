"""
test_services.py — Async workflow tests for the report, task and KPI services.

All services run over InMemoryRecordStore with a FrozenClock pinned to
2026-03-10 09:00 UTC (see conftest).
"""

from datetime import time, timedelta

import pytest

from conftest import TODAY


# ===========================================================================
# Daily reports
# ===========================================================================

class TestDailyReportService:

    @pytest.mark.asyncio
    async def test_first_activity_creates_draft(self, report_service, store):
        report, entry = await report_service.add_activity("alice", TODAY, "project", "09:00", "10:30")
        assert entry.hours == 1.5
        assert report.submitted_at is None
        stored = await store.get_daily_report("alice", TODAY)
        assert stored.id == report.id
        assert [e.id for e in stored.activities] == [entry.id]

    @pytest.mark.asyncio
    async def test_totals_across_activities(self, report_service):
        await report_service.add_activity("alice", TODAY, "demo", "09:00", "11:00", "Demo for Globex.")
        report, _ = await report_service.add_activity("alice", TODAY, "meeting", "11:00", "12:00")
        summary = report_service.summarize(report)
        assert summary["total_hours"] == 3.0
        assert summary["billable_hours"] == 2.0
        assert summary["non_billable_hours"] == 1.0
        assert summary["productivity_percentage"] == 66.7
        assert summary["entry_count"] == 2

    @pytest.mark.asyncio
    async def test_demo_activity_raises_sales_lead(self, report_service, store):
        await report_service.add_activity("alice", TODAY, "demo", "14:00", "15:00", "Walkthrough with Initech")
        await report_service.add_activity("alice", TODAY, "project", "15:00", "16:00", "for Acme")
        leads = await store.list_sales_leads("alice")
        assert len(leads) == 1
        assert leads[0].company_name == "Initech"
        assert leads[0].status == "demo-given"

    @pytest.mark.asyncio
    async def test_demo_hook_failure_does_not_fail_add(self, store, clock):
        from opsdesk.services.report_service import DailyReportService

        async def broken_hook(report, entry):
            raise RuntimeError("CRM unavailable")

        service = DailyReportService(store, demo_hook=broken_hook, clock=clock)
        report, entry = await service.add_activity("alice", TODAY, "demo", "09:00", "10:00")
        assert entry.is_billable is True
        assert len((await store.get_daily_report("alice", TODAY)).activities) == 1

    @pytest.mark.asyncio
    async def test_trainer_cap_applies_by_designation(self, report_service, store):
        from opsdesk.services.errors import ValidationError
        await report_service.add_activity("tara", TODAY, "training", "09:00", "16:00", designation="Trainer")
        with pytest.raises(ValidationError) as exc:
            await report_service.add_activity(
                "tara", TODAY, "lessonPlanPreparation", "16:00", "17:30", designation="Trainer"
            )
        assert "8-hour daily limit" in exc.value.message
        stored = await store.get_daily_report("tara", TODAY)
        assert len(stored.activities) == 1
        summary = report_service.summarize(stored, "Trainer")
        assert summary["remaining_hours"] == 1.0

    @pytest.mark.asyncio
    async def test_non_trainer_uncapped(self, report_service):
        await report_service.add_activity("alice", TODAY, "project", "06:00", "15:00")
        report, _ = await report_service.add_activity("alice", TODAY, "project", "15:00", "19:00")
        assert report_service.summarize(report)["total_hours"] == 13.0

    @pytest.mark.asyncio
    async def test_reversed_times_rejected_without_write(self, report_service, store):
        from opsdesk.services.errors import ValidationError
        with pytest.raises(ValidationError):
            await report_service.add_activity("alice", TODAY, "project", "10:00", "09:00")
        assert await store.get_daily_report("alice", TODAY) is None

    @pytest.mark.asyncio
    async def test_old_date_rejected_without_write(self, report_service, store):
        from opsdesk.services.errors import ValidationError
        old = TODAY - timedelta(days=3)
        with pytest.raises(ValidationError):
            await report_service.add_activity("alice", old, "project", "09:00", "10:00")
        assert await store.get_daily_report("alice", old) is None

    @pytest.mark.asyncio
    async def test_two_days_back_accepted(self, report_service):
        report, _ = await report_service.add_activity(
            "alice", TODAY - timedelta(days=2), "project", "09:00", "10:00"
        )
        assert report.date == TODAY - timedelta(days=2)

    @pytest.mark.asyncio
    async def test_remove_activity(self, report_service, store):
        _, first = await report_service.add_activity("alice", TODAY, "project", "09:00", "10:00")
        await report_service.add_activity("alice", TODAY, "meeting", "10:00", "11:00")
        report = await report_service.remove_activity("alice", TODAY, first.id)
        assert [e.category for e in report.activities] == ["Meeting"]
        stored = await store.get_daily_report("alice", TODAY)
        assert [e.category for e in stored.activities] == ["Meeting"]

    @pytest.mark.asyncio
    async def test_remove_from_missing_report(self, report_service):
        from opsdesk.services.errors import NotFoundError
        with pytest.raises(NotFoundError):
            await report_service.remove_activity("alice", TODAY, "whatever")

    @pytest.mark.asyncio
    async def test_save_draft_without_activities(self, report_service):
        from opsdesk.services.errors import ValidationError
        with pytest.raises(ValidationError) as exc:
            await report_service.save_draft("alice", TODAY, general_notes="nothing yet")
        assert exc.value.field == "activities"

    @pytest.mark.asyncio
    async def test_save_draft_keeps_report_editable(self, report_service):
        await report_service.add_activity("alice", TODAY, "project", "09:00", "10:00")
        report = await report_service.save_draft("alice", TODAY, general_notes="half done")
        assert report.general_notes == "half done"
        assert report.submitted_at is None
        assert report_service.summarize(report)["is_editable"] is True

    @pytest.mark.asyncio
    async def test_submit_requires_attendance(self, report_service, store):
        from opsdesk.services.errors import ValidationError
        await report_service.add_activity("alice", TODAY, "project", "09:00", "10:00")
        with pytest.raises(ValidationError) as exc:
            await report_service.submit_final("alice", TODAY)
        assert exc.value.field == "attendance_status"
        assert (await store.get_daily_report("alice", TODAY)).submitted_at is None

    @pytest.mark.asyncio
    async def test_submit_locks_report(self, report_service, clock):
        from opsdesk.services.errors import ValidationError
        await report_service.add_activity("alice", TODAY, "project", "09:00", "10:00")
        report = await report_service.submit_final("alice", TODAY, attendance_status="Present")
        assert report.submitted_at == clock()
        assert report.attendance_status == "Present"
        with pytest.raises(ValidationError):
            await report_service.add_activity("alice", TODAY, "meeting", "10:00", "11:00")
        with pytest.raises(ValidationError):
            await report_service.submit_final("alice", TODAY, attendance_status="Present")

    @pytest.mark.asyncio
    async def test_list_reports_window(self, report_service):
        for offset in range(3):
            await report_service.add_activity(
                "alice", TODAY - timedelta(days=offset), "project", "09:00", "10:00"
            )
        reports = await report_service.list_reports("alice", start=TODAY - timedelta(days=1))
        assert [r.date for r in reports] == [TODAY, TODAY - timedelta(days=1)]


# ===========================================================================
# Tasks
# ===========================================================================

class TestTaskService:

    @pytest.mark.asyncio
    async def test_missing_task(self, task_service):
        from opsdesk.services.errors import NotFoundError
        with pytest.raises(NotFoundError):
            await task_service.get_task("nope")

    @pytest.mark.asyncio
    async def test_full_lifecycle_with_late_finish(self, task_service, store, clock, make_task):
        """Due 15:00, started 14:00, completed 15:01 → 1.0 h, overdue by 1 minute."""
        task = await task_service.create_task(make_task(due_time=time(15, 0)))
        clock.set(14, 0)
        started = await task_service.start_task(task.id)
        assert started.status == "in-progress"

        clock.set(15, 1)
        done = await task_service.complete_task(task.id)
        assert done.status == "completed"
        assert done.actual_hours == 1.0
        assert done.is_overdue is True
        assert done.overdue_minutes == 1

        logs = await store.get_work_logs("alice", TODAY)
        assert len(logs) == 1
        assert logs[0].status == "completed"
        assert logs[0].overdue_minutes == 1
        assert logs[0].actual_hours == 1.0

    @pytest.mark.asyncio
    async def test_complete_before_due_not_overdue(self, task_service, clock, make_task):
        task = await task_service.create_task(make_task(due_time=time(15, 0)))
        clock.set(14, 0)
        await task_service.start_task(task.id)
        clock.set(14, 59)
        done = await task_service.complete_task(task.id)
        assert done.is_overdue is False

    @pytest.mark.asyncio
    async def test_escalate_reassigns_and_closes_log(self, task_service, store, make_task):
        task = await task_service.create_task(make_task())
        await task_service.start_task(task.id)
        escalated = await task_service.escalate_task(task.id, "Needs admin rights", reassign_to="bob")
        assert escalated.status == "escalated"
        assert escalated.assignee_id == "bob"
        logs = await store.get_work_logs("alice", TODAY)
        assert [l.status for l in logs] == ["escalated"]
        assert await store.get_open_work_log(task.id) is None

    @pytest.mark.asyncio
    async def test_escalate_pending_task_without_log(self, task_service, make_task):
        task = await task_service.create_task(make_task())
        escalated = await task_service.escalate_task(task.id, "Duplicate request")
        assert escalated.status == "escalated"

    @pytest.mark.asyncio
    async def test_blank_escalation_reason(self, task_service, make_task):
        from opsdesk.services.errors import ValidationError
        task = await task_service.create_task(make_task())
        with pytest.raises(ValidationError):
            await task_service.escalate_task(task.id, "")
        assert (await task_service.get_task(task.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_comments_persist(self, task_service, make_task):
        task = await task_service.create_task(make_task())
        await task_service.add_comment(task.id, "manager-1", "Call them before noon")
        loaded = await task_service.get_task(task.id)
        assert [c.comment_text for c in loaded.comments] == ["Call them before noon"]

    @pytest.mark.asyncio
    async def test_update_task_fields(self, task_service, make_task):
        task = await task_service.create_task(make_task())
        updated = await task_service.update_task(task.id, {"priority": "high", "client": "Globex"})
        assert updated.priority == "high"
        assert updated.client == "Globex"

    @pytest.mark.asyncio
    async def test_create_rejects_invalid(self, task_service, make_task, store):
        from opsdesk.services.errors import ValidationError
        with pytest.raises(ValidationError):
            await task_service.create_task(make_task(title=""))
        assert await store.get_tasks() == []

    @pytest.mark.asyncio
    async def test_dcr_insights(self, task_service, clock, make_task):
        """Two tasks started, one completed → completion rate 0.5 → 4.0."""
        first = await task_service.create_task(make_task(title="A"))
        second = await task_service.create_task(make_task(title="B"))
        await task_service.start_task(first.id)
        await task_service.start_task(second.id)
        clock.advance(30)
        await task_service.complete_task(first.id)
        insights = await task_service.dcr_insights("alice", TODAY)
        assert insights["score"] == 4.0
        assert insights["total_tasks"] == 2
        assert insights["completed"] == 1
        assert insights["message"] == "Good performance with room for improvement."

    @pytest.mark.asyncio
    async def test_dcr_insights_empty_day(self, task_service):
        insights = await task_service.dcr_insights("alice", TODAY)
        assert insights["score"] == 1.0
        assert insights["total_tasks"] == 0

    @pytest.mark.asyncio
    async def test_failed_log_write_leaves_task_pending(self, clock, make_task):
        """A start whose work log cannot be written must not leave the task in progress."""
        from opsdesk.services.errors import PersistenceError
        from opsdesk.services.record_store import InMemoryRecordStore
        from opsdesk.services.task_service import TaskService

        class LogWriteFails(InMemoryRecordStore):
            async def open_work_log(self, log):
                raise PersistenceError("open_work_log", ConnectionError("db down"))

        store = LogWriteFails()
        service = TaskService(store, clock=clock)
        task = await service.create_task(make_task())
        with pytest.raises(PersistenceError):
            await service.start_task(task.id)

        reloaded = await service.get_task(task.id)
        assert reloaded.status == "pending"
        assert reloaded.started_at is None
        assert await store.get_work_logs("alice", TODAY) == []

    @pytest.mark.asyncio
    async def test_failed_log_close_leaves_task_in_progress(self, clock, make_task):
        from opsdesk.services.errors import PersistenceError
        from opsdesk.services.record_store import InMemoryRecordStore
        from opsdesk.services.task_service import TaskService

        class LogCloseFails(InMemoryRecordStore):
            async def update_work_log(self, log_id, fields):
                raise PersistenceError("update_work_log", ConnectionError("db down"))

        store = LogCloseFails()
        service = TaskService(store, clock=clock)
        task = await service.create_task(make_task())
        await service.start_task(task.id)
        clock.advance(60)
        with pytest.raises(PersistenceError):
            await service.complete_task(task.id)

        assert (await service.get_task(task.id)).status == "in-progress"
        assert (await store.get_open_work_log(task.id)) is not None

    @pytest.mark.asyncio
    async def test_reads_scoped_to_tenant(self, task_service, make_task):
        await task_service.create_task(make_task(title="Ours", tenant_id="tenant-1"))
        await task_service.create_task(make_task(title="Theirs", tenant_id="tenant-2"))
        assert [t.title for t in await task_service.get_tasks(tenant_id="tenant-1")] == ["Ours"]
        assert [t.title for t in await task_service.get_tasks_for_date(TODAY, tenant_id="tenant-2")] == ["Theirs"]
        assert len(await task_service.get_tasks()) == 2


# ===========================================================================
# KPI
# ===========================================================================

class TestKPIService:

    @pytest.mark.asyncio
    async def test_dcr_auto_populated_from_work_logs(self, kpi_service, task_service, make_task):
        task = await task_service.create_task(make_task())
        await task_service.start_task(task.id)
        await task_service.complete_task(task.id)
        entry = await kpi_service.record_entry("alice", TODAY, customer_satisfaction=4, timely_delivery=5)
        assert entry.dcr_maintenance == 5.0

    @pytest.mark.asyncio
    async def test_dcr_defaults_to_minimum_without_tasks(self, kpi_service):
        entry = await kpi_service.record_entry("alice", TODAY, customer_satisfaction=4, timely_delivery=4)
        assert entry.dcr_maintenance == 1.0

    @pytest.mark.asyncio
    async def test_explicit_dcr_kept(self, kpi_service):
        entry = await kpi_service.record_entry(
            "alice", TODAY, customer_satisfaction=4, timely_delivery=4, dcr_maintenance=3.5
        )
        assert entry.dcr_maintenance == 3.5

    @pytest.mark.asyncio
    async def test_invalid_rating_not_stored(self, kpi_service, store):
        from opsdesk.services.errors import ValidationError
        with pytest.raises(ValidationError):
            await kpi_service.record_entry("alice", TODAY, customer_satisfaction=7, timely_delivery=4)
        assert await store.get_kpi_entries("alice") == []

    @pytest.mark.asyncio
    async def test_second_record_replaces_first(self, kpi_service):
        await kpi_service.record_entry(
            "alice", TODAY, customer_satisfaction=2, timely_delivery=2, lead_generation=5
        )
        await kpi_service.record_entry("alice", TODAY, customer_satisfaction=5, timely_delivery=5)
        entries = await kpi_service.list_entries("alice")
        assert len(entries) == 1
        assert entries[0].customer_satisfaction == 5
        assert entries[0].lead_generation == 0

    @pytest.mark.asyncio
    async def test_summary(self, kpi_service):
        await kpi_service.record_entry(
            "alice", TODAY, customer_satisfaction=4, timely_delivery=5, dcr_maintenance=4.0,
            lead_generation=2, certifications="CKA",
        )
        await kpi_service.record_entry(
            "alice", TODAY - timedelta(days=1), customer_satisfaction=5, timely_delivery=4,
            dcr_maintenance=5.0, technical_escalations=1,
        )
        summary = await kpi_service.summary("alice")
        assert summary["user_id"] == "alice"
        assert summary["entry_count"] == 2
        assert summary["avg_customer_satisfaction"] == 4.5
        assert summary["avg_dcr_maintenance"] == 4.5
        assert summary["total_lead_generation"] == 2
        assert summary["certification_count"] == 1
