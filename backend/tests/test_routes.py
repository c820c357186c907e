"""
test_routes.py — HTTP surface tests via FastAPI's TestClient.

Auth and persistence are swapped out with dependency_overrides: the caller is
a fixed Actor, and every service runs over InMemoryRecordStore with the
suite's FrozenClock. The lifespan (init_db) is never entered, so no database
is contacted.
"""

import pytest

from conftest import TODAY

DAY = TODAY.isoformat()


@pytest.fixture
def api(store, clock):
    from fastapi.testclient import TestClient
    from opsdesk.api import deps
    from opsdesk.main import app
    from opsdesk.services.kpi_service import KPIService
    from opsdesk.services.report_service import DailyReportService
    from opsdesk.services.sales_hook import SalesLeadDemoHook
    from opsdesk.services.task_service import TaskService

    state = {
        "actor": deps.Actor(user_id="alice", role="Member", tenant_id="tenant-1"),
        "store": store,
    }
    app.dependency_overrides[deps.get_current_actor] = lambda: state["actor"]
    app.dependency_overrides[deps.get_record_store] = lambda: state["store"]
    app.dependency_overrides[deps.get_report_service] = lambda: DailyReportService(
        state["store"], demo_hook=SalesLeadDemoHook(state["store"]), clock=clock
    )
    app.dependency_overrides[deps.get_task_service] = lambda: TaskService(state["store"], clock=clock)
    app.dependency_overrides[deps.get_kpi_service] = lambda: KPIService(state["store"])

    client = TestClient(app)
    client.ctx = state
    yield client
    app.dependency_overrides.clear()


def _act_as(api, user_id, role="Member", designation=None, tenant_id="tenant-1"):
    from opsdesk.api.deps import Actor
    api.ctx["actor"] = Actor(user_id=user_id, role=role, tenant_id=tenant_id, designation=designation)


# ===========================================================================
# Ambient
# ===========================================================================

class TestAmbient:

    def test_health(self, api):
        resp = api.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_request_id_echoed(self, api):
        resp = api.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"
        assert "X-Process-Time" in resp.headers

    def test_persistence_failure_maps_to_503(self, api):
        from opsdesk.services.errors import PersistenceError
        from opsdesk.services.record_store import InMemoryRecordStore

        class UnavailableStore(InMemoryRecordStore):
            async def get_daily_report(self, user_id, report_date, tenant_id=None):
                raise PersistenceError("get_daily_report", ConnectionError("db down"))

        api.ctx["store"] = UnavailableStore()
        resp = api.get(f"/api/v1/reports/{DAY}")
        assert resp.status_code == 503
        assert resp.json() == {"detail": "Operation failed, please retry"}

    def test_rate_limiter_sweeps_idle_buckets(self):
        from opsdesk.main import RateLimitMiddleware
        limiter = RateLimitMiddleware(app=None)
        limiter._windows["10.0.0.1:general"].append(0.0)
        limiter._windows["10.0.0.2:general"].append(100.0)
        limiter._sweep(now=130.0)
        assert list(limiter._windows) == ["10.0.0.2:general"]
        assert limiter._last_sweep == 130.0

    def test_access_log_level_follows_outcome(self):
        import logging
        from opsdesk.services.middleware import SLOW_REQUEST_MS, access_log_level
        assert access_log_level(200, 5.0) == logging.INFO
        assert access_log_level(200, SLOW_REQUEST_MS) == logging.WARNING
        assert access_log_level(422, 5.0) == logging.WARNING
        assert access_log_level(503, 5.0) == logging.ERROR


# ===========================================================================
# Daily reports
# ===========================================================================

class TestReportRoutes:

    def test_catalog_for_trainer(self, api):
        _act_as(api, "tara", designation="Technical Trainer")
        body = api.get("/api/v1/reports/catalog").json()
        values = [c["value"] for c in body["categories"]]
        assert "training" in values
        assert "Present" in body["attendance_statuses"]

    def test_empty_day_has_zero_summary(self, api):
        body = api.get(f"/api/v1/reports/{DAY}").json()
        assert body["report"] is None
        assert body["summary"]["total_hours"] == 0.0
        assert body["summary"]["is_editable"] is True

    def test_add_activity_and_totals(self, api):
        resp = api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "demo", "from_time": "09:00", "to_time": "11:00", "notes": "Demo for Globex.",
        })
        assert resp.status_code == 201
        resp = api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "meeting", "from_time": "11:00", "to_time": "12:00",
        })
        body = resp.json()
        assert body["entry"]["category"] == "Meeting"
        assert body["summary"]["total_hours"] == 3.0
        assert body["summary"]["productivity_percentage"] == 66.7

        leads = api.get("/api/v1/leads").json()
        assert [l["company_name"] for l in leads] == ["Globex"]

    def test_reversed_times_is_422_with_field(self, api):
        resp = api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "project", "from_time": "10:00", "to_time": "09:00",
        })
        assert resp.status_code == 422
        assert resp.json() == {"field": "to_time", "detail": "End time must be after start time"}

    def test_submit_flow(self, api):
        api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "project", "from_time": "09:00", "to_time": "10:00",
        })
        resp = api.post(f"/api/v1/reports/{DAY}/submit", json={})
        assert resp.status_code == 422
        assert resp.json()["field"] == "attendance_status"

        resp = api.post(f"/api/v1/reports/{DAY}/submit", json={"attendance_status": "Present"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["report"]["submitted_at"] is not None
        assert body["summary"]["is_editable"] is False

    def test_remove_from_missing_report_is_404(self, api):
        resp = api.delete(f"/api/v1/reports/{DAY}/activities/nope")
        assert resp.status_code == 404

    def test_member_cannot_read_others(self, api):
        resp = api.get(f"/api/v1/reports/{DAY}", params={"user_id": "bob"})
        assert resp.status_code == 403

    def test_manager_can_read_others(self, api):
        api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "project", "from_time": "09:00", "to_time": "10:00",
        })
        _act_as(api, "manager-1", role="Manager")
        body = api.get(f"/api/v1/reports/{DAY}", params={"user_id": "alice"}).json()
        assert body["report"]["user_id"] == "alice"
        assert len(api.get("/api/v1/reports").json()) == 1

    def test_manager_sees_trainer_cap_on_trainer_report(self, api):
        api.ctx["store"].register_user("tara", tenant_id="tenant-1", designation="Technical Trainer")
        _act_as(api, "tara", designation="Technical Trainer")
        api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "training", "from_time": "09:00", "to_time": "11:00",
        })
        _act_as(api, "manager-1", role="Manager")
        summary = api.get(f"/api/v1/reports/{DAY}", params={"user_id": "tara"}).json()["summary"]
        assert summary["daily_cap_hours"] == 8.0
        assert summary["remaining_hours"] == 6.0


# ===========================================================================
# Tasks + KPI
# ===========================================================================

class TestTaskRoutes:

    def _create(self, api, **fields):
        payload = {"title": "Product demo", "due_date": DAY, "category": "demo"}
        payload.update(fields)
        resp = api.post("/api/v1/tasks", json=payload)
        assert resp.status_code == 201
        return resp.json()

    def test_lifecycle(self, api, clock):
        task = self._create(api, due_time="15:00")
        assert task["status"] == "pending"
        assert task["assignee_id"] == "alice"
        assert task["task_type"] == "time-based"

        clock.set(14, 0)
        assert api.post(f"/api/v1/tasks/{task['id']}/start").json()["status"] == "in-progress"
        clock.set(15, 1)
        done = api.post(f"/api/v1/tasks/{task['id']}/complete").json()
        assert done["status"] == "completed"
        assert done["overdue_minutes"] == 1
        assert done["can_request_feedback"] is True

        dcr = api.get(f"/api/v1/tasks/dcr/{DAY}").json()
        assert dcr["total_tasks"] == 1
        assert dcr["completed"] == 1

    def test_illegal_transition_is_422(self, api):
        task = self._create(api)
        resp = api.post(f"/api/v1/tasks/{task['id']}/complete")
        assert resp.status_code == 422
        assert resp.json()["field"] == "status"

    def test_escalation_requires_reason(self, api):
        task = self._create(api)
        resp = api.post(f"/api/v1/tasks/{task['id']}/escalate", json={"reason": " "})
        assert resp.status_code == 422
        assert resp.json()["field"] == "reason"

    def test_unknown_task_is_404(self, api):
        assert api.get("/api/v1/tasks/does-not-exist").status_code == 404

    def test_outsider_cannot_see_task(self, api):
        task = self._create(api)
        _act_as(api, "mallory")
        assert api.get(f"/api/v1/tasks/{task['id']}").status_code == 403

    @pytest.mark.parametrize("field", ["estimated_hours", "tags"])
    def test_patch_null_on_required_field_is_422(self, api, field):
        task = self._create(api, estimated_hours=2)
        resp = api.patch(f"/api/v1/tasks/{task['id']}", json={field: None})
        assert resp.status_code == 422
        assert resp.json()["field"] == field
        assert api.get(f"/api/v1/tasks/{task['id']}").json()["estimated_hours"] == 2

    def test_patch_can_clear_due_time(self, api):
        task = self._create(api, due_time="15:00")
        body = api.patch(f"/api/v1/tasks/{task['id']}", json={"due_time": None}).json()
        assert body["due_time"] is None
        assert body["task_type"] == "date-based"

    def test_status_filter(self, api):
        first = self._create(api, title="First")
        self._create(api, title="Second")
        api.post(f"/api/v1/tasks/{first['id']}/start")
        titles = [t["title"] for t in api.get("/api/v1/tasks", params={"status": "in-progress"}).json()]
        assert titles == ["First"]
        assert api.get("/api/v1/tasks", params={"status": "done"}).status_code == 422

    def test_other_tenant_supervisor_sees_nothing(self, api):
        task = self._create(api, title="tenant1 secret")
        _act_as(api, "boss-2", role="Manager", tenant_id="tenant-2")
        assert api.get("/api/v1/tasks").json() == []
        assert api.get(f"/api/v1/tasks/due/{DAY}", params={"assignee_id": "alice"}).json() == []
        assert api.get(f"/api/v1/tasks/{task['id']}").status_code == 404
        assert api.post(f"/api/v1/tasks/{task['id']}/start").status_code == 404

    def test_comment(self, api):
        task = self._create(api)
        resp = api.post(f"/api/v1/tasks/{task['id']}/comments", json={"text": "Slides attached"})
        assert resp.status_code == 201
        assert resp.json()["author_id"] == "alice"


class TestKPIRoutes:

    def test_record_and_summarise(self, api):
        resp = api.put(f"/api/v1/kpi/entries/{DAY}", json={
            "customer_satisfaction": 4, "timely_delivery": 5, "lead_generation": 2,
        })
        assert resp.status_code == 200
        assert resp.json()["dcr_maintenance"] == 1.0

        summary = api.get("/api/v1/kpi/summary").json()
        assert summary["entry_count"] == 1
        assert summary["total_lead_generation"] == 2

    def test_out_of_range_rating_is_422(self, api):
        resp = api.put(f"/api/v1/kpi/entries/{DAY}", json={
            "customer_satisfaction": 9, "timely_delivery": 5,
        })
        assert resp.status_code == 422
        assert resp.json()["field"] == "customer_satisfaction"

    def test_other_tenant_supervisor_gets_no_kpis_or_reports(self, api):
        api.put(f"/api/v1/kpi/entries/{DAY}", json={"customer_satisfaction": 4, "timely_delivery": 4})
        api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "demo", "from_time": "09:00", "to_time": "10:00", "notes": "Demo for Globex.",
        })
        _act_as(api, "boss-2", role="Admin", tenant_id="tenant-2")
        assert api.get("/api/v1/kpi/entries").json() == []
        assert api.get("/api/v1/kpi/summary", params={"user_id": "alice"}).json()["entry_count"] == 0
        assert api.get("/api/v1/reports").json() == []
        assert api.get(f"/api/v1/reports/{DAY}", params={"user_id": "alice"}).json()["report"] is None
        assert api.get("/api/v1/leads").json() == []


class TestLeadRoutes:

    def test_status_filter(self, api):
        api.post(f"/api/v1/reports/{DAY}/activities", json={
            "category": "demo", "from_time": "09:00", "to_time": "10:00", "notes": "Demo for Initech.",
        })
        assert len(api.get("/api/v1/leads", params={"status": "demo-given"}).json()) == 1
        assert api.get("/api/v1/leads", params={"status": "quoted"}).json() == []

    def test_unknown_status_is_422(self, api):
        resp = api.get("/api/v1/leads", params={"status": "maybe"})
        assert resp.status_code == 422
        assert resp.json()["field"] == "status"
