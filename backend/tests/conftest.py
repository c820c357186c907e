"""
conftest.py — Shared pytest fixtures for the workday ops backend test suite.

No database fixtures are defined here. Engine tests are pure unit tests;
service and route tests run against InMemoryRecordStore with a frozen clock
so "today" and due-time comparisons are deterministic.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``opsdesk.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
from datetime import date, datetime, timedelta, timezone

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any opsdesk imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# 2026-03-10 is a Tuesday; all relative dates in the suite hang off it
TODAY = date(2026, 3, 10)
MORNING = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock the services accept in place of ``local_now``."""

    def __init__(self, now: datetime = MORNING):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=0)

    def advance(self, minutes: int) -> None:
        self.now = self.now + timedelta(minutes=minutes)


# ---------------------------------------------------------------------------
# Engine fixtures (stateless → session scope)
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def timesheet_engine():
    """General catalog, no daily cap, 2-day edit window."""
    from opsdesk.services.timesheet_engine import TimesheetEngine
    return TimesheetEngine(edit_window_days=2)


@pytest.fixture(scope="session")
def trainer_engine():
    """Trainer catalog with the fixed 8-hour cap."""
    from opsdesk.services.activity_catalog import TRAINER_CATALOG
    from opsdesk.services.timesheet_engine import FixedDailyCap, TimesheetEngine
    return TimesheetEngine(catalog=TRAINER_CATALOG, cap=FixedDailyCap(8.0), edit_window_days=2)


@pytest.fixture(scope="session")
def task_engine():
    from opsdesk.services.task_engine import TaskLifecycleEngine
    return TaskLifecycleEngine()


# ---------------------------------------------------------------------------
# Store + service fixtures (fresh per test)
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    from opsdesk.services.record_store import InMemoryRecordStore
    return InMemoryRecordStore()


@pytest.fixture
def report_service(store, clock):
    from opsdesk.services.report_service import DailyReportService
    from opsdesk.services.sales_hook import SalesLeadDemoHook
    return DailyReportService(store, demo_hook=SalesLeadDemoHook(store), clock=clock)


@pytest.fixture
def task_service(store, clock):
    from opsdesk.services.task_service import TaskService
    return TaskService(store, clock=clock)


@pytest.fixture
def kpi_service(store):
    from opsdesk.services.kpi_service import KPIService
    return KPIService(store)


@pytest.fixture
def make_task():
    """Factory for a pending task due today, assigned to alice."""
    from opsdesk.models.domain import Task

    def _make(**overrides):
        fields = {
            "title": "Client onboarding call",
            "due_date": TODAY,
            "assignee_id": "alice",
            "assigned_by_id": "manager-1",
        }
        fields.update(overrides)
        return Task(**fields)

    return _make
