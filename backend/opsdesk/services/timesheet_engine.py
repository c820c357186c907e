"""
timesheet_engine.py — Daily time-accounting engine.

Covers:
  - Time-entry normalisation: (from, to) wall-clock pair -> quarter-hour hours
  - Billability lookup via the activity catalog
  - Daily aggregation: total / billable / non-billable hours, productivity %
  - Pluggable daily hour cap (unlimited by default, fixed ceiling for trainers)
  - Editability window and draft/submit validation for a DailyReport

Everything here is synchronous and pure over the report passed in; the
DailyReportService owns the record-store round trips.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, Optional, Union

from opsdesk.models.domain import DailyReport, TimeEntry
from opsdesk.services.activity_catalog import (
    ATTENDANCE_STATUSES,
    GENERAL_CATALOG,
    ActivityCatalog,
)
from opsdesk.services.errors import ValidationError

logger = logging.getLogger("workday-reports")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

QUARTERS_PER_HOUR: int = 4

# Reports dated within [today - EDIT_WINDOW_DAYS, today] are editable
DEFAULT_EDIT_WINDOW_DAYS: int = int(os.getenv("EDIT_WINDOW_DAYS", "2"))

# Ceiling applied to trainer reports
TRAINER_DAILY_CAP_HOURS: float = float(os.getenv("TRAINER_DAILY_CAP_HOURS", "8"))

ClockValue = Union[str, time]


# ---------------------------------------------------------------------------
# Rounding helpers (half-up, not banker's rounding)
# ---------------------------------------------------------------------------

def round_half_up(value: float, ndigits: int = 0) -> float:
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def quantize_hours(hours: float) -> float:
    """Round a duration in hours to the nearest quarter hour."""
    return math.floor(hours * QUARTERS_PER_HOUR + 0.5) / QUARTERS_PER_HOUR


def parse_clock(value: ClockValue, field: str = "time") -> time:
    """Accept ``datetime.time`` or an ``HH:MM`` / ``HH:MM:SS`` string."""
    if isinstance(value, time):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required", field=field)
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"{field} must be HH:MM, got '{value}'", field=field)


# ---------------------------------------------------------------------------
# Daily cap policies
# ---------------------------------------------------------------------------

class UnlimitedDailyCap:
    """No ceiling on hours logged per day."""

    limit: Optional[float] = None

    def check(self, current_total: float, additional: float) -> None:
        return None

    def remaining(self, current_total: float) -> Optional[float]:
        return None


class FixedDailyCap(UnlimitedDailyCap):
    """Refuses any entry that would push the day's total above ``limit`` hours."""

    def __init__(self, limit: float = TRAINER_DAILY_CAP_HOURS) -> None:
        if limit <= 0:
            raise ValueError(f"Daily cap must be positive; received {limit}")
        self.limit = float(limit)

    def check(self, current_total: float, additional: float) -> None:
        if current_total + additional > self.limit:
            raise ValidationError(
                f"Adding {additional:.2f} hours would exceed the {self.limit:g}-hour daily limit. "
                f"You have {self.remaining(current_total):.2f} hours remaining.",
                field="hours",
            )

    def remaining(self, current_total: float) -> float:
        return max(0.0, self.limit - current_total)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DailyTotals:
    total_hours: float
    billable_hours: float
    non_billable_hours: float
    productivity_percentage: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "total_hours": self.total_hours,
            "billable_hours": self.billable_hours,
            "non_billable_hours": self.non_billable_hours,
            "productivity_percentage": self.productivity_percentage,
        }


# ---------------------------------------------------------------------------
# TimesheetEngine
# ---------------------------------------------------------------------------

class TimesheetEngine:
    """
    Normalises time entries and folds them into daily totals for one person.

    ``catalog`` decides billability, ``cap`` decides whether an add is allowed,
    ``edit_window_days`` sets how far back a report stays editable.
    """

    def __init__(
        self,
        catalog: ActivityCatalog = GENERAL_CATALOG,
        cap: Optional[UnlimitedDailyCap] = None,
        edit_window_days: int = DEFAULT_EDIT_WINDOW_DAYS,
    ) -> None:
        if edit_window_days < 0:
            raise ValueError("edit_window_days must not be negative")
        self.catalog = catalog
        self.cap = cap or UnlimitedDailyCap()
        self.edit_window_days = edit_window_days

    # -----------------------------------------------------------------------
    # 1. Normaliser
    # -----------------------------------------------------------------------

    def calculate_hours(self, from_time: ClockValue, to_time: ClockValue) -> float:
        """
        Duration between two same-day clock times, rounded to 0.25 h.
        Returns 0.0 when ``to`` is not after ``from``; callers treat that as invalid.
        """
        start = parse_clock(from_time, "from_time")
        end = parse_clock(to_time, "to_time")
        start_s = start.hour * 3600 + start.minute * 60 + start.second
        end_s = end.hour * 3600 + end.minute * 60 + end.second
        if end_s <= start_s:
            return 0.0
        return quantize_hours((end_s - start_s) / 3600.0)

    def build_entry(
        self,
        category: str,
        from_time: ClockValue,
        to_time: ClockValue,
        notes: str = "",
    ) -> TimeEntry:
        """Validate and construct a TimeEntry; billability comes from the catalog."""
        if not category or not category.strip():
            raise ValidationError("Activity category is required", field="category")
        hours = self.calculate_hours(from_time, to_time)
        if hours <= 0:
            raise ValidationError("End time must be after start time", field="to_time")
        return TimeEntry(
            category=self.catalog.label_for(category),
            from_time=parse_clock(from_time, "from_time"),
            to_time=parse_clock(to_time, "to_time"),
            hours=hours,
            notes=notes or "",
            is_billable=self.catalog.is_billable(category),
        )

    # -----------------------------------------------------------------------
    # 2. Aggregator
    # -----------------------------------------------------------------------

    def aggregate(self, entries: Iterable[TimeEntry]) -> DailyTotals:
        total = 0.0
        billable = 0.0
        for entry in entries:
            total += entry.hours
            if entry.is_billable:
                billable += entry.hours
        productivity = round_half_up(billable / total * 100, 1) if total > 0 else 0.0
        return DailyTotals(
            total_hours=total,
            billable_hours=billable,
            non_billable_hours=total - billable,
            productivity_percentage=productivity,
        )

    def add_entry(self, report: DailyReport, entry: TimeEntry, today: date) -> DailyTotals:
        """Append ``entry`` to the report after editability and cap checks."""
        self.ensure_editable(report, today)
        if entry.hours <= 0:
            raise ValidationError("End time must be after start time", field="to_time")
        current = self.aggregate(report.activities)
        self.cap.check(current.total_hours, entry.hours)
        entry.report_id = report.id
        report.activities.append(entry)
        return self.aggregate(report.activities)

    def remove_entry(self, report: DailyReport, entry_id: str, today: date) -> DailyTotals:
        self.ensure_editable(report, today)
        remaining = [e for e in report.activities if e.id != entry_id]
        if len(remaining) == len(report.activities):
            raise ValidationError(f"Activity '{entry_id}' is not on this report", field="entry_id")
        report.activities = remaining
        return self.aggregate(report.activities)

    # -----------------------------------------------------------------------
    # 3. Editability & submission
    # -----------------------------------------------------------------------

    def is_within_window(self, report_date: date, today: date) -> bool:
        return today - timedelta(days=self.edit_window_days) <= report_date <= today

    def is_editable(self, report: DailyReport, today: date) -> bool:
        return not report.is_submitted and self.is_within_window(report.date, today)

    def ensure_editable(self, report: DailyReport, today: date) -> None:
        if report.is_submitted:
            raise ValidationError("Report has already been submitted", field="submitted_at")
        if not self.is_within_window(report.date, today):
            raise ValidationError(
                f"Reports can only be edited for the last {self.edit_window_days} days",
                field="date",
            )

    def validate_draft(self, report: DailyReport, today: date) -> None:
        self.ensure_editable(report, today)
        if not report.activities:
            raise ValidationError("Add at least one activity before saving", field="activities")
        if report.attendance_status and report.attendance_status not in ATTENDANCE_STATUSES:
            raise ValidationError(
                f"Unknown attendance status '{report.attendance_status}'",
                field="attendance_status",
            )

    def validate_submit(self, report: DailyReport, today: date) -> None:
        self.validate_draft(report, today)
        if not report.attendance_status:
            raise ValidationError("Please select attendance status", field="attendance_status")

    # -----------------------------------------------------------------------
    # 4. Summary
    # -----------------------------------------------------------------------

    def summarize(self, report: DailyReport, today: date) -> Dict[str, Any]:
        totals = self.aggregate(report.activities)
        summary: Dict[str, Any] = {
            **totals.to_dict(),
            "entry_count": len(report.activities),
            "is_submitted": report.is_submitted,
            "is_editable": self.is_editable(report, today),
            "daily_cap_hours": self.cap.limit,
            "remaining_hours": self.cap.remaining(totals.total_hours),
        }
        return summary

