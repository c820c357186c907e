"""
kpi_engine.py — KPI entry validation and per-person roll-up.
"""
from typing import Any, Dict, Sequence

from opsdesk.models.domain import KPIEntry
from opsdesk.services.errors import ValidationError
from opsdesk.services.timesheet_engine import round_half_up

RATING_MIN: int = 1
RATING_MAX: int = 5

RATING_FIELDS = ("customer_satisfaction", "timely_delivery", "dcr_maintenance")
COUNT_FIELDS = ("lead_generation", "technical_escalations")


def validate_kpi_entry(entry: KPIEntry) -> None:
    for name in RATING_FIELDS:
        value = getattr(entry, name)
        if value is None or not RATING_MIN <= value <= RATING_MAX:
            raise ValidationError(
                f"{name} must be between {RATING_MIN} and {RATING_MAX}", field=name
            )
    for name in COUNT_FIELDS:
        if getattr(entry, name) < 0:
            raise ValidationError(f"{name} cannot be negative", field=name)


def _average(values: Sequence[float]) -> float:
    return round_half_up(sum(values) / len(values), 1) if values else 0.0


def rollup_kpis(entries: Sequence[KPIEntry]) -> Dict[str, Any]:
    """Averages for ratings, sums for counts, over whatever window was fetched."""
    return {
        "entry_count": len(entries),
        "avg_customer_satisfaction": _average([e.customer_satisfaction for e in entries]),
        "avg_timely_delivery": _average([e.timely_delivery for e in entries]),
        "total_lead_generation": sum(e.lead_generation for e in entries),
        "avg_dcr_maintenance": _average([e.dcr_maintenance for e in entries]),
        "total_technical_escalations": sum(e.technical_escalations for e in entries),
        "certification_count": sum(1 for e in entries if (e.certifications or "").strip()),
    }
