"""
activity_catalog.py — Static activity category tables.

Single source of truth for which activity categories exist, how they are
labelled on a daily report, and whether time logged against them counts as
billable. Import from here rather than re-declaring category lists per screen.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ActivityCategory:
    value: str
    label: str
    billable: bool


# ── General catalog (engineers, consultants, sales) ──────────────────────────
GENERAL_ACTIVITY_CATEGORIES: List[ActivityCategory] = [
    ActivityCategory("demo", "Demo", True),
    ActivityCategory("prePostPresentation", "Pre/Post Presentation", True),
    ActivityCategory("corporateConsultingTraining", "Corporate Consulting/Training", True),
    ActivityCategory("project", "Project", True),
    ActivityCategory("consultingContentPrep", "Consulting Content Prep", True),
    ActivityCategory("techSupport", "Tech Support", True),
    ActivityCategory("meeting", "Meeting", False),
    ActivityCategory("devLearning", "Dev/Learning", True),
    ActivityCategory("misc", "Miscellaneous", False),
]

# ── Trainer catalog ──────────────────────────────────────────────────────────
TRAINER_ACTIVITY_CATEGORIES: List[ActivityCategory] = [
    ActivityCategory("demo", "Demo", True),
    ActivityCategory("training", "Training", True),
    ActivityCategory("lessonPlanPreparation", "Lesson Plan Preparation", True),
    ActivityCategory("corporateConsultingTraining", "Corporate Consulting/Training", True),
    ActivityCategory("project", "Project", True),
    ActivityCategory("consultingContentPrep", "Consulting Content Prep", True),
    ActivityCategory("techSupport", "Tech Support", True),
    ActivityCategory("meeting", "Meeting", False),
    ActivityCategory("devLearning", "Dev/Learning", True),
    ActivityCategory("misc", "Miscellaneous", False),
]

# Categories whose completed tasks may trigger a customer-feedback request
FEEDBACK_CATEGORIES = frozenset({"demo", "corporateConsultingTraining"})

DEMO_CATEGORY = "demo"

ATTENDANCE_STATUSES: List[str] = [
    "Present",
    "Half Day",
    "Leave",
    "Work From Home",
    "Client Site",
]


class ActivityCatalog:
    """Category → {label, billable} lookup. Unknown categories are non-billable."""

    def __init__(self, categories: List[ActivityCategory]) -> None:
        self._by_value: Dict[str, ActivityCategory] = {c.value: c for c in categories}
        self._by_label: Dict[str, ActivityCategory] = {c.label: c for c in categories}

    def resolve(self, category: str) -> Optional[ActivityCategory]:
        return self._by_value.get(category) or self._by_label.get(category)

    def is_billable(self, category: str) -> bool:
        entry = self.resolve(category)
        return entry.billable if entry else False

    def label_for(self, category: str) -> str:
        entry = self.resolve(category)
        return entry.label if entry else category

    def value_for(self, category: str) -> str:
        entry = self.resolve(category)
        return entry.value if entry else category

    def options(self) -> List[Dict[str, object]]:
        return [
            {"value": c.value, "label": c.label, "billable": c.billable}
            for c in self._by_value.values()
        ]


GENERAL_CATALOG = ActivityCatalog(GENERAL_ACTIVITY_CATEGORIES)
TRAINER_CATALOG = ActivityCatalog(TRAINER_ACTIVITY_CATEGORIES)


def is_trainer(designation: Optional[str]) -> bool:
    return "trainer" in (designation or "").lower()


def catalog_for(designation: Optional[str]) -> ActivityCatalog:
    """Trainers log against the trainer catalog; everyone else the general one."""
    return TRAINER_CATALOG if is_trainer(designation) else GENERAL_CATALOG
