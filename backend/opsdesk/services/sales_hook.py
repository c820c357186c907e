"""
Demo → sales-lead hook.

A demo logged on a daily report is a sales touchpoint: the default hook files
a SalesLead in status ``demo-given`` for the person who gave it, naming the
company from the activity notes where it can.
"""
import logging
import re
from typing import List, Optional

from opsdesk.models.domain import DailyReport, SalesLead, TimeEntry
from opsdesk.services.record_store import RecordStore

logger = logging.getLogger("workday-reports")

DEMO_LEAD_SOURCE = "Demo Report"
DEMO_LEAD_STATUS = "demo-given"

# Tried in order; first capture wins
COMPANY_NAME_PATTERNS: List[re.Pattern] = [
    re.compile(r"for\s+([A-Z][a-zA-Z\s&]+?)(?:\s|$|\.)", re.IGNORECASE),
    re.compile(r"with\s+([A-Z][a-zA-Z\s&]+?)(?:\s|$|\.)", re.IGNORECASE),
    re.compile(r"at\s+([A-Z][a-zA-Z\s&]+?)(?:\s|$|\.)", re.IGNORECASE),
    re.compile(r"([A-Z][a-zA-Z\s&]{2,20})\s+(?:demo|presentation|training)", re.IGNORECASE),
]


def extract_company_name(notes: Optional[str]) -> Optional[str]:
    if not notes:
        return None
    for pattern in COMPANY_NAME_PATTERNS:
        match = pattern.search(notes)
        if match and match.group(1):
            return match.group(1).strip()
    return None


class SalesLeadDemoHook:
    """Creates a SalesLead for each demo activity. Callable as ``await hook(report, entry)``."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def build_lead(self, report: DailyReport, entry: TimeEntry) -> SalesLead:
        company = extract_company_name(entry.notes) or f"Demo Client - {report.date.isoformat()}"
        return SalesLead(
            company_name=company,
            lead_source=DEMO_LEAD_SOURCE,
            status=DEMO_LEAD_STATUS,
            assigned_to_id=report.user_id,
            demo_date=report.date,
            demo_notes=entry.notes,
            tenant_id=report.tenant_id,
            notes=(
                "Auto-generated from daily report demo entry. Demo conducted on "
                f"{entry.from_time.strftime('%H:%M')} - {entry.to_time.strftime('%H:%M')}"
            ),
        )

    async def __call__(self, report: DailyReport, entry: TimeEntry) -> SalesLead:
        lead = await self.store.create_sales_lead(self.build_lead(report, entry))
        logger.info(
            f"Demo lead created: {lead.company_name}",
            extra={"user_id": report.user_id, "report_date": report.date.isoformat()},
        )
        return lead
