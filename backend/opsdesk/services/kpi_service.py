"""KPIService — KPI entry upserts with DCR auto-population, and window roll-ups."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from opsdesk.models.domain import KPIEntry
from opsdesk.services.dcr_engine import compute_dcr_score
from opsdesk.services.kpi_engine import rollup_kpis, validate_kpi_entry
from opsdesk.services.record_store import RecordStore

logger = logging.getLogger("workday-kpi")


class KPIService:

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def record_entry(
        self,
        user_id: str,
        entry_date: date,
        customer_satisfaction: int,
        timely_delivery: int,
        dcr_maintenance: Optional[float] = None,
        certifications: str = "",
        lead_generation: int = 0,
        technical_escalations: int = 0,
        notes: str = "",
        tenant_id: Optional[str] = None,
    ) -> KPIEntry:
        """
        Upsert (full replace) the person's entry for ``entry_date``.
        Without an explicit dcr_maintenance the day's DCR score is used.
        """
        if dcr_maintenance is None:
            logs = await self.store.get_work_logs(user_id, entry_date)
            dcr_maintenance = compute_dcr_score(logs)
            logger.info(
                f"DCR auto-populated: {dcr_maintenance}",
                extra={"user_id": user_id, "report_date": entry_date.isoformat()},
            )
        entry = KPIEntry(
            user_id=user_id,
            date=entry_date,
            customer_satisfaction=customer_satisfaction,
            timely_delivery=timely_delivery,
            dcr_maintenance=dcr_maintenance,
            certifications=certifications or "",
            lead_generation=lead_generation,
            technical_escalations=technical_escalations,
            notes=notes or "",
            tenant_id=tenant_id,
        )
        validate_kpi_entry(entry)
        return await self.store.upsert_kpi_entry(entry)

    async def list_entries(
        self,
        user_id: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        tenant_id: Optional[str] = None,
    ) -> List[KPIEntry]:
        return await self.store.get_kpi_entries(user_id, start, end, tenant_id=tenant_id)

    async def summary(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        tenant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        entries = await self.store.get_kpi_entries(user_id, start, end, tenant_id=tenant_id)
        return {"user_id": user_id, **rollup_kpis(entries)}
