"""KPI routes — daily KPI entries (DCR auto-filled from task work logs) and roll-ups."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from opsdesk.api.deps import Actor, get_current_actor, get_kpi_service, get_tenant_id, resolve_subject
from opsdesk.models.api_schemas import KPIEntryOut
from opsdesk.services.kpi_service import KPIService

router = APIRouter(prefix="/api/v1/kpi", tags=["KPI"])


class KPIEntryRequest(BaseModel):
    customer_satisfaction: int = Field(..., description="1-5 rating")
    timely_delivery: int = Field(..., description="1-5 rating")
    dcr_maintenance: Optional[float] = Field(
        None, description="1-5 rating; computed from the day's task work logs when omitted"
    )
    certifications: str = ""
    lead_generation: int = 0
    technical_escalations: int = 0
    notes: str = ""


@router.put("/entries/{entry_date}", response_model=KPIEntryOut)
async def record_kpi_entry(
    entry_date: date,
    req: KPIEntryRequest,
    actor: Actor = Depends(get_current_actor),
    service: KPIService = Depends(get_kpi_service),
):
    entry = await service.record_entry(
        actor.user_id,
        entry_date,
        tenant_id=actor.tenant_id,
        **req.model_dump(),
    )
    return KPIEntryOut.model_validate(entry)


@router.get("/entries", response_model=List[KPIEntryOut])
async def list_kpi_entries(
    user_id: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: KPIService = Depends(get_kpi_service),
):
    subject = None if (actor.is_supervisor and not user_id) else resolve_subject(actor, user_id)
    return [KPIEntryOut.model_validate(e) for e in await service.list_entries(subject, start, end, tenant_id)]


@router.get("/summary")
async def kpi_summary(
    user_id: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: KPIService = Depends(get_kpi_service),
):
    return await service.summary(resolve_subject(actor, user_id), start, end, tenant_id)
