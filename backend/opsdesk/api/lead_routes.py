"""Sales lead routes — read access to leads raised from demo activities."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from opsdesk.api.deps import Actor, get_current_actor, get_record_store, get_tenant_id, resolve_subject
from opsdesk.models.api_schemas import SalesLeadOut
from opsdesk.models.domain import LEAD_STATUSES
from opsdesk.services.errors import ValidationError
from opsdesk.services.record_store import RecordStore

router = APIRouter(prefix="/api/v1/leads", tags=["Sales Leads"])


@router.get("", response_model=List[SalesLeadOut])
async def list_leads(
    assigned_to: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Pipeline stage, e.g. demo-given"),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    store: RecordStore = Depends(get_record_store),
):
    if status is not None and status not in LEAD_STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(LEAD_STATUSES)}", field="status")
    subject = None if (actor.is_supervisor and not assigned_to) else resolve_subject(actor, assigned_to)
    leads = await store.list_sales_leads(subject, tenant_id=tenant_id)
    return [SalesLeadOut.model_validate(l) for l in leads if status is None or l.status == status]
