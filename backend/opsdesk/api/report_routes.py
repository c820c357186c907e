"""
Daily report routes — activity logging, draft/submit, and the activity catalog.

Members address their own reports; supervisors may pass ?user_id= to read or
act on someone else's day. Engine rejections surface as 422 via the
exception handlers registered in main.py.
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from opsdesk.api.deps import Actor, get_current_actor, get_report_service, get_tenant_id, resolve_subject
from opsdesk.models.api_schemas import DailyReportOut, DailyReportView, DailyTotalsOut, TimeEntryOut
from opsdesk.models.domain import DailyReport
from opsdesk.services.activity_catalog import ATTENDANCE_STATUSES, catalog_for
from opsdesk.services.report_service import DailyReportService

router = APIRouter(prefix="/api/v1/reports", tags=["Daily Reports"])
logger = logging.getLogger("workday-reports")


class ActivityRequest(BaseModel):
    category: str
    from_time: str   # "HH:MM"
    to_time: str     # "HH:MM"
    notes: str = ""


class ReportHeaderRequest(BaseModel):
    attendance_status: Optional[str] = None
    general_notes: Optional[str] = None


class ActivityAddedResponse(BaseModel):
    entry: TimeEntryOut
    report: DailyReportOut
    summary: DailyTotalsOut


def _view(service: DailyReportService, report: Optional[DailyReport], report_date: date,
          user_id: str, designation: Optional[str]) -> DailyReportView:
    # Days with nothing logged still get a zeroed summary
    subject = report or DailyReport(user_id=user_id, date=report_date)
    return DailyReportView(
        report=DailyReportOut.model_validate(report) if report else None,
        summary=DailyTotalsOut(**service.summarize(subject, designation)),
    )


@router.get("/catalog")
async def get_activity_catalog(actor: Actor = Depends(get_current_actor)):
    """Activity categories and attendance statuses available to the caller."""
    return {
        "designation": actor.designation,
        "categories": catalog_for(actor.designation).options(),
        "attendance_statuses": list(ATTENDANCE_STATUSES),
    }


@router.get("", response_model=List[DailyReportOut])
async def list_reports(
    user_id: Optional[str] = Query(None),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: DailyReportService = Depends(get_report_service),
):
    # Supervisors without a user filter see every report in their tenant
    subject = None if (actor.is_supervisor and not user_id) else resolve_subject(actor, user_id)
    reports = await service.list_reports(subject, start, end, tenant_id)
    return [DailyReportOut.model_validate(r) for r in reports]


@router.get("/{report_date}", response_model=DailyReportView)
async def get_report(
    report_date: date,
    user_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    tenant_id: str = Depends(get_tenant_id),
    service: DailyReportService = Depends(get_report_service),
):
    subject = resolve_subject(actor, user_id)
    if subject == actor.user_id:
        designation = actor.designation
    else:
        designation = await service.designation_of(subject, tenant_id)
    report = await service.get_report(subject, report_date, tenant_id)
    return _view(service, report, report_date, subject, designation)


@router.post("/{report_date}/activities", response_model=ActivityAddedResponse, status_code=201)
async def add_activity(
    report_date: date,
    req: ActivityRequest,
    actor: Actor = Depends(get_current_actor),
    service: DailyReportService = Depends(get_report_service),
):
    report, entry = await service.add_activity(
        actor.user_id,
        report_date,
        req.category,
        req.from_time,
        req.to_time,
        req.notes,
        designation=actor.designation,
        tenant_id=actor.tenant_id,
    )
    return ActivityAddedResponse(
        entry=TimeEntryOut.model_validate(entry),
        report=DailyReportOut.model_validate(report),
        summary=DailyTotalsOut(**service.summarize(report, actor.designation)),
    )


@router.delete("/{report_date}/activities/{entry_id}", response_model=DailyReportView)
async def remove_activity(
    report_date: date,
    entry_id: str,
    actor: Actor = Depends(get_current_actor),
    service: DailyReportService = Depends(get_report_service),
):
    report = await service.remove_activity(
        actor.user_id, report_date, entry_id, designation=actor.designation
    )
    return _view(service, report, report_date, actor.user_id, actor.designation)


@router.put("/{report_date}/draft", response_model=DailyReportView)
async def save_draft(
    report_date: date,
    req: ReportHeaderRequest,
    actor: Actor = Depends(get_current_actor),
    service: DailyReportService = Depends(get_report_service),
):
    report = await service.save_draft(
        actor.user_id,
        report_date,
        attendance_status=req.attendance_status,
        general_notes=req.general_notes,
        designation=actor.designation,
    )
    return _view(service, report, report_date, actor.user_id, actor.designation)


@router.post("/{report_date}/submit", response_model=DailyReportView)
async def submit_report(
    report_date: date,
    req: ReportHeaderRequest,
    actor: Actor = Depends(get_current_actor),
    service: DailyReportService = Depends(get_report_service),
):
    report = await service.submit_final(
        actor.user_id,
        report_date,
        attendance_status=req.attendance_status,
        general_notes=req.general_notes,
        designation=actor.designation,
    )
    logger.info("Daily report submitted", extra={"user_id": actor.user_id, "report_date": report_date.isoformat()})
    return _view(service, report, report_date, actor.user_id, actor.designation)
