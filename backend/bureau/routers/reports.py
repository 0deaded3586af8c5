"""
Report Routes

Self-service generation, lender requests, and token access to snapshots.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_actor, require_admin
from ..database import get_db
from ..models.actor import Actor
from ..models.db_models import ReportType
from ..services.profiles import ProfileService
from ..services.reports import ReportService
from .serializers import report_to_dict, success

router = APIRouter(prefix="/reports", tags=["reports"])


class GenerateReportRequest(BaseModel):
    report_type: ReportType = ReportType.FULL
    profile_id: Optional[str] = None


class RequestReportRequest(BaseModel):
    profile_id: str
    report_type: ReportType = ReportType.SUMMARY


def _origin(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.post("/generate", status_code=status.HTTP_201_CREATED, response_model=dict)
async def generate_report(
    body: GenerateReportRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Consumers generate for their own profile; admins name the profile."""
    profile_id = body.profile_id
    if profile_id is None:
        profile_id = ProfileService(db).get_own_profile(actor).id
    report = ReportService(db).generate_report(profile_id, actor, body.report_type, _origin(request))
    return success({"report": report_to_dict(report, include_token=True)})


@router.post("/request", status_code=status.HTTP_201_CREATED, response_model=dict)
async def request_report(
    body: RequestReportRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = ReportService(db).request_report(actor, body.profile_id, body.report_type, _origin(request))
    report = result.entity
    return success({"report": report_to_dict(report), "access_token": report.access_token}, result)


@router.get("/mine", response_model=dict)
async def list_my_reports(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    reports = ReportService(db).list_my_reports(actor)
    return success({"reports": [report_to_dict(r) for r in reports]})


@router.get("/mine/{report_id}", response_model=dict)
async def get_my_report(
    report_id: str,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    report = ReportService(db).get_my_report(actor, report_id, _origin(request))
    return success({"report": report_to_dict(report, include_token=True)})


@router.get("/token/{access_token}", response_model=dict)
async def get_report_by_token(
    access_token: str,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    service = ReportService(db)
    report = service.fetch_report_by_token(access_token, actor.id, _origin(request))
    return success({"report": report_to_dict(report, service.clock())})


@router.get("/admin/{report_id}", response_model=dict)
async def get_report(
    report_id: str,
    request: Request,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    report = ReportService(db).get_report(admin, report_id, _origin(request))
    return success({"report": report_to_dict(report)})
