"""
Credit Profile Routes

Consumer self-service (view, freeze, fraud alert, score history),
provisioning, on-demand recalculation, and lender lookup.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_actor, require_admin
from ..database import get_db
from ..models.actor import Actor
from ..models.db_models import InquiryPurpose, UserRole
from ..services.profiles import ProfileService
from .serializers import profile_to_dict, success

router = APIRouter(prefix="/profiles", tags=["profiles"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateProfileRequest(BaseModel):
    user_id: str = Field(..., description="Consumer the profile belongs to")
    national_id: str = Field(..., min_length=1, max_length=64)


class FraudAlertRequest(BaseModel):
    enabled: bool


class RecalculateRequest(BaseModel):
    profile_id: Optional[str] = Field(None, description="Required for admins; consumers recalculate their own")


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_profile(
    request: CreateProfileRequest,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    profile = ProfileService(db).create_profile(request.user_id, request.national_id)
    return success({"profile": profile_to_dict(profile, include_history=True)})


@router.get("/me", response_model=dict)
async def get_my_profile(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    profile = ProfileService(db).get_own_profile(actor)
    return success({"profile": profile_to_dict(profile)})


@router.get("/me/score-history", response_model=dict)
async def get_score_history(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    service = ProfileService(db)
    profile = service.get_own_profile(actor)
    entries = service.score_history(profile, start_date, end_date)
    return success({
        "score_history": [
            {"score": e.score, "calculated_at": e.calculated_at.isoformat()} for e in entries
        ],
    })


@router.post("/me/freeze", response_model=dict)
async def freeze_profile(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    profile = ProfileService(db).freeze(actor)
    return success({"profile": profile_to_dict(profile)})


@router.post("/me/unfreeze", response_model=dict)
async def unfreeze_profile(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    profile = ProfileService(db).unfreeze(actor)
    return success({"profile": profile_to_dict(profile)})


@router.put("/me/fraud-alert", response_model=dict)
async def set_fraud_alert(
    request: FraudAlertRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    profile = ProfileService(db).set_fraud_alert(actor, request.enabled)
    return success({"profile": profile_to_dict(profile)})


@router.post("/recalculate", response_model=dict)
async def recalculate(
    request: RecalculateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    profile = ProfileService(db).recalculate(actor, request.profile_id)
    return success({"profile": profile_to_dict(profile)})


@router.get("/national-id/{national_id}", response_model=dict)
async def get_profile_by_national_id(
    national_id: str,
    purpose: InquiryPurpose = Query(InquiryPurpose.CREDIT_CHECK),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Lookup by national identifier; recorded like a lookup by id."""
    profile = ProfileService(db).view_by_national_id(actor, national_id, purpose)
    return success({"profile": profile_to_dict(profile, include_history=actor.role == UserRole.ADMIN)})


@router.get("/{profile_id}", response_model=dict)
async def get_profile(
    profile_id: str,
    purpose: InquiryPurpose = Query(InquiryPurpose.CREDIT_CHECK),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Lender or admin lookup. A lender lookup is recorded as a hard inquiry."""
    service = ProfileService(db)
    profile = service.view_as_lender(actor, profile_id, purpose)
    return success({"profile": profile_to_dict(profile, include_history=actor.role == UserRole.ADMIN)})
