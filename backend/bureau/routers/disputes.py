"""
Dispute Routes

Consumers open and maintain disputes, lenders respond, admins decide.
All status changes go through a single transition endpoint.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_actor, require_admin
from ..database import get_db
from ..models.actor import Actor
from ..models.db_models import DisputeReason, DisputeStatus, UserRole
from ..services.disputes import DisputeService
from .serializers import dispute_to_dict, success

router = APIRouter(prefix="/disputes", tags=["disputes"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class AffectedItem(BaseModel):
    field: str = Field(..., min_length=1, max_length=100)
    current_value: Optional[Any] = None
    claimed_value: Optional[Any] = None


class CreateDisputeRequest(BaseModel):
    reason: DisputeReason
    description: str = Field(..., description="At least 10 characters")
    affected_items: List[AffectedItem] = Field(default_factory=list)
    supporting_documents: List[str] = Field(default_factory=list)


class TransitionRequest(BaseModel):
    """Payload for update / respond / cancel / resolve; fields apply per action."""
    description: Optional[str] = None
    supporting_documents: Optional[List[str]] = None
    affected_items: Optional[List[AffectedItem]] = None
    response: Optional[str] = None
    status: Optional[DisputeStatus] = None
    resolution: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        if self.status is not None:
            payload["status"] = self.status.value
        return payload


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/account/{account_id}", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_dispute(
    account_id: str,
    request: CreateDisputeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    actor.require_role(UserRole.CONSUMER)
    dispute = DisputeService(db).create_dispute(
        account_id,
        actor.id,
        request.reason,
        request.description,
        [item.model_dump() for item in request.affected_items],
        request.supporting_documents,
    )
    return success({"dispute": dispute_to_dict(dispute)})


@router.get("", response_model=dict)
async def list_disputes(
    status_filter: Optional[DisputeStatus] = Query(None, alias="status"),
    reason: Optional[DisputeReason] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Consumers see their own disputes, lenders those on their accounts, admins all."""
    service = DisputeService(db)
    if actor.role == UserRole.CONSUMER:
        disputes = service.list_for_consumer(actor.id)
    elif actor.role == UserRole.LENDER:
        disputes = service.list_for_lender(actor.id)
    else:
        disputes = service.list_all(status_filter, reason)
    return success({"disputes": [dispute_to_dict(d) for d in disputes]})


@router.get("/{dispute_id}", response_model=dict)
async def get_dispute(
    dispute_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    dispute = DisputeService(db).get_dispute_for(dispute_id, actor.id, actor.role)
    return success({"dispute": dispute_to_dict(dispute)})


@router.post("/{dispute_id}/{action}", response_model=dict)
async def transition_dispute(
    dispute_id: str,
    action: str,
    request: Optional[TransitionRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Apply update, respond, cancel or resolve."""
    payload = request.to_payload() if request else {}
    result = DisputeService(db).transition_dispute(dispute_id, actor.id, actor.role, action, payload)
    return success({"dispute": dispute_to_dict(result.entity)}, result)


@router.delete("/{dispute_id}", response_model=dict)
async def delete_dispute(
    dispute_id: str,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    result = DisputeService(db).delete_dispute(dispute_id, admin.id, admin.role)
    return success({"dispute_id": result.entity}, result)
