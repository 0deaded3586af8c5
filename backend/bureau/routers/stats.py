"""
Statistics Routes

Admin dashboard aggregates. All figures are computed from stored rows on
each request.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models.actor import Actor
from ..services.stats import StatsService
from .serializers import success

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/scores", response_model=dict)
async def get_credit_score_stats(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    return success({"stats": StatsService(db).credit_score_stats()})


@router.get("/profiles", response_model=dict)
async def get_profile_status_stats(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    return success({"stats": StatsService(db).profile_status_stats()})


@router.get("/disputes", response_model=dict)
async def get_dispute_stats(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    return success({"stats": StatsService(db).dispute_stats()})


@router.get("/inquiries", response_model=dict)
async def get_inquiry_stats(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    return success({"stats": StatsService(db).inquiry_stats()})


@router.get("/accounts/types", response_model=dict)
async def get_account_type_stats(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    """Account count and balances per type, most common first."""
    return success({"stats": StatsService(db).account_type_stats()})


@router.get("/accounts/payments", response_model=dict)
async def get_payment_history_stats(
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    return success({"stats": StatsService(db).payment_history_stats()})
