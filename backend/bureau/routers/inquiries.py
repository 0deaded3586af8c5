"""
Inquiry Routes
"""
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_actor
from ..database import get_db
from ..models.actor import Actor
from ..models.db_models import InquiryPurpose, InquiryType
from ..services.inquiries import InquiryService
from ..services.profiles import ProfileService
from .serializers import inquiry_to_dict, success

router = APIRouter(prefix="/inquiries", tags=["inquiries"])


class CreateInquiryRequest(BaseModel):
    profile_id: str
    inquiry_type: InquiryType
    inquiry_purpose: InquiryPurpose


@router.post("", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_inquiry(
    request: CreateInquiryRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = InquiryService(db).create_inquiry(
        actor, request.profile_id, request.inquiry_type, request.inquiry_purpose,
    )
    return success({"inquiry": inquiry_to_dict(result.entity)}, result)


@router.get("/mine", response_model=dict)
async def list_my_inquiries(
    months: int = Query(12, ge=1, le=120),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Inquiries on the consumer's own profile within the trailing window."""
    profile = ProfileService(db).get_own_profile(actor)
    inquiries = InquiryService(db).recent_inquiries(profile.id, months)
    return success({"inquiries": [inquiry_to_dict(i) for i in inquiries]})


@router.get("/lender", response_model=dict)
async def list_lender_inquiries(
    inquiry_type: Optional[InquiryType] = None,
    inquiry_purpose: Optional[InquiryPurpose] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Inquiries the calling lender has made, newest first."""
    inquiries, total = InquiryService(db).list_for_lender(
        actor, inquiry_type, inquiry_purpose, start_date, end_date, page, page_size,
    )
    return {
        "status": "success",
        "results": len(inquiries),
        "pagination": {"page": page, "pages": math.ceil(total / page_size), "count": total},
        "data": {"inquiries": [inquiry_to_dict(i) for i in inquiries]},
    }


@router.delete("/{inquiry_id}", response_model=dict)
async def delete_inquiry(
    inquiry_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = InquiryService(db).delete_inquiry(actor, inquiry_id)
    return success({"inquiry_id": result.entity}, result)
