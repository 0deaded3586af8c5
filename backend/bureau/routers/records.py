"""
Public Record & Collection Routes
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_actor
from ..database import get_db
from ..models.actor import Actor
from ..models.db_models import CollectionStatus, PublicRecordStatus, PublicRecordType
from ..services.profiles import ProfileService
from ..services.records import RecordsService
from .serializers import collection_to_dict, public_record_to_dict, success

router = APIRouter(prefix="/records", tags=["records"])


class CreatePublicRecordRequest(BaseModel):
    profile_id: str
    record_type: PublicRecordType
    case_number: str = Field(..., min_length=1, max_length=100)
    court_name: str = Field(..., min_length=1, max_length=255)
    filed_date: datetime
    expires_from_record: datetime
    status: PublicRecordStatus = PublicRecordStatus.FILED
    liability_amount: Optional[float] = Field(None, description="Required for tax liens, judgments and civil suits")
    resolved_date: Optional[datetime] = None


class PublicRecordStatusRequest(BaseModel):
    status: PublicRecordStatus
    resolved_date: Optional[datetime] = None


class CreateCollectionRequest(BaseModel):
    profile_id: str
    collection_agency: str = Field(..., min_length=1, max_length=255)
    original_creditor: str = Field(..., min_length=1, max_length=255)
    original_amount: float
    current_amount: float
    collection_date: datetime
    expires_from_record: datetime
    original_account_id: Optional[str] = None
    status: CollectionStatus = CollectionStatus.ACTIVE


@router.post("/public", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_public_record(
    request: CreatePublicRecordRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = RecordsService(db).create_public_record(actor, **request.model_dump())
    return success({"public_record": public_record_to_dict(result.entity)}, result)


@router.put("/public/{record_id}/status", response_model=dict)
async def update_public_record_status(
    record_id: str,
    request: PublicRecordStatusRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = RecordsService(db).update_public_record_status(
        actor, record_id, request.status, request.resolved_date,
    )
    return success({"public_record": public_record_to_dict(result.entity)}, result)


@router.post("/collections", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_collection(
    request: CreateCollectionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    collection = RecordsService(db).create_collection(actor, **request.model_dump())
    return success({"collection": collection_to_dict(collection)})


@router.get("/mine", response_model=dict)
async def list_my_records(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    profile = ProfileService(db).get_own_profile(actor)
    service = RecordsService(db)
    return success({
        "public_records": [public_record_to_dict(r) for r in service.list_public_records(profile.id)],
        "collections": [collection_to_dict(c) for c in service.list_collections(profile.id)],
    })
