"""
User Routes

Administrative user provisioning. Credentials live with the identity
provider; users here carry role and personal details only.
"""
from datetime import datetime
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_actor, require_admin
from ..database import get_db
from ..errors import ConflictError, NotFoundError
from ..models.actor import Actor
from ..models.db_models import UserDB, UserRole
from .serializers import success, user_to_dict

router = APIRouter(prefix="/users", tags=["users"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateUserRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role: UserRole = UserRole.CONSUMER
    address: Optional[str] = Field(None, max_length=500)
    date_of_birth: Optional[datetime] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_user(
    request: CreateUserRequest,
    db: Session = Depends(get_db),
    admin: Actor = Depends(require_admin),
):
    """Create a consumer, lender or admin identity."""
    email = request.email.lower()
    if db.query(UserDB).filter(UserDB.email == email).first():
        raise ConflictError("Email already registered", details={"email": email})

    user = UserDB(
        id=str(uuid4()),
        email=email,
        first_name=request.first_name,
        last_name=request.last_name,
        role=request.role,
        address=request.address,
        date_of_birth=request.date_of_birth,
    )
    db.add(user)
    db.commit()
    return success({"user": user_to_dict(user)})


@router.get("/me", response_model=dict)
async def get_me(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    user = db.query(UserDB).filter(UserDB.id == actor.id).first()
    if user is None:
        raise NotFoundError("User not found")
    return success({"user": user_to_dict(user)})
