"""
Credit Account Routes

Lender account reporting. Every mutation answers with the account and the
recalculation outcome for its profile.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_actor
from ..database import get_db
from ..models.actor import Actor
from ..models.db_models import AccountStatus, AccountType, CreditAccountDB, PaymentStatus
from ..services.accounts import AccountService
from ..services.profiles import ProfileService
from .serializers import account_to_dict, success

router = APIRouter(prefix="/accounts", tags=["accounts"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class CreateAccountRequest(BaseModel):
    profile_id: str
    account_type: AccountType
    account_number: str = Field(..., min_length=1, max_length=64)
    open_date: datetime
    current_balance: float
    credit_limit: Optional[float] = Field(None, description="Required for credit_card accounts")
    original_amount: Optional[float] = Field(None, description="Required for loan accounts")
    close_date: Optional[datetime] = None


class UpdateAccountRequest(BaseModel):
    current_balance: Optional[float] = None
    credit_limit: Optional[float] = None
    close_date: Optional[datetime] = None


class PaymentRequest(BaseModel):
    due_date: datetime
    amount_due: float
    amount_paid: float
    status: PaymentStatus
    date_paid: Optional[datetime] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED, response_model=dict)
async def create_account(
    request: CreateAccountRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = AccountService(db).create_account(
        actor,
        profile_id=request.profile_id,
        account_type=request.account_type,
        account_number=request.account_number,
        open_date=request.open_date,
        current_balance=request.current_balance,
        credit_limit=request.credit_limit,
        original_amount=request.original_amount,
        close_date=request.close_date,
    )
    return success({"account": account_to_dict(result.entity)}, result)


@router.get("/mine", response_model=dict)
async def list_my_accounts(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Accounts reported against the consumer's own profile."""
    profile = ProfileService(db).get_own_profile(actor)
    accounts = (
        db.query(CreditAccountDB)
        .filter(CreditAccountDB.profile_id == profile.id)
        .order_by(CreditAccountDB.open_date)
        .all()
    )
    return success({"accounts": [account_to_dict(a) for a in accounts]})


@router.get("/lender", response_model=dict)
async def list_lender_accounts(
    account_type: Optional[AccountType] = None,
    account_status: Optional[AccountStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Accounts the calling lender has reported."""
    accounts = AccountService(db).list_for_lender(actor, account_type, account_status)
    return success({"accounts": [account_to_dict(a) for a in accounts], "count": len(accounts)})


@router.get("/{account_id}", response_model=dict)
async def get_account(
    account_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    account = AccountService(db).get_visible_account(actor, account_id)
    return success({"account": account_to_dict(account)})


@router.put("/{account_id}", response_model=dict)
async def update_account(
    account_id: str,
    request: UpdateAccountRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    changes = request.model_dump(exclude_unset=True)
    result = AccountService(db).update_account(actor, account_id, changes)
    return success({"account": account_to_dict(result.entity)}, result)


@router.delete("/{account_id}", response_model=dict)
async def delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = AccountService(db).delete_account(actor, account_id)
    return success({"account_id": result.entity}, result)


@router.post("/{account_id}/payments", status_code=status.HTTP_201_CREATED, response_model=dict)
async def add_payment(
    account_id: str,
    request: PaymentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    result = AccountService(db).add_payment(
        actor,
        account_id,
        due_date=request.due_date,
        amount_due=request.amount_due,
        amount_paid=request.amount_paid,
        status=request.status,
        date_paid=request.date_paid,
    )
    return success({"account": account_to_dict(result.entity)}, result)
