"""
Account Service

Lender-reported accounts and their payment history.

Every mutation (create, update, delete, payment append) is committed as
one unit of work and then followed by a recalculation of the owning
profile. A recalculation that cannot find the profile is reported on the
result and does not undo the mutation.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import ForbiddenError, NotFoundError, ValidationError
from ...models.actor import Actor
from ...models.db_models import (
    AccountStatus, AccountType, CreditAccountDB, CreditProfileDB, PaymentHistoryDB, PaymentStatus,
    UserDB, UserRole,
    INSTALLMENT_TYPES, derive_account_status,
)
from ..results import MutationResult
from ..scoring.coordinator import ScoreCoordinator

logger = logging.getLogger(__name__)


# Fields a lender may change after the account is reported
UPDATABLE_FIELDS = ("current_balance", "credit_limit", "close_date")


def _require_non_negative(name: str, value: Optional[float]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} must be zero or greater", {name: value})


def validate_account_terms(
    account_type: AccountType,
    current_balance: Optional[float],
    credit_limit: Optional[float],
    original_amount: Optional[float],
    open_date: Optional[datetime],
    close_date: Optional[datetime],
) -> None:
    """Conditional-field and range checks shared by create and update."""
    if current_balance is None:
        raise ValidationError("current_balance is required")
    if open_date is None:
        raise ValidationError("open_date is required")

    _require_non_negative("current_balance", current_balance)
    _require_non_negative("credit_limit", credit_limit)
    _require_non_negative("original_amount", original_amount)

    if account_type == AccountType.CREDIT_CARD and credit_limit is None:
        raise ValidationError("credit_limit is required for credit_card accounts")
    if account_type in INSTALLMENT_TYPES and original_amount is None:
        raise ValidationError(f"original_amount is required for {account_type.value} accounts")
    if close_date is not None and close_date < open_date:
        raise ValidationError("close_date cannot be before open_date")


class AccountService:
    """Lender account reporting."""

    def __init__(self, db_session: Session, clock: Optional[Callable[[], datetime]] = None,
                 coordinator: Optional[ScoreCoordinator] = None):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.coordinator = coordinator or ScoreCoordinator(db_session, clock=self.clock)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def get_account(self, account_id: str) -> CreditAccountDB:
        account = self.db.query(CreditAccountDB).filter(CreditAccountDB.id == account_id).first()
        if account is None:
            raise NotFoundError("Account not found", {"account_id": account_id})
        return account

    def get_visible_account(self, actor: Actor, account_id: str) -> CreditAccountDB:
        """
        Fetch an account for its lender, the consumer it is reported against,
        or an admin. Anyone else gets the same NotFoundError as a missing id.
        """
        account = self.get_account(account_id)
        if actor.is_admin or account.lender_id == actor.id:
            return account
        owner_id = (
            self.db.query(CreditProfileDB.user_id)
            .filter(CreditProfileDB.id == account.profile_id)
            .scalar()
        )
        if owner_id != actor.id:
            raise NotFoundError("Account not found", {"account_id": account_id})
        return account

    def list_for_lender(self, actor: Actor, account_type: Optional[AccountType] = None,
                        status: Optional[AccountStatus] = None) -> List[CreditAccountDB]:
        """Accounts the calling lender reported, newest first."""
        actor.require_role(UserRole.LENDER)
        query = self.db.query(CreditAccountDB).filter(CreditAccountDB.lender_id == actor.id)
        if account_type is not None:
            query = query.filter(CreditAccountDB.account_type == AccountType(account_type))
        accounts = query.order_by(CreditAccountDB.open_date.desc()).all()

        # Status is filtered after derivation; the stored column can lag
        if status is not None:
            now = self.clock()
            accounts = [a for a in accounts if a.current_status(now) == AccountStatus(status)]
        return accounts

    def _get_owned_account(self, actor: Actor, account_id: str) -> CreditAccountDB:
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)
        account = self.get_account(account_id)
        if actor.role == UserRole.LENDER and account.lender_id != actor.id:
            raise ForbiddenError("Account does not belong to you", {"account_id": account_id})
        return account

    def _lender_name(self, actor: Actor) -> str:
        if actor.display_name:
            return actor.display_name
        user = self.db.query(UserDB).filter(UserDB.id == actor.id).first()
        if user is not None and user.full_name:
            return user.full_name
        return actor.id

    def _refresh_status(self, account: CreditAccountDB, now: datetime) -> None:
        latest = account.latest_payment()
        account.status = derive_account_status(
            PaymentStatus(latest.status) if latest else None,
            account.close_date,
            now,
        )

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def create_account(
        self,
        actor: Actor,
        profile_id: str,
        account_type: AccountType,
        account_number: str,
        open_date: datetime,
        current_balance: float,
        credit_limit: Optional[float] = None,
        original_amount: Optional[float] = None,
        close_date: Optional[datetime] = None,
    ) -> MutationResult:
        """Report a new account against a profile."""
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)
        account_type = AccountType(account_type)
        if not account_number:
            raise ValidationError("account_number is required")

        # Conditional fields only apply to their account types
        if account_type != AccountType.CREDIT_CARD:
            credit_limit = None
        if account_type not in INSTALLMENT_TYPES:
            original_amount = None

        validate_account_terms(account_type, current_balance, credit_limit, original_amount,
                               open_date, close_date)

        now = self.clock()
        account = CreditAccountDB(
            id=str(uuid4()),
            profile_id=profile_id,
            account_type=account_type,
            lender_id=actor.id,
            lender_name=self._lender_name(actor),
            account_number=account_number,
            open_date=open_date,
            close_date=close_date,
            credit_limit=credit_limit,
            current_balance=current_balance,
            original_amount=original_amount,
            last_report_date=now,
        )
        self._refresh_status(account, now)
        self.db.add(account)
        self.db.commit()
        logger.info(f"Account {account.id} ({account_type.value}) reported on profile {profile_id}")

        outcome = self.coordinator.recalculate_after_mutation(profile_id)
        return MutationResult(account, outcome)

    def update_account(self, actor: Actor, account_id: str, changes: Dict[str, Any]) -> MutationResult:
        """Apply lender changes to balance, limit or close date."""
        account = self._get_owned_account(actor, account_id)

        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}", {"fields": unknown})

        merged = {
            "current_balance": account.current_balance,
            "credit_limit": account.credit_limit,
            "close_date": account.close_date,
        }
        merged.update(changes)
        if account.account_type != AccountType.CREDIT_CARD:
            merged["credit_limit"] = None

        validate_account_terms(
            AccountType(account.account_type),
            merged["current_balance"],
            merged["credit_limit"],
            account.original_amount,
            account.open_date,
            merged["close_date"],
        )

        now = self.clock()
        for name, value in merged.items():
            setattr(account, name, value)
        account.last_report_date = now
        self._refresh_status(account, now)
        self.db.commit()
        logger.info(f"Account {account_id} updated: {sorted(changes)}")

        outcome = self.coordinator.recalculate_after_mutation(account.profile_id)
        return MutationResult(account, outcome)

    def delete_account(self, actor: Actor, account_id: str) -> MutationResult:
        account = self._get_owned_account(actor, account_id)
        profile_id = account.profile_id

        self.db.delete(account)
        self.db.commit()
        logger.info(f"Account {account_id} deleted from profile {profile_id}")

        outcome = self.coordinator.recalculate_after_mutation(profile_id)
        return MutationResult(account_id, outcome)

    def add_payment(
        self,
        actor: Actor,
        account_id: str,
        due_date: datetime,
        amount_due: float,
        amount_paid: float,
        status: PaymentStatus,
        date_paid: Optional[datetime] = None,
    ) -> MutationResult:
        """Append a payment entry and apply it to the balance."""
        account = self._get_owned_account(actor, account_id)
        status = PaymentStatus(status)

        if due_date is None:
            raise ValidationError("due_date is required")
        if amount_due is None or amount_paid is None:
            raise ValidationError("amount_due and amount_paid are required")
        _require_non_negative("amount_due", amount_due)
        _require_non_negative("amount_paid", amount_paid)

        now = self.clock()
        account.payment_history.append(PaymentHistoryDB(
            position=len(account.payment_history),
            due_date=due_date,
            amount_due=amount_due,
            amount_paid=amount_paid,
            date_paid=date_paid,
            status=status,
            reported_at=now,
        ))

        revolving_or_installment = (
            account.account_type == AccountType.CREDIT_CARD
            or account.account_type in INSTALLMENT_TYPES
        )
        if amount_paid > 0 and revolving_or_installment:
            account.current_balance = max(0.0, account.current_balance - amount_paid)

        account.last_report_date = now
        self._refresh_status(account, now)
        self.db.commit()
        logger.info(f"Payment ({status.value}) appended to account {account_id}")

        outcome = self.coordinator.recalculate_after_mutation(account.profile_id)
        return MutationResult(account, outcome)

    def touch_report_date(self, account_id: str) -> Optional[CreditAccountDB]:
        """Mark an account as re-reported. Does not commit."""
        account = self.db.query(CreditAccountDB).filter(CreditAccountDB.id == account_id).first()
        if account is not None:
            account.last_report_date = self.clock()
        return account
