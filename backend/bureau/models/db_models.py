"""
Credit Bureau Engine - SQLAlchemy ORM Models
Relational storage for profiles, accounts, inquiries, public records,
collections, disputes and report snapshots.

Append-only logs (score history, payment history, dispute history,
report access log) are child tables with a per-parent ``position``
column. Rows are only ever inserted, never updated or deleted on their own.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, ForeignKey, Boolean,
    CheckConstraint, UniqueConstraint, Enum as SQLEnum, event,
)
from sqlalchemy.orm import relationship, object_session
from sqlalchemy.orm.base import NO_VALUE, NEVER_SET

from ..database import Base
from ..errors import ValidationError


SCORE_MIN = 300
SCORE_MAX = 850
DEFAULT_SCORE = 700


def _enum_column(enum_cls, **kwargs):
    """Store the enum's lowercase value rather than its member name."""
    return SQLEnum(
        enum_cls,
        name=enum_cls.__name__.lower(),
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
        **kwargs,
    )


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    CONSUMER = "consumer"
    LENDER = "lender"
    ADMIN = "admin"


class ProfileStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    DISPUTED = "disputed"


class AccountType(str, Enum):
    LOAN = "loan"
    CREDIT_CARD = "credit_card"
    MORTGAGE = "mortgage"
    AUTO_LOAN = "auto_loan"
    STUDENT_LOAN = "student_loan"
    UTILITY = "utility"


# Account types that must report an original principal
INSTALLMENT_TYPES = frozenset({
    AccountType.LOAN,
    AccountType.MORTGAGE,
    AccountType.AUTO_LOAN,
    AccountType.STUDENT_LOAN,
})


class AccountStatus(str, Enum):
    CURRENT = "current"
    CLOSED = "closed"
    DELINQUENT = "delinquent"
    DEFAULT = "default"
    COLLECTION = "collection"


class PaymentStatus(str, Enum):
    ON_TIME = "on_time"
    LATE_30 = "late_30"
    LATE_60 = "late_60"
    LATE_90 = "late_90"
    DEFAULT = "default"

    @property
    def is_negative(self) -> bool:
        """Late or defaulted payments count against the score."""
        return self is not PaymentStatus.ON_TIME


class InquiryType(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class InquiryPurpose(str, Enum):
    NEW_CREDIT = "new_credit"
    CREDIT_REVIEW = "credit_review"
    ACCOUNT_REVIEW = "account_review"
    EMPLOYMENT = "employment"
    INSURANCE = "insurance"
    PREQUALIFICATION = "prequalification"
    CREDIT_CHECK = "credit_check"


class PublicRecordType(str, Enum):
    BANKRUPTCY = "bankruptcy"
    TAX_LIEN = "tax_lien"
    JUDGMENT = "judgment"
    FORECLOSURE = "foreclosure"
    CIVIL_SUIT = "civil_suit"


# Record types that must state a liability amount
LIABILITY_RECORD_TYPES = frozenset({
    PublicRecordType.TAX_LIEN,
    PublicRecordType.JUDGMENT,
    PublicRecordType.CIVIL_SUIT,
})


class PublicRecordStatus(str, Enum):
    FILED = "filed"
    DISCHARGED = "discharged"
    DISMISSED = "dismissed"
    SATISFIED = "satisfied"
    VACATED = "vacated"


RESOLVED_RECORD_STATUSES = frozenset({
    PublicRecordStatus.DISCHARGED,
    PublicRecordStatus.DISMISSED,
    PublicRecordStatus.SATISFIED,
    PublicRecordStatus.VACATED,
})


class CollectionStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"
    SETTLED = "settled"
    DISPUTED = "disputed"


class DisputeReason(str, Enum):
    NOT_MINE = "not_mine"
    INCORRECT_AMOUNT = "incorrect_amount"
    PAID_DEBT = "paid_debt"
    INCORRECT_STATUS = "incorrect_status"
    DUPLICATE_ACCOUNT = "duplicate_account"
    OTHER = "other"


class DisputeStatus(str, Enum):
    PENDING = "pending"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    REJECTED = "rejected"
    CANCELED = "canceled"


OPEN_DISPUTE_STATUSES = frozenset({DisputeStatus.PENDING, DisputeStatus.INVESTIGATING})


class DisputeAction(str, Enum):
    """Actions recorded in the dispute history log."""
    CREATED = "created"
    UPDATED = "updated"
    RESPONDED = "responded"
    CANCELED = "canceled"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class ReportType(str, Enum):
    FULL = "full"
    SUMMARY = "summary"
    SPECIALIZED = "specialized"


class ReportFormat(str, Enum):
    PDF = "pdf"
    JSON = "json"
    HTML = "html"


# =============================================================================
# USERS & PROFILES
# =============================================================================

class UserDB(Base):
    """Identity record. Roles are assigned by the auth collaborator."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(_enum_column(UserRole), nullable=False, default=UserRole.CONSUMER)

    address = Column(String(500), nullable=True)
    date_of_birth = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    profile = relationship("CreditProfileDB", back_populates="user", uselist=False)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class CreditProfileDB(Base):
    """
    One credit profile per consumer.

    The score is written only by the recalculation coordinator. Every change
    to ``credit_score`` appends a ScoreHistoryDB row (see the attribute
    listener below), regardless of who performed the write.
    """
    __tablename__ = "credit_profiles"
    __table_args__ = (
        CheckConstraint(
            f"credit_score >= {SCORE_MIN} AND credit_score <= {SCORE_MAX}",
            name="ck_credit_profiles_score_range",
        ),
    )

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, unique=True, index=True)
    national_id = Column(String(64), nullable=False, unique=True, index=True)

    credit_score = Column(Integer, nullable=False, default=DEFAULT_SCORE, index=True)
    status = Column(_enum_column(ProfileStatus), nullable=False, default=ProfileStatus.ACTIVE)
    fraud_alert = Column(Boolean, nullable=False, default=False)
    last_updated = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="profile")
    score_history = relationship(
        "ScoreHistoryDB",
        back_populates="profile",
        order_by="ScoreHistoryDB.position",
        cascade="all, delete-orphan",
    )

    def append_score_history(self, score: int, calculated_at: Optional[datetime] = None):
        entry = ScoreHistoryDB(
            position=len(self.score_history),
            score=score,
            calculated_at=calculated_at or datetime.utcnow(),
        )
        self.score_history.append(entry)
        return entry


class ScoreHistoryDB(Base):
    """Append-only score log entry."""
    __tablename__ = "score_history"
    __table_args__ = (
        UniqueConstraint("profile_id", "position", name="uq_score_history_position"),
        CheckConstraint(
            f"score >= {SCORE_MIN} AND score <= {SCORE_MAX}",
            name="ck_score_history_score_range",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(String(36), ForeignKey("credit_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False)
    calculated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    profile = relationship("CreditProfileDB", back_populates="score_history")


@event.listens_for(CreditProfileDB.credit_score, "set", active_history=True, retval=True)
def _record_score_change(target, value, oldvalue, initiator):
    """Validate the score and append to history whenever it actually changes."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Credit score must be an integer, got {value!r}")
    if value < SCORE_MIN or value > SCORE_MAX:
        raise ValidationError(
            f"Credit score {value} outside {SCORE_MIN}-{SCORE_MAX}",
            {"score": value},
        )

    # Constructor assignment has no previous value; nothing changed yet
    if oldvalue is NO_VALUE or oldvalue is NEVER_SET or oldvalue is None:
        return value

    if value != oldvalue:
        # Services publish their clock on the session they write through
        session = object_session(target)
        clock = session.info.get("clock") if session is not None else None
        now = (clock or datetime.utcnow)()
        target.append_score_history(value, now)
        target.last_updated = now
    return value


# =============================================================================
# ACCOUNTS
# =============================================================================

class CreditAccountDB(Base):
    """
    Lender-reported credit instrument.

    ``profile_id`` carries no foreign key: bulk provisioning may report
    accounts before the profile row exists.
    """
    __tablename__ = "credit_accounts"

    id = Column(String(36), primary_key=True)  # UUID
    profile_id = Column(String(36), nullable=False, index=True)
    account_type = Column(_enum_column(AccountType), nullable=False)

    lender_id = Column(String(36), nullable=False, index=True)
    lender_name = Column(String(255), nullable=False)
    account_number = Column(String(64), nullable=False)

    open_date = Column(DateTime, nullable=False)
    close_date = Column(DateTime, nullable=True)

    credit_limit = Column(Float, nullable=True)      # credit cards only
    current_balance = Column(Float, nullable=False, default=0.0)
    original_amount = Column(Float, nullable=True)   # installment loans only

    status = Column(_enum_column(AccountStatus), nullable=False, default=AccountStatus.CURRENT, index=True)
    last_report_date = Column(DateTime, default=datetime.utcnow)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payment_history = relationship(
        "PaymentHistoryDB",
        back_populates="account",
        order_by="PaymentHistoryDB.position",
        cascade="all, delete-orphan",
    )

    @property
    def account_number_masked(self) -> str:
        return f"****{self.account_number[-4:]}" if self.account_number else ""

    def latest_payment(self) -> Optional["PaymentHistoryDB"]:
        return self.payment_history[-1] if self.payment_history else None

    def current_status(self, now: Optional[datetime] = None) -> AccountStatus:
        """Status as of ``now``. The stored column is only refreshed on writes."""
        latest = self.latest_payment()
        return derive_account_status(latest.status if latest else None, self.close_date, now)

    def account_age_months(self, now: Optional[datetime] = None) -> int:
        end = self.close_date or now or datetime.utcnow()
        days = abs((end - self.open_date).total_seconds()) / 86400
        return math.ceil(days / 30)

    def payment_reliability(self) -> int:
        """Percentage of on-time payments (100 with no history)."""
        if not self.payment_history:
            return 100
        on_time = sum(1 for p in self.payment_history if p.status == PaymentStatus.ON_TIME)
        return round(on_time / len(self.payment_history) * 100)

    def utilization_ratio(self) -> float:
        if self.account_type != AccountType.CREDIT_CARD or not self.credit_limit:
            return 0.0
        return round(self.current_balance / self.credit_limit, 2)


class PaymentHistoryDB(Base):
    """Append-only payment entry reported against an account."""
    __tablename__ = "payment_history"
    __table_args__ = (
        UniqueConstraint("account_id", "position", name="uq_payment_history_position"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(36), ForeignKey("credit_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    due_date = Column(DateTime, nullable=False)
    amount_due = Column(Float, nullable=False)
    amount_paid = Column(Float, nullable=False)
    date_paid = Column(DateTime, nullable=True)
    status = Column(_enum_column(PaymentStatus), nullable=False)
    reported_at = Column(DateTime, default=datetime.utcnow)

    account = relationship("CreditAccountDB", back_populates="payment_history")


# =============================================================================
# INQUIRIES, PUBLIC RECORDS, COLLECTIONS
# =============================================================================

class InquiryDB(Base):
    """Third-party access to a profile. Immutable after creation."""
    __tablename__ = "inquiries"

    id = Column(String(36), primary_key=True)  # UUID
    profile_id = Column(String(36), nullable=False, index=True)

    inquiring_entity_id = Column(String(36), nullable=False)
    inquiring_entity_name = Column(String(255), nullable=False)

    inquiry_type = Column(_enum_column(InquiryType), nullable=False)
    inquiry_purpose = Column(_enum_column(InquiryPurpose), nullable=False)
    inquiry_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or datetime.utcnow())

    def months_until_expiration(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        if self.is_expired(now):
            return 0
        days = (self.expires_at - now).total_seconds() / 86400
        return math.ceil(days / 30)


class PublicRecordDB(Base):
    """Judicial or financial filing against a profile."""
    __tablename__ = "public_records"

    id = Column(String(36), primary_key=True)  # UUID
    profile_id = Column(String(36), nullable=False, index=True)

    record_type = Column(_enum_column(PublicRecordType), nullable=False, index=True)
    case_number = Column(String(100), nullable=False)
    court_name = Column(String(255), nullable=False)
    filed_date = Column(DateTime, nullable=False, index=True)
    status = Column(_enum_column(PublicRecordStatus), nullable=False)
    resolved_date = Column(DateTime, nullable=True)
    liability_amount = Column(Float, nullable=True)
    expires_from_record = Column(DateTime, nullable=False, index=True)
    reported_by = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_from_record < (now or datetime.utcnow())

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_RECORD_STATUSES

    def impact_severity(self, now: Optional[datetime] = None) -> str:
        if self.is_expired(now) or self.is_resolved:
            return "none"
        if self.record_type == PublicRecordType.BANKRUPTCY:
            return "severe"
        if self.record_type == PublicRecordType.FORECLOSURE:
            return "high"
        if self.record_type in (PublicRecordType.TAX_LIEN, PublicRecordType.JUDGMENT):
            return "medium"
        return "low"


class CollectionDB(Base):
    """Debt placed with a collection agency. Reported, not scored."""
    __tablename__ = "collections"

    id = Column(String(36), primary_key=True)  # UUID
    profile_id = Column(String(36), nullable=False, index=True)
    original_account_id = Column(String(36), nullable=True, index=True)

    collection_agency = Column(String(255), nullable=False)
    original_creditor = Column(String(255), nullable=False)
    original_amount = Column(Float, nullable=False)
    current_amount = Column(Float, nullable=False)
    collection_date = Column(DateTime, nullable=False)
    status = Column(_enum_column(CollectionStatus), nullable=False, default=CollectionStatus.ACTIVE)
    last_activity_date = Column(DateTime, default=datetime.utcnow)
    expires_from_record = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_from_record < (now or datetime.utcnow())


# =============================================================================
# DISPUTES
# =============================================================================

class DisputeDB(Base):
    """
    Consumer challenge against one account.
    Status moves forward only; resolved/rejected/canceled are terminal.
    """
    __tablename__ = "disputes"

    id = Column(String(36), primary_key=True)  # UUID
    profile_id = Column(String(36), ForeignKey("credit_profiles.id"), nullable=False, index=True)
    account_id = Column(String(36), nullable=False, index=True)
    initiated_by = Column(String(36), nullable=False, index=True)
    lender_id = Column(String(36), nullable=False, index=True)

    reason = Column(_enum_column(DisputeReason), nullable=False, index=True)
    description = Column(Text, nullable=False)
    supporting_documents = Column(JSON, nullable=False, default=list)

    status = Column(_enum_column(DisputeStatus), nullable=False, default=DisputeStatus.PENDING, index=True)
    lender_response = Column(Text, nullable=True)
    resolution = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    affected_items = relationship(
        "DisputeAffectedItemDB",
        back_populates="dispute",
        order_by="DisputeAffectedItemDB.position",
        cascade="all, delete-orphan",
    )
    history = relationship(
        "DisputeHistoryDB",
        back_populates="dispute",
        order_by="DisputeHistoryDB.position",
        cascade="all, delete-orphan",
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DISPUTE_STATUSES

    def append_history(self, action: DisputeAction, actor_id: str, actor_role: UserRole,
                       notes: Optional[str] = None, timestamp: Optional[datetime] = None):
        entry = DisputeHistoryDB(
            position=len(self.history),
            action=action,
            actor_id=actor_id,
            actor_role=actor_role,
            notes=notes,
            created_at=timestamp or datetime.utcnow(),
        )
        self.history.append(entry)
        return entry

    def resolution_time_days(self) -> Optional[int]:
        if not self.resolved_at or not self.created_at:
            return None
        return math.ceil((self.resolved_at - self.created_at).total_seconds() / 86400)

    @property
    def resolved_items_count(self) -> int:
        return sum(1 for item in self.affected_items if item.resolved)

    @property
    def progress_percentage(self) -> int:
        if self.status == DisputeStatus.PENDING:
            return 0
        if self.status == DisputeStatus.INVESTIGATING:
            return 50
        return 100


class DisputeAffectedItemDB(Base):
    """A single field the consumer claims is wrong."""
    __tablename__ = "dispute_affected_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dispute_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    field = Column(String(100), nullable=False)
    current_value = Column(JSON, nullable=True)
    claimed_value = Column(JSON, nullable=True)
    resolved = Column(Boolean, nullable=False, default=False)

    dispute = relationship("DisputeDB", back_populates="affected_items")


class DisputeHistoryDB(Base):
    """Append-only dispute event."""
    __tablename__ = "dispute_history"
    __table_args__ = (
        UniqueConstraint("dispute_id", "position", name="uq_dispute_history_position"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    dispute_id = Column(String(36), ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    action = Column(_enum_column(DisputeAction), nullable=False)
    actor_id = Column(String(36), nullable=False)
    actor_role = Column(_enum_column(UserRole), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    dispute = relationship("DisputeDB", back_populates="history")


# =============================================================================
# REPORT SNAPSHOTS
# =============================================================================

class ReportDB(Base):
    """
    Frozen snapshot of a profile's bureau data.

    ``report_data`` is a plain JSON document built at generation time.
    Reads append to ``access_log`` and never touch the snapshot.
    """
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True)  # UUID
    profile_id = Column(String(36), ForeignKey("credit_profiles.id"), nullable=False, index=True)
    requested_by = Column(String(36), nullable=False, index=True)

    generated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    report_type = Column(_enum_column(ReportType), nullable=False, default=ReportType.FULL)
    report_format = Column(_enum_column(ReportFormat), nullable=False, default=ReportFormat.JSON)
    report_data = Column(JSON, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    access_token = Column(String(128), nullable=False, unique=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    access_log = relationship(
        "ReportAccessLogDB",
        back_populates="report",
        order_by="ReportAccessLogDB.position",
        cascade="all, delete-orphan",
    )

    def record_access(self, user_id: str, ip_address: Optional[str] = None,
                      accessed_at: Optional[datetime] = None):
        entry = ReportAccessLogDB(
            position=len(self.access_log),
            user_id=user_id,
            ip_address=ip_address,
            accessed_at=accessed_at or datetime.utcnow(),
        )
        self.access_log.append(entry)
        return entry

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or datetime.utcnow())

    def days_until_expiration(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        if self.is_expired(now):
            return 0
        return math.ceil((self.expires_at - now).total_seconds() / 86400)

    @property
    def access_count(self) -> int:
        return len(self.access_log)


class ReportAccessLogDB(Base):
    """Append-only report access entry."""
    __tablename__ = "report_access_log"
    __table_args__ = (
        UniqueConstraint("report_id", "position", name="uq_report_access_log_position"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    user_id = Column(String(36), nullable=False)
    accessed_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    ip_address = Column(String(64), nullable=True)

    report = relationship("ReportDB", back_populates="access_log")


def derive_account_status(latest_payment_status: Optional[PaymentStatus],
                          close_date: Optional[datetime],
                          now: Optional[datetime] = None) -> AccountStatus:
    """Account status as a function of the latest payment entry and close date."""
    now = now or datetime.utcnow()
    if latest_payment_status == PaymentStatus.DEFAULT:
        return AccountStatus.DEFAULT
    if latest_payment_status == PaymentStatus.LATE_90:
        return AccountStatus.DELINQUENT
    if close_date is not None and close_date <= now:
        return AccountStatus.CLOSED
    return AccountStatus.CURRENT
