"""
Scoring Engine

Deterministic, rule-based point system. Every run starts from the same
base of 700 and re-derives the score from the full current record set;
the prior score never feeds into the result.

Adjustments, in order:
1. Payment history   -15 per late/defaulted payment entry (uncapped)
2. Utilization       open credit cards only: +50 / +30 / 0 / -30 / -50
3. History length    oldest open date: +40 / +30 / +20 / +10 / 0
4. Hard inquiries    -5 per hard inquiry in the trailing 12 months
5. Public records    -100 per bankruptcy not yet discharged
6. Clamp to 300-850
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from ...models.db_models import (
    AccountStatus, AccountType, InquiryType, PaymentStatus, PublicRecordStatus,
    PublicRecordType, SCORE_MAX, SCORE_MIN, derive_account_status,
)


# =============================================================================
# SCORING CONSTANTS
# =============================================================================

BASE_SCORE = 700

LATE_PAYMENT_PENALTY = 15
HARD_INQUIRY_PENALTY = 5
BANKRUPTCY_PENALTY = 100

# (exclusive upper bound on utilization ratio, points); ratio at or above the
# last bound falls through to UTILIZATION_MAXED_POINTS
UTILIZATION_BANDS: Tuple[Tuple[Decimal, int], ...] = (
    (Decimal("0.1"), 50),
    (Decimal("0.3"), 30),
    (Decimal("0.5"), 0),
    (Decimal("0.7"), -30),
)
UTILIZATION_MAXED_POINTS = -50

# (exclusive lower bound in years, points), checked from longest down
HISTORY_LENGTH_BANDS: Tuple[Tuple[int, int], ...] = (
    (7, 40),
    (5, 30),
    (3, 20),
    (1, 10),
)

DAYS_PER_YEAR = 365
DAYS_PER_MONTH = 30
INQUIRY_LOOKBACK_MONTHS = 12

SCORE_CATEGORIES: Tuple[Tuple[int, str], ...] = (
    (800, "Excellent"),
    (740, "Very Good"),
    (670, "Good"),
    (580, "Fair"),
)


# =============================================================================
# SCORING INPUTS
# =============================================================================

def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


@dataclass(frozen=True)
class AccountFacts:
    """Score-relevant view of one account, detached from the ORM row."""
    account_type: AccountType
    status: AccountStatus
    open_date: datetime
    current_balance: Decimal = Decimal("0")
    credit_limit: Optional[Decimal] = None
    payment_statuses: Tuple[PaymentStatus, ...] = ()

    @classmethod
    def from_account(cls, account, now: Optional[datetime] = None) -> "AccountFacts":
        statuses = tuple(PaymentStatus(p.status) for p in account.payment_history)
        latest = statuses[-1] if statuses else None
        return cls(
            account_type=AccountType(account.account_type),
            # Re-derived so a close date that has since passed is honoured
            status=derive_account_status(latest, account.close_date, now),
            open_date=account.open_date,
            current_balance=_to_decimal(account.current_balance),
            credit_limit=_to_decimal(account.credit_limit) if account.credit_limit is not None else None,
            payment_statuses=statuses,
        )


@dataclass(frozen=True)
class InquiryFacts:
    inquiry_type: InquiryType
    inquiry_date: datetime

    @classmethod
    def from_inquiry(cls, inquiry) -> "InquiryFacts":
        return cls(InquiryType(inquiry.inquiry_type), inquiry.inquiry_date)


@dataclass(frozen=True)
class PublicRecordFacts:
    record_type: PublicRecordType
    status: PublicRecordStatus

    @classmethod
    def from_record(cls, record) -> "PublicRecordFacts":
        return cls(PublicRecordType(record.record_type), PublicRecordStatus(record.status))


# =============================================================================
# SCORING RESULT
# =============================================================================

@dataclass
class ScoreBreakdown:
    """Per-factor adjustments that produced a score."""
    base: int = BASE_SCORE
    payment_history: int = 0
    utilization: int = 0
    history_length: int = 0
    inquiries: int = 0
    public_records: int = 0

    late_payment_count: int = 0
    utilization_ratio: Optional[Decimal] = None
    history_years: Optional[float] = None
    recent_hard_inquiries: int = 0
    open_bankruptcies: int = 0

    notes: List[str] = field(default_factory=list)

    @property
    def raw_score(self) -> int:
        return (
            self.base
            + self.payment_history
            + self.utilization
            + self.history_length
            + self.inquiries
            + self.public_records
        )

    @property
    def score(self) -> int:
        return clamp_score(self.raw_score)

    def to_dict(self) -> dict:
        return {
            "base": self.base,
            "payment_history": self.payment_history,
            "utilization": self.utilization,
            "history_length": self.history_length,
            "inquiries": self.inquiries,
            "public_records": self.public_records,
            "raw_score": self.raw_score,
            "score": self.score,
            "late_payment_count": self.late_payment_count,
            "utilization_ratio": str(self.utilization_ratio) if self.utilization_ratio is not None else None,
            "history_years": self.history_years,
            "recent_hard_inquiries": self.recent_hard_inquiries,
            "open_bankruptcies": self.open_bankruptcies,
        }


# =============================================================================
# FACTOR RULES
# =============================================================================

def clamp_score(score: int) -> int:
    return min(SCORE_MAX, max(SCORE_MIN, score))


def utilization_points(ratio: Optional[Decimal]) -> int:
    """Points for a utilization ratio; None means fully used (zero limit)."""
    if ratio is None:
        return UTILIZATION_MAXED_POINTS
    for upper, points in UTILIZATION_BANDS:
        if ratio < upper:
            return points
    return UTILIZATION_MAXED_POINTS


def history_length_points(years: float) -> int:
    for lower, points in HISTORY_LENGTH_BANDS:
        if years > lower:
            return points
    return 0


def is_recent_hard_inquiry(inquiry: InquiryFacts, now: datetime) -> bool:
    if inquiry.inquiry_type != InquiryType.HARD:
        return False
    months_ago = (now - inquiry.inquiry_date) / timedelta(days=DAYS_PER_MONTH)
    return months_ago <= INQUIRY_LOOKBACK_MONTHS


def is_open_bankruptcy(record: PublicRecordFacts) -> bool:
    return (
        record.record_type == PublicRecordType.BANKRUPTCY
        and record.status != PublicRecordStatus.DISCHARGED
    )


def score_category(score: int) -> str:
    for floor, label in SCORE_CATEGORIES:
        if score >= floor:
            return label
    return "Poor"


# =============================================================================
# ENGINE
# =============================================================================

def score_breakdown(
    accounts: Sequence[AccountFacts],
    inquiries: Iterable[InquiryFacts] = (),
    public_records: Iterable[PublicRecordFacts] = (),
    now: Optional[datetime] = None,
) -> ScoreBreakdown:
    """Apply every scoring rule and return the itemised result."""
    now = now or datetime.utcnow()
    result = ScoreBreakdown()

    if accounts:
        # 1. Payment history
        result.late_payment_count = sum(
            1
            for account in accounts
            for status in account.payment_statuses
            if status.is_negative
        )
        result.payment_history = -LATE_PAYMENT_PENALTY * result.late_payment_count

        # 2. Utilization across open credit cards
        open_cards = [
            a for a in accounts
            if a.account_type == AccountType.CREDIT_CARD and a.status != AccountStatus.CLOSED
        ]
        if open_cards:
            total_limit = sum((a.credit_limit or Decimal("0") for a in open_cards), Decimal("0"))
            total_balance = sum((a.current_balance for a in open_cards), Decimal("0"))
            if total_limit > 0:
                result.utilization_ratio = total_balance / total_limit
            else:
                result.notes.append("open credit cards report no combined limit")
            result.utilization = utilization_points(result.utilization_ratio)

        # 3. Length of credit history
        oldest = min(a.open_date for a in accounts)
        result.history_years = (now - oldest) / timedelta(days=DAYS_PER_YEAR)
        result.history_length = history_length_points(result.history_years)

    # 4. Hard inquiries in the trailing 12 months
    result.recent_hard_inquiries = sum(1 for i in inquiries if is_recent_hard_inquiry(i, now))
    result.inquiries = -HARD_INQUIRY_PENALTY * result.recent_hard_inquiries

    # 5. Bankruptcies not yet discharged
    result.open_bankruptcies = sum(1 for r in public_records if is_open_bankruptcy(r))
    result.public_records = -BANKRUPTCY_PENALTY * result.open_bankruptcies

    return result


def compute_score(
    prior_score: Optional[int],
    accounts: Sequence[AccountFacts],
    inquiries: Iterable[InquiryFacts] = (),
    public_records: Iterable[PublicRecordFacts] = (),
    now: Optional[datetime] = None,
) -> int:
    """
    Compute a profile's score from its full record set.

    ``prior_score`` is accepted for the caller's convenience and ignored:
    the result depends only on the records, so repeated calls over the
    same snapshot always agree.
    """
    return score_breakdown(accounts, inquiries, public_records, now).score
