"""
Bureau Statistics

Read-only aggregates over profiles, disputes, inquiries, accounts and
payment history for the admin dashboard. Every figure is computed from
stored rows at request time; nothing here is cached or written back.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import case, extract, func
from sqlalchemy.orm import Session

from ...models.db_models import (
    CreditAccountDB, CreditProfileDB, DisputeDB, DisputeReason, DisputeStatus,
    InquiryDB, InquiryPurpose, InquiryType, PaymentHistoryDB, PaymentStatus, ProfileStatus,
    ScoreHistoryDB, OPEN_DISPUTE_STATUSES,
)
from ..scoring.engine import SCORE_CATEGORIES

logger = logging.getLogger(__name__)


# Lower bounds of the score distribution buckets; the last value is the
# exclusive upper bound of the top bucket
SCORE_BUCKET_BOUNDS = (300, 500, 600, 670, 740, 800, 851)
RECENT_DISPUTE_DAYS = 7
LATE_PAYMENT_STATUSES = (PaymentStatus.LATE_30, PaymentStatus.LATE_60, PaymentStatus.LATE_90)


def _key(value: Any) -> str:
    if isinstance(value, Enum):
        return value.value
    return str(value) if value is not None else "unknown"


def _counts(rows, members) -> Dict[str, int]:
    """Group-by rows as a dict keyed by enum value, zero-filled for every member."""
    counts = {m.value: 0 for m in members}
    for value, count in rows:
        counts[_key(value)] = count
    return counts


def _percentage(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total else 0.0


def _monthly(rows) -> List[Dict[str, Any]]:
    return [
        {"year": int(year), "month": int(month), "count": count}
        for year, month, count in rows
    ]


class StatsService:
    """Dashboard aggregates."""

    def __init__(self, db_session: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db_session
        self.clock = clock or datetime.utcnow

    def _by_month(self, date_column) -> List[Dict[str, Any]]:
        year = extract("year", date_column)
        month = extract("month", date_column)
        rows = self.db.query(year, month, func.count()).group_by(year, month).order_by(year, month).all()
        return _monthly(rows)

    # =========================================================================
    # PROFILES
    # =========================================================================

    def credit_score_stats(self) -> Dict[str, Any]:
        """Average score, bucket distribution, category counts and monthly trend."""
        score = CreditProfileDB.credit_score
        average, total = self.db.query(func.avg(score), func.count(CreditProfileDB.id)).first()
        logger.debug(f"Computing score statistics over {total or 0} profiles")

        bounds = list(zip(SCORE_BUCKET_BOUNDS, SCORE_BUCKET_BOUNDS[1:]))
        # Grouped by label so the bound literals are not repeated in GROUP BY
        bucket = case(
            *[((score >= low) & (score < high), low) for low, high in bounds],
            else_=None,
        ).label("bucket")
        bucket_rows = dict(self.db.query(bucket, func.count()).group_by("bucket").all())
        distribution = [
            {"min": low, "max": high - 1, "count": bucket_rows.get(low, 0)}
            for low, high in bounds
        ]

        category = case(
            *[(score >= floor, label) for floor, label in SCORE_CATEGORIES],
            else_="Poor",
        ).label("category")
        category_rows = dict(self.db.query(category, func.count()).group_by("category").all())
        categories = {
            label: category_rows.get(label, 0)
            for label in [label for _, label in SCORE_CATEGORIES] + ["Poor"]
        }

        year = extract("year", ScoreHistoryDB.calculated_at)
        month = extract("month", ScoreHistoryDB.calculated_at)
        trend_rows = (
            self.db.query(year, month, func.avg(ScoreHistoryDB.score))
            .group_by(year, month)
            .order_by(year, month)
            .all()
        )

        return {
            "total_profiles": total or 0,
            "average_score": round(float(average), 1) if average is not None else None,
            "score_distribution": distribution,
            "score_categories": categories,
            "score_trend": [
                {"year": int(y), "month": int(m), "average_score": round(float(avg), 1)}
                for y, m, avg in trend_rows
            ],
        }

    def profile_status_stats(self) -> Dict[str, Any]:
        status_rows = (
            self.db.query(CreditProfileDB.status, func.count(CreditProfileDB.id))
            .group_by(CreditProfileDB.status)
            .all()
        )
        alert_rows = (
            self.db.query(CreditProfileDB.fraud_alert, func.count(CreditProfileDB.id))
            .group_by(CreditProfileDB.fraud_alert)
            .all()
        )
        alerts = {"with_alert": 0, "without_alert": 0}
        for flagged, count in alert_rows:
            alerts["with_alert" if flagged else "without_alert"] += count

        return {
            "status_distribution": _counts(status_rows, ProfileStatus),
            "fraud_alert_distribution": alerts,
        }

    # =========================================================================
    # DISPUTES
    # =========================================================================

    def dispute_stats(self) -> Dict[str, Any]:
        status_rows = (
            self.db.query(DisputeDB.status, func.count(DisputeDB.id))
            .group_by(DisputeDB.status)
            .all()
        )
        by_status = _counts(status_rows, DisputeStatus)
        reason_rows = (
            self.db.query(DisputeDB.reason, func.count(DisputeDB.id))
            .group_by(DisputeDB.reason)
            .all()
        )

        since = self.clock() - timedelta(days=RECENT_DISPUTE_DAYS)
        recent = self.db.query(func.count(DisputeDB.id)).filter(DisputeDB.created_at >= since).scalar() or 0

        closed = (
            self.db.query(DisputeDB)
            .filter(DisputeDB.status.in_([DisputeStatus.RESOLVED, DisputeStatus.REJECTED]))
            .all()
        )
        durations = [d.resolution_time_days() for d in closed if d.resolution_time_days() is not None]

        return {
            "total_disputes": sum(by_status.values()),
            "open_disputes": sum(by_status[s.value] for s in OPEN_DISPUTE_STATUSES),
            "resolved_disputes": by_status[DisputeStatus.RESOLVED.value],
            "rejected_disputes": by_status[DisputeStatus.REJECTED.value],
            "canceled_disputes": by_status[DisputeStatus.CANCELED.value],
            "recent_disputes": recent,
            "average_resolution_days": round(sum(durations) / len(durations), 1) if durations else None,
            "status_distribution": by_status,
            "reason_distribution": _counts(reason_rows, DisputeReason),
            "monthly_disputes": self._by_month(DisputeDB.created_at),
        }

    # =========================================================================
    # INQUIRIES
    # =========================================================================

    def inquiry_stats(self) -> Dict[str, Any]:
        type_rows = (
            self.db.query(InquiryDB.inquiry_type, func.count(InquiryDB.id))
            .group_by(InquiryDB.inquiry_type)
            .all()
        )
        purpose_rows = (
            self.db.query(InquiryDB.inquiry_purpose, func.count(InquiryDB.id))
            .group_by(InquiryDB.inquiry_purpose)
            .all()
        )
        return {
            "by_type": _counts(type_rows, InquiryType),
            "by_purpose": _counts(purpose_rows, InquiryPurpose),
            "by_month": self._by_month(InquiryDB.inquiry_date),
        }

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def account_type_stats(self) -> List[Dict[str, Any]]:
        """Count and balances per account type, most common first."""
        count = func.count(CreditAccountDB.id)
        rows = (
            self.db.query(
                CreditAccountDB.account_type,
                count,
                func.sum(CreditAccountDB.current_balance),
                func.avg(CreditAccountDB.current_balance),
            )
            .group_by(CreditAccountDB.account_type)
            .order_by(count.desc())
            .all()
        )
        return [
            {
                "account_type": _key(account_type),
                "count": n,
                "total_balance": round(float(total or 0), 2),
                "average_balance": round(float(avg or 0), 2),
            }
            for account_type, n, total, avg in rows
        ]

    def payment_history_stats(self) -> Dict[str, Any]:
        """On-time / late / default totals and a monthly breakdown by due date."""
        status_rows = (
            self.db.query(PaymentHistoryDB.status, func.count(PaymentHistoryDB.id))
            .group_by(PaymentHistoryDB.status)
            .all()
        )
        by_status = _counts(status_rows, PaymentStatus)

        total = sum(by_status.values())
        on_time = by_status[PaymentStatus.ON_TIME.value]
        late = sum(by_status[s.value] for s in LATE_PAYMENT_STATUSES)
        defaulted = by_status[PaymentStatus.DEFAULT.value]

        year = extract("year", PaymentHistoryDB.due_date)
        month = extract("month", PaymentHistoryDB.due_date)
        monthly_rows = (
            self.db.query(year, month, PaymentHistoryDB.status, func.count(PaymentHistoryDB.id))
            .group_by(year, month, PaymentHistoryDB.status)
            .order_by(year, month, PaymentHistoryDB.status)
            .all()
        )

        return {
            "payment_stats": {
                "total_payments": total,
                "on_time_payments": on_time,
                "late_payments": late,
                "defaulted_payments": defaulted,
                "on_time_percentage": _percentage(on_time, total),
                "late_percentage": _percentage(late, total),
                "default_percentage": _percentage(defaulted, total),
            },
            "monthly_stats": [
                {"year": int(y), "month": int(m), "status": _key(s), "count": n}
                for y, m, s, n in monthly_rows
            ],
        }
