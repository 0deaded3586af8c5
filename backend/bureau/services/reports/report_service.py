"""
Report Snapshot Service

A report is a frozen, JSON-safe copy of a profile's bureau data taken at
generation time. Later changes to accounts, inquiries or records never
reach an existing report; reading one only appends to its access log.

Each report carries a random hex access token. The unique constraint on
``reports.access_token`` is the final arbiter: a colliding token is
regenerated, up to REPORT_TOKEN_MAX_ATTEMPTS times.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import REPORT_TOKEN_BYTES, REPORT_TOKEN_MAX_ATTEMPTS, REPORT_TTL_DAYS
from ...errors import ConflictError, ExpiredError, ForbiddenError, NotFoundError
from ...models.actor import Actor
from ...models.db_models import (
    CollectionDB, CreditAccountDB, CreditProfileDB, InquiryDB, InquiryPurpose, InquiryType,
    ProfileStatus, PublicRecordDB, ReportDB, ReportFormat, ReportType, UserDB, UserRole,
)
from ..inquiries.inquiry_service import InquiryService
from ..results import MutationResult
from ..scoring.coordinator import ScoreCoordinator
from ..scoring.engine import score_category

logger = logging.getLogger(__name__)


FULL_INQUIRY_LIMIT = 25
SUMMARY_INQUIRY_LIMIT = 5
LIMITED_PAYMENT_HISTORY = 6


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _value(enum_or_str) -> Optional[str]:
    if enum_or_str is None:
        return None
    return getattr(enum_or_str, "value", enum_or_str)


def default_token_factory() -> str:
    return secrets.token_hex(REPORT_TOKEN_BYTES)


class ReportService:
    """Report generation, listing and token access."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[Callable[[], datetime]] = None,
        coordinator: Optional[ScoreCoordinator] = None,
        token_factory: Optional[Callable[[], str]] = None,
    ):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.coordinator = coordinator or ScoreCoordinator(db_session, clock=self.clock)
        self.token_factory = token_factory or default_token_factory

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def build_snapshot(self, profile: CreditProfileDB, report_type: ReportType,
                       for_lender: bool = False) -> Dict[str, Any]:
        """Copy everything a report shows into plain JSON values."""
        limited = for_lender or report_type != ReportType.FULL
        inquiry_limit = SUMMARY_INQUIRY_LIMIT if (for_lender or report_type == ReportType.SUMMARY) \
            else FULL_INQUIRY_LIMIT

        now = self.clock()
        user = self.db.query(UserDB).filter(UserDB.id == profile.user_id).first()
        accounts = (
            self.db.query(CreditAccountDB)
            .filter(CreditAccountDB.profile_id == profile.id)
            .order_by(CreditAccountDB.open_date)
            .all()
        )
        inquiries = (
            self.db.query(InquiryDB)
            .filter(InquiryDB.profile_id == profile.id, InquiryDB.inquiry_type == InquiryType.HARD)
            .order_by(InquiryDB.inquiry_date.desc())
            .limit(inquiry_limit)
            .all()
        )
        records = self.db.query(PublicRecordDB).filter(PublicRecordDB.profile_id == profile.id).all()
        collections = self.db.query(CollectionDB).filter(CollectionDB.profile_id == profile.id).all()

        def payment_entries(account):
            entries = list(account.payment_history)
            if limited:
                entries = entries[:LIMITED_PAYMENT_HISTORY]
            return [
                {
                    "due_date": _iso(p.due_date),
                    "amount_due": p.amount_due,
                    "amount_paid": p.amount_paid,
                    "date_paid": _iso(p.date_paid),
                    "status": _value(p.status),
                }
                for p in entries
            ]

        return {
            "personal_info": {
                "name": user.full_name if user else None,
                "address": user.address if user else None,
                "date_of_birth": _iso(user.date_of_birth) if user else None,
                "national_id": profile.national_id,
            },
            "credit_score": profile.credit_score,
            "score_category": score_category(profile.credit_score),
            "accounts": [
                {
                    "lender_name": a.lender_name,
                    "account_type": _value(a.account_type),
                    "account_status": _value(a.current_status(now)),
                    "account_number": a.account_number_masked,
                    "open_date": _iso(a.open_date),
                    "last_report_date": _iso(a.last_report_date),
                    "current_balance": a.current_balance,
                    "credit_limit": a.credit_limit,
                    "payment_history": payment_entries(a),
                }
                for a in accounts
            ],
            "inquiries": [
                {
                    "inquiring_entity": i.inquiring_entity_name,
                    "inquiry_type": _value(i.inquiry_type),
                    "inquiry_purpose": _value(i.inquiry_purpose),
                    "inquiry_date": _iso(i.inquiry_date),
                }
                for i in inquiries
            ],
            "public_records": [
                {
                    "record_type": _value(r.record_type),
                    "court_name": r.court_name,
                    "filed_date": _iso(r.filed_date),
                    "status": _value(r.status),
                    "liability_amount": r.liability_amount,
                }
                for r in records
            ],
            "collections": [
                {
                    "collection_agency": c.collection_agency,
                    "original_creditor": c.original_creditor,
                    "original_amount": c.original_amount,
                    "current_amount": c.current_amount,
                    "collection_date": _iso(c.collection_date),
                    "status": _value(c.status),
                }
                for c in collections
            ],
        }

    def _persist(self, profile: CreditProfileDB, requester: Actor, report_type: ReportType,
                 report_data: Dict[str, Any], origin_addr: Optional[str]) -> ReportDB:
        """Store the snapshot under a fresh unique token, retrying on collision."""
        for attempt in range(1, REPORT_TOKEN_MAX_ATTEMPTS + 1):
            token = self.token_factory()
            if self.db.query(ReportDB.id).filter(ReportDB.access_token == token).first():
                logger.warning(f"Report access token collision (attempt {attempt}), regenerating")
                continue

            now = self.clock()
            report = ReportDB(
                id=str(uuid4()),
                profile_id=profile.id,
                requested_by=requester.id,
                generated_at=now,
                report_type=report_type,
                report_format=ReportFormat.JSON,
                report_data=report_data,
                expires_at=now + timedelta(days=REPORT_TTL_DAYS),
                access_token=token,
            )
            report.record_access(requester.id, origin_addr, now)
            self.db.add(report)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(f"Report access token rejected by store (attempt {attempt}), regenerating")
                continue
            return report

        raise ConflictError(
            "Could not allocate a unique report access token",
            details={"attempts": REPORT_TOKEN_MAX_ATTEMPTS},
        )

    # =========================================================================
    # GENERATION
    # =========================================================================

    def _get_profile(self, profile_id: str) -> CreditProfileDB:
        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.id == profile_id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"profile_id": profile_id})
        return profile

    def generate_report(
        self,
        profile_id: str,
        requester: Actor,
        report_type: ReportType = ReportType.FULL,
        origin_addr: Optional[str] = None,
    ) -> ReportDB:
        """
        Self-service or administrative snapshot.

        Lenders are routed through request_report so their access leaves a
        hard inquiry and respects the freeze.
        """
        report_type = ReportType(report_type)
        if requester.role == UserRole.LENDER:
            return self.request_report(requester, profile_id, report_type, origin_addr).entity

        requester.require_role(UserRole.CONSUMER, UserRole.ADMIN)
        profile = self._get_profile(profile_id)
        if requester.role == UserRole.CONSUMER and profile.user_id != requester.id:
            raise ForbiddenError("Credit profile does not belong to you", {"profile_id": profile_id})

        report_data = self.build_snapshot(profile, report_type)
        report = self._persist(profile, requester, report_type, report_data, origin_addr)
        logger.info(f"Report {report.id} ({report_type.value}) generated for profile {profile_id}")
        return report

    def request_report(
        self,
        lender: Actor,
        profile_id: str,
        report_type: ReportType = ReportType.SUMMARY,
        origin_addr: Optional[str] = None,
    ) -> MutationResult:
        """
        Lender report request.

        Records a hard credit_check inquiry, snapshots the profile with its
        current score, then recalculates so the inquiry counts from the next
        scoring pass on.
        """
        lender.require_role(UserRole.LENDER)
        report_type = ReportType(report_type)
        profile = self._get_profile(profile_id)
        if profile.status == ProfileStatus.FROZEN:
            raise ForbiddenError("This credit profile is frozen and cannot be accessed",
                                 {"profile_id": profile_id})

        inquiries = InquiryService(self.db, clock=self.clock, coordinator=self.coordinator)
        inquiry = inquiries.build_inquiry(lender, profile, InquiryType.HARD, InquiryPurpose.CREDIT_CHECK)
        self.db.commit()
        logger.info(f"Hard inquiry {inquiry.id} recorded for report request on profile {profile_id}")

        report_data = self.build_snapshot(profile, report_type, for_lender=True)
        report = self._persist(profile, lender, report_type, report_data, origin_addr)
        logger.info(f"Report {report.id} requested by lender {lender.id} for profile {profile_id}")

        outcome = self.coordinator.recalculate_after_mutation(profile_id)
        return MutationResult(report, outcome)

    # =========================================================================
    # ACCESS
    # =========================================================================

    def fetch_report_by_token(self, token: str, accessor_id: str,
                              origin_addr: Optional[str] = None) -> ReportDB:
        report = self.db.query(ReportDB).filter(ReportDB.access_token == token).first()
        if report is None:
            raise NotFoundError("Report not found or access token is invalid")

        now = self.clock()
        if report.is_expired(now):
            raise ExpiredError("Report has expired", {"report_id": report.id, "expires_at": _iso(report.expires_at)})

        report.record_access(accessor_id, origin_addr, now)
        self.db.commit()
        return report

    def list_my_reports(self, consumer: Actor) -> List[ReportDB]:
        consumer.require_role(UserRole.CONSUMER)
        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.user_id == consumer.id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"user_id": consumer.id})
        return (
            self.db.query(ReportDB)
            .filter(ReportDB.profile_id == profile.id)
            .order_by(ReportDB.generated_at.desc())
            .all()
        )

    def get_my_report(self, consumer: Actor, report_id: str,
                      origin_addr: Optional[str] = None) -> ReportDB:
        consumer.require_role(UserRole.CONSUMER)
        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.user_id == consumer.id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"user_id": consumer.id})

        report = (
            self.db.query(ReportDB)
            .filter(ReportDB.id == report_id, ReportDB.profile_id == profile.id)
            .first()
        )
        if report is None:
            raise NotFoundError("Report not found or does not belong to your profile", {"report_id": report_id})

        report.record_access(consumer.id, origin_addr, self.clock())
        self.db.commit()
        return report

    def get_report(self, admin: Actor, report_id: str, origin_addr: Optional[str] = None) -> ReportDB:
        admin.require_role(UserRole.ADMIN)
        report = self.db.query(ReportDB).filter(ReportDB.id == report_id).first()
        if report is None:
            raise NotFoundError("Report not found", {"report_id": report_id})

        report.record_access(admin.id, origin_addr, self.clock())
        self.db.commit()
        return report
