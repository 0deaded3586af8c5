"""
Profile Service

Consumer-facing profile lifecycle: provisioning, freeze/unfreeze, fraud
alerts, score history, and the active/disputed status rule.

Status rule: a profile is "disputed" while at least one dispute against
it is pending or investigating, otherwise "active". A frozen profile
stays frozen until the consumer unfreezes it, at which point the rule is
applied again.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ...models.actor import Actor
from ...models.db_models import (
    CreditProfileDB, DisputeDB, InquiryPurpose, InquiryType, ProfileStatus,
    ScoreHistoryDB, UserDB, UserRole, DEFAULT_SCORE, OPEN_DISPUTE_STATUSES,
)
from ..inquiries.inquiry_service import InquiryService
from ..scoring.coordinator import ScoreCoordinator

logger = logging.getLogger(__name__)


class ProfileService:
    """Profile provisioning and consumer self-service."""

    def __init__(self, db_session: Session, clock: Optional[Callable[[], datetime]] = None,
                 coordinator: Optional[ScoreCoordinator] = None):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.coordinator = coordinator or ScoreCoordinator(db_session, clock=self.clock)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_profile(self, profile_id: str) -> CreditProfileDB:
        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.id == profile_id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"profile_id": profile_id})
        return profile

    def get_profile_for_user(self, user_id: str) -> CreditProfileDB:
        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.user_id == user_id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"user_id": user_id})
        return profile

    def get_own_profile(self, actor: Actor) -> CreditProfileDB:
        actor.require_role(UserRole.CONSUMER)
        return self.get_profile_for_user(actor.id)

    # =========================================================================
    # PROVISIONING
    # =========================================================================

    def create_profile(self, user_id: str, national_id: str) -> CreditProfileDB:
        """Provision the single profile for a consumer."""
        if not national_id or not national_id.strip():
            raise ValidationError("National identifier is required")

        user = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if user is None:
            raise NotFoundError("User not found", {"user_id": user_id})

        if self.db.query(CreditProfileDB).filter(CreditProfileDB.user_id == user_id).first():
            raise ConflictError("User already has a credit profile", details={"user_id": user_id})
        if self.db.query(CreditProfileDB).filter(CreditProfileDB.national_id == national_id).first():
            raise ConflictError("National identifier already registered")

        now = self.clock()
        profile = CreditProfileDB(
            id=str(uuid4()),
            user_id=user_id,
            national_id=national_id,
            credit_score=DEFAULT_SCORE,
            status=ProfileStatus.ACTIVE,
            fraud_alert=False,
            last_updated=now,
        )
        profile.append_score_history(DEFAULT_SCORE, now)
        self.db.add(profile)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("Credit profile already exists for this user or national identifier") from exc

        logger.info(f"Provisioned credit profile {profile.id} for user {user_id}")
        return profile

    # =========================================================================
    # STATUS
    # =========================================================================

    def has_open_disputes(self, profile_id: str, exclude_dispute_id: Optional[str] = None) -> bool:
        query = self.db.query(DisputeDB.id).filter(
            DisputeDB.profile_id == profile_id,
            DisputeDB.status.in_(list(OPEN_DISPUTE_STATUSES)),
        )
        if exclude_dispute_id:
            query = query.filter(DisputeDB.id != exclude_dispute_id)
        return query.first() is not None

    def refresh_status(self, profile: CreditProfileDB) -> ProfileStatus:
        """Apply the active/disputed rule. Does not commit."""
        if profile.status == ProfileStatus.FROZEN:
            return profile.status
        desired = ProfileStatus.DISPUTED if self.has_open_disputes(profile.id) else ProfileStatus.ACTIVE
        if profile.status != desired:
            logger.info(f"Profile {profile.id} status {profile.status.value} -> {desired.value}")
            profile.status = desired
            profile.last_updated = self.clock()
        return profile.status

    def freeze(self, actor: Actor) -> CreditProfileDB:
        profile = self.get_own_profile(actor)
        profile.status = ProfileStatus.FROZEN
        profile.last_updated = self.clock()
        self.db.commit()
        logger.info(f"Profile {profile.id} frozen by consumer")
        return profile

    def unfreeze(self, actor: Actor) -> CreditProfileDB:
        profile = self.get_own_profile(actor)
        profile.status = ProfileStatus.ACTIVE
        self.refresh_status(profile)
        profile.last_updated = self.clock()
        self.db.commit()
        logger.info(f"Profile {profile.id} unfrozen, status {profile.status.value}")
        return profile

    def set_fraud_alert(self, actor: Actor, enabled: bool) -> CreditProfileDB:
        profile = self.get_own_profile(actor)
        profile.fraud_alert = enabled
        profile.last_updated = self.clock()
        self.db.commit()
        return profile

    # =========================================================================
    # SCORE
    # =========================================================================

    def recalculate(self, actor: Actor, profile_id: Optional[str] = None) -> CreditProfileDB:
        """On-demand recalculation: consumers for their own profile, admins for any."""
        if actor.role == UserRole.CONSUMER:
            profile = self.get_profile_for_user(actor.id)
            if profile_id and profile_id != profile.id:
                raise ForbiddenError("Profile does not belong to you")
            profile_id = profile.id
        else:
            actor.require_role(UserRole.ADMIN)
            if not profile_id:
                raise ValidationError("profile_id is required")
        return self.coordinator.recalculate(profile_id)

    def score_history(
        self,
        profile: CreditProfileDB,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[ScoreHistoryDB]:
        """Score history in recorded order, optionally bounded by date."""
        entries = list(profile.score_history)
        if start_date:
            entries = [e for e in entries if e.calculated_at >= start_date]
        if end_date:
            entries = [e for e in entries if e.calculated_at <= end_date]
        return entries

    # =========================================================================
    # LENDER ACCESS
    # =========================================================================

    def view_as_lender(self, actor: Actor, profile_id: str,
                       purpose: InquiryPurpose = InquiryPurpose.CREDIT_CHECK) -> CreditProfileDB:
        """A lender looking up a profile leaves a hard inquiry behind."""
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)
        profile = self.get_profile(profile_id)
        if actor.role == UserRole.LENDER:
            InquiryService(self.db, clock=self.clock, coordinator=self.coordinator).create_inquiry(
                actor, profile_id, InquiryType.HARD, purpose,
            )
        return self.get_profile(profile_id)

    def view_by_national_id(self, actor: Actor, national_id: str,
                            purpose: InquiryPurpose = InquiryPurpose.CREDIT_CHECK) -> CreditProfileDB:
        """Same as view_as_lender, keyed by the national identifier."""
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)
        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.national_id == national_id).first()
        if profile is None:
            # The identifier is not echoed back in the error body
            raise NotFoundError("Credit profile not found")
        return self.view_as_lender(actor, profile.id, purpose)
