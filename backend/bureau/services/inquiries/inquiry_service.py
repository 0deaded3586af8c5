"""
Inquiry Service

Records third-party access to a profile. Inquiries are immutable once
written; administrators may delete them. Creating or deleting a hard
inquiry moves the score, so both trigger recalculation.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy.orm import Session

from ...config import INQUIRY_TTL_DAYS
from ...errors import ForbiddenError, NotFoundError
from ...models.actor import Actor
from ...models.db_models import (
    CreditProfileDB, InquiryDB, InquiryPurpose, InquiryType, ProfileStatus,
    UserDB, UserRole,
)
from ..results import MutationResult
from ..scoring.coordinator import ScoreCoordinator
from ..scoring.engine import DAYS_PER_MONTH

logger = logging.getLogger(__name__)


class InquiryService:
    """Create, delete and list inquiries."""

    def __init__(self, db_session: Session, clock: Optional[Callable[[], datetime]] = None,
                 coordinator: Optional[ScoreCoordinator] = None):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.coordinator = coordinator or ScoreCoordinator(db_session, clock=self.clock)

    def _entity_name(self, actor: Actor) -> str:
        if actor.display_name:
            return actor.display_name
        user = self.db.query(UserDB).filter(UserDB.id == actor.id).first()
        if user is not None and user.full_name:
            return user.full_name
        return actor.id

    def build_inquiry(self, actor: Actor, profile: CreditProfileDB,
                      inquiry_type: InquiryType, purpose: InquiryPurpose) -> InquiryDB:
        """Validate access and build (but not commit) an inquiry row."""
        if profile.status == ProfileStatus.FROZEN:
            raise ForbiddenError(
                "This credit profile is frozen and cannot be accessed",
                {"profile_id": profile.id},
            )

        now = self.clock()
        inquiry = InquiryDB(
            id=str(uuid4()),
            profile_id=profile.id,
            inquiring_entity_id=actor.id,
            inquiring_entity_name=self._entity_name(actor),
            inquiry_type=InquiryType(inquiry_type),
            inquiry_purpose=InquiryPurpose(purpose),
            inquiry_date=now,
            expires_at=now + timedelta(days=INQUIRY_TTL_DAYS),
        )
        self.db.add(inquiry)
        return inquiry

    def create_inquiry(
        self,
        actor: Actor,
        profile_id: str,
        inquiry_type: InquiryType,
        purpose: InquiryPurpose,
    ) -> MutationResult:
        """Record a credit check against a profile."""
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)

        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.id == profile_id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"profile_id": profile_id})

        inquiry = self.build_inquiry(actor, profile, inquiry_type, purpose)
        self.db.commit()
        logger.info(f"{inquiry.inquiry_type.value} inquiry {inquiry.id} on profile {profile_id} by {actor.id}")

        outcome = None
        if inquiry.inquiry_type == InquiryType.HARD:
            outcome = self.coordinator.recalculate_after_mutation(profile_id)
        return MutationResult(inquiry, outcome)

    def delete_inquiry(self, actor: Actor, inquiry_id: str) -> MutationResult:
        """Administrative removal. Hard inquiries trigger recalculation."""
        actor.require_role(UserRole.ADMIN)

        inquiry = self.db.query(InquiryDB).filter(InquiryDB.id == inquiry_id).first()
        if inquiry is None:
            raise NotFoundError("Inquiry not found", {"inquiry_id": inquiry_id})

        profile_id = inquiry.profile_id
        was_hard = inquiry.inquiry_type == InquiryType.HARD
        self.db.delete(inquiry)
        self.db.commit()
        logger.info(f"Inquiry {inquiry_id} deleted by admin {actor.id}")

        outcome = self.coordinator.recalculate_after_mutation(profile_id) if was_hard else None
        return MutationResult(inquiry_id, outcome)

    def recent_inquiries(self, profile_id: str, months: int = 12) -> List[InquiryDB]:
        """Inquiries within the trailing window, newest first."""
        cutoff = self.clock() - timedelta(days=DAYS_PER_MONTH * months)
        return (
            self.db.query(InquiryDB)
            .filter(InquiryDB.profile_id == profile_id, InquiryDB.inquiry_date >= cutoff)
            .order_by(InquiryDB.inquiry_date.desc())
            .all()
        )

    def list_for_profile(self, profile_id: str) -> List[InquiryDB]:
        return (
            self.db.query(InquiryDB)
            .filter(InquiryDB.profile_id == profile_id)
            .order_by(InquiryDB.inquiry_date.desc())
            .all()
        )

    def list_for_lender(
        self,
        actor: Actor,
        inquiry_type: Optional[InquiryType] = None,
        purpose: Optional[InquiryPurpose] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[InquiryDB], int]:
        """Inquiries the calling lender made, newest first, with the unpaged total."""
        actor.require_role(UserRole.LENDER)
        query = self.db.query(InquiryDB).filter(InquiryDB.inquiring_entity_id == actor.id)
        if inquiry_type is not None:
            query = query.filter(InquiryDB.inquiry_type == InquiryType(inquiry_type))
        if purpose is not None:
            query = query.filter(InquiryDB.inquiry_purpose == InquiryPurpose(purpose))
        if start_date is not None:
            query = query.filter(InquiryDB.inquiry_date >= start_date)
        if end_date is not None:
            query = query.filter(InquiryDB.inquiry_date <= end_date)

        total = query.count()
        offset = (page - 1) * page_size
        inquiries = query.order_by(InquiryDB.inquiry_date.desc()).offset(offset).limit(page_size).all()
        return inquiries, total
