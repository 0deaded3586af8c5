"""
Public Record & Collection Service

Public records feed the bankruptcy factor of the score, so creating one
or changing its status recalculates the profile. Collections are carried
into report snapshots only.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models.actor import Actor
from ...models.db_models import (
    CollectionDB, CollectionStatus, PublicRecordDB, PublicRecordStatus, PublicRecordType,
    UserRole, LIABILITY_RECORD_TYPES, RESOLVED_RECORD_STATUSES,
)
from ..results import MutationResult
from ..scoring.coordinator import ScoreCoordinator

logger = logging.getLogger(__name__)


class RecordsService:
    """Public records and collection accounts."""

    def __init__(self, db_session: Session, clock: Optional[Callable[[], datetime]] = None,
                 coordinator: Optional[ScoreCoordinator] = None):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.coordinator = coordinator or ScoreCoordinator(db_session, clock=self.clock)

    # =========================================================================
    # PUBLIC RECORDS
    # =========================================================================

    def create_public_record(
        self,
        actor: Actor,
        profile_id: str,
        record_type: PublicRecordType,
        case_number: str,
        court_name: str,
        filed_date: datetime,
        expires_from_record: datetime,
        status: PublicRecordStatus = PublicRecordStatus.FILED,
        liability_amount: Optional[float] = None,
        resolved_date: Optional[datetime] = None,
    ) -> MutationResult:
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)
        record_type = PublicRecordType(record_type)
        status = PublicRecordStatus(status)

        if not case_number or not court_name:
            raise ValidationError("case_number and court_name are required")
        if filed_date is None or expires_from_record is None:
            raise ValidationError("filed_date and expires_from_record are required")
        if expires_from_record <= filed_date:
            raise ValidationError("expires_from_record must be after filed_date")
        if record_type in LIABILITY_RECORD_TYPES and liability_amount is None:
            raise ValidationError(f"liability_amount is required for {record_type.value} records")
        if liability_amount is not None and liability_amount < 0:
            raise ValidationError("liability_amount must be zero or greater")

        if status in RESOLVED_RECORD_STATUSES and resolved_date is None:
            resolved_date = self.clock()

        record = PublicRecordDB(
            id=str(uuid4()),
            profile_id=profile_id,
            record_type=record_type,
            case_number=case_number,
            court_name=court_name,
            filed_date=filed_date,
            status=status,
            resolved_date=resolved_date,
            liability_amount=liability_amount,
            expires_from_record=expires_from_record,
            reported_by=actor.id,
        )
        self.db.add(record)
        self.db.commit()
        logger.info(f"Public record {record.id} ({record_type.value}) filed on profile {profile_id}")

        outcome = self.coordinator.recalculate_after_mutation(profile_id)
        return MutationResult(record, outcome)

    def update_public_record_status(
        self,
        actor: Actor,
        record_id: str,
        status: PublicRecordStatus,
        resolved_date: Optional[datetime] = None,
    ) -> MutationResult:
        """Change a record's status, e.g. a bankruptcy being discharged."""
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)
        record = self.db.query(PublicRecordDB).filter(PublicRecordDB.id == record_id).first()
        if record is None:
            raise NotFoundError("Public record not found", {"record_id": record_id})

        status = PublicRecordStatus(status)
        record.status = status
        if status in RESOLVED_RECORD_STATUSES:
            record.resolved_date = resolved_date or record.resolved_date or self.clock()
        else:
            record.resolved_date = None
        self.db.commit()
        logger.info(f"Public record {record_id} status -> {status.value}")

        outcome = self.coordinator.recalculate_after_mutation(record.profile_id)
        return MutationResult(record, outcome)

    def list_public_records(self, profile_id: str) -> List[PublicRecordDB]:
        return (
            self.db.query(PublicRecordDB)
            .filter(PublicRecordDB.profile_id == profile_id)
            .order_by(PublicRecordDB.filed_date.desc())
            .all()
        )

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def create_collection(
        self,
        actor: Actor,
        profile_id: str,
        collection_agency: str,
        original_creditor: str,
        original_amount: float,
        current_amount: float,
        collection_date: datetime,
        expires_from_record: datetime,
        original_account_id: Optional[str] = None,
        status: CollectionStatus = CollectionStatus.ACTIVE,
    ) -> CollectionDB:
        """Record a collection. Collections are not scored."""
        actor.require_role(UserRole.LENDER, UserRole.ADMIN)

        if not collection_agency or not original_creditor:
            raise ValidationError("collection_agency and original_creditor are required")
        if original_amount is None or current_amount is None:
            raise ValidationError("original_amount and current_amount are required")
        if original_amount < 0 or current_amount < 0:
            raise ValidationError("Collection amounts must be zero or greater")
        if collection_date is None or expires_from_record is None:
            raise ValidationError("collection_date and expires_from_record are required")

        collection = CollectionDB(
            id=str(uuid4()),
            profile_id=profile_id,
            original_account_id=original_account_id,
            collection_agency=collection_agency,
            original_creditor=original_creditor,
            original_amount=original_amount,
            current_amount=current_amount,
            collection_date=collection_date,
            status=CollectionStatus(status),
            last_activity_date=self.clock(),
            expires_from_record=expires_from_record,
        )
        self.db.add(collection)
        self.db.commit()
        logger.info(f"Collection {collection.id} placed by {collection_agency} on profile {profile_id}")
        return collection

    def list_collections(self, profile_id: str) -> List[CollectionDB]:
        return (
            self.db.query(CollectionDB)
            .filter(CollectionDB.profile_id == profile_id)
            .order_by(CollectionDB.collection_date.desc())
            .all()
        )
