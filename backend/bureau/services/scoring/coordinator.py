"""
Score Coordinator

Keeps a profile's stored score and score history consistent with its
accounts, inquiries and public records. Invoked after every mutation that
can move the score.

The coordinator reads a snapshot of the records, runs the engine and
writes the score back. It does not diff: the profile model appends a
history entry whenever the stored score actually changes, so an unchanged
score leaves history untouched. The entry is stamped with the clock the
coordinator publishes in ``session.info["clock"]``.

Concurrent recalculations of one profile are last-writer-wins unless
SERIALIZE_RECALCULATION is set, in which case the profile row is locked
for the duration of the read-compute-write cycle.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...config import SERIALIZE_RECALCULATION
from ...errors import ProfileNotFoundForRecalculation
from ...models.db_models import (
    CreditProfileDB, CreditAccountDB, InquiryDB, InquiryType, PublicRecordDB,
)
from .engine import (
    AccountFacts, InquiryFacts, PublicRecordFacts, ScoreBreakdown,
    DAYS_PER_MONTH, INQUIRY_LOOKBACK_MONTHS, score_breakdown,
)

logger = logging.getLogger(__name__)


@dataclass
class RecalculationOutcome:
    """What a post-mutation recalculation did."""
    profile_id: str
    profile_missing: bool = False
    previous_score: Optional[int] = None
    new_score: Optional[int] = None
    breakdown: Optional[ScoreBreakdown] = None

    @property
    def changed(self) -> bool:
        return not self.profile_missing and self.previous_score != self.new_score

    def to_dict(self) -> dict:
        return {
            "profile_id": self.profile_id,
            "profile_missing": self.profile_missing,
            "previous_score": self.previous_score,
            "new_score": self.new_score,
            "changed": self.changed,
        }


class ScoreCoordinator:
    """Recalculates and persists profile scores."""

    def __init__(
        self,
        db_session: Session,
        clock: Optional[Callable[[], datetime]] = None,
        serialize: bool = SERIALIZE_RECALCULATION,
    ):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.serialize = serialize
        self.last_breakdown: Optional[ScoreBreakdown] = None

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def load_snapshot(
        self, profile_id: str, now: datetime
    ) -> Tuple[List[AccountFacts], List[InquiryFacts], List[PublicRecordFacts]]:
        """Read every score-relevant record for a profile into detached facts."""
        accounts = (
            self.db.query(CreditAccountDB)
            .filter(CreditAccountDB.profile_id == profile_id)
            .all()
        )

        # Expired inquiries stay stored; they drop out by date here
        cutoff = now - timedelta(days=DAYS_PER_MONTH * INQUIRY_LOOKBACK_MONTHS)
        inquiries = (
            self.db.query(InquiryDB)
            .filter(
                InquiryDB.profile_id == profile_id,
                InquiryDB.inquiry_type == InquiryType.HARD,
                InquiryDB.inquiry_date >= cutoff,
            )
            .all()
        )

        records = (
            self.db.query(PublicRecordDB)
            .filter(PublicRecordDB.profile_id == profile_id)
            .all()
        )

        return (
            [AccountFacts.from_account(a, now) for a in accounts],
            [InquiryFacts.from_inquiry(i) for i in inquiries],
            [PublicRecordFacts.from_record(r) for r in records],
        )

    # =========================================================================
    # RECALCULATION
    # =========================================================================

    def recalculate(self, profile_id: str) -> CreditProfileDB:
        """
        Recompute and persist the score for one profile.

        Raises ProfileNotFoundForRecalculation when the profile is absent.
        """
        query = self.db.query(CreditProfileDB).filter(CreditProfileDB.id == profile_id)
        if self.serialize:
            query = query.with_for_update()
        profile = query.first()
        if profile is None:
            raise ProfileNotFoundForRecalculation(profile_id)

        now = self.clock()
        accounts, inquiries, records = self.load_snapshot(profile_id, now)
        breakdown = score_breakdown(accounts, inquiries, records, now)
        self.last_breakdown = breakdown

        # The history listener stamps its entry with this clock
        self.db.info["clock"] = self.clock
        previous = profile.credit_score
        profile.credit_score = breakdown.score
        self.db.commit()

        if previous != breakdown.score:
            logger.info(f"Profile {profile_id} score {previous} -> {breakdown.score}")
        else:
            logger.debug(f"Profile {profile_id} score unchanged at {previous}")

        return profile

    def recalculate_after_mutation(self, profile_id: str) -> RecalculationOutcome:
        """
        Recalculate following a record mutation.

        A missing profile is tolerated here: the mutation has already been
        committed and stays committed. The outcome flags the condition.
        """
        previous = (
            self.db.query(CreditProfileDB.credit_score)
            .filter(CreditProfileDB.id == profile_id)
            .scalar()
        )
        try:
            profile = self.recalculate(profile_id)
        except ProfileNotFoundForRecalculation as exc:
            logger.warning(f"{exc.message}; mutation kept without score update")
            return RecalculationOutcome(profile_id=profile_id, profile_missing=True)

        return RecalculationOutcome(
            profile_id=profile_id,
            previous_score=previous,
            new_score=profile.credit_score,
            breakdown=self.last_breakdown,
        )
