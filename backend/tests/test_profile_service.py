"""
Tests for ProfileService.

Test Coverage:
1. Provisioning and uniqueness
2. Freeze / unfreeze and the active/disputed rule
3. Fraud alert
4. On-demand recalculation permissions
5. Score history filter
6. Lender lookup leaves a hard inquiry
"""
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from bureau.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from bureau.models import (
    DisputeDB, DisputeReason, DisputeStatus, InquiryDB, InquiryPurpose, InquiryType, ProfileStatus,
    UserRole,
)
from bureau.services.profiles import ProfileService


@pytest.fixture
def service(db, clock, coordinator):
    return ProfileService(db, clock=clock, coordinator=coordinator)


def open_dispute(db, profile, consumer_id, status=DisputeStatus.PENDING):
    dispute = DisputeDB(
        id=str(uuid4()),
        profile_id=profile.id,
        account_id=str(uuid4()),
        initiated_by=consumer_id,
        lender_id=str(uuid4()),
        reason=DisputeReason.NOT_MINE,
        description="This account is not mine",
        supporting_documents=[],
        status=status,
    )
    db.add(dispute)
    db.commit()
    return dispute


# =============================================================================
# TEST: PROVISIONING
# =============================================================================

class TestCreateProfile:

    def test_seeds_score_and_history(self, profile, now):
        assert profile.credit_score == 700
        assert profile.status == ProfileStatus.ACTIVE
        assert [(h.score, h.calculated_at) for h in profile.score_history] == [(700, now)]

    def test_one_profile_per_user(self, service, profile, consumer_user):
        with pytest.raises(ConflictError):
            service.create_profile(consumer_user.id, "999-99-9999")

    def test_national_id_unique(self, service, profile, make_user):
        other = make_user(UserRole.CONSUMER, "Bob", "Other")
        with pytest.raises(ConflictError):
            service.create_profile(other.id, "123-45-6789")

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.create_profile("nobody", "000-00-0000")

    def test_blank_national_id(self, service, consumer_user):
        with pytest.raises(ValidationError):
            service.create_profile(consumer_user.id, "   ")


# =============================================================================
# TEST: STATUS
# =============================================================================

class TestStatus:
    """Frozen is sticky; otherwise open disputes decide."""

    def test_freeze_and_unfreeze(self, service, consumer, profile):
        assert service.freeze(consumer).status == ProfileStatus.FROZEN
        assert service.unfreeze(consumer).status == ProfileStatus.ACTIVE

    def test_unfreeze_with_open_dispute(self, db, service, consumer, profile):
        service.freeze(consumer)
        open_dispute(db, profile, consumer.id)

        assert service.unfreeze(consumer).status == ProfileStatus.DISPUTED

    def test_refresh_leaves_frozen_alone(self, db, service, consumer, profile):
        service.freeze(consumer)
        open_dispute(db, profile, consumer.id)

        assert service.refresh_status(profile) == ProfileStatus.FROZEN

    def test_refresh_reverts_when_disputes_close(self, db, service, consumer, profile):
        dispute = open_dispute(db, profile, consumer.id)
        service.refresh_status(profile)
        assert profile.status == ProfileStatus.DISPUTED

        dispute.status = DisputeStatus.REJECTED
        db.commit()
        assert service.refresh_status(profile) == ProfileStatus.ACTIVE

    def test_lender_cannot_freeze(self, service, lender):
        with pytest.raises(ForbiddenError):
            service.freeze(lender)

    def test_fraud_alert(self, service, consumer, profile):
        assert service.set_fraud_alert(consumer, True).fraud_alert is True
        assert service.set_fraud_alert(consumer, False).fraud_alert is False


# =============================================================================
# TEST: SCORE
# =============================================================================

class TestScore:

    def test_consumer_recalculates_own(self, service, consumer, profile):
        assert service.recalculate(consumer).id == profile.id

    def test_consumer_cannot_target_other_profile(self, service, consumer, profile):
        with pytest.raises(ForbiddenError):
            service.recalculate(consumer, "someone-else")

    def test_admin_needs_profile_id(self, service, admin, profile):
        with pytest.raises(ValidationError):
            service.recalculate(admin)
        assert service.recalculate(admin, profile.id).id == profile.id

    def test_lender_cannot_recalculate(self, service, lender, profile):
        with pytest.raises(ForbiddenError):
            service.recalculate(lender, profile.id)

    def test_history_date_filter(self, db, service, profile, now):
        profile.append_score_history(690, now + timedelta(days=10))
        profile.append_score_history(680, now + timedelta(days=20))
        db.commit()

        window = service.score_history(profile, now + timedelta(days=5), now + timedelta(days=15))
        assert [h.score for h in window] == [690]
        assert len(service.score_history(profile, start_date=now + timedelta(days=5))) == 2
        assert len(service.score_history(profile, end_date=datetime(2000, 1, 1))) == 0


# =============================================================================
# TEST: LENDER LOOKUP
# =============================================================================

class TestLenderLookup:

    def test_lender_view_records_hard_inquiry(self, db, service, lender, profile):
        viewed = service.view_as_lender(lender, profile.id)

        inquiry = db.query(InquiryDB).one()
        assert inquiry.inquiry_type == InquiryType.HARD
        assert inquiry.inquiring_entity_id == lender.id
        assert viewed.credit_score == 695

    def test_admin_view_leaves_no_inquiry(self, db, service, admin, profile):
        service.view_as_lender(admin, profile.id)
        assert db.query(InquiryDB).count() == 0

    def test_frozen_profile_refused(self, service, consumer, lender, profile):
        service.freeze(consumer)
        with pytest.raises(ForbiddenError):
            service.view_as_lender(lender, profile.id)

    def test_lookup_by_national_id(self, db, service, lender, profile):
        viewed = service.view_by_national_id(lender, "123-45-6789", InquiryPurpose.EMPLOYMENT)

        inquiry = db.query(InquiryDB).one()
        assert viewed.id == profile.id
        assert inquiry.inquiry_purpose == InquiryPurpose.EMPLOYMENT
        assert viewed.credit_score == 695

    def test_unknown_national_id(self, db, service, lender, profile):
        with pytest.raises(NotFoundError):
            service.view_by_national_id(lender, "000-00-0000")
        assert db.query(InquiryDB).count() == 0

    def test_national_id_lookup_refused_when_frozen(self, service, consumer, lender, profile):
        service.freeze(consumer)
        with pytest.raises(ForbiddenError):
            service.view_by_national_id(lender, "123-45-6789")

    def test_consumer_cannot_look_up_by_national_id(self, service, consumer, profile):
        with pytest.raises(ForbiddenError):
            service.view_by_national_id(consumer, "123-45-6789")
