"""
Tests for the dispute workflow.

Test Coverage:
1. State machine configuration (terminal states, allowed transitions)
2. Creation rules and the profile "disputed" status
3. Lender respond, consumer update and cancel
4. Admin resolve: item resolution, report-date touch, recalculation
5. Illegal transitions raise ConflictError with both statuses
6. Role checks per action
7. Administrative deletion
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from bureau.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from bureau.models import (
    AccountType, CreditAccountDB, DisputeAction, DisputeHistoryDB, DisputeReason, DisputeStatus,
    PaymentStatus, ProfileStatus, UserRole,
)
from bureau.services.disputes import DisputeService, DisputeStateMachine
from bureau.services.profiles import ProfileService


@pytest.fixture
def service(db, clock, coordinator):
    return DisputeService(db, clock=clock, coordinator=coordinator)


@pytest.fixture
def account(profile, lender, seed_account):
    return seed_account(profile.id, lender.id, account_type=AccountType.CREDIT_CARD,
                        credit_limit=1000.0, current_balance=100.0,
                        payments=[PaymentStatus.LATE_30])


def open_dispute(service, account, consumer, items=None):
    return service.create_dispute(
        account.id,
        consumer.id,
        DisputeReason.INCORRECT_STATUS,
        "The late payment was reported in error",
        items if items is not None else [
            {"field": "payment_history", "current_value": "late_30", "claimed_value": "on_time"},
        ],
    )


# =============================================================================
# TEST: STATE MACHINE
# =============================================================================

class TestStateMachine:
    """Static transition rules."""

    def test_terminal_states(self):
        machine = DisputeStateMachine()
        for status in (DisputeStatus.RESOLVED, DisputeStatus.REJECTED, DisputeStatus.CANCELED):
            assert machine.is_terminal_state(status)
        assert not machine.is_terminal_state(DisputeStatus.PENDING)

    def test_investigating_cannot_cancel(self):
        allowed, reason = DisputeStateMachine().can_transition(
            DisputeStatus.INVESTIGATING, DisputeStatus.CANCELED,
        )
        assert allowed is False
        assert "investigating" in reason

    def test_pending_next_states(self):
        assert DisputeStatus.INVESTIGATING in DisputeStateMachine().get_next_states(DisputeStatus.PENDING)


# =============================================================================
# TEST: CREATE
# =============================================================================

class TestCreateDispute:

    def test_create_marks_profile_disputed(self, db, service, account, consumer, profile):
        dispute = open_dispute(service, account, consumer)

        assert dispute.status == DisputeStatus.PENDING
        assert dispute.lender_id == account.lender_id
        assert [h.action for h in dispute.history] == [DisputeAction.CREATED]
        db.refresh(profile)
        assert profile.status == ProfileStatus.DISPUTED

    def test_frozen_profile_stays_frozen(self, db, service, account, consumer, profile):
        ProfileService(db).freeze(consumer)
        open_dispute(service, account, consumer)

        db.refresh(profile)
        assert profile.status == ProfileStatus.FROZEN

    def test_short_description_rejected(self, service, account, consumer):
        with pytest.raises(ValidationError):
            service.create_dispute(account.id, consumer.id, DisputeReason.OTHER, "wrong")

    def test_unknown_reason_rejected(self, service, account, consumer):
        with pytest.raises(ValidationError):
            service.create_dispute(account.id, consumer.id, "because", "A long enough description")

    def test_unknown_account(self, service, consumer):
        with pytest.raises(NotFoundError):
            service.create_dispute("missing", consumer.id, DisputeReason.OTHER, "A long enough description")

    def test_other_consumer_forbidden(self, service, account, make_user):
        stranger = make_user(UserRole.CONSUMER, "Eve", "Stranger")
        with pytest.raises(ForbiddenError):
            service.create_dispute(account.id, stranger.id, DisputeReason.NOT_MINE,
                                   "This is not my account at all")

    def test_lender_cannot_dispute_own_account(self, service, account, lender):
        with pytest.raises(ForbiddenError):
            service.create_dispute(account.id, lender.id, DisputeReason.NOT_MINE,
                                   "Disputing my own reported account")

    def test_affected_item_needs_field(self, service, account, consumer):
        with pytest.raises(ValidationError):
            open_dispute(service, account, consumer, items=[{"claimed_value": 0}])


# =============================================================================
# TEST: LENDER AND CONSUMER TRANSITIONS
# =============================================================================

class TestRespondUpdateCancel:

    def test_respond_moves_to_investigating(self, service, account, consumer, lender):
        dispute = open_dispute(service, account, consumer)

        result = service.transition_dispute(dispute.id, lender.id, UserRole.LENDER, "respond",
                                            {"response": "Reviewing payment records"})

        assert result.entity.status == DisputeStatus.INVESTIGATING
        assert result.entity.lender_response == "Reviewing payment records"
        assert result.entity.history[-1].action == DisputeAction.RESPONDED
        assert result.entity.progress_percentage == 50

    def test_respond_requires_text(self, service, account, consumer, lender):
        dispute = open_dispute(service, account, consumer)
        with pytest.raises(ValidationError):
            service.transition_dispute(dispute.id, lender.id, UserRole.LENDER, "respond", {})

    def test_other_lender_cannot_see_dispute(self, service, account, consumer, make_user):
        dispute = open_dispute(service, account, consumer)
        other = make_user(UserRole.LENDER, "Other", "Bank")

        with pytest.raises(NotFoundError):
            service.transition_dispute(dispute.id, other.id, UserRole.LENDER, "respond",
                                       {"response": "Not ours"})

    def test_update_keeps_status(self, service, account, consumer, lender):
        dispute = open_dispute(service, account, consumer)
        service.transition_dispute(dispute.id, lender.id, UserRole.LENDER, "respond", {"response": "Looking"})

        result = service.transition_dispute(dispute.id, consumer.id, UserRole.CONSUMER, "update", {
            "description": "Adding the bank statement showing payment",
            "supporting_documents": ["statement-2026-08.pdf"],
            "affected_items": [{"field": "current_balance", "current_value": 100, "claimed_value": 0}],
        })

        assert result.entity.status == DisputeStatus.INVESTIGATING
        assert result.entity.supporting_documents == ["statement-2026-08.pdf"]
        assert [i.field for i in result.entity.affected_items] == ["current_balance"]
        assert result.entity.history[-1].action == DisputeAction.UPDATED

    def test_cancel_reverts_profile(self, db, service, account, consumer, profile):
        dispute = open_dispute(service, account, consumer)

        result = service.transition_dispute(dispute.id, consumer.id, UserRole.CONSUMER, "cancel")

        assert result.entity.status == DisputeStatus.CANCELED
        assert result.entity.resolution == "Canceled by consumer"
        assert result.entity.resolved_at is not None
        db.refresh(profile)
        assert profile.status == ProfileStatus.ACTIVE

    def test_cancel_keeps_disputed_with_other_open(self, db, service, account, consumer, profile):
        first = open_dispute(service, account, consumer)
        open_dispute(service, account, consumer)

        service.transition_dispute(first.id, consumer.id, UserRole.CONSUMER, "cancel")

        db.refresh(profile)
        assert profile.status == ProfileStatus.DISPUTED

    def test_cancel_after_response_conflicts(self, service, account, consumer, lender):
        dispute = open_dispute(service, account, consumer)
        service.transition_dispute(dispute.id, lender.id, UserRole.LENDER, "respond", {"response": "Looking"})

        with pytest.raises(ConflictError) as exc_info:
            service.transition_dispute(dispute.id, consumer.id, UserRole.CONSUMER, "cancel")

        assert exc_info.value.current_status == "investigating"
        assert exc_info.value.attempted == "canceled"


# =============================================================================
# TEST: ADMIN RESOLUTION
# =============================================================================

class TestResolve:

    def test_resolved_with_items_recalculates(self, db, service, account, consumer, admin, profile, now):
        dispute = open_dispute(service, account, consumer)
        stored = db.query(CreditAccountDB).filter(CreditAccountDB.id == account.id).one()
        stored.last_report_date = now - timedelta(days=30)
        db.commit()

        with patch.object(service.coordinator, "recalculate_after_mutation",
                          wraps=service.coordinator.recalculate_after_mutation) as recalc:
            result = service.transition_dispute(dispute.id, admin.id, UserRole.ADMIN, "resolve", {
                "status": "resolved",
                "resolution": "Late mark removed",
            })

        recalc.assert_called_once_with(profile.id)
        assert result.recalculation is not None
        assert result.entity.status == DisputeStatus.RESOLVED
        assert result.entity.resolved_items_count == 1
        assert result.entity.resolution_time_days() == 0
        assert result.entity.progress_percentage == 100
        assert result.entity.history[-1].action == DisputeAction.RESOLVED
        db.refresh(profile)
        assert profile.status == ProfileStatus.ACTIVE
        db.refresh(stored)
        assert stored.last_report_date == now

    def test_rejected_does_not_recalculate(self, service, account, consumer, admin):
        dispute = open_dispute(service, account, consumer)

        with patch.object(service.coordinator, "recalculate_after_mutation") as recalc:
            result = service.transition_dispute(dispute.id, admin.id, UserRole.ADMIN, "resolve", {
                "status": "rejected",
                "resolution": "Payment was late",
            })

        recalc.assert_not_called()
        assert result.entity.status == DisputeStatus.REJECTED
        assert result.entity.history[-1].action == DisputeAction.REJECTED

    def test_resolved_without_items_does_not_recalculate(self, service, account, consumer, admin):
        dispute = open_dispute(service, account, consumer, items=[])

        with patch.object(service.coordinator, "recalculate_after_mutation") as recalc:
            service.transition_dispute(dispute.id, admin.id, UserRole.ADMIN, "resolve",
                                       {"status": "resolved", "resolution": "Noted"})

        recalc.assert_not_called()

    def test_resolution_status_must_be_terminal(self, service, account, consumer, admin):
        dispute = open_dispute(service, account, consumer)
        with pytest.raises(ValidationError):
            service.transition_dispute(dispute.id, admin.id, UserRole.ADMIN, "resolve",
                                       {"status": "investigating", "resolution": "Hmm"})

    def test_respond_after_resolution_conflicts(self, service, account, consumer, lender, admin):
        dispute = open_dispute(service, account, consumer)
        service.transition_dispute(dispute.id, admin.id, UserRole.ADMIN, "resolve",
                                   {"status": "resolved", "resolution": "Fixed"})

        with pytest.raises(ConflictError) as exc_info:
            service.transition_dispute(dispute.id, lender.id, UserRole.LENDER, "respond",
                                       {"response": "Too late"})

        assert exc_info.value.current_status == "resolved"
        assert exc_info.value.attempted == "investigating"
        assert exc_info.value.status_code == 409

    def test_consumer_cannot_resolve(self, service, account, consumer):
        dispute = open_dispute(service, account, consumer)
        with pytest.raises(ForbiddenError):
            service.transition_dispute(dispute.id, consumer.id, UserRole.CONSUMER, "resolve",
                                       {"status": "resolved", "resolution": "Self-approved"})

    def test_unknown_action(self, service, account, consumer):
        dispute = open_dispute(service, account, consumer)
        with pytest.raises(ValidationError) as exc_info:
            service.transition_dispute(dispute.id, consumer.id, UserRole.CONSUMER, "escalate")

        assert exc_info.value.status_code == 422
        assert exc_info.value.details == {"action": "escalate"}
        assert service.get_dispute(dispute.id).status == DisputeStatus.PENDING


class TestListing:

    def test_each_party_sees_own(self, service, account, consumer, lender, admin):
        dispute = open_dispute(service, account, consumer)

        assert [d.id for d in service.list_for_consumer(consumer.id)] == [dispute.id]
        assert [d.id for d in service.list_for_lender(lender.id)] == [dispute.id]
        assert len(service.list_all(status=DisputeStatus.PENDING)) == 1
        assert service.list_all(status=DisputeStatus.RESOLVED) == []


class TestDelete:
    """Administrative deletion re-applies the profile status rule."""

    def test_deleting_open_dispute_reactivates_profile(self, db, service, account, consumer, admin, profile):
        dispute = open_dispute(service, account, consumer)
        assert profile.status == ProfileStatus.DISPUTED

        result = service.delete_dispute(dispute.id, admin.id, UserRole.ADMIN)

        assert result.entity == dispute.id
        assert result.recalculation is None
        assert profile.status == ProfileStatus.ACTIVE
        assert db.query(DisputeHistoryDB).count() == 0
        with pytest.raises(NotFoundError):
            service.get_dispute(dispute.id)

    def test_other_open_dispute_keeps_profile_disputed(self, service, account, consumer, admin, profile):
        first = open_dispute(service, account, consumer)
        open_dispute(service, account, consumer)

        service.delete_dispute(first.id, admin.id, UserRole.ADMIN)

        assert profile.status == ProfileStatus.DISPUTED

    def test_frozen_profile_stays_frozen(self, db, clock, service, account, consumer, admin, profile):
        dispute = open_dispute(service, account, consumer)
        ProfileService(db, clock=clock).freeze(consumer)

        service.delete_dispute(dispute.id, admin.id, UserRole.ADMIN)

        assert profile.status == ProfileStatus.FROZEN

    def test_only_admin(self, service, account, consumer, lender):
        dispute = open_dispute(service, account, consumer)
        for actor, role in ((consumer, UserRole.CONSUMER), (lender, UserRole.LENDER)):
            with pytest.raises(ForbiddenError):
                service.delete_dispute(dispute.id, actor.id, role)

    def test_unknown_dispute(self, service, admin):
        with pytest.raises(NotFoundError):
            service.delete_dispute("missing", admin.id, UserRole.ADMIN)
