"""
Dispute Service

Consumer challenges against reported accounts, lender responses and the
bureau's decision. Status changes go through DisputeStateMachine; the
owning profile's active/disputed status is recomputed whenever a dispute
opens or leaves an open state.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import ForbiddenError, NotFoundError, ValidationError
from ...models.db_models import (
    CreditAccountDB, CreditProfileDB, DisputeAction, DisputeAffectedItemDB, DisputeDB,
    DisputeReason, DisputeStatus, UserRole,
)
from ..accounts.account_service import AccountService
from ..profiles.profile_service import ProfileService
from ..results import MutationResult
from ..scoring.coordinator import ScoreCoordinator
from .state_machine import ACTION_CONFIG, RESOLUTION_TARGETS, DisputeStateMachine

logger = logging.getLogger(__name__)


MIN_DESCRIPTION_LENGTH = 10
CANCEL_RESOLUTION = "Canceled by consumer"


def _build_affected_items(items: Optional[List[Dict[str, Any]]]) -> List[DisputeAffectedItemDB]:
    built = []
    for position, item in enumerate(items or []):
        field = (item or {}).get("field")
        if not field:
            raise ValidationError("Each affected item needs a field name", {"position": position})
        built.append(DisputeAffectedItemDB(
            position=position,
            field=field,
            current_value=item.get("current_value"),
            claimed_value=item.get("claimed_value"),
            resolved=bool(item.get("resolved", False)),
        ))
    return built


def _validate_description(description: Optional[str]) -> str:
    description = (description or "").strip()
    if len(description) < MIN_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters",
            {"min_length": MIN_DESCRIPTION_LENGTH},
        )
    return description


class DisputeService:
    """Dispute creation, transitions and lookup."""

    def __init__(self, db_session: Session, clock: Optional[Callable[[], datetime]] = None,
                 coordinator: Optional[ScoreCoordinator] = None):
        self.db = db_session
        self.clock = clock or datetime.utcnow
        self.coordinator = coordinator or ScoreCoordinator(db_session, clock=self.clock)
        self.state_machine = DisputeStateMachine()
        self.profiles = ProfileService(db_session, clock=self.clock, coordinator=self.coordinator)
        self.accounts = AccountService(db_session, clock=self.clock, coordinator=self.coordinator)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_dispute(self, dispute_id: str) -> DisputeDB:
        dispute = self.db.query(DisputeDB).filter(DisputeDB.id == dispute_id).first()
        if dispute is None:
            raise NotFoundError("Dispute not found", {"dispute_id": dispute_id})
        return dispute

    def get_dispute_for(self, dispute_id: str, actor_id: str, actor_role: UserRole) -> DisputeDB:
        """Fetch a dispute the actor is party to. Admins see every dispute."""
        dispute = self.get_dispute(dispute_id)
        if actor_role == UserRole.CONSUMER and dispute.initiated_by != actor_id:
            raise NotFoundError("Dispute not found or does not belong to you", {"dispute_id": dispute_id})
        if actor_role == UserRole.LENDER and dispute.lender_id != actor_id:
            raise NotFoundError(
                "Dispute not found or does not belong to your organization",
                {"dispute_id": dispute_id},
            )
        return dispute

    def list_for_consumer(self, consumer_id: str) -> List[DisputeDB]:
        return (
            self.db.query(DisputeDB)
            .filter(DisputeDB.initiated_by == consumer_id)
            .order_by(DisputeDB.created_at.desc())
            .all()
        )

    def list_for_lender(self, lender_id: str) -> List[DisputeDB]:
        return (
            self.db.query(DisputeDB)
            .filter(DisputeDB.lender_id == lender_id)
            .order_by(DisputeDB.created_at.desc())
            .all()
        )

    def list_all(self, status: Optional[DisputeStatus] = None,
                 reason: Optional[DisputeReason] = None) -> List[DisputeDB]:
        query = self.db.query(DisputeDB)
        if status:
            query = query.filter(DisputeDB.status == DisputeStatus(status))
        if reason:
            query = query.filter(DisputeDB.reason == DisputeReason(reason))
        return query.order_by(DisputeDB.created_at.desc()).all()

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_dispute(
        self,
        account_id: str,
        consumer_id: str,
        reason: DisputeReason,
        description: str,
        affected_items: Optional[List[Dict[str, Any]]] = None,
        supporting_documents: Optional[List[str]] = None,
    ) -> DisputeDB:
        """Open a dispute on an account reported against the consumer's profile."""
        try:
            reason = DisputeReason(reason)
        except ValueError as exc:
            raise ValidationError(f"Unknown dispute reason '{reason}'") from exc
        description = _validate_description(description)

        account = self.db.query(CreditAccountDB).filter(CreditAccountDB.id == account_id).first()
        if account is None:
            raise NotFoundError("Account not found", {"account_id": account_id})
        if account.lender_id == consumer_id:
            raise ForbiddenError("Lenders cannot dispute accounts they reported", {"account_id": account_id})

        profile = self.db.query(CreditProfileDB).filter(CreditProfileDB.id == account.profile_id).first()
        if profile is None:
            raise NotFoundError("Credit profile not found", {"profile_id": account.profile_id})
        if profile.user_id != consumer_id:
            raise ForbiddenError("Account is not on your credit profile", {"account_id": account_id})

        now = self.clock()
        dispute = DisputeDB(
            id=str(uuid4()),
            profile_id=profile.id,
            account_id=account.id,
            initiated_by=consumer_id,
            lender_id=account.lender_id,
            reason=reason,
            description=description,
            supporting_documents=list(supporting_documents or []),
            status=DisputeStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        dispute.affected_items.extend(_build_affected_items(affected_items))
        dispute.append_history(DisputeAction.CREATED, consumer_id, UserRole.CONSUMER,
                               "Dispute created", now)
        self.db.add(dispute)
        self.db.flush()

        self.profiles.refresh_status(profile)
        self.db.commit()
        logger.info(f"Dispute {dispute.id} opened on account {account_id} by consumer {consumer_id}")
        return dispute

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def transition_dispute(
        self,
        dispute_id: str,
        actor_id: str,
        actor_role: UserRole,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> MutationResult:
        """
        Apply one of update / respond / cancel / resolve.

        Role and current status are checked before anything changes; an
        illegal action raises ConflictError naming both statuses.
        """
        actor_role = UserRole(actor_role)
        payload = payload or {}
        dispute = self.get_dispute_for(dispute_id, actor_id, actor_role)
        self.state_machine.check_action(dispute, action, actor_role)

        handler = getattr(self, f"_{action}")
        return handler(dispute, actor_id, actor_role, payload)

    def _update(self, dispute: DisputeDB, actor_id: str, actor_role: UserRole,
                payload: Dict[str, Any]) -> MutationResult:
        now = self.clock()
        if payload.get("description") is not None:
            dispute.description = _validate_description(payload["description"])
        if payload.get("supporting_documents") is not None:
            dispute.supporting_documents = list(payload["supporting_documents"])
        if payload.get("affected_items") is not None:
            items = _build_affected_items(payload["affected_items"])
            dispute.affected_items.clear()
            self.db.flush()
            dispute.affected_items.extend(items)

        self.state_machine.transition(dispute, DisputeStatus(dispute.status), DisputeAction.UPDATED,
                                      actor_id, actor_role, "Dispute updated by consumer", now)
        self.db.commit()
        logger.info(f"Dispute {dispute.id} updated by consumer {actor_id}")
        return MutationResult(dispute, None)

    def _respond(self, dispute: DisputeDB, actor_id: str, actor_role: UserRole,
                 payload: Dict[str, Any]) -> MutationResult:
        response = (payload.get("response") or "").strip()
        if not response:
            raise ValidationError("A response is required")

        now = self.clock()
        dispute.lender_response = response
        self.state_machine.transition(dispute, ACTION_CONFIG["respond"]["target"],
                                      DisputeAction.RESPONDED, actor_id, actor_role, response, now)
        self.db.commit()
        logger.info(f"Lender {actor_id} responded to dispute {dispute.id}")
        return MutationResult(dispute, None)

    def _cancel(self, dispute: DisputeDB, actor_id: str, actor_role: UserRole,
                payload: Dict[str, Any]) -> MutationResult:
        now = self.clock()
        dispute.resolution = CANCEL_RESOLUTION
        dispute.resolved_at = now
        self.state_machine.transition(dispute, ACTION_CONFIG["cancel"]["target"],
                                      DisputeAction.CANCELED, actor_id, actor_role, CANCEL_RESOLUTION, now)
        self.db.flush()

        self.profiles.refresh_status(self.profiles.get_profile(dispute.profile_id))
        self.db.commit()
        logger.info(f"Dispute {dispute.id} canceled by consumer {actor_id}")
        return MutationResult(dispute, None)

    def _resolve(self, dispute: DisputeDB, actor_id: str, actor_role: UserRole,
                 payload: Dict[str, Any]) -> MutationResult:
        try:
            target = DisputeStatus(payload.get("status"))
        except ValueError as exc:
            raise ValidationError("Resolution status must be 'resolved' or 'rejected'") from exc
        if target not in RESOLUTION_TARGETS:
            raise ValidationError("Resolution status must be 'resolved' or 'rejected'",
                                  {"status": target.value})
        resolution = (payload.get("resolution") or "").strip()
        if not resolution:
            raise ValidationError("A resolution is required")

        now = self.clock()
        if payload.get("affected_items") is not None:
            items = _build_affected_items(payload["affected_items"])
            dispute.affected_items.clear()
            self.db.flush()
            dispute.affected_items.extend(items)
        for item in dispute.affected_items:
            item.resolved = True

        dispute.resolution = resolution
        dispute.resolved_at = now
        history_action = DisputeAction.RESOLVED if target == DisputeStatus.RESOLVED else DisputeAction.REJECTED
        self.state_machine.transition(dispute, target, history_action, actor_id, actor_role, resolution, now)

        corrects_records = target == DisputeStatus.RESOLVED and len(dispute.affected_items) > 0
        if corrects_records:
            self.accounts.touch_report_date(dispute.account_id)
        self.db.flush()

        self.profiles.refresh_status(self.profiles.get_profile(dispute.profile_id))
        self.db.commit()
        logger.info(f"Dispute {dispute.id} {target.value} by admin {actor_id}")

        outcome = None
        if corrects_records:
            outcome = self.coordinator.recalculate_after_mutation(dispute.profile_id)
        return MutationResult(dispute, outcome)

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete_dispute(self, dispute_id: str, actor_id: str, actor_role: UserRole) -> MutationResult:
        """
        Administrative removal, history included.

        Deleting an open dispute can leave the profile with none, so the
        active/disputed status is applied again. The score is not touched.
        """
        actor_role = UserRole(actor_role)
        if actor_role != UserRole.ADMIN:
            raise ForbiddenError("Only administrators may delete disputes", {"role": actor_role.value})
        dispute = self.get_dispute(dispute_id)
        profile_id = dispute.profile_id

        self.db.delete(dispute)
        self.db.flush()
        self.profiles.refresh_status(self.profiles.get_profile(profile_id))
        self.db.commit()
        logger.info(f"Dispute {dispute_id} deleted by admin {actor_id}")
        return MutationResult(dispute_id, None)
