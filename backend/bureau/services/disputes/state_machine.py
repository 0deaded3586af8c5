"""
Dispute State Machine

pending -> investigating -> {resolved, rejected}
pending -> canceled

resolved, rejected and canceled are terminal. An action that is not legal
from the current status raises ConflictError; nothing is silently skipped.
An action name outside the table is malformed input (ValidationError).
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ...errors import ConflictError, ForbiddenError, ValidationError
from ...models.db_models import DisputeAction, DisputeDB, DisputeStatus, UserRole


# =============================================================================
# STATE CONFIGURATION
# =============================================================================

STATE_CONFIG = {
    DisputeStatus.PENDING: {
        "description": "Filed by the consumer, awaiting the lender",
        "allowed_transitions": [
            DisputeStatus.INVESTIGATING,
            DisputeStatus.RESOLVED,
            DisputeStatus.REJECTED,
            DisputeStatus.CANCELED,
        ],
        "open": True,
    },
    DisputeStatus.INVESTIGATING: {
        "description": "Lender has responded, awaiting bureau decision",
        "allowed_transitions": [
            DisputeStatus.RESOLVED,
            DisputeStatus.REJECTED,
        ],
        "open": True,
    },
    DisputeStatus.RESOLVED: {
        "description": "Upheld; affected items corrected",
        "allowed_transitions": [],  # Terminal state
        "open": False,
    },
    DisputeStatus.REJECTED: {
        "description": "Not upheld",
        "allowed_transitions": [],  # Terminal state
        "open": False,
    },
    DisputeStatus.CANCELED: {
        "description": "Withdrawn by the consumer before the lender responded",
        "allowed_transitions": [],  # Terminal state
        "open": False,
    },
}


# Per action: who may perform it, from which statuses, and where it leads.
# A target of None keeps the current status.
ACTION_CONFIG = {
    "update": {
        "roles": [UserRole.CONSUMER],
        "allowed_from": [DisputeStatus.PENDING, DisputeStatus.INVESTIGATING],
        "target": None,
    },
    "respond": {
        "roles": [UserRole.LENDER],
        "allowed_from": [DisputeStatus.PENDING, DisputeStatus.INVESTIGATING],
        "target": DisputeStatus.INVESTIGATING,
    },
    "cancel": {
        "roles": [UserRole.CONSUMER],
        "allowed_from": [DisputeStatus.PENDING],
        "target": DisputeStatus.CANCELED,
    },
    "resolve": {
        "roles": [UserRole.ADMIN],
        "allowed_from": [DisputeStatus.PENDING, DisputeStatus.INVESTIGATING],
        "target": None,  # chosen by the admin: resolved or rejected
    },
}

RESOLUTION_TARGETS = (DisputeStatus.RESOLVED, DisputeStatus.REJECTED)


# =============================================================================
# STATE MACHINE
# =============================================================================

class DisputeStateMachine:
    """Validates and applies dispute status changes."""

    def get_state_config(self, status: DisputeStatus) -> Dict[str, Any]:
        return STATE_CONFIG.get(status, {})

    def can_transition(self, from_status: DisputeStatus, to_status: DisputeStatus) -> Tuple[bool, str]:
        """
        Check if a status transition is allowed.

        Returns (allowed, reason)
        """
        allowed_transitions = self.get_state_config(from_status).get("allowed_transitions", [])
        if to_status in allowed_transitions:
            return True, "Transition allowed"
        return False, f"Cannot transition from {from_status.value} to {to_status.value}"

    def check_action(self, dispute: DisputeDB, action: str, actor_role: UserRole) -> None:
        """Raise unless ``actor_role`` may perform ``action`` in the dispute's current status."""
        config = ACTION_CONFIG.get(action)
        if config is None:
            raise ValidationError(f"Unknown dispute action '{action}'", {"action": action})
        if actor_role not in config["roles"]:
            allowed = ", ".join(r.value for r in config["roles"])
            raise ForbiddenError(
                f"Role '{actor_role.value}' may not {action} a dispute (requires {allowed})",
                {"action": action, "role": actor_role.value},
            )

        current = DisputeStatus(dispute.status)
        if current not in config["allowed_from"]:
            target = config["target"]
            raise ConflictError(
                f"Cannot {action} a dispute that is {current.value}",
                current_status=current.value,
                attempted=target.value if target else action,
            )

    def transition(
        self,
        dispute: DisputeDB,
        to_status: DisputeStatus,
        action: DisputeAction,
        actor_id: str,
        actor_role: UserRole,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> DisputeDB:
        """Move the dispute to ``to_status`` and log the event. Does not commit."""
        from_status = DisputeStatus(dispute.status)
        timestamp = timestamp or datetime.utcnow()

        if to_status != from_status:
            allowed, reason = self.can_transition(from_status, to_status)
            if not allowed:
                raise ConflictError(reason, current_status=from_status.value, attempted=to_status.value)
            dispute.status = to_status

        dispute.append_history(action, actor_id, actor_role, notes, timestamp)
        dispute.updated_at = timestamp
        return dispute

    def is_terminal_state(self, status: DisputeStatus) -> bool:
        return len(self.get_state_config(status).get("allowed_transitions", [])) == 0

    def get_next_states(self, status: DisputeStatus) -> List[DisputeStatus]:
        return self.get_state_config(status).get("allowed_transitions", [])
