"""
Credit Bureau Engine - Error Taxonomy

Every service raises one of these. Each error carries a stable kind,
an HTTP status for the API layer, and a human-readable message.
"""
from typing import Any, Dict, Optional


class BureauError(Exception):
    """Base class for all engine errors."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "fail",
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(BureauError):
    """Entity absent."""

    kind = "not_found"
    status_code = 404


class ProfileNotFoundForRecalculation(NotFoundError):
    """Recalculation target profile does not exist (tolerated after mutations)."""

    kind = "profile_not_found_for_recalculation"

    def __init__(self, profile_id: str):
        super().__init__(
            f"Credit profile {profile_id} not found for recalculation",
            {"profile_id": profile_id},
        )
        self.profile_id = profile_id


class ValidationError(BureauError):
    """Malformed or out-of-range input."""

    kind = "validation_error"
    status_code = 422


class ConflictError(BureauError):
    """Illegal state transition or uniqueness violation."""

    kind = "conflict"
    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        attempted: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if current_status is not None:
            merged["current_status"] = current_status
        if attempted is not None:
            merged["attempted"] = attempted
        super().__init__(message, merged)
        self.current_status = current_status
        self.attempted = attempted


class ForbiddenError(BureauError):
    """Actor lacks ownership or role for the target entity."""

    kind = "forbidden"
    status_code = 403


class ExpiredError(BureauError):
    """Report, inquiry or collection used past its expiry window."""

    kind = "expired"
    status_code = 410
