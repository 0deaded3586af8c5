"""
Response shaping for the API layer.

Derived values (expiry flags, reliability, progress) are computed here on
every read and never stored.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from ..models.db_models import (
    CollectionDB, CreditAccountDB, CreditProfileDB, DisputeDB, InquiryDB, PublicRecordDB,
    ReportDB, UserDB,
)
from ..services.results import MutationResult
from ..services.scoring.engine import score_category


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _value(enum_or_str):
    return getattr(enum_or_str, "value", enum_or_str)


def success(data: Dict[str, Any], result: Optional[MutationResult] = None) -> Dict[str, Any]:
    body = {"status": "success", "data": data}
    if result is not None:
        body["recalculation"] = result.recalculation.to_dict() if result.recalculation else None
    return body


def user_to_dict(user: UserDB) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": _value(user.role),
        "address": user.address,
        "date_of_birth": _iso(user.date_of_birth),
    }


def profile_to_dict(profile: CreditProfileDB, include_history: bool = False) -> Dict[str, Any]:
    data = {
        "id": profile.id,
        "user_id": profile.user_id,
        "credit_score": profile.credit_score,
        "score_category": score_category(profile.credit_score),
        "status": _value(profile.status),
        "fraud_alert": profile.fraud_alert,
        "last_updated": _iso(profile.last_updated),
    }
    if include_history:
        data["score_history"] = [
            {"score": h.score, "calculated_at": _iso(h.calculated_at)}
            for h in profile.score_history
        ]
    return data


def account_to_dict(account: CreditAccountDB, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": account.id,
        "profile_id": account.profile_id,
        "account_type": _value(account.account_type),
        "lender_id": account.lender_id,
        "lender_name": account.lender_name,
        "account_number": account.account_number_masked,
        "open_date": _iso(account.open_date),
        "close_date": _iso(account.close_date),
        "credit_limit": account.credit_limit,
        "current_balance": account.current_balance,
        "original_amount": account.original_amount,
        "status": _value(account.current_status(now)),
        "last_report_date": _iso(account.last_report_date),
        "account_age_months": account.account_age_months(now),
        "payment_reliability": account.payment_reliability(),
        "utilization_ratio": account.utilization_ratio(),
        "payment_history": [
            {
                "due_date": _iso(p.due_date),
                "amount_due": p.amount_due,
                "amount_paid": p.amount_paid,
                "date_paid": _iso(p.date_paid),
                "status": _value(p.status),
                "reported_at": _iso(p.reported_at),
            }
            for p in account.payment_history
        ],
    }


def inquiry_to_dict(inquiry: InquiryDB, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": inquiry.id,
        "profile_id": inquiry.profile_id,
        "inquiring_entity": {"id": inquiry.inquiring_entity_id, "name": inquiry.inquiring_entity_name},
        "inquiry_type": _value(inquiry.inquiry_type),
        "inquiry_purpose": _value(inquiry.inquiry_purpose),
        "inquiry_date": _iso(inquiry.inquiry_date),
        "expires_at": _iso(inquiry.expires_at),
        "is_expired": inquiry.is_expired(now),
        "months_until_expiration": inquiry.months_until_expiration(now),
    }


def public_record_to_dict(record: PublicRecordDB, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": record.id,
        "profile_id": record.profile_id,
        "record_type": _value(record.record_type),
        "case_number": record.case_number,
        "court_name": record.court_name,
        "filed_date": _iso(record.filed_date),
        "status": _value(record.status),
        "resolved_date": _iso(record.resolved_date),
        "liability_amount": record.liability_amount,
        "expires_from_record": _iso(record.expires_from_record),
        "is_expired": record.is_expired(now),
        "is_resolved": record.is_resolved,
        "impact_severity": record.impact_severity(now),
    }


def collection_to_dict(collection: CollectionDB, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": collection.id,
        "profile_id": collection.profile_id,
        "original_account_id": collection.original_account_id,
        "collection_agency": collection.collection_agency,
        "original_creditor": collection.original_creditor,
        "original_amount": collection.original_amount,
        "current_amount": collection.current_amount,
        "collection_date": _iso(collection.collection_date),
        "status": _value(collection.status),
        "expires_from_record": _iso(collection.expires_from_record),
        "is_expired": collection.is_expired(now),
    }


def dispute_to_dict(dispute: DisputeDB) -> Dict[str, Any]:
    return {
        "id": dispute.id,
        "profile_id": dispute.profile_id,
        "account_id": dispute.account_id,
        "initiated_by": dispute.initiated_by,
        "lender_id": dispute.lender_id,
        "reason": _value(dispute.reason),
        "description": dispute.description,
        "supporting_documents": list(dispute.supporting_documents or []),
        "status": _value(dispute.status),
        "lender_response": dispute.lender_response,
        "resolution": dispute.resolution,
        "resolved_at": _iso(dispute.resolved_at),
        "created_at": _iso(dispute.created_at),
        "resolution_time_days": dispute.resolution_time_days(),
        "resolved_items_count": dispute.resolved_items_count,
        "progress_percentage": dispute.progress_percentage,
        "affected_items": [
            {
                "field": item.field,
                "current_value": item.current_value,
                "claimed_value": item.claimed_value,
                "resolved": item.resolved,
            }
            for item in dispute.affected_items
        ],
        "history": [
            {
                "action": _value(h.action),
                "actor_id": h.actor_id,
                "actor_role": _value(h.actor_role),
                "notes": h.notes,
                "timestamp": _iso(h.created_at),
            }
            for h in dispute.history
        ],
    }


def report_to_dict(report: ReportDB, now: Optional[datetime] = None,
                   include_token: bool = False) -> Dict[str, Any]:
    data = {
        "id": report.id,
        "profile_id": report.profile_id,
        "requested_by": report.requested_by,
        "generated_at": _iso(report.generated_at),
        "report_type": _value(report.report_type),
        "report_format": _value(report.report_format),
        "report_data": report.report_data,
        "expires_at": _iso(report.expires_at),
        "is_expired": report.is_expired(now),
        "days_until_expiration": report.days_until_expiration(now),
        "access_count": report.access_count,
    }
    if include_token:
        data["access_token"] = report.access_token
    return data
