"""Credit Bureau Engine - Data Models"""
from .db_models import (
    # Enums
    UserRole, ProfileStatus, AccountType, AccountStatus, PaymentStatus,
    InquiryType, InquiryPurpose, PublicRecordType, PublicRecordStatus,
    CollectionStatus, DisputeReason, DisputeStatus, DisputeAction,
    ReportType, ReportFormat,
    # Tables
    UserDB, CreditProfileDB, ScoreHistoryDB, CreditAccountDB, PaymentHistoryDB,
    InquiryDB, PublicRecordDB, CollectionDB, DisputeDB, DisputeAffectedItemDB,
    DisputeHistoryDB, ReportDB, ReportAccessLogDB,
    # Helpers
    derive_account_status, SCORE_MIN, SCORE_MAX, DEFAULT_SCORE,
    OPEN_DISPUTE_STATUSES, INSTALLMENT_TYPES, LIABILITY_RECORD_TYPES,
)
from .actor import Actor

__all__ = [
    "UserRole", "ProfileStatus", "AccountType", "AccountStatus", "PaymentStatus",
    "InquiryType", "InquiryPurpose", "PublicRecordType", "PublicRecordStatus",
    "CollectionStatus", "DisputeReason", "DisputeStatus", "DisputeAction",
    "ReportType", "ReportFormat",
    "UserDB", "CreditProfileDB", "ScoreHistoryDB", "CreditAccountDB", "PaymentHistoryDB",
    "InquiryDB", "PublicRecordDB", "CollectionDB", "DisputeDB", "DisputeAffectedItemDB",
    "DisputeHistoryDB", "ReportDB", "ReportAccessLogDB",
    "derive_account_status", "SCORE_MIN", "SCORE_MAX", "DEFAULT_SCORE",
    "OPEN_DISPUTE_STATUSES", "INSTALLMENT_TYPES", "LIABILITY_RECORD_TYPES",
    "Actor",
]
