"""Account Services"""

from .account_service import AccountService, validate_account_terms

__all__ = ['AccountService', 'validate_account_terms']
