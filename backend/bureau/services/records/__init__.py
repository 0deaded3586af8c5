"""Public Record & Collection Services"""

from .records_service import RecordsService

__all__ = ['RecordsService']
