"""Report Snapshot Services"""

from .report_service import ReportService, default_token_factory

__all__ = ['ReportService', 'default_token_factory']
