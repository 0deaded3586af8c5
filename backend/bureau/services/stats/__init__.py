"""Dashboard Statistics"""

from .stats_service import StatsService, SCORE_BUCKET_BOUNDS

__all__ = ['StatsService', 'SCORE_BUCKET_BOUNDS']
