"""
Scoring Services

- engine: pure score computation over detached record facts
- coordinator: keeps a profile's stored score in step with its records
"""

from .engine import (
    AccountFacts, InquiryFacts, PublicRecordFacts, ScoreBreakdown,
    compute_score, score_breakdown, score_category, clamp_score, utilization_points,
    history_length_points,
)
from .coordinator import ScoreCoordinator, RecalculationOutcome

__all__ = [
    'AccountFacts',
    'InquiryFacts',
    'PublicRecordFacts',
    'ScoreBreakdown',
    'compute_score',
    'score_breakdown',
    'score_category',
    'clamp_score',
    'utilization_points',
    'history_length_points',
    'ScoreCoordinator',
    'RecalculationOutcome',
]
