"""Result wrapper returned by record mutations that trigger recalculation."""
from dataclasses import dataclass
from typing import Any, Optional

from .scoring.coordinator import RecalculationOutcome


@dataclass
class MutationResult:
    """The mutated entity plus what the follow-up recalculation did."""
    entity: Any
    recalculation: Optional[RecalculationOutcome] = None

    @property
    def profile_missing(self) -> bool:
        return self.recalculation is not None and self.recalculation.profile_missing
