"""Dispute Services"""

from .state_machine import STATE_CONFIG, ACTION_CONFIG, DisputeStateMachine
from .dispute_service import DisputeService

__all__ = ['STATE_CONFIG', 'ACTION_CONFIG', 'DisputeStateMachine', 'DisputeService']
