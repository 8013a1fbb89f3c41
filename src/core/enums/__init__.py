"""
Core enumerations for the backtesting engine.

This module provides centralized enumerations for domain concepts
like signal directions, position states, exit reasons and run states.
"""

from .position_types import ExitReason, PositionStatus, SignalCategory, SignalDirection
from .run_states import OptimizationMetric, RunState

__all__ = [
    "SignalDirection",
    "SignalCategory",
    "PositionStatus",
    "ExitReason",
    "RunState",
    "OptimizationMetric",
]
