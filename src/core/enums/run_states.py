"""
Run lifecycle and optimization objective enumerations.
"""

from enum import StrEnum


class RunState(StrEnum):
    """State machine of a single backtest run."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    COMPLETED = "completed"

    def can_transition_to(self, target: "RunState") -> bool:
        """Check whether moving to ``target`` is a legal transition."""
        allowed = {
            RunState.INITIALIZED: {RunState.RUNNING},
            RunState.RUNNING: {RunState.COMPLETED},
            RunState.COMPLETED: set(),
        }
        return target in allowed[self]


class OptimizationMetric(StrEnum):
    """
    Objective used to score an optimization run.

    Values keep the camelCase names used in persisted configurations.
    """

    TOTAL_RETURN = "totalReturn"
    SHARPE_RATIO = "sharpeRatio"
    WIN_RATE = "winRate"
    PROFIT_FACTOR = "profitFactor"
    MAX_DRAWDOWN = "maxDrawdown"
    COMPOSITE = "composite"

    @classmethod
    def from_string(cls, value: str) -> "OptimizationMetric":
        """
        Convert a string to an OptimizationMetric, accepting snake_case too.

        Unknown names fall back to the composite score.
        """
        normalized = value.replace("_", "").lower()
        for metric in cls:
            if metric.value.lower() == normalized:
                return metric
        return cls.COMPOSITE
