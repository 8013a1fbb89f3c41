"""
Optimization domain models.
"""

import math
from dataclasses import dataclass, field
from typing import Any

from src.core.constants import GRID_STEP_EPSILON, GRID_VALUE_DECIMALS
from src.core.exceptions.backtest import ValidationError
from src.core.models.metrics import PerformanceMetrics
from src.core.utils.validation import validate_non_negative, validate_percentage


@dataclass(frozen=True)
class OptimizationParameter:
    """A discretized parameter axis: values ``min, min + step, ... <= max``."""

    name: str
    min: float
    max: float
    step: float

    def __post_init__(self) -> None:
        """Validate parameter bounds after initialization."""
        if not self.name:
            raise ValidationError("Optimization parameter name must not be empty")
        if self.step <= 0:
            raise ValidationError(f"Step for {self.name} must be positive, got {self.step}")
        if self.max < self.min:
            raise ValidationError(
                f"Max for {self.name} must be >= min, got min={self.min} max={self.max}"
            )

    @property
    def steps(self) -> int:
        """Number of grid values: ``floor((max - min) / step + 1)``."""
        return math.floor((self.max - self.min) / self.step + 1 + GRID_STEP_EPSILON)

    def value_at(self, index: int) -> float:
        """Grid value at ``index`` (0-based)."""
        if not 0 <= index < self.steps:
            raise IndexError(f"Index {index} out of range for parameter {self.name}")
        return round(self.min + index * self.step, GRID_VALUE_DECIMALS)

    def values(self) -> list[float]:
        """All grid values in ascending order."""
        return [self.value_at(index) for index in range(self.steps)]

    @classmethod
    def from_string(cls, definition: str) -> "OptimizationParameter":
        """Parse ``name:min:max:step``.

        Examples:
            >>> OptimizationParameter.from_string("risk_per_trade:1:3:1").steps
            3
        """
        parts = definition.split(":")
        if len(parts) != 4:
            raise ValidationError(
                f"Parameter definition must be name:min:max:step, got {definition!r}"
            )
        name, minimum, maximum, step = parts
        try:
            return cls(name=name, min=float(minimum), max=float(maximum), step=float(step))
        except ValueError as e:
            raise ValidationError(
                f"Invalid numeric value in parameter definition {definition!r}"
            ) from e


@dataclass(frozen=True)
class OptimizationConstraints:
    """Minimum quality bar a combination must clear to be ranked.

    ``None`` disables a constraint.
    """

    min_win_rate: float | None = None
    max_drawdown: float | None = None
    min_profit_factor: float | None = None
    min_trades: int | None = None

    def __post_init__(self) -> None:
        """Validate constraint bounds after initialization."""
        if self.min_win_rate is not None:
            validate_percentage(self.min_win_rate, "min_win_rate")
        for name in ("max_drawdown", "min_profit_factor", "min_trades"):
            value = getattr(self, name)
            if value is not None:
                validate_non_negative(value, name)

    def is_satisfied(self, metrics: PerformanceMetrics) -> bool:
        """Check whether ``metrics`` meet every enabled constraint."""
        return not self.violations(metrics)

    def violations(self, metrics: PerformanceMetrics) -> list[str]:
        """Describe each constraint ``metrics`` fail to meet."""
        violations = []
        if self.min_win_rate is not None and metrics.win_rate < self.min_win_rate:
            violations.append(f"win_rate {metrics.win_rate:.2f} < {self.min_win_rate}")
        if self.max_drawdown is not None and metrics.max_drawdown > self.max_drawdown:
            violations.append(f"max_drawdown {metrics.max_drawdown:.2f} > {self.max_drawdown}")
        if self.min_profit_factor is not None and metrics.profit_factor < self.min_profit_factor:
            violations.append(
                f"profit_factor {metrics.profit_factor:.2f} < {self.min_profit_factor}"
            )
        if self.min_trades is not None and metrics.total_trades < self.min_trades:
            violations.append(f"total_trades {metrics.total_trades} < {self.min_trades}")
        return violations


@dataclass
class OptimizationResult:
    """Outcome of one parameter combination.

    ``rank`` is 0 until the full result list has been sorted.
    """

    parameters: dict[str, float]
    metrics: PerformanceMetrics
    score: float
    total_return: float = 0.0
    rank: int = 0
    iteration: int = field(default=0, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "parameters": dict(self.parameters),
            "metrics": self.metrics.to_json_safe_dict(),
            "score": None if math.isinf(self.score) else self.score,
            "total_return": self.total_return,
            "rank": self.rank,
            "iteration": self.iteration,
        }
