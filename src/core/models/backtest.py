"""
Backtest configuration and results models.
"""

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any

import pandas as pd

from src.core.constants import DEFAULT_MIN_CONFIDENCE, DEFAULT_PROGRESS_INTERVAL
from src.core.enums import OptimizationMetric
from src.core.exceptions.backtest import ConfigurationError
from src.core.models.market import InstrumentKey
from src.core.models.metrics import PerformanceMetrics
from src.core.models.position import Position
from src.core.models.trade import ClosedTrade


def new_result_id() -> str:
    """Short random id for stored results."""
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class BacktestConfig:
    """Immutable run parameters for a backtest execution.

    Rates (``commission``, ``slippage``, ``max_position_size``,
    ``risk_per_trade``) are percentages in [0, 100].
    """

    start_date: datetime
    end_date: datetime
    initial_capital: float
    symbols: tuple[str, ...]
    markets: tuple[str, ...] = ("crypto",)
    commission: float = 0.1
    slippage: float = 0.05
    max_position_size: float = 10.0
    risk_per_trade: float = 2.0
    timeframes: tuple[str, ...] = ("1h",)
    optimization_metric: OptimizationMetric = OptimizationMetric.COMPOSITE
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    progress_interval: int = DEFAULT_PROGRESS_INTERVAL

    def __post_init__(self) -> None:
        """Normalize sequence and enum fields."""
        object.__setattr__(self, "symbols", tuple(self.symbols))
        object.__setattr__(self, "markets", tuple(self.markets))
        object.__setattr__(self, "timeframes", tuple(self.timeframes))
        if not isinstance(self.optimization_metric, OptimizationMetric):
            object.__setattr__(
                self,
                "optimization_metric",
                OptimizationMetric.from_string(str(self.optimization_metric)),
            )

    @property
    def universe(self) -> list[InstrumentKey]:
        """All (symbol, market) pairs, symbols outermost."""
        return [InstrumentKey(symbol, market) for symbol in self.symbols for market in self.markets]

    def is_valid_date_range(self) -> bool:
        """Validate that end_date is after start_date."""
        return self.end_date > self.start_date

    def duration_days(self) -> int:
        """Calculate duration of backtest in days."""
        return (self.end_date - self.start_date).days

    def is_valid_capital(self) -> bool:
        """Validate initial capital is positive."""
        return self.initial_capital > 0

    def is_valid_rates(self) -> bool:
        """Validate that all percentage rates lie in [0, 100]."""
        rates = (self.commission, self.slippage, self.max_position_size, self.risk_per_trade)
        return all(0.0 <= rate <= 100.0 for rate in rates)

    def is_valid_universe(self) -> bool:
        """Validate that at least one instrument is configured."""
        return bool(self.symbols) and bool(self.markets)

    def validation_errors(self) -> list[str]:
        """Collect human-readable descriptions of every invalid field."""
        errors = []
        if not self.is_valid_date_range():
            errors.append(
                f"end_date ({self.end_date.isoformat()}) must be after "
                f"start_date ({self.start_date.isoformat()})"
            )
        if not self.is_valid_capital():
            errors.append(f"initial_capital must be positive, got {self.initial_capital}")
        if not self.is_valid_rates():
            errors.append(
                "commission, slippage, max_position_size and risk_per_trade must be in [0, 100]"
            )
        if not self.is_valid_universe():
            errors.append("universe is empty: at least one symbol and one market are required")
        if not 0.0 <= self.min_confidence <= 1.0:
            errors.append(f"min_confidence must be in [0, 1], got {self.min_confidence}")
        if self.progress_interval <= 0:
            errors.append(f"progress_interval must be positive, got {self.progress_interval}")
        return errors

    def validate(self) -> "BacktestConfig":
        """Fail fast on invalid configuration.

        Raises:
            ConfigurationError: If any field is invalid
        """
        errors = self.validation_errors()
        if errors:
            raise ConfigurationError("Invalid backtest configuration: " + "; ".join(errors))
        return self

    def replace(self, **changes: Any) -> "BacktestConfig":
        """Return a validated copy with ``changes`` applied.

        Raises:
            ConfigurationError: If a change names an unknown field or the
                resulting configuration is invalid
        """
        unknown = set(changes) - self.field_names()
        if unknown:
            raise ConfigurationError(f"Unknown configuration fields: {sorted(unknown)}")
        return replace(self, **changes).validate()

    @classmethod
    def field_names(cls) -> set[str]:
        """Names of all configuration fields."""
        return {f.name for f in fields(cls)}

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "initial_capital": self.initial_capital,
            "symbols": list(self.symbols),
            "markets": list(self.markets),
            "commission": self.commission,
            "slippage": self.slippage,
            "max_position_size": self.max_position_size,
            "risk_per_trade": self.risk_per_trade,
            "timeframes": list(self.timeframes),
            "optimization_metric": self.optimization_metric.value,
            "min_confidence": self.min_confidence,
            "progress_interval": self.progress_interval,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BacktestConfig":
        """Create config from a dictionary produced by ``to_dict``."""
        values = {key: value for key, value in data.items() if key in cls.field_names()}
        for date_field in ("start_date", "end_date"):
            if isinstance(values.get(date_field), str):
                values[date_field] = datetime.fromisoformat(values[date_field])
        return cls(**values)


@dataclass(frozen=True)
class EquityPoint:
    """Account equity at a processed timestamp."""

    timestamp: datetime
    equity: float


@dataclass(frozen=True)
class DrawdownPoint:
    """Percentage decline below the running equity peak at a timestamp."""

    timestamp: datetime
    drawdown: float


@dataclass(frozen=True)
class BacktestSnapshot:
    """Account state recorded after each processed timestamp."""

    timestamp: datetime
    equity: float
    cash: float
    positions: tuple[Position, ...]
    drawdown: float
    total_trades: int
    winning_trades: int
    losing_trades: int

    def to_dict(self) -> dict[str, Any]:
        """Convert snapshot to dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "equity": self.equity,
            "cash": self.cash,
            "positions": [position.to_dict() for position in self.positions],
            "drawdown": self.drawdown,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Results from a completed backtest execution."""

    config: BacktestConfig
    initial_capital: float
    final_capital: float
    total_return: float
    annualized_return: float
    metrics: PerformanceMetrics
    trades: tuple[ClosedTrade, ...] = ()
    equity_curve: tuple[EquityPoint, ...] = ()
    drawdown_curve: tuple[DrawdownPoint, ...] = ()
    snapshots: tuple[BacktestSnapshot, ...] = field(default=(), repr=False)
    id: str = field(default_factory=new_result_id)

    @property
    def start_date(self) -> datetime:
        return self.config.start_date

    @property
    def end_date(self) -> datetime:
        return self.config.end_date

    def is_profitable(self) -> bool:
        """Check if the backtest was profitable."""
        return self.total_return > 0.0

    def performance_summary(self) -> dict[str, Any]:
        """Get a summary of key performance metrics."""
        return {
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "total_trades": self.metrics.total_trades,
            "win_rate": self.metrics.win_rate,
            "profit_factor": self.metrics.profit_factor,
            "max_drawdown": self.metrics.max_drawdown,
            "duration_days": self.config.duration_days(),
        }

    def equity_frame(self) -> pd.DataFrame:
        """Equity and drawdown curves as a DataFrame indexed by timestamp."""
        if not self.equity_curve:
            return pd.DataFrame(columns=["equity", "drawdown"], dtype="float64")

        frame = pd.DataFrame(
            {
                "timestamp": [point.timestamp for point in self.equity_curve],
                "equity": [point.equity for point in self.equity_curve],
                "drawdown": [point.drawdown for point in self.drawdown_curve],
            }
        )
        return frame.set_index("timestamp")

    def trades_frame(self) -> pd.DataFrame:
        """Closed trades as a DataFrame, one row per trade."""
        return pd.DataFrame([trade.to_dict() for trade in self.trades])

    def to_dict(self, include_snapshots: bool = False) -> dict[str, Any]:
        """Convert results to dictionary."""
        data = {
            "id": self.id,
            "config": self.config.to_dict(),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "metrics": self.metrics.to_json_safe_dict(),
            "trades": [trade.to_dict() for trade in self.trades],
            "equity_curve": [
                {"timestamp": point.timestamp.isoformat(), "equity": point.equity}
                for point in self.equity_curve
            ],
            "drawdown_curve": [
                {"timestamp": point.timestamp.isoformat(), "drawdown": point.drawdown}
                for point in self.drawdown_curve
            ],
        }
        if include_snapshots:
            data["snapshots"] = [snapshot.to_dict() for snapshot in self.snapshots]
        return data
