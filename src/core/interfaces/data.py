"""
Data access interfaces.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from src.core.models.backtest import DrawdownPoint, EquityPoint
from src.core.models.market import Observation
from src.core.models.metrics import PerformanceMetrics
from src.core.models.trade import ClosedTrade


class IDataLoader(ABC):
    """Abstract interface for historical data loading."""

    @abstractmethod
    async def load_observations(
        self,
        file_path: Path,
        symbol: str,
        market: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Observation]:
        """Load chronological observations for one instrument."""
        pass


class IMetricsCalculator(ABC):
    """Abstract interface for performance metrics calculation."""

    @abstractmethod
    def calculate(
        self,
        trades: Sequence[ClosedTrade],
        equity_curve: Sequence[EquityPoint],
        drawdown_curve: Sequence[DrawdownPoint],
        initial_capital: float,
    ) -> PerformanceMetrics:
        """Calculate all performance metrics of a completed run."""
        pass
