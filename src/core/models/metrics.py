"""
Performance metrics model.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PerformanceMetrics:
    """Standardized statistics of a completed run.

    Derived once from the closed-trade ledger and the equity/drawdown curves;
    never updated incrementally. Percentages are expressed in percent
    (``win_rate`` 55.0 means 55%).
    """

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    total_pnl: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    max_drawdown: float = 0.0
    max_drawdown_amount: float = 0.0
    sharpe_ratio: float = 0.0
    calmar_ratio: float = 0.0
    recovery_factor: float = 0.0
    profitability_index: float = 0.0
    expectancy: float = 0.0
    total_commission: float = 0.0
    total_slippage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary.

        Infinite values (profit factor with no losses) are kept as
        ``float("inf")``; serializers decide how to encode them.
        """
        return asdict(self)

    def to_json_safe_dict(self) -> dict[str, Any]:
        """Convert metrics to a dictionary with infinities replaced by None."""
        return {
            name: (None if isinstance(value, float) and math.isinf(value) else value)
            for name, value in self.to_dict().items()
        }
