"""
Closed trade domain model.
Optimized for high-performance backtesting with float operations.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.core.enums import ExitReason
from src.core.exceptions.backtest import ValidationError
from src.core.models.signal import TradingSignal


@dataclass(frozen=True)
class ClosedTrade:
    """Immutable ledger record of a closed position.

    ``pnl`` is net of entry and exit commission; ``gross_pnl`` is the raw
    price move times quantity. Slippage is already embedded in both fill
    prices, ``slippage`` records the absolute exit slippage per unit.
    """

    id: str
    signal: TradingSignal
    symbol: str
    market: str
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    quantity: float
    gross_pnl: float
    pnl: float
    pnl_percentage: float
    commission: float
    slippage: float
    exit_reason: ExitReason

    def __post_init__(self) -> None:
        """Validate trade data after initialization."""
        if self.quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got {self.quantity}")
        if self.entry_price <= 0:
            raise ValidationError(f"Entry price must be positive, got {self.entry_price}")
        # A zero exit is a total loss
        if self.exit_price < 0:
            raise ValidationError(f"Exit price must be non-negative, got {self.exit_price}")
        if self.commission < 0:
            raise ValidationError(f"Commission must be non-negative, got {self.commission}")

    @property
    def is_win(self) -> bool:
        """Check if the trade closed with a positive net P&L."""
        return self.pnl > 0

    @property
    def is_loss(self) -> bool:
        """Check if the trade closed with a negative net P&L."""
        return self.pnl < 0

    def notional_value(self) -> float:
        """Calculate the entry notional value of the trade."""
        return abs(self.quantity) * self.entry_price

    def to_dict(self) -> dict[str, Any]:
        """Convert trade to dictionary."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "market": self.market,
            "direction": self.signal.direction.value,
            "confidence": self.signal.confidence,
            "entry_time": self.entry_time.isoformat(),
            "exit_time": self.exit_time.isoformat(),
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.quantity,
            "gross_pnl": self.gross_pnl,
            "pnl": self.pnl,
            "pnl_percentage": self.pnl_percentage,
            "commission": self.commission,
            "slippage": self.slippage,
            "exit_reason": self.exit_reason.value,
        }
