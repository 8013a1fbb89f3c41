"""
Position domain model.
Optimized for high-performance backtesting with float operations.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from src.core.enums import ExitReason, PositionStatus
from src.core.exceptions.backtest import ValidationError
from src.core.models.market import InstrumentKey
from src.core.models.signal import TradingSignal
from src.core.types.financial import ZERO, calculate_notional_value, calculate_pnl
from src.core.utils.validation import validate_positive


@dataclass
class Position:
    """An open simulated exposure on one instrument.

    The side is implied by the originating signal: BUY signals open long
    positions, SELL signals open short positions.
    """

    id: str
    symbol: str
    market: str
    signal: TradingSignal
    entry_time: datetime
    entry_price: float
    quantity: float
    stop_loss: float
    take_profit: float
    current_price: float
    unrealized_pnl: float = ZERO
    entry_commission: float = ZERO
    status: PositionStatus = PositionStatus.OPEN

    def __post_init__(self) -> None:
        """Validate position data after initialization."""
        validate_positive(self.entry_price, "Entry price")
        validate_positive(self.quantity, "Quantity")
        if not self.signal.direction.is_actionable:
            raise ValidationError("Positions cannot be opened from HOLD signals")

    @property
    def key(self) -> InstrumentKey:
        """Instrument key of this position."""
        return InstrumentKey(self.symbol, self.market)

    @property
    def direction(self) -> int:
        """+1 for long positions, -1 for short positions."""
        return self.signal.direction.sign

    @property
    def is_long(self) -> bool:
        """Check if position is long."""
        return self.direction > 0

    @property
    def notional_value(self) -> float:
        """Notional value committed at entry."""
        return calculate_notional_value(self.quantity, self.entry_price)

    def calculate_unrealized_pnl(self, price: float) -> float:
        """Calculate unrealized P&L at ``price``.

        Args:
            price: Mark price

        Returns:
            (price - entry) * quantity * direction
        """
        return calculate_pnl(self.entry_price, price, self.quantity, self.direction)

    def mark_to_market(self, price: float) -> None:
        """Update current price and unrealized P&L."""
        self.current_price = price
        self.unrealized_pnl = self.calculate_unrealized_pnl(price)

    def is_stop_loss_hit(self, price: float | None = None) -> bool:
        """Check if the stop-loss is breached at ``price`` (default: current price)."""
        check_price = self.current_price if price is None else price
        if self.is_long:
            return check_price <= self.stop_loss
        return check_price >= self.stop_loss

    def is_take_profit_hit(self, price: float | None = None) -> bool:
        """Check if the take-profit is reached at ``price`` (default: current price)."""
        check_price = self.current_price if price is None else price
        if self.is_long:
            return check_price >= self.take_profit
        return check_price <= self.take_profit

    def should_close(self, price: float | None = None) -> bool:
        """Check exit conditions at ``price``."""
        return self.is_stop_loss_hit(price) or self.is_take_profit_hit(price)

    def exit_reason(self, forced: bool = False) -> ExitReason:
        """Determine why the position is being closed at its current price."""
        if forced:
            return ExitReason.MANUAL
        if self.is_stop_loss_hit():
            return ExitReason.STOP_LOSS
        if self.is_take_profit_hit():
            return ExitReason.TAKE_PROFIT
        return ExitReason.MANUAL

    def snapshot(self) -> "Position":
        """Return a detached copy for history snapshots."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert position to dictionary."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "market": self.market,
            "direction": self.signal.direction.value,
            "entry_time": self.entry_time.isoformat(),
            "entry_price": self.entry_price,
            "quantity": self.quantity,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "entry_commission": self.entry_commission,
            "status": self.status.value,
        }
