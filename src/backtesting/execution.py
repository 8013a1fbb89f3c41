"""
Execution simulation.

Turns accepted signals into positions and closes positions into ledger
records, applying position sizing, slippage and commission.
"""

from datetime import datetime

from loguru import logger

from src.core.enums import PositionStatus
from src.core.exceptions.backtest import PositionNotFoundError
from src.core.models.backtest import BacktestConfig
from src.core.models.market import InstrumentKey
from src.core.models.position import Position
from src.core.models.signal import TradingSignal
from src.core.models.trade import ClosedTrade
from src.core.types.financial import (
    ZERO,
    apply_slippage,
    calculate_commission,
    calculate_notional_value,
    calculate_pnl,
    percent_of,
    safe_divide,
)

from .events import EventBus, PositionClosedEvent, PositionOpenedEvent
from .run_context import RunContext


def position_id(symbol: str, market: str, timestamp: datetime) -> str:
    """Deterministic position id: ``<symbol>_<market>_<epoch ms>``."""
    return f"{symbol}_{market}_{int(timestamp.timestamp() * 1000)}"


class ExecutionSimulator:
    """Simulated order fills for one configuration."""

    def __init__(self, config: BacktestConfig, event_bus: EventBus | None = None) -> None:
        self.config = config
        self._event_bus = event_bus

    def calculate_position_size(self, equity: float, signal: TradingSignal) -> float:
        """
        Risk-based position size.

        ``equity * risk_per_trade% / |entry - stop|``, capped at
        ``equity * max_position_size% / entry``.

        Returns:
            Quantity to trade; 0.0 when the signal has no stop distance or
            equity is exhausted
        """
        if equity <= ZERO or signal.stop_distance == ZERO:
            return ZERO

        risk_amount = percent_of(equity, self.config.risk_per_trade)
        risk_based = risk_amount / signal.stop_distance
        max_size = safe_divide(percent_of(equity, self.config.max_position_size), signal.entry_price)
        return min(risk_based, max_size)

    def open_position(
        self, context: RunContext, signal: TradingSignal, timestamp: datetime
    ) -> Position | None:
        """
        Open a position for ``signal`` if sizing and cash allow it.

        Rejections (occupied instrument, zero size, non-positive fill price,
        insufficient cash) are silent: they are logged at debug level and return None.

        Returns:
            The opened position, or None if the entry was rejected
        """
        if context.has_position(InstrumentKey(signal.symbol, signal.market)):
            logger.debug(f"Ignoring signal for {signal.symbol}: position already open")
            return None

        quantity = self.calculate_position_size(context.equity, signal)
        if quantity <= ZERO:
            logger.debug(f"Rejected entry for {signal.symbol}: position size is zero")
            return None

        fill_price = apply_slippage(signal.entry_price, self.config.slippage, signal.direction.sign)
        if fill_price <= ZERO:
            logger.debug(f"Rejected entry for {signal.symbol}: fill price {fill_price:.4f}")
            return None
        notional = calculate_notional_value(quantity, fill_price)
        commission = calculate_commission(notional, self.config.commission)

        if notional + commission > context.available_cash:
            logger.debug(
                f"Rejected entry for {signal.symbol}: requires {notional + commission:.2f}, "
                f"available {context.available_cash:.2f}"
            )
            return None

        position = Position(
            id=position_id(signal.symbol, signal.market, timestamp),
            symbol=signal.symbol,
            market=signal.market,
            signal=signal,
            entry_time=timestamp,
            entry_price=fill_price,
            quantity=quantity,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            current_price=fill_price,
            entry_commission=commission,
        )

        context.cash -= commission
        context.positions[position.key] = position

        logger.debug(
            f"Opened {signal.direction.value} {position.id}: {quantity:.6f} @ {fill_price:.4f}"
        )
        if self._event_bus is not None:
            self._event_bus.publish(PositionOpenedEvent(position=position.snapshot()))
        return position

    def close_position(
        self,
        context: RunContext,
        position: Position,
        timestamp: datetime,
        forced: bool = False,
    ) -> ClosedTrade:
        """
        Close ``position`` at its current price and record the trade.

        Args:
            context: Run owning the position
            position: Open position to close
            timestamp: Exit time
            forced: Close regardless of exit levels (end of run)

        Returns:
            Ledger record of the closed trade

        Raises:
            PositionNotFoundError: If the position is not open in ``context``
        """
        if context.positions.get(position.key) is not position:
            raise PositionNotFoundError(position.id)

        exit_reason = position.exit_reason(forced=forced)
        reference_price = position.current_price
        exit_price = apply_slippage(reference_price, self.config.slippage, -position.direction)

        gross_pnl = calculate_pnl(
            position.entry_price, exit_price, position.quantity, position.direction
        )
        exit_commission = calculate_commission(
            calculate_notional_value(position.quantity, exit_price), self.config.commission
        )
        net_pnl = gross_pnl - position.entry_commission - exit_commission

        trade = ClosedTrade(
            id=position.id,
            signal=position.signal,
            symbol=position.symbol,
            market=position.market,
            entry_time=position.entry_time,
            exit_time=timestamp,
            entry_price=position.entry_price,
            exit_price=exit_price,
            quantity=position.quantity,
            gross_pnl=gross_pnl,
            pnl=net_pnl,
            pnl_percentage=safe_divide(net_pnl, position.notional_value) * 100,
            commission=position.entry_commission + exit_commission,
            slippage=abs(exit_price - reference_price),
            exit_reason=exit_reason,
        )

        context.cash += gross_pnl - exit_commission
        del context.positions[position.key]
        position.status = PositionStatus.CLOSED
        position.unrealized_pnl = ZERO
        context.trades.append(trade)

        logger.debug(f"Closed {position.id} ({exit_reason.value}): pnl={net_pnl:.2f}")
        if self._event_bus is not None:
            self._event_bus.publish(PositionClosedEvent(position=position.snapshot(), trade=trade))
        return trade
