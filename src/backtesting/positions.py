"""
Position management.

Marks open positions to the market at each tick and decides which ones have
reached their stop-loss or take-profit level.
"""

from datetime import datetime

from loguru import logger

from src.core.models.market import InstrumentKey
from src.core.models.position import Position
from src.core.protocols import MarketDataSource

from .run_context import RunContext


class PositionManager:
    """Per-tick update pass over a run's open positions."""

    def __init__(self, market_data: MarketDataSource) -> None:
        self._market_data = market_data

    def update_positions(self, context: RunContext, timestamp: datetime) -> list[Position]:
        """
        Mark every open position at ``timestamp`` and collect exits.

        The price used is the instrument's most recent observation at or
        before ``timestamp``; positions without such an observation keep
        their previous mark.

        Args:
            context: Run whose positions are updated in place
            timestamp: Current tick

        Returns:
            Positions whose exit condition is met, in opening order
        """
        to_close = []
        for position in context.open_positions():
            observation = self._market_data.get_observation(
                position.symbol, position.market, timestamp
            )
            if observation is None:
                continue

            position.mark_to_market(observation.price)
            if position.should_close():
                logger.debug(
                    f"Exit condition met for {position.id} at {observation.price} "
                    f"(stop={position.stop_loss}, target={position.take_profit})"
                )
                to_close.append(position)
        return to_close

    @staticmethod
    def has_open_position(context: RunContext, symbol: str, market: str) -> bool:
        """Check whether the instrument already carries an open position."""
        return context.has_position(InstrumentKey(symbol, market))
