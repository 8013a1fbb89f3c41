"""
Signal, position and exit enumerations.

This module defines trade directions, position lifecycle states and the
reasons a position can be closed.
"""

from enum import StrEnum


class SignalDirection(StrEnum):
    """
    Direction carried by a trading signal.

    BUY opens a long position, SELL opens a short position, HOLD never
    results in an entry.
    """

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    @property
    def sign(self) -> int:
        """P&L direction multiplier: +1 for long, -1 for short, 0 for hold."""
        if self == self.BUY:
            return 1
        if self == self.SELL:
            return -1
        return 0

    @property
    def is_actionable(self) -> bool:
        """Check if the direction can open a position."""
        return self != self.HOLD


class SignalCategory(StrEnum):
    """Origin category of a trading signal."""

    TECHNICAL = "technical"
    PATTERN = "pattern"
    MANUAL = "manual"


class PositionStatus(StrEnum):
    """Lifecycle state of a simulated position."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ExitReason(StrEnum):
    """
    Reason a position was closed.

    MANUAL covers positions force-closed at the end of a run.
    """

    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    MANUAL = "MANUAL"
