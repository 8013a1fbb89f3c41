"""
Trading signal domain model.

Signals are typed records: the engine reads direction, confidence and the
entry/stop/target prices; indicator values are kept as a fixed snapshot so
results can be inspected after a run.
"""

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from src.core.enums import SignalCategory, SignalDirection
from src.core.utils.validation import validate_confidence, validate_positive


@dataclass(frozen=True)
class SignalIndicators:
    """Technical indicator values at the time a signal or context was built."""

    rsi: float | None = None
    macd: float | None = None
    macd_signal: float | None = None
    macd_histogram: float | None = None
    bb_upper: float | None = None
    bb_middle: float | None = None
    bb_lower: float | None = None
    ema_20: float | None = None
    ema_50: float | None = None
    ema_200: float | None = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "SignalIndicators":
        """Build from a row-like mapping, mapping NaN and missing keys to None."""
        kwargs: dict[str, float | None] = {}
        for name in cls.__dataclass_fields__:
            value = values.get(name)
            if value is None or value != value:  # NaN check
                kwargs[name] = None
            else:
                kwargs[name] = float(value)
        return cls(**kwargs)

    def is_complete(self, *names: str) -> bool:
        """Check that the named indicators are all available."""
        return all(getattr(self, name) is not None for name in names)

    def to_dict(self) -> dict[str, float | None]:
        """Convert indicators to dictionary."""
        return asdict(self)


@dataclass(frozen=True)
class TradingSignal:
    """An entry candidate produced by a signal source."""

    symbol: str
    market: str
    direction: SignalDirection
    confidence: float
    entry_price: float
    stop_loss: float
    take_profit: float
    timestamp: datetime
    timeframe: str = "1h"
    category: SignalCategory = SignalCategory.TECHNICAL
    indicators: SignalIndicators = field(default_factory=SignalIndicators)

    def __post_init__(self) -> None:
        """Validate signal data after initialization."""
        validate_confidence(self.confidence, "Signal confidence")
        validate_positive(self.entry_price, "Signal entry price")

    @property
    def stop_distance(self) -> float:
        """Absolute distance between entry and stop-loss."""
        return abs(self.entry_price - self.stop_loss)

    @property
    def risk_reward(self) -> float:
        """Reward-to-risk ratio of the signal (0 when the stop distance is zero)."""
        if self.stop_distance == 0:
            return 0.0
        return abs(self.take_profit - self.entry_price) / self.stop_distance

    def to_dict(self) -> dict[str, Any]:
        """Convert signal to dictionary."""
        return {
            "symbol": self.symbol,
            "market": self.market,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "timestamp": self.timestamp.isoformat(),
            "timeframe": self.timeframe,
            "category": self.category.value,
            "indicators": self.indicators.to_dict(),
        }
