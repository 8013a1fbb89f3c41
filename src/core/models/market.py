"""
Market observation domain model.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple

from src.core.utils.validation import validate_non_negative, validate_positive


class InstrumentKey(NamedTuple):
    """Identifies an instrument within the backtest universe."""

    symbol: str
    market: str

    def __str__(self) -> str:
        return f"{self.symbol}_{self.market}"


@dataclass(frozen=True)
class Observation:
    """A single price/volume snapshot for one instrument.

    ``price`` is the reference price used for marking and exits; the OHLC
    fields are optional and only consumed by indicator calculations.
    """

    symbol: str
    market: str
    timestamp: datetime
    price: float
    volume: float = 0.0
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    high_24h: float | None = None
    low_24h: float | None = None
    change_24h: float | None = None

    def __post_init__(self) -> None:
        """Validate observation data after initialization."""
        validate_positive(self.price, "Observation price")
        validate_non_negative(self.volume, "Observation volume")

    @property
    def key(self) -> InstrumentKey:
        """Instrument key of this observation."""
        return InstrumentKey(self.symbol, self.market)
