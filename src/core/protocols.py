"""
Collaborator protocols consumed by the backtesting core.

The engine never performs I/O itself: signals, market data and technical
context are injected through these structural interfaces.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from src.core.models.market import InstrumentKey, Observation
from src.core.models.signal import SignalIndicators, TradingSignal


@runtime_checkable
class SignalSource(Protocol):
    """Produces entry candidates from a market observation.

    Treated as a pure function by the engine: the same observation and
    context must always yield the same signal.
    """

    def generate_signal(
        self, observation: Observation, context: SignalIndicators | None
    ) -> TradingSignal | None:
        """Return a trading signal for ``observation`` or None."""
        ...


@runtime_checkable
class ParameterizedSignalSource(SignalSource, Protocol):
    """A signal source that can be re-derived with optimization parameters."""

    def with_parameters(self, parameters: Mapping[str, float]) -> SignalSource:
        """Return a new source configured with ``parameters``.

        Unknown parameter names are ignored. The receiver is not modified.
        """
        ...


@runtime_checkable
class MarketDataSource(Protocol):
    """Read-only historical market data with last-observation-carried-forward lookup."""

    def get_observation(
        self, symbol: str, market: str, timestamp: datetime
    ) -> Observation | None:
        """Most recent observation at or before ``timestamp``, or None."""
        ...

    def get_history(self, symbol: str, market: str) -> Sequence[Observation]:
        """Full chronological history of one instrument (empty if unknown)."""
        ...

    def instruments(self) -> list[InstrumentKey]:
        """Instruments with at least one observation."""
        ...


@runtime_checkable
class TechnicalContextProvider(Protocol):
    """Supplies indicator context for an observation without look-ahead."""

    def get_context(self, observation: Observation) -> SignalIndicators | None:
        """Indicator values computed from data up to ``observation.timestamp``."""
        ...


# Type aliases for commonly used types
MarketHistory = Mapping[InstrumentKey, Sequence[Observation]]
ParameterSet = dict[str, float]
