"""
Timeline construction.

The timeline is the ordered set of instants at which the simulation is
advanced: every observation timestamp of every instrument that falls inside
the configured window, sorted ascending and deduplicated.
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime

from loguru import logger

from src.core.models.market import InstrumentKey, Observation
from src.core.protocols import MarketDataSource


class TimelineBuilder:
    """Builds the processing timeline for a run."""

    @staticmethod
    def build(
        history: Mapping[InstrumentKey, Sequence[Observation]],
        start_date: datetime,
        end_date: datetime,
        instruments: Iterable[InstrumentKey] | None = None,
    ) -> list[datetime]:
        """
        Collect timestamps inside ``[start_date, end_date]``.

        Args:
            history: Observations per instrument
            start_date: Inclusive window start
            end_date: Inclusive window end
            instruments: Restrict to these instruments (default: all in ``history``)

        Returns:
            Strictly increasing list of timestamps; empty when no
            observation falls inside the window
        """
        keys = list(history) if instruments is None else list(instruments)
        timestamps: set[datetime] = set()
        for key in keys:
            for observation in history.get(key, ()):
                if start_date <= observation.timestamp <= end_date:
                    timestamps.add(observation.timestamp)

        timeline = sorted(timestamps)
        logger.debug(f"Timeline built: {len(timeline)} timestamps from {len(keys)} instruments")
        return timeline

    @classmethod
    def from_market_data(
        cls,
        market_data: MarketDataSource,
        start_date: datetime,
        end_date: datetime,
        instruments: Iterable[InstrumentKey] | None = None,
    ) -> list[datetime]:
        """Build the timeline directly from a market data source."""
        keys = market_data.instruments() if instruments is None else list(instruments)
        history = {key: market_data.get_history(key.symbol, key.market) for key in keys}
        return cls.build(history, start_date, end_date)
