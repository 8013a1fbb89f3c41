"""
In-memory historical market data source.

Holds an immutable, chronologically sorted view of every instrument's
observations and answers point-in-time lookups with
last-observation-carried-forward semantics. Safe to share between
concurrently running backtests because nothing is mutated after
construction.
"""

from bisect import bisect_right
from collections.abc import Iterable, Mapping
from datetime import datetime
from types import MappingProxyType

import pandas as pd
from loguru import logger

from src.core.exceptions.backtest import DataError
from src.core.models.market import InstrumentKey, Observation


class HistoricalMarketData:
    """Read-only market data keyed by (symbol, market)."""

    def __init__(self, history: Mapping[tuple[str, str], Iterable[Observation]]) -> None:
        """Build the immutable view.

        Args:
            history: Observations per (symbol, market); order does not matter

        Raises:
            DataError: If an instrument contains duplicate timestamps or
                observations belonging to a different instrument
        """
        series: dict[InstrumentKey, tuple[Observation, ...]] = {}
        timestamps: dict[InstrumentKey, tuple[datetime, ...]] = {}

        for raw_key, observations in history.items():
            key = InstrumentKey(*raw_key)
            ordered = tuple(sorted(observations, key=lambda obs: obs.timestamp))
            self._validate_series(key, ordered)
            series[key] = ordered
            timestamps[key] = tuple(obs.timestamp for obs in ordered)

        self._series = MappingProxyType(series)
        self._timestamps = MappingProxyType(timestamps)
        logger.debug(
            f"Market data ready: {len(series)} instruments, "
            f"{sum(len(obs) for obs in series.values())} observations"
        )

    @staticmethod
    def _validate_series(key: InstrumentKey, ordered: tuple[Observation, ...]) -> None:
        """Validate one instrument's sorted observations."""
        for previous, current in zip(ordered, ordered[1:], strict=False):
            if previous.timestamp == current.timestamp:
                raise DataError(f"Duplicate timestamp {current.timestamp.isoformat()} for {key}")
        for observation in ordered:
            if observation.key != key:
                raise DataError(f"Observation for {observation.key} stored under {key}")

    @classmethod
    def from_observations(cls, observations: Iterable[Observation]) -> "HistoricalMarketData":
        """Group a flat observation stream by instrument."""
        grouped: dict[InstrumentKey, list[Observation]] = {}
        for observation in observations:
            grouped.setdefault(observation.key, []).append(observation)
        return cls(grouped)

    @classmethod
    def from_frames(cls, frames: Mapping[tuple[str, str], pd.DataFrame]) -> "HistoricalMarketData":
        """Build from OHLCV DataFrames keyed by (symbol, market).

        Each frame needs a ``timestamp`` column (datetime-like or epoch
        milliseconds) and either ``price`` or ``close``.
        """
        from .csv_loader import frame_to_observations

        return cls(
            {
                InstrumentKey(*key): frame_to_observations(frame, key[0], key[1])
                for key, frame in frames.items()
            }
        )

    def get_observation(self, symbol: str, market: str, timestamp: datetime) -> Observation | None:
        """Most recent observation at or before ``timestamp`` (no look-ahead)."""
        key = InstrumentKey(symbol, market)
        timestamps = self._timestamps.get(key)
        if not timestamps:
            return None

        index = bisect_right(timestamps, timestamp)
        if index == 0:
            return None
        return self._series[key][index - 1]

    def get_history(self, symbol: str, market: str) -> tuple[Observation, ...]:
        """Full chronological history of one instrument (empty if unknown)."""
        return self._series.get(InstrumentKey(symbol, market), ())

    def instruments(self) -> list[InstrumentKey]:
        """Instruments with at least one observation."""
        return [key for key, observations in self._series.items() if observations]

    def as_history(self) -> Mapping[InstrumentKey, tuple[Observation, ...]]:
        """Read-only mapping of every instrument's observations."""
        return self._series

    def observation_count(self) -> int:
        """Total number of observations across instruments."""
        return sum(len(observations) for observations in self._series.values())

    def __len__(self) -> int:
        return len(self._series)

    def __contains__(self, key: object) -> bool:
        return key in self._series
