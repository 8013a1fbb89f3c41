"""
Technical Indicators Calculator.

This module computes the indicator context handed to signal sources.
Implements the Strategy Pattern for different indicator calculation strategies.

Every indicator is causal (rolling windows and exponential averages only
look backwards), so the value at a timestamp never depends on later data.
"""

import threading
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

import numpy as np
import pandas as pd
from loguru import logger

from src.core.exceptions.backtest import CalculationError
from src.core.models.market import InstrumentKey, Observation
from src.core.models.signal import SignalIndicators
from src.core.protocols import MarketDataSource


class IndicatorStrategy(Protocol):
    """Protocol for technical indicator calculation strategies."""

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        """Calculate specific indicator for the given data."""
        ...


class MovingAverageStrategy:
    """Strategy for calculating exponential moving averages."""

    def __init__(self, spans: tuple[int, ...] = (20, 50, 200)):
        self.spans = spans

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        """Add ``ema_<span>`` columns."""
        result = data.copy()
        for span in self.spans:
            result[f"ema_{span}"] = result["close"].ewm(span=span, adjust=False).mean()
        return result


class MACDStrategy:
    """Strategy for calculating MACD (Moving Average Convergence Divergence) indicators."""

    def __init__(self, fast: int = 12, slow: int = 26, signal: int = 9):
        self.fast = fast
        self.slow = slow
        self.signal = signal

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        """Add MACD line, signal line and histogram."""
        result = data.copy()

        fast_ema = result["close"].ewm(span=self.fast, adjust=False).mean()
        slow_ema = result["close"].ewm(span=self.slow, adjust=False).mean()

        result["macd"] = fast_ema - slow_ema
        result["macd_signal"] = result["macd"].ewm(span=self.signal, adjust=False).mean()
        result["macd_histogram"] = result["macd"] - result["macd_signal"]

        return result


class RSIStrategy:
    """Strategy for calculating RSI (Relative Strength Index) indicator."""

    def __init__(self, period: int = 14):
        """Initialize RSI strategy with configurable period."""
        self.period = period

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        """Add RSI indicator; a window without losses reads 100."""
        result = data.copy()

        delta = result["close"].diff()
        gain = delta.clip(lower=0).rolling(window=self.period).mean()
        loss = (-delta).clip(lower=0).rolling(window=self.period).mean()

        with np.errstate(divide="ignore", invalid="ignore"):
            rs = gain / loss
            rsi = 100 - (100 / (1 + rs))
        result["rsi"] = rsi.where(loss != 0, 100.0).where(gain.notna())

        return result


class BollingerBandsStrategy:
    """Strategy for calculating Bollinger Bands indicators."""

    def __init__(self, period: int = 20, std_multiplier: float = 2.0):
        """Initialize Bollinger Bands strategy with configurable parameters."""
        self.period = period
        self.std_multiplier = std_multiplier

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        """Add Bollinger Bands indicators."""
        result = data.copy()

        bb_middle = result["close"].rolling(window=self.period).mean()
        bb_std = result["close"].rolling(window=self.period).std()

        result["bb_upper"] = bb_middle + (self.std_multiplier * bb_std)
        result["bb_lower"] = bb_middle - (self.std_multiplier * bb_std)
        result["bb_middle"] = bb_middle

        return result


class TechnicalIndicatorsCalculator:
    """
    Technical indicators calculator using Strategy Pattern.

    This class orchestrates different indicator calculation strategies
    and provides a clean interface for adding indicators to price data.
    """

    def __init__(self) -> None:
        """Initialize calculator with default strategies."""
        self._strategies: dict[str, IndicatorStrategy] = {
            "moving_averages": MovingAverageStrategy(),
            "macd": MACDStrategy(),
            "rsi": RSIStrategy(),
            "bollinger_bands": BollingerBandsStrategy(),
        }

    def add_strategy(self, name: str, strategy: IndicatorStrategy) -> None:
        """Add a new indicator calculation strategy."""
        self._strategies[name] = strategy

    def remove_strategy(self, name: str) -> None:
        """Remove an indicator calculation strategy."""
        self._strategies.pop(name, None)

    def get_available_indicators(self) -> list[str]:
        """Get list of available indicator strategies."""
        return list(self._strategies.keys())

    def calculate_all_indicators(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Calculate all configured technical indicators.

        Args:
            data: DataFrame with at least a ``close`` column

        Returns:
            DataFrame with additional indicator columns

        Raises:
            CalculationError: If an indicator cannot be calculated
        """
        if data.empty:
            return data

        result = data.copy()
        for name, strategy in self._strategies.items():
            logger.debug(f"Calculating {name} indicators")
            try:
                result = strategy.calculate(result)
            except (ValueError, TypeError, KeyError) as e:
                logger.error(f"Failed to calculate {name} indicators: {e}")
                raise CalculationError(f"Technical indicator calculation failed for {name}") from e

        return result


def observations_to_frame(observations: Sequence[Observation]) -> pd.DataFrame:
    """Price frame indexed by timestamp; ``close`` falls back to ``price``."""
    return pd.DataFrame(
        {
            "close": [
                obs.close if obs.close is not None else obs.price for obs in observations
            ],
            "volume": [obs.volume for obs in observations],
        },
        index=pd.Index([obs.timestamp for obs in observations], name="timestamp"),
    )


class IndicatorContextProvider:
    """
    Supplies per-observation indicator context from historical market data.

    Indicator frames are computed once per instrument on first use and then
    only read, so a single provider can serve concurrent optimization runs.
    """

    def __init__(
        self,
        market_data: MarketDataSource,
        calculator: TechnicalIndicatorsCalculator | None = None,
    ):
        self._market_data = market_data
        self._calculator = calculator or TechnicalIndicatorsCalculator()
        self._contexts: dict[InstrumentKey, dict[datetime, SignalIndicators]] = {}
        self._lock = threading.Lock()

    def _build_contexts(self, key: InstrumentKey) -> dict[datetime, SignalIndicators]:
        history = self._market_data.get_history(key.symbol, key.market)
        if not history:
            return {}

        frame = self._calculator.calculate_all_indicators(observations_to_frame(history))
        contexts = {
            observation.timestamp: SignalIndicators.from_mapping(row)
            for observation, row in zip(history, frame.to_dict("records"), strict=True)
        }
        logger.debug(f"Computed indicator context for {key}: {len(contexts)} rows")
        return contexts

    def get_context(self, observation: Observation) -> SignalIndicators | None:
        """Indicator values at ``observation.timestamp`` or None if unknown."""
        key = observation.key
        with self._lock:
            if key not in self._contexts:
                self._contexts[key] = self._build_contexts(key)
            contexts = self._contexts[key]
        return contexts.get(observation.timestamp)
