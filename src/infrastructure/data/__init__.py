"""
Data loading infrastructure.

This module provides loading, validation, point-in-time access and
indicator context for historical market data.
"""

from .csv_loader import CSVDataLoader, frame_to_observations
from .market_data import HistoricalMarketData
from .ohlcv_validator import OHLCVValidator
from .technical_indicators import IndicatorContextProvider, TechnicalIndicatorsCalculator

__all__ = [
    "CSVDataLoader",
    "HistoricalMarketData",
    "IndicatorContextProvider",
    "OHLCVValidator",
    "TechnicalIndicatorsCalculator",
    "frame_to_observations",
]
