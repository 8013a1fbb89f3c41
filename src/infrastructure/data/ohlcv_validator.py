"""
OHLCV data validation module.

Validates candle data before it is turned into observations: structure,
numeric types, value ranges and OHLC relationships.
"""

import pandas as pd
from loguru import logger

from src.core.exceptions.backtest import ValidationError

REQUIRED_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]
PRICE_COLUMNS = ["open", "high", "low", "close"]
EXTREME_RANGE_THRESHOLD = 0.5  # High/low range above 50% of low is flagged


class OHLCVValidator:
    """
    OHLCV data validator.

    Errors raise ``ValidationError``; suspicious but usable data (extreme
    ranges, unsorted timestamps) is only logged, since the market data
    source sorts observations itself.
    """

    def validate_data(self, data: pd.DataFrame) -> bool:
        """
        Validate OHLCV data integrity.

        Args:
            data: DataFrame with OHLCV data

        Returns:
            True if data is valid

        Raises:
            ValidationError: If data has integrity issues
        """
        if data.empty:
            return True

        self._validate_structure(data)
        self._validate_types(data)
        self._validate_values(data)
        self._validate_ohlc_relationships(data)
        self._log_quality_warnings(data)

        return True

    def _validate_structure(self, data: pd.DataFrame) -> None:
        missing_columns = set(REQUIRED_COLUMNS) - set(data.columns)
        if missing_columns:
            raise ValidationError(f"Missing required columns: {sorted(missing_columns)}")

        duplicated = data["timestamp"].duplicated()
        if duplicated.any():
            raise ValidationError(f"Duplicate timestamps found in data ({duplicated.sum()} rows)")

    def _validate_types(self, data: pd.DataFrame) -> None:
        for col in PRICE_COLUMNS + ["volume"]:
            if not pd.api.types.is_numeric_dtype(data[col]):
                raise ValidationError(f"Column {col} must be numeric")

        for col in REQUIRED_COLUMNS:
            if data[col].isna().any():
                raise ValidationError(f"Column {col} contains NaN values")

    def _validate_values(self, data: pd.DataFrame) -> None:
        for col in PRICE_COLUMNS:
            if (data[col] <= 0).any():
                raise ValidationError(f"Column {col} contains non-positive values")

        if (data["volume"] < 0).any():
            raise ValidationError("Volume column contains negative values")

    def _validate_ohlc_relationships(self, data: pd.DataFrame) -> None:
        invalid_ohlc = (
            (data["high"] < data["low"])
            | (data["high"] < data[["open", "close"]].max(axis=1))
            | (data["low"] > data[["open", "close"]].min(axis=1))
        )

        if invalid_ohlc.any():
            raise ValidationError(f"Invalid OHLC relationships found in {invalid_ohlc.sum()} rows")

    def _log_quality_warnings(self, data: pd.DataFrame) -> None:
        candle_range = (data["high"] - data["low"]) / data["low"]
        extreme_moves = candle_range > EXTREME_RANGE_THRESHOLD
        if extreme_moves.any():
            logger.warning(
                f"Found {extreme_moves.sum()} candles with extreme price ranges "
                f"(>{EXTREME_RANGE_THRESHOLD:.0%})"
            )

        if not data["timestamp"].is_monotonic_increasing:
            logger.warning("Timestamps are not in ascending order; they will be sorted")
