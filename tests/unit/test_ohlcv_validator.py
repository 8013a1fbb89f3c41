"""
Unit tests for OHLCV data validation.
"""

import pandas as pd
import pytest

from src.core.exceptions.backtest import ValidationError
from src.infrastructure.data import OHLCVValidator


class TestOHLCVValidator:
    """Test suite for OHLCVValidator."""

    @pytest.fixture
    def validator(self) -> OHLCVValidator:
        return OHLCVValidator()

    @pytest.fixture
    def valid_data(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "timestamp": [1704067200000, 1704070800000, 1704074400000],
                "open": [100.0, 101.0, 102.0],
                "high": [102.0, 103.0, 104.0],
                "low": [99.0, 100.0, 101.0],
                "close": [101.0, 102.0, 103.0],
                "volume": [10.0, 0.0, 12.0],
            }
        )

    def test_should_accept_valid_data(self, validator: OHLCVValidator, valid_data: pd.DataFrame) -> None:
        """Test the happy path."""
        assert validator.validate_data(valid_data) is True

    def test_should_accept_empty_frame(self, validator: OHLCVValidator) -> None:
        """Test that empty data has nothing to validate."""
        assert validator.validate_data(pd.DataFrame()) is True

    def test_should_reject_missing_columns(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test structure validation."""
        with pytest.raises(ValidationError, match="Missing required columns: \\['volume'\\]"):
            validator.validate_data(valid_data.drop(columns=["volume"]))

    def test_should_reject_duplicate_timestamps(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test duplicate detection."""
        valid_data.loc[1, "timestamp"] = valid_data.loc[0, "timestamp"]

        with pytest.raises(ValidationError, match="Duplicate timestamps"):
            validator.validate_data(valid_data)

    def test_should_reject_non_numeric_prices(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test type validation."""
        valid_data["close"] = ["a", "b", "c"]

        with pytest.raises(ValidationError, match="Column close must be numeric"):
            validator.validate_data(valid_data)

    def test_should_reject_nan_values(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test NaN detection."""
        valid_data.loc[2, "volume"] = float("nan")

        with pytest.raises(ValidationError, match="Column volume contains NaN"):
            validator.validate_data(valid_data)

    def test_should_reject_non_positive_prices_and_negative_volume(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test value ranges."""
        bad_price = valid_data.copy()
        bad_price.loc[0, "low"] = 0.0
        with pytest.raises(ValidationError, match="Column low contains non-positive values"):
            validator.validate_data(bad_price)

        bad_volume = valid_data.copy()
        bad_volume.loc[0, "volume"] = -1.0
        with pytest.raises(ValidationError, match="negative values"):
            validator.validate_data(bad_volume)

    def test_should_reject_inconsistent_ohlc(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test that close above high is rejected."""
        valid_data.loc[1, "close"] = 110.0

        with pytest.raises(ValidationError, match="Invalid OHLC relationships found in 1 rows"):
            validator.validate_data(valid_data)

    def test_should_only_warn_about_unsorted_timestamps(
        self, validator: OHLCVValidator, valid_data: pd.DataFrame
    ) -> None:
        """Test that ordering problems are not fatal."""
        assert validator.validate_data(valid_data.iloc[::-1].reset_index(drop=True)) is True
