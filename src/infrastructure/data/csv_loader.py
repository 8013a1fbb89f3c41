"""
CSV Data Loader implementation.

Loads historical OHLCV candles from CSV files into observations and
assembles them into a ``HistoricalMarketData`` source.

Expected columns: timestamp, open, high, low, close, volume. ``timestamp``
is either epoch milliseconds or an ISO-8601 string; a ``price`` column, when
present, overrides ``close`` as the reference price.
"""

import asyncio
from datetime import datetime
from pathlib import Path

import pandas as pd
from loguru import logger

from src.core.exceptions.backtest import DataError, ValidationError
from src.core.interfaces.data import IDataLoader
from src.core.models.market import InstrumentKey, Observation
from src.core.utils.validation import ensure_utc, validate_date_range

from .market_data import HistoricalMarketData
from .ohlcv_validator import OHLCVValidator

FILENAME_SEPARATOR = "__"
OHLCV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


def _to_utc_timestamps(column: pd.Series) -> pd.Series:
    """Convert epoch milliseconds or datetime-like values to tz-aware UTC."""
    if pd.api.types.is_numeric_dtype(column):
        return pd.to_datetime(column, unit="ms", utc=True)
    return pd.to_datetime(column, utc=True)


def _optional_float(row: dict, column: str) -> float | None:
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    return float(value)


def frame_to_observations(frame: pd.DataFrame, symbol: str, market: str) -> list[Observation]:
    """
    Convert an OHLCV DataFrame to chronological observations.

    Args:
        frame: DataFrame with a ``timestamp`` column and ``price`` or ``close``
        symbol: Instrument symbol
        market: Instrument market

    Returns:
        Observations sorted by timestamp

    Raises:
        ValidationError: If required columns are missing
    """
    if frame.empty:
        return []
    if "timestamp" not in frame.columns:
        raise ValidationError("Market data frame requires a 'timestamp' column")
    price_column = "price" if "price" in frame.columns else "close"
    if price_column not in frame.columns:
        raise ValidationError("Market data frame requires a 'price' or 'close' column")

    data = frame.copy()
    data["timestamp"] = _to_utc_timestamps(data["timestamp"])
    data = data.sort_values("timestamp")

    observations = []
    for row in data.to_dict("records"):
        observations.append(
            Observation(
                symbol=symbol,
                market=market,
                timestamp=row["timestamp"].to_pydatetime(),
                price=float(row[price_column]),
                volume=float(row.get("volume", 0.0) or 0.0),
                open=_optional_float(row, "open"),
                high=_optional_float(row, "high"),
                low=_optional_float(row, "low"),
                close=_optional_float(row, "close"),
            )
        )
    return observations


class CSVDataLoader(IDataLoader):
    """
    CSV-based loader for historical market data.

    Features:
    - OHLCV validation before conversion
    - Optional date-window filtering
    - Directory loading with ``SYMBOL__MARKET.csv`` file naming
    """

    def __init__(self, validate: bool = True):
        """
        Initialize the CSV data loader.

        Args:
            validate: Run OHLCV integrity checks on every loaded file
        """
        self._validator = OHLCVValidator() if validate else None

    async def read_frame(self, file_path: Path) -> pd.DataFrame:
        """Read and validate a single CSV file off the event loop."""
        if not file_path.exists():
            raise FileNotFoundError(f"Data file not found: {file_path}")

        try:
            logger.debug(f"Loading file: {file_path}")
            loop = asyncio.get_running_loop()
            frame = await loop.run_in_executor(None, pd.read_csv, file_path)
        except pd.errors.EmptyDataError:
            logger.warning(f"Empty data file: {file_path.name}")
            return pd.DataFrame(columns=OHLCV_COLUMNS)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            logger.error(f"CSV parsing error ({type(e).__name__}) in {file_path.name}: {e}")
            raise DataError(f"Failed to parse CSV file: {file_path.name}") from e
        except OSError as e:
            logger.error(f"File system error loading {file_path.name}: {e}")
            raise DataError(f"File system error loading {file_path.name}") from e

        if self._validator is not None and set(OHLCV_COLUMNS) <= set(frame.columns):
            self._validator.validate_data(frame)

        return frame

    async def load_observations(
        self,
        file_path: Path,
        symbol: str,
        market: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Observation]:
        """
        Load chronological observations for one instrument.

        Args:
            file_path: CSV file to read
            symbol: Instrument symbol
            market: Instrument market
            start_date: Drop observations before this time (inclusive bound)
            end_date: Drop observations after this time (inclusive bound)

        Returns:
            Observations sorted by timestamp

        Raises:
            DataError: If the file cannot be read
            ValidationError: If the data fails integrity checks or the window
                is empty
        """
        observations = frame_to_observations(
            await self.read_frame(Path(file_path)), symbol, market
        )
        start = ensure_utc(start_date)
        end = ensure_utc(end_date)
        if start is not None and end is not None:
            validate_date_range(start, end)

        filtered = [
            obs
            for obs in observations
            if (start is None or obs.timestamp >= start) and (end is None or obs.timestamp <= end)
        ]
        logger.info(f"Loaded {len(filtered)} observations for {symbol} ({market})")
        return filtered

    async def load_files(
        self,
        files: dict[tuple[str, str], Path],
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> HistoricalMarketData:
        """Load several instruments concurrently into one market data source."""
        keys = [InstrumentKey(*key) for key in files]
        loaded = await asyncio.gather(
            *(
                self.load_observations(files[key], key.symbol, key.market, start_date, end_date)
                for key in keys
            )
        )
        return HistoricalMarketData(dict(zip(keys, loaded, strict=True)))

    async def load_directory(
        self,
        data_directory: Path,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> HistoricalMarketData:
        """
        Load every ``SYMBOL__MARKET.csv`` file in a directory.

        Raises:
            DataError: If the directory is missing or contains no data files
        """
        directory = Path(data_directory)
        if not directory.is_dir():
            raise DataError(f"Data directory not found: {directory}")

        files = {}
        for path in sorted(directory.glob("*.csv")):
            key = parse_instrument_filename(path)
            if key is None:
                logger.warning(f"Skipping file with unexpected name: {path.name}")
                continue
            files[key] = path

        if not files:
            raise DataError(f"No SYMBOL{FILENAME_SEPARATOR}MARKET.csv files in {directory}")

        return await self.load_files(files, start_date, end_date)


def parse_instrument_filename(path: Path) -> tuple[str, str] | None:
    """Extract (symbol, market) from a ``SYMBOL__MARKET.csv`` filename."""
    parts = path.stem.split(FILENAME_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]
