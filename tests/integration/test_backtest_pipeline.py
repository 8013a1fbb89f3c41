"""
Integration tests for the full backtesting pipeline.

CSV files on disk are loaded, enriched with indicator context, simulated,
optimized and finally served through the query API.
"""

import asyncio
import math
from datetime import UTC, datetime, timedelta
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.api.store import ResultStore
from src.backtesting import BacktestEngine
from src.core.models.backtest import BacktestConfig
from src.core.models.optimization import OptimizationParameter
from src.infrastructure.data import CSVDataLoader, HistoricalMarketData, IndicatorContextProvider
from src.strategies import IndicatorSignalSource

T0 = datetime(2024, 1, 1, tzinfo=UTC)
BARS = 500


def write_ohlcv(path: Path, base: float, period: float) -> None:
    hours = np.arange(BARS)
    close = base + base * 0.08 * np.sin(hours / period) + hours * base * 0.0002
    open_ = np.concatenate([[close[0]], close[:-1]])
    frame = pd.DataFrame(
        {
            "timestamp": [
                int((T0 + timedelta(hours=int(h))).timestamp() * 1000) for h in hours
            ],
            "open": open_,
            "high": np.maximum(open_, close) * 1.002,
            "low": np.minimum(open_, close) * 0.998,
            "close": close,
            "volume": 1000.0,
        }
    )
    frame.to_csv(path, index=False)


@pytest.fixture
def data_directory(tmp_path: Path) -> Path:
    write_ohlcv(tmp_path / "BTC__crypto.csv", 100.0, 12.0)
    write_ohlcv(tmp_path / "ETH__crypto.csv", 50.0, 9.0)
    (tmp_path / "notes.csv").write_text("not,market,data\n")
    return tmp_path


@pytest.fixture
def config() -> BacktestConfig:
    return BacktestConfig(
        start_date=T0,
        end_date=T0 + timedelta(hours=BARS - 1),
        initial_capital=10000.0,
        symbols=("BTC", "ETH"),
        commission=0.1,
        slippage=0.05,
        max_position_size=20.0,
        risk_per_trade=1.0,
        min_confidence=0.3,
    )


def build_engine(market_data: HistoricalMarketData, config: BacktestConfig) -> BacktestEngine:
    return BacktestEngine(
        market_data,
        IndicatorSignalSource(min_confidence=0.3, signal_threshold=0.3),
        config=config,
        context_provider=IndicatorContextProvider(market_data),
    )


class TestBacktestPipeline:
    """Integration tests across data, simulation, optimization and API."""

    @pytest.mark.asyncio
    async def test_should_load_directory(self, data_directory: Path) -> None:
        """Test that only SYMBOL__MARKET files are loaded."""
        market_data = await CSVDataLoader().load_directory(data_directory)

        assert sorted(str(key) for key in market_data.instruments()) == [
            "BTC_crypto",
            "ETH_crypto",
        ]
        assert market_data.observation_count() == 2 * BARS
        first = market_data.get_history("BTC", "crypto")[0]
        assert first.timestamp == T0
        assert first.high is not None

    @pytest.mark.asyncio
    async def test_should_run_backtest_from_csv(
        self, data_directory: Path, config: BacktestConfig
    ) -> None:
        """Test ledger consistency of a run over loaded data."""
        market_data = await CSVDataLoader().load_directory(data_directory)
        engine = build_engine(market_data, config)

        result = engine.run_backtest()

        assert len(result.equity_curve) == BARS
        assert result.final_capital == pytest.approx(
            config.initial_capital + sum(trade.pnl for trade in result.trades)
        )
        assert result.equity_curve[-1].equity == pytest.approx(result.final_capital)
        assert all(0.0 <= point.drawdown < 100.0 for point in result.drawdown_curve)
        for trade in result.trades:
            assert trade.symbol in {"BTC", "ETH"}
            assert T0 <= trade.entry_time < trade.exit_time <= config.end_date
        assert math.isfinite(result.metrics.sharpe_ratio)

    @pytest.mark.asyncio
    async def test_should_only_use_past_indicator_values(
        self, data_directory: Path, config: BacktestConfig
    ) -> None:
        """Test that truncating future data does not change earlier trades."""
        loader = CSVDataLoader()
        full = await loader.load_directory(data_directory)
        cutoff = T0 + timedelta(hours=300)
        truncated = await loader.load_directory(data_directory, end_date=cutoff)

        full_trades = build_engine(full, config).run_backtest().trades
        truncated_trades = build_engine(truncated, config).run_backtest().trades

        closed_before_cutoff = [trade for trade in full_trades if trade.exit_time <= cutoff]
        assert [
            (trade.symbol, trade.entry_time, trade.exit_time, trade.pnl)
            for trade in closed_before_cutoff
        ] == [
            (trade.symbol, trade.entry_time, trade.exit_time, trade.pnl)
            for trade in truncated_trades
            if trade.exit_time <= cutoff
        ]

    def test_should_optimize_and_serve_results(
        self, data_directory: Path, config: BacktestConfig
    ) -> None:
        """Test optimization results and API responses over the same data."""
        market_data = asyncio.run(CSVDataLoader().load_directory(data_directory))
        engine = build_engine(market_data, config)

        result = engine.run_backtest()
        optimization = engine.run_optimization(
            [
                OptimizationParameter("stop_loss_pct", 1.0, 3.0, 1.0),
                OptimizationParameter("risk_per_trade", 1.0, 2.0, 1.0),
            ],
            max_workers=2,
        )

        assert [item.rank for item in optimization] == [1, 2, 3, 4, 5, 6]
        scores = [item.score for item in optimization]
        assert scores == sorted(scores, reverse=True)

        store = ResultStore()
        backtest_id = store.add_backtest(result)
        optimization_id = store.add_optimization(optimization)
        client = TestClient(create_app(store))

        summary = client.get(f"/api/backtest/{backtest_id}").json()["summary"]
        assert summary["total_trades"] == result.metrics.total_trades
        trades = client.get(f"/api/backtest/{backtest_id}/trades").json()
        assert trades["count"] == len(result.trades)
        best = client.get(f"/api/optimization/{optimization_id}", params={"top": 1}).json()
        assert best["total"] == 6
        assert best["results"][0]["parameters"] == optimization[0].parameters
