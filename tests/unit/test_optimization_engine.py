"""
Unit tests for the grid-search optimization engine.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from datetime import UTC, datetime, timedelta

import pytest

from src.backtesting import BacktestOrchestrator, EventBus, EventType
from src.core.enums import OptimizationMetric, SignalDirection
from src.core.exceptions.backtest import (
    ConfigurationError,
    IterationFailedError,
    OptimizationError,
    ValidationError,
)
from src.core.models.backtest import BacktestConfig
from src.core.models.market import Observation
from src.core.models.metrics import PerformanceMetrics
from src.core.models.optimization import (
    OptimizationConstraints,
    OptimizationParameter,
    OptimizationResult,
)
from src.core.models.signal import SignalIndicators, TradingSignal
from src.core.protocols import ParameterizedSignalSource
from src.infrastructure.data import HistoricalMarketData
from src.optimization import OptimizationEngine, OptimizationJob, rank_results, run_optimization
from src.optimization.engine import derive_config, derive_signal_source

T0 = datetime(2024, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class PercentStopSource:
    """Buys every fresh bar with stop and target a fixed percentage away."""

    stop_pct: float = 2.0
    target_pct: float = 4.0

    def with_parameters(self, parameters: Mapping[str, float]) -> "PercentStopSource":
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in parameters.items() if k in known})

    def generate_signal(
        self, observation: Observation, context: SignalIndicators | None
    ) -> TradingSignal | None:
        price = observation.price
        return TradingSignal(
            symbol=observation.symbol,
            market=observation.market,
            direction=SignalDirection.BUY,
            confidence=0.9,
            entry_price=price,
            stop_loss=price * (1 - self.stop_pct / 100),
            take_profit=price * (1 + self.target_pct / 100),
            timestamp=observation.timestamp,
        )


def make_config(**overrides) -> BacktestConfig:
    values = {
        "start_date": T0,
        "end_date": T0 + timedelta(days=15),
        "initial_capital": 10000.0,
        "symbols": ("BTC",),
        "commission": 0.1,
        "slippage": 0.05,
        "max_position_size": 50.0,
        "risk_per_trade": 2.0,
        "optimization_metric": OptimizationMetric.TOTAL_RETURN,
    }
    values.update(overrides)
    return BacktestConfig(**values)


def make_result(score: float, iteration: int, **metrics) -> OptimizationResult:
    return OptimizationResult(
        parameters={"x": float(iteration)},
        metrics=PerformanceMetrics(**metrics),
        score=score,
        iteration=iteration,
    )


@pytest.fixture
def market_data() -> HistoricalMarketData:
    prices = [100.0 + 8.0 * math.sin(h / 5) + h * 0.05 for h in range(300)]
    return HistoricalMarketData(
        {
            ("BTC", "crypto"): [
                Observation("BTC", "crypto", T0 + timedelta(hours=h), price=price)
                for h, price in enumerate(prices)
            ]
        }
    )


class TestDerivation:
    """Test suite for per-combination derivation."""

    def test_should_apply_config_fields_only(self) -> None:
        """Test that non-config parameters are left to the signal source."""
        config = make_config()

        derived = derive_config(config, {"risk_per_trade": 1.0, "stop_pct": 3.0})

        assert derived.risk_per_trade == 1.0
        assert derived.commission == config.commission
        assert derive_config(config, {"stop_pct": 3.0}) is config

    def test_should_validate_derived_config(self) -> None:
        """Test that out-of-range values fail."""
        with pytest.raises(ConfigurationError):
            derive_config(make_config(), {"commission": 150.0})

    def test_should_reconfigure_parameterized_sources(self) -> None:
        """Test with_parameters is used when available."""
        source = PercentStopSource()
        assert isinstance(source, ParameterizedSignalSource)

        derived = derive_signal_source(source, {"stop_pct": 3.0, "risk_per_trade": 1.0})

        assert derived == PercentStopSource(stop_pct=3.0)
        assert source.stop_pct == 2.0

    def test_should_keep_plain_sources(self) -> None:
        """Test sources without with_parameters are shared as-is."""

        class PlainSource:
            def generate_signal(self, observation, context):
                return None

        source = PlainSource()
        assert derive_signal_source(source, {"stop_pct": 3.0}) is source


class TestRankResults:
    """Test suite for rank_results."""

    def test_should_rank_by_descending_score(self) -> None:
        """Test ranks start at 1 for the best score."""
        ranked = rank_results([make_result(1.0, 1), make_result(3.0, 2), make_result(2.0, 3)])

        assert [result.score for result in ranked] == [3.0, 2.0, 1.0]
        assert [result.rank for result in ranked] == [1, 2, 3]

    def test_should_break_ties_by_grid_order(self) -> None:
        """Test stable ordering of equal scores, whatever the completion order."""
        ranked = rank_results([make_result(5.0, 3), make_result(5.0, 1), make_result(5.0, 2)])

        assert [result.iteration for result in ranked] == [1, 2, 3]

    def test_should_filter_by_constraints_before_ranking(self) -> None:
        """Test constraint filtering."""
        results = [
            make_result(10.0, 1, total_trades=2),
            make_result(5.0, 2, total_trades=12),
            make_result(1.0, 3, total_trades=30),
        ]

        ranked = rank_results(results, OptimizationConstraints(min_trades=10))

        assert [result.iteration for result in ranked] == [2, 3]
        assert ranked[0].rank == 1

    def test_should_return_empty_list_when_nothing_survives(self) -> None:
        """Test all results filtered."""
        ranked = rank_results(
            [make_result(1.0, 1, total_trades=1)], OptimizationConstraints(min_trades=5)
        )

        assert ranked == []


class TestOptimizationEngine:
    """Test suite for OptimizationEngine."""

    def test_should_evaluate_every_combination(self, market_data: HistoricalMarketData) -> None:
        """Test a 3 x 2 grid over config and source parameters."""
        parameters = [
            OptimizationParameter("risk_per_trade", 1.0, 3.0, 1.0),
            OptimizationParameter("stop_pct", 2.0, 3.0, 1.0),
        ]
        engine = OptimizationEngine(market_data, PercentStopSource())

        results = engine.run(make_config(), parameters)

        assert len(results) == 6
        assert sorted(result.iteration for result in results) == [1, 2, 3, 4, 5, 6]
        assert [result.rank for result in results] == [1, 2, 3, 4, 5, 6]
        scores = [result.score for result in results]
        assert scores == sorted(scores, reverse=True)

    def test_should_match_standalone_backtest(self, market_data: HistoricalMarketData) -> None:
        """Test that a combination's metrics equal a direct run."""
        config = make_config()
        parameters = {"risk_per_trade": 1.0, "stop_pct": 3.0}

        evaluated = OptimizationEngine(market_data, PercentStopSource()).evaluate(config, parameters)
        direct = BacktestOrchestrator(
            derive_config(config, parameters),
            market_data,
            PercentStopSource(stop_pct=3.0),
            record_snapshots=False,
        ).run()

        assert evaluated.metrics == direct.metrics
        assert evaluated.total_return == direct.total_return
        assert evaluated.score == direct.total_return

    def test_should_exclude_failed_iterations(self, market_data: HistoricalMarketData) -> None:
        """Test that an invalid combination is reported and skipped."""
        bus = EventBus()
        failures: list = []
        bus.subscribe(EventType.ITERATION_FAILED, failures.append)
        engine = OptimizationEngine(market_data, PercentStopSource(), event_bus=bus)

        results = engine.run(
            make_config(), [OptimizationParameter("commission", 99.0, 101.0, 1.0)]
        )

        assert len(results) == 2
        assert {result.parameters["commission"] for result in results} == {99.0, 100.0}
        assert len(failures) == 1
        assert failures[0].parameters == {"commission": 101.0}

    def test_should_wrap_evaluation_errors(self, market_data: HistoricalMarketData) -> None:
        """Test evaluate raises IterationFailedError."""
        engine = OptimizationEngine(market_data, PercentStopSource())

        with pytest.raises(IterationFailedError) as exc_info:
            engine.evaluate(make_config(), {"initial_capital": -1.0})

        assert isinstance(exc_info.value.cause, ConfigurationError)

    def test_should_give_same_ranking_in_parallel(self, market_data: HistoricalMarketData) -> None:
        """Test that worker count does not change the results."""
        parameters = [
            OptimizationParameter("risk_per_trade", 0.5, 2.5, 0.5),
            OptimizationParameter("stop_pct", 1.0, 3.0, 1.0),
        ]
        config = make_config()

        sequential = OptimizationEngine(market_data, PercentStopSource()).run(config, parameters)
        parallel = OptimizationEngine(market_data, PercentStopSource(), max_workers=4).run(
            config, parameters
        )

        assert len(parallel) == 15
        assert parallel == sequential
        assert [r.iteration for r in parallel] == [r.iteration for r in sequential]

    def test_should_publish_progress_for_each_combination(
        self, market_data: HistoricalMarketData
    ) -> None:
        """Test progress and completion events."""
        bus = EventBus()
        progress: list = []
        completed: list = []
        bus.subscribe(EventType.OPTIMIZATION_PROGRESS, progress.append)
        bus.subscribe(EventType.OPTIMIZATION_COMPLETED, completed.append)
        engine = OptimizationEngine(market_data, PercentStopSource(), event_bus=bus)

        results = engine.run(make_config(), [OptimizationParameter("stop_pct", 1.0, 4.0, 1.0)])

        assert [event.current_iteration for event in progress] == [1, 2, 3, 4]
        assert all(event.total_combinations == 4 for event in progress)
        best = [event.best_score for event in progress]
        assert best == sorted(best)
        assert best[-1] == results[0].score
        assert len(completed) == 1
        assert completed[0].cancelled is False
        assert list(completed[0].results) == results

    def test_should_stop_scheduling_when_cancelled(self, market_data: HistoricalMarketData) -> None:
        """Test cooperative cancellation keeps finished results."""
        bus = EventBus()
        completed: list = []
        job = OptimizationJob()
        bus.subscribe(EventType.OPTIMIZATION_PROGRESS, lambda event: job.cancel())
        bus.subscribe(EventType.OPTIMIZATION_COMPLETED, completed.append)
        engine = OptimizationEngine(market_data, PercentStopSource(), event_bus=bus)

        results = engine.run(
            make_config(), [OptimizationParameter("stop_pct", 1.0, 5.0, 1.0)], job=job
        )

        assert len(results) == 1
        assert job.cancelled
        assert completed[0].cancelled is True

    def test_should_respect_time_budget(self, market_data: HistoricalMarketData) -> None:
        """Test that an exhausted budget schedules nothing."""
        job = OptimizationJob(time_budget=0.0)
        engine = OptimizationEngine(market_data, PercentStopSource(), max_workers=2)

        results = engine.run(
            make_config(), [OptimizationParameter("stop_pct", 1.0, 3.0, 1.0)], job=job
        )

        assert job.budget_exhausted
        assert results == []

    def test_should_reject_oversized_grids(self, market_data: HistoricalMarketData) -> None:
        """Test the combination limit."""
        parameters = [
            OptimizationParameter("a", 0.0, 999.0, 1.0),
            OptimizationParameter("b", 0.0, 999.0, 1.0),
            OptimizationParameter("c", 0.0, 1.0, 1.0),
        ]

        with pytest.raises(OptimizationError, match="limit is 1,000,000"):
            OptimizationEngine(market_data, PercentStopSource()).run(make_config(), parameters)

    def test_should_reject_invalid_worker_count(self, market_data: HistoricalMarketData) -> None:
        """Test max_workers validation."""
        with pytest.raises(ValidationError, match="max_workers"):
            OptimizationEngine(market_data, PercentStopSource(), max_workers=0)

    def test_should_apply_constraints(self, market_data: HistoricalMarketData) -> None:
        """Test constraint filtering through run."""
        results = OptimizationEngine(market_data, PercentStopSource()).run(
            make_config(),
            [OptimizationParameter("stop_pct", 1.0, 3.0, 1.0)],
            OptimizationConstraints(min_trades=10_000),
        )

        assert results == []


class TestRunOptimization:
    """Test suite for the run_optimization entry point."""

    def test_should_require_parameters(self, market_data: HistoricalMarketData) -> None:
        """Test empty parameter lists are rejected."""
        with pytest.raises(ValidationError, match="parameters must not be empty"):
            run_optimization(make_config(), market_data, PercentStopSource(), [])

    def test_should_run_with_workers(self, market_data: HistoricalMarketData) -> None:
        """Test the functional entry point."""
        results = run_optimization(
            make_config(),
            market_data,
            PercentStopSource(),
            [OptimizationParameter("risk_per_trade", 1.0, 3.0, 1.0)],
            max_workers=2,
        )

        assert [result.rank for result in results] == [1, 2, 3]
        assert {result.parameters["risk_per_trade"] for result in results} == {1.0, 2.0, 3.0}
