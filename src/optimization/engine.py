"""
Grid-search optimization engine.

Runs one fresh backtest per parameter combination, scores every run against
the configured objective, filters by constraints and ranks the survivors.
Iterations share nothing but the read-only market data, so they can run on
a thread pool.
"""

import threading
import time
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from loguru import logger

from src.backtesting.events import (
    EventBus,
    IterationFailedEvent,
    OptimizationCompletedEvent,
    OptimizationProgressEvent,
)
from src.backtesting.orchestrator import BacktestOrchestrator
from src.core.constants import MAX_GRID_COMBINATIONS
from src.core.exceptions.backtest import IterationFailedError, OptimizationError, ValidationError
from src.core.models.backtest import BacktestConfig
from src.core.models.optimization import (
    OptimizationConstraints,
    OptimizationParameter,
    OptimizationResult,
)
from src.core.protocols import (
    MarketDataSource,
    ParameterizedSignalSource,
    ParameterSet,
    SignalSource,
    TechnicalContextProvider,
)
from src.core.utils.decorators import log_operation, require_non_empty

from .grid import ParameterGrid
from .scoring import calculate_score

# Combinations submitted ahead of free workers
PENDING_PER_WORKER = 2


class OptimizationJob:
    """Handle used to stop an optimization that is in progress.

    Cancelling stops new combinations from being scheduled; runs already in
    flight finish and their results are kept.
    """

    def __init__(self, time_budget: float | None = None) -> None:
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + time_budget if time_budget is not None else None

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def budget_exhausted(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def should_stop(self) -> bool:
        """Check whether scheduling must stop."""
        return self.cancelled or self.budget_exhausted


def derive_config(config: BacktestConfig, parameters: ParameterSet) -> BacktestConfig:
    """Apply parameters named after configuration fields to ``config``."""
    changes = {
        name: value for name, value in parameters.items() if name in BacktestConfig.field_names()
    }
    return config.replace(**changes) if changes else config


def derive_signal_source(signal_source: SignalSource, parameters: ParameterSet) -> SignalSource:
    """Reconfigure ``signal_source`` when it accepts optimization parameters."""
    if isinstance(signal_source, ParameterizedSignalSource):
        return signal_source.with_parameters(parameters)
    return signal_source


def rank_results(
    results: Sequence[OptimizationResult],
    constraints: OptimizationConstraints | None = None,
) -> list[OptimizationResult]:
    """
    Filter by constraints, sort by descending score and assign 1-based ranks.

    Ties keep grid order.
    """
    candidates = sorted(results, key=lambda result: result.iteration)
    if constraints is not None:
        candidates = [result for result in candidates if constraints.is_satisfied(result.metrics)]
        filtered = len(results) - len(candidates)
        if filtered:
            logger.info(f"Constraints removed {filtered} of {len(results)} combinations")

    ranked = sorted(candidates, key=lambda result: result.score, reverse=True)
    for rank, result in enumerate(ranked, start=1):
        result.rank = rank
    return ranked


class OptimizationEngine:
    """Exhaustive grid search over backtest parameters."""

    def __init__(
        self,
        market_data: MarketDataSource,
        signal_source: SignalSource,
        context_provider: TechnicalContextProvider | None = None,
        event_bus: EventBus | None = None,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ValidationError(f"max_workers must be at least 1, got {max_workers}")
        self._market_data = market_data
        self._signal_source = signal_source
        self._context_provider = context_provider
        self._event_bus = event_bus
        self.max_workers = max_workers

    def evaluate(
        self, config: BacktestConfig, parameters: ParameterSet, iteration: int = 0
    ) -> OptimizationResult:
        """
        Run and score one combination.

        Raises:
            IterationFailedError: If the derived configuration is invalid or
                the run fails
        """
        try:
            derived_config = derive_config(config, parameters)
            signal_source = derive_signal_source(self._signal_source, parameters)
            result = BacktestOrchestrator(
                derived_config,
                self._market_data,
                signal_source,
                self._context_provider,
                record_snapshots=False,
            ).run()
        except Exception as e:
            raise IterationFailedError(dict(parameters), e) from e

        return OptimizationResult(
            parameters=dict(parameters),
            metrics=result.metrics,
            score=calculate_score(result, config.optimization_metric),
            total_return=result.total_return,
            iteration=iteration,
        )

    def run(
        self,
        config: BacktestConfig,
        parameters: Sequence[OptimizationParameter],
        constraints: OptimizationConstraints | None = None,
        job: OptimizationJob | None = None,
    ) -> list[OptimizationResult]:
        """
        Evaluate the full grid, or as much of it as ``job`` allows.

        Args:
            config: Base configuration every combination is derived from
            parameters: Grid axes in declaration order
            constraints: Minimum quality bar applied before ranking
            job: Cancellation handle and time budget

        Returns:
            Ranked results, best first

        Raises:
            ConfigurationError: If the base configuration is invalid
            OptimizationError: If the grid exceeds the supported size
        """
        config.validate()
        grid = ParameterGrid(parameters)
        total = len(grid)
        if total > MAX_GRID_COMBINATIONS:
            raise OptimizationError(
                f"Grid has {total:,} combinations, limit is {MAX_GRID_COMBINATIONS:,}"
            )

        job = job or OptimizationJob()
        logger.info(
            f"Starting optimization: {total} combinations over "
            f"{[parameter.name for parameter in parameters]} with {self.max_workers} workers"
        )

        collector = _ResultCollector(total, self._event_bus)
        combinations = enumerate(grid, start=1)
        if self.max_workers == 1:
            self._run_sequential(config, combinations, collector, job)
        else:
            self._run_parallel(config, combinations, collector, job)

        stopped_early = collector.completed < total
        if stopped_early:
            logger.warning(
                f"Optimization stopped after {collector.completed}/{total} combinations "
                f"({'cancelled' if job.cancelled else 'time budget exhausted'})"
            )

        ranked = rank_results(collector.results, constraints)
        if ranked:
            logger.success(f"Best combination: {ranked[0].parameters} (score {ranked[0].score:.4f})")
        if self._event_bus is not None:
            self._event_bus.publish(
                OptimizationCompletedEvent(results=tuple(ranked), cancelled=stopped_early)
            )
        return ranked

    def _run_sequential(
        self,
        config: BacktestConfig,
        combinations: Iterator[tuple[int, ParameterSet]],
        collector: "_ResultCollector",
        job: OptimizationJob,
    ) -> None:
        for iteration, parameters in combinations:
            if job.should_stop():
                return
            collector.collect(parameters, lambda: self.evaluate(config, parameters, iteration))

    def _run_parallel(
        self,
        config: BacktestConfig,
        combinations: Iterator[tuple[int, ParameterSet]],
        collector: "_ResultCollector",
        job: OptimizationJob,
    ) -> None:
        max_pending = self.max_workers * PENDING_PER_WORKER
        pending: dict[Future, ParameterSet] = {}
        exhausted = False

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            while True:
                while not exhausted and len(pending) < max_pending and not job.should_stop():
                    item = next(combinations, None)
                    if item is None:
                        exhausted = True
                        break
                    iteration, parameters = item
                    future = executor.submit(self.evaluate, config, parameters, iteration)
                    pending[future] = parameters

                if not pending:
                    return

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    parameters = pending.pop(future)
                    collector.collect(parameters, future.result)


class _ResultCollector:
    """Accumulates iteration outcomes and publishes progress.

    Only used from the thread driving the optimization.
    """

    def __init__(self, total: int, event_bus: EventBus | None) -> None:
        self.total = total
        self.results: list[OptimizationResult] = []
        self.completed = 0
        self.best_score: float | None = None
        self._event_bus = event_bus

    def collect(
        self, parameters: ParameterSet, outcome: Callable[[], OptimizationResult]
    ) -> None:
        """Record the outcome of ``outcome()``; failures are logged and excluded."""
        self.completed += 1
        try:
            result = outcome()
        except IterationFailedError as e:
            logger.error(str(e))
            if self._event_bus is not None:
                self._event_bus.publish(
                    IterationFailedEvent(parameters=dict(parameters), error=str(e.cause))
                )
            return

        self.results.append(result)
        if self.best_score is None or result.score > self.best_score:
            self.best_score = result.score
        logger.debug(
            f"Combination {self.completed}/{self.total} {parameters}: score {result.score:.4f}"
        )
        if self._event_bus is not None:
            self._event_bus.publish(
                OptimizationProgressEvent(
                    current_iteration=self.completed,
                    total_combinations=self.total,
                    current_score=result.score,
                    best_score=self.best_score,
                )
            )


@log_operation
@require_non_empty("parameters")
def run_optimization(
    config: BacktestConfig,
    market_data: MarketDataSource,
    signal_source: SignalSource,
    parameters: Sequence[OptimizationParameter],
    constraints: OptimizationConstraints | None = None,
    max_workers: int = 1,
    time_budget: float | None = None,
    context_provider: TechnicalContextProvider | None = None,
    event_bus: EventBus | None = None,
    job: OptimizationJob | None = None,
) -> list[OptimizationResult]:
    """
    Grid-search ``parameters`` and return ranked results, best first.

    Args:
        config: Base configuration
        market_data: Shared read-only market data
        signal_source: Signal source, reconfigured per combination when it
            supports ``with_parameters``
        parameters: Grid axes
        constraints: Filters applied before ranking
        max_workers: Number of concurrent runs (1 runs sequentially)
        time_budget: Seconds after which no new combination is scheduled
        context_provider: Technical context for the signal source
        event_bus: Receives optimization progress and completion events
        job: Cancellation handle; created from ``time_budget`` when omitted

    Raises:
        ValidationError: If ``parameters`` is empty
    """
    engine = OptimizationEngine(
        market_data, signal_source, context_provider, event_bus, max_workers=max_workers
    )
    return engine.run(config, parameters, constraints, job or OptimizationJob(time_budget))
