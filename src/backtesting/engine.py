"""
Backtest engine facade.

Keeps the configuration and the latest results of a backtesting session and
exposes the query API over them: status, positions, trade history, curves,
optimization results and export.
"""

import threading
from bisect import bisect_right
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from loguru import logger

from src.core.enums import RunState
from src.core.exceptions.backtest import BacktestException, ConfigurationError
from src.core.models.backtest import BacktestConfig, BacktestResult, DrawdownPoint, EquityPoint
from src.core.models.optimization import (
    OptimizationConstraints,
    OptimizationParameter,
    OptimizationResult,
)
from src.core.models.position import Position
from src.core.models.trade import ClosedTrade
from src.core.protocols import MarketDataSource, SignalSource, TechnicalContextProvider
from src.core.utils.validation import ensure_utc

from .events import ConfigurationUpdatedEvent, EventBus
from .orchestrator import BacktestOrchestrator
from .run_context import RunContext


class BacktestEngine:
    """Stateful session around the stateless orchestrator.

    One backtest may run at a time; queries are safe from other threads
    while it runs.
    """

    def __init__(
        self,
        market_data: MarketDataSource,
        signal_source: SignalSource,
        config: BacktestConfig | None = None,
        context_provider: TechnicalContextProvider | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._market_data = market_data
        self._signal_source = signal_source
        self._context_provider = context_provider
        self.event_bus = event_bus or EventBus()
        self._config = config.validate() if config is not None else None

        self._lock = threading.RLock()
        self._state = RunState.INITIALIZED
        self._live_context: RunContext | None = None
        self._result: BacktestResult | None = None
        self._optimization_results: list[OptimizationResult] = []

    @property
    def config(self) -> BacktestConfig | None:
        return self._config

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._state == RunState.RUNNING

    def run_backtest(self, config: BacktestConfig | None = None) -> BacktestResult:
        """
        Run a backtest and keep its result for querying.

        Args:
            config: Configuration to use; replaces the session configuration

        Raises:
            ConfigurationError: If no configuration is available or it is invalid
            BacktestException: If a backtest is already running
        """
        with self._lock:
            if self._state == RunState.RUNNING:
                raise BacktestException("A backtest is already running")
            if config is not None:
                self._config = config.validate()
            if self._config is None:
                raise ConfigurationError("No backtest configuration set")
            run_config = self._config
            self._state = RunState.RUNNING
            self._result = None

        orchestrator = BacktestOrchestrator(
            run_config,
            self._market_data,
            self._signal_source,
            self._context_provider,
            self.event_bus,
        )
        try:
            result = orchestrator.run(on_tick=self._track_progress)
        except Exception:
            with self._lock:
                self._state = RunState.INITIALIZED
                self._live_context = None
            raise

        with self._lock:
            self._result = result
            self._state = RunState.COMPLETED
            self._live_context = None
        return result

    def _track_progress(self, context: RunContext) -> None:
        with self._lock:
            self._live_context = context

    def run_optimization(
        self,
        parameters: Sequence[OptimizationParameter],
        constraints: OptimizationConstraints | None = None,
        max_workers: int = 1,
        time_budget: float | None = None,
    ) -> list[OptimizationResult]:
        """Grid-search ``parameters`` around the session configuration.

        The ranked results are kept; applying the best combination is left
        to the caller (see ``update_configuration``).
        """
        from src.optimization.engine import run_optimization

        if self._config is None:
            raise ConfigurationError("No backtest configuration set")

        results = run_optimization(
            self._config,
            self._market_data,
            self._signal_source,
            parameters,
            constraints=constraints,
            max_workers=max_workers,
            time_budget=time_budget,
            context_provider=self._context_provider,
            event_bus=self.event_bus,
        )
        with self._lock:
            self._optimization_results = results
        return results

    def get_status(self) -> dict[str, Any]:
        """Current run state and progress."""
        with self._lock:
            if self._state == RunState.RUNNING and self._live_context is not None:
                processed = self._live_context.processed_ticks
                total = self._live_context.total_ticks
                progress = processed / total * 100 if total else 0.0
                equity = self._live_context.equity
            elif self._result is not None:
                processed = total = len(self._result.equity_curve)
                progress = 100.0
                equity = self._result.final_capital
            else:
                processed = total = 0
                progress = 0.0
                equity = self._config.initial_capital if self._config else 0.0

            return {
                "state": self._state.value,
                "is_running": self._state == RunState.RUNNING,
                "progress": progress,
                "processed": processed,
                "total": total,
                "equity": equity,
                "has_results": self._result is not None,
                "optimization_results": len(self._optimization_results),
            }

    def get_results(self) -> BacktestResult | None:
        with self._lock:
            return self._result

    def get_current_positions(self, timestamp: datetime | None = None) -> list[Position]:
        """
        Open positions.

        While a run is in progress this is the live book. Afterwards it is
        the book recorded in the last snapshot at or before ``timestamp``
        (default: the final processed timestamp).
        """
        with self._lock:
            if self._live_context is not None:
                return [position.snapshot() for position in self._live_context.open_positions()]
            if self._result is None or not self._result.snapshots:
                return []
            snapshots = self._result.snapshots

        if timestamp is None:
            return list(snapshots[-1].positions)
        index = bisect_right(
            [ensure_utc(snapshot.timestamp) for snapshot in snapshots], ensure_utc(timestamp)
        )
        if index == 0:
            return []
        return list(snapshots[index - 1].positions)

    def get_trade_history(self) -> list[ClosedTrade]:
        with self._lock:
            if self._live_context is not None:
                return list(self._live_context.trades)
            return list(self._result.trades) if self._result else []

    def get_equity_curve(self) -> list[EquityPoint]:
        with self._lock:
            if self._live_context is not None:
                return list(self._live_context.equity_curve)
            return list(self._result.equity_curve) if self._result else []

    def get_drawdown_curve(self) -> list[DrawdownPoint]:
        with self._lock:
            if self._live_context is not None:
                return list(self._live_context.drawdown_curve)
            return list(self._result.drawdown_curve) if self._result else []

    def get_optimization_results(self, top: int | None = None) -> list[OptimizationResult]:
        """Ranked optimization results, optionally only the best ``top``."""
        with self._lock:
            results = list(self._optimization_results)
        return results if top is None else results[:top]

    def export_data(self, include_snapshots: bool = False) -> dict[str, Any]:
        """Everything the session holds as a JSON-compatible dictionary."""
        with self._lock:
            return {
                "config": self._config.to_dict() if self._config else None,
                "results": (
                    self._result.to_dict(include_snapshots=include_snapshots)
                    if self._result
                    else None
                ),
                "optimization_results": [
                    result.to_dict() for result in self._optimization_results
                ],
            }

    def update_configuration(self, **changes: Any) -> BacktestConfig:
        """
        Apply ``changes`` to the session configuration between runs.

        Raises:
            BacktestException: If a backtest is running
            ConfigurationError: If there is no configuration or the change is invalid
        """
        with self._lock:
            if self._state == RunState.RUNNING:
                raise BacktestException("Cannot update configuration while a backtest is running")
            if self._config is None:
                raise ConfigurationError("No backtest configuration set")
            self._config = self._config.replace(**changes)
            config = self._config

        logger.info(f"Configuration updated: {sorted(changes)}")
        self.event_bus.publish(ConfigurationUpdatedEvent(config=config))
        return config

    def clear(self) -> None:
        """Drop results and return to the initial state.

        Raises:
            BacktestException: If a backtest is running
        """
        with self._lock:
            if self._state == RunState.RUNNING:
                raise BacktestException("Cannot clear while a backtest is running")
            self._state = RunState.INITIALIZED
            self._result = None
            self._optimization_results = []
        logger.debug("Backtest session cleared")
