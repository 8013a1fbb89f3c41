"""
Backtest orchestration.

Drives the per-timestamp simulation loop:

1. mark open positions and close those that hit their exit levels
2. query the signal source for instruments with a fresh observation
3. open positions for accepted signals
4. recompute equity, drawdown and record a snapshot

A run is strictly sequential; concurrency only happens across runs.
"""

from collections.abc import Callable
from datetime import datetime

from loguru import logger

from src.core.constants import DAYS_PER_YEAR, SECONDS_PER_DAY
from src.core.enums import RunState
from src.core.interfaces.data import IMetricsCalculator
from src.core.models.backtest import (
    BacktestConfig,
    BacktestResult,
    BacktestSnapshot,
    DrawdownPoint,
    EquityPoint,
)
from src.core.models.market import Observation
from src.core.models.signal import TradingSignal
from src.core.protocols import MarketDataSource, SignalSource, TechnicalContextProvider
from src.core.types.financial import safe_divide
from src.core.utils.decorators import log_operation

from .events import CompletedEvent, EventBus, ProgressEvent
from .execution import ExecutionSimulator
from .metrics import MetricsCalculator
from .positions import PositionManager
from .run_context import RunContext
from .timeline import TimelineBuilder


def calculate_total_return(initial_capital: float, final_capital: float) -> float:
    """Total return in percent."""
    return safe_divide(final_capital - initial_capital, initial_capital) * 100


def calculate_annualized_return(
    initial_capital: float, final_capital: float, start_date: datetime, end_date: datetime
) -> float:
    """Compound annual growth rate in percent over the configured window.

    A wiped-out account reads -100.
    """
    years = (end_date - start_date).total_seconds() / (DAYS_PER_YEAR * SECONDS_PER_DAY)
    if years <= 0 or initial_capital <= 0:
        return 0.0
    if final_capital <= 0:
        return -100.0
    return ((final_capital / initial_capital) ** (1 / years) - 1) * 100


class BacktestOrchestrator:
    """Runs one isolated backtest.

    Collaborators are injected; the orchestrator itself performs no I/O.
    A new ``RunContext`` is created for every call to ``run``.
    """

    def __init__(
        self,
        config: BacktestConfig,
        market_data: MarketDataSource,
        signal_source: SignalSource,
        context_provider: TechnicalContextProvider | None = None,
        event_bus: EventBus | None = None,
        metrics_calculator: IMetricsCalculator | None = None,
        record_snapshots: bool = True,
    ) -> None:
        self.config = config
        self._market_data = market_data
        self._signal_source = signal_source
        self._context_provider = context_provider
        self._event_bus = event_bus
        self._metrics_calculator = metrics_calculator or MetricsCalculator()
        self._record_snapshots = record_snapshots
        self._position_manager = PositionManager(market_data)
        self._executor = ExecutionSimulator(config, event_bus)
        self.context: RunContext | None = None

    def run(self, on_tick: Callable[[RunContext], None] | None = None) -> BacktestResult:
        """
        Execute the simulation over the configured window.

        Args:
            on_tick: Optional hook called with the live context after every
                processed timestamp

        Returns:
            The assembled result of the completed run

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config = self.config.validate()
        context = RunContext.create(config)
        self.context = context

        timeline = TimelineBuilder.from_market_data(
            self._market_data, config.start_date, config.end_date, config.universe
        )
        total = len(timeline)
        context.total_ticks = total
        logger.info(
            f"Starting backtest: {len(config.universe)} instruments, {total} timestamps, "
            f"capital {config.initial_capital:,.2f}"
        )

        context.transition_to(RunState.RUNNING)
        for timestamp in timeline:
            self._process_tick(context, timestamp)
            context.processed_ticks += 1
            if on_tick is not None:
                on_tick(context)
            if context.processed_ticks % config.progress_interval == 0:
                self._publish(ProgressEvent(processed=context.processed_ticks, total=total))

        self._close_remaining_positions(context)
        context.transition_to(RunState.COMPLETED)

        if total == 0 or context.processed_ticks % config.progress_interval != 0:
            self._publish(ProgressEvent(processed=context.processed_ticks, total=total))

        result = self._build_result(context)
        logger.info(
            f"Backtest completed: {result.metrics.total_trades} trades, "
            f"return {result.total_return:.2f}%, max drawdown {result.metrics.max_drawdown:.2f}%"
        )
        self._publish(CompletedEvent(result=result))
        return result

    def _process_tick(self, context: RunContext, timestamp: datetime) -> None:
        for position in self._position_manager.update_positions(context, timestamp):
            self._executor.close_position(context, position, timestamp)

        for key in self.config.universe:
            observation = self._market_data.get_observation(key.symbol, key.market, timestamp)
            # Signals only come from a bar printed at this exact tick
            if observation is None or observation.timestamp != timestamp:
                continue
            if self._position_manager.has_open_position(context, key.symbol, key.market):
                continue

            signal = self._generate_signal(observation)
            if signal is not None:
                self._executor.open_position(context, signal, timestamp)

        self._record_equity(context, timestamp)

    def _generate_signal(self, observation: Observation) -> TradingSignal | None:
        """Query the signal source and apply the acceptance filter."""
        technical_context = (
            self._context_provider.get_context(observation)
            if self._context_provider is not None
            else None
        )
        try:
            signal = self._signal_source.generate_signal(observation, technical_context)
        except Exception as e:
            logger.warning(
                f"Signal generation failed for {observation.key} at "
                f"{observation.timestamp.isoformat()}: {type(e).__name__}: {e}"
            )
            return None

        if signal is None or not signal.direction.is_actionable:
            return None
        if signal.confidence < self.config.min_confidence:
            return None
        if (signal.symbol, signal.market) != observation.key:
            logger.warning(
                f"Discarding signal for {signal.symbol}_{signal.market} "
                f"returned for observation of {observation.key}"
            )
            return None
        return signal

    def _record_equity(self, context: RunContext, timestamp: datetime) -> None:
        context.equity = context.cash + context.unrealized_pnl
        if context.equity > context.peak_equity:
            context.peak_equity = context.equity
        drawdown = context.current_drawdown

        context.equity_curve.append(EquityPoint(timestamp=timestamp, equity=context.equity))
        context.drawdown_curve.append(DrawdownPoint(timestamp=timestamp, drawdown=drawdown))

        if self._record_snapshots:
            context.snapshots.append(
                BacktestSnapshot(
                    timestamp=timestamp,
                    equity=context.equity,
                    cash=context.cash,
                    positions=tuple(position.snapshot() for position in context.open_positions()),
                    drawdown=drawdown,
                    total_trades=len(context.trades),
                    winning_trades=context.winning_trades,
                    losing_trades=context.losing_trades,
                )
            )

    def _close_remaining_positions(self, context: RunContext) -> None:
        remaining = context.open_positions()
        if remaining:
            logger.debug(f"Force-closing {len(remaining)} open positions at end of run")
        for position in remaining:
            self._executor.close_position(context, position, self.config.end_date, forced=True)

    def _build_result(self, context: RunContext) -> BacktestResult:
        config = context.config
        final_capital = context.cash
        metrics = self._metrics_calculator.calculate(
            context.trades, context.equity_curve, context.drawdown_curve, config.initial_capital
        )
        return BacktestResult(
            config=config,
            initial_capital=config.initial_capital,
            final_capital=final_capital,
            total_return=calculate_total_return(config.initial_capital, final_capital),
            annualized_return=calculate_annualized_return(
                config.initial_capital, final_capital, config.start_date, config.end_date
            ),
            metrics=metrics,
            trades=tuple(context.trades),
            equity_curve=tuple(context.equity_curve),
            drawdown_curve=tuple(context.drawdown_curve),
            snapshots=tuple(context.snapshots),
        )

    def _publish(self, event: object) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)


@log_operation
def run_backtest(
    config: BacktestConfig,
    market_data: MarketDataSource,
    signal_source: SignalSource,
    context_provider: TechnicalContextProvider | None = None,
    event_bus: EventBus | None = None,
) -> BacktestResult:
    """Run a single backtest with fresh state.

    Raises:
        ConfigurationError: If ``config`` is invalid
    """
    return BacktestOrchestrator(
        config, market_data, signal_source, context_provider, event_bus
    ).run()
