"""
Unit tests for execution simulation, run context and position management.

Enhanced to check the cash ledger after every fill.
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.backtesting import EventBus, EventType, ExecutionSimulator, PositionManager, RunContext
from src.backtesting.execution import position_id
from src.core.enums import ExitReason, PositionStatus, RunState, SignalDirection
from src.core.exceptions.backtest import BacktestException, PositionNotFoundError
from src.core.models.backtest import BacktestConfig
from src.core.models.market import InstrumentKey, Observation
from src.core.models.signal import TradingSignal
from src.infrastructure.data import HistoricalMarketData

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def make_config(**overrides) -> BacktestConfig:
    values = {
        "start_date": T0,
        "end_date": T0 + timedelta(days=10),
        "initial_capital": 10000.0,
        "symbols": ("BTC",),
        "commission": 0.1,
        "slippage": 0.0,
        "max_position_size": 50.0,
        "risk_per_trade": 2.0,
    }
    values.update(overrides)
    return BacktestConfig(**values)


def make_signal(
    direction: SignalDirection = SignalDirection.BUY,
    entry: float = 100.0,
    stop: float = 95.0,
    target: float = 110.0,
    symbol: str = "BTC",
) -> TradingSignal:
    return TradingSignal(
        symbol=symbol,
        market="crypto",
        direction=direction,
        confidence=0.8,
        entry_price=entry,
        stop_loss=stop,
        take_profit=target,
        timestamp=T0,
    )


class TestRunContext:
    """Test suite for RunContext."""

    def test_should_start_funded_with_initial_capital(self) -> None:
        """Test create."""
        context = RunContext.create(make_config())

        assert context.cash == context.equity == context.peak_equity == 10000.0
        assert context.state == RunState.INITIALIZED
        assert context.available_cash == 10000.0
        assert context.current_drawdown == 0.0

    def test_should_enforce_state_machine(self) -> None:
        """Test legal and illegal transitions."""
        context = RunContext.create(make_config())

        context.transition_to(RunState.RUNNING)
        context.transition_to(RunState.COMPLETED)

        with pytest.raises(BacktestException, match="Illegal run state transition"):
            context.transition_to(RunState.RUNNING)

    def test_should_measure_drawdown_from_peak(self) -> None:
        """Test current_drawdown."""
        context = RunContext.create(make_config())
        context.peak_equity = 12000.0
        context.equity = 9000.0

        assert context.current_drawdown == pytest.approx(25.0)


class TestPositionSizing:
    """Test suite for risk-based position sizing."""

    def test_should_size_by_risk_per_stop_distance(self) -> None:
        """Test equity * risk% / |entry - stop|."""
        simulator = ExecutionSimulator(make_config())

        assert simulator.calculate_position_size(10000.0, make_signal()) == pytest.approx(40.0)

    def test_should_cap_size_at_max_position(self) -> None:
        """Test the max_position_size cap."""
        simulator = ExecutionSimulator(make_config(max_position_size=10.0))

        # Risk sizing would give 40 units, the cap allows 1000 / 100 = 10
        assert simulator.calculate_position_size(10000.0, make_signal()) == pytest.approx(10.0)

    def test_should_return_zero_without_stop_distance_or_equity(self) -> None:
        """Test degenerate inputs."""
        simulator = ExecutionSimulator(make_config())

        assert simulator.calculate_position_size(10000.0, make_signal(stop=100.0)) == 0.0
        assert simulator.calculate_position_size(0.0, make_signal()) == 0.0


class TestExecutionSimulator:
    """Test suite for ExecutionSimulator fills."""

    @pytest.fixture
    def context(self) -> RunContext:
        context = RunContext.create(make_config())
        context.transition_to(RunState.RUNNING)
        return context

    def test_should_open_position_and_charge_entry_commission(self, context: RunContext) -> None:
        """Test the entry ledger: only commission leaves cash."""
        simulator = ExecutionSimulator(make_config())

        position = simulator.open_position(context, make_signal(), T0)

        assert position is not None
        assert position.quantity == pytest.approx(40.0)
        assert position.entry_price == 100.0
        assert position.entry_commission == pytest.approx(4.0)
        assert position.id == "BTC_crypto_1704067200000"
        assert context.cash == pytest.approx(9996.0)
        assert context.available_cash == pytest.approx(5996.0)
        assert context.has_position(InstrumentKey("BTC", "crypto"))

    def test_should_close_winning_long_at_take_profit(self, context: RunContext) -> None:
        """Test 40 units 100 -> 110 with 0.1% commission nets 391.6."""
        simulator = ExecutionSimulator(make_config())
        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None

        position.mark_to_market(110.0)
        trade = simulator.close_position(context, position, T0 + timedelta(hours=2))

        assert trade.gross_pnl == pytest.approx(400.0)
        assert trade.commission == pytest.approx(8.4)
        assert trade.pnl == pytest.approx(391.6)
        assert trade.pnl_percentage == pytest.approx(9.79)
        assert trade.exit_reason == ExitReason.TAKE_PROFIT
        assert context.cash == pytest.approx(10391.6)
        assert context.positions == {}
        assert context.trades == [trade]
        assert position.status == PositionStatus.CLOSED

    def test_should_close_losing_long_at_stop(self) -> None:
        """Test 10 units stopped 100 -> 95 without commission loses 50."""
        config = make_config(risk_per_trade=0.5, commission=0.0)
        context = RunContext.create(config)
        simulator = ExecutionSimulator(config)
        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None
        assert position.quantity == pytest.approx(10.0)

        position.mark_to_market(95.0)
        trade = simulator.close_position(context, position, T0 + timedelta(hours=1))

        assert trade.pnl == pytest.approx(-50.0)
        assert trade.exit_reason == ExitReason.STOP_LOSS
        assert context.cash == pytest.approx(9950.0)

    def test_should_profit_from_short_when_price_falls(self, context: RunContext) -> None:
        """Test short P&L sign."""
        config = make_config(commission=0.0)
        simulator = ExecutionSimulator(config)
        position = simulator.open_position(
            context, make_signal(SignalDirection.SELL, stop=105.0, target=90.0), T0
        )
        assert position is not None

        position.mark_to_market(90.0)
        trade = simulator.close_position(context, position, T0 + timedelta(hours=1))

        assert trade.gross_pnl == pytest.approx(400.0)
        assert trade.exit_reason == ExitReason.TAKE_PROFIT

    def test_should_apply_slippage_against_the_trader(self) -> None:
        """Test entry fills higher and exit fills lower for a long."""
        config = make_config(slippage=1.0, commission=0.0)
        context = RunContext.create(config)
        simulator = ExecutionSimulator(config)
        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None
        assert position.entry_price == pytest.approx(101.0)

        position.mark_to_market(110.0)
        trade = simulator.close_position(context, position, T0 + timedelta(hours=1))

        assert trade.exit_price == pytest.approx(108.9)
        assert trade.slippage == pytest.approx(1.1)
        assert trade.gross_pnl == pytest.approx((108.9 - 101.0) * position.quantity)

    def test_should_close_long_at_zero_with_full_slippage(self) -> None:
        """Test that 100% slippage fills a long exit at zero as a total loss."""
        config = make_config(slippage=100.0, commission=0.0, max_position_size=100.0)
        context = RunContext.create(config)
        simulator = ExecutionSimulator(config)
        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None
        assert position.entry_price == pytest.approx(200.0)

        trade = simulator.close_position(context, position, T0 + timedelta(hours=1), forced=True)

        assert trade.exit_price == 0.0
        assert trade.gross_pnl == pytest.approx(-200.0 * position.quantity)
        assert trade.is_loss
        assert context.cash == pytest.approx(10000.0 + trade.pnl)

    def test_should_reject_short_entry_filling_at_zero(self) -> None:
        """Test that a short entry with 100% slippage is not traded."""
        config = make_config(slippage=100.0, commission=0.0, max_position_size=100.0)
        context = RunContext.create(config)

        position = ExecutionSimulator(config).open_position(
            context, make_signal(SignalDirection.SELL, stop=105.0, target=90.0), T0
        )

        assert position is None
        assert context.cash == 10000.0
        assert context.positions == {}

    def test_should_reject_entry_without_enough_cash(self) -> None:
        """Test that notional plus commission must fit in available cash."""
        config = make_config(max_position_size=100.0, risk_per_trade=100.0)
        context = RunContext.create(config)

        position = ExecutionSimulator(config).open_position(context, make_signal(), T0)

        assert position is None
        assert context.cash == 10000.0
        assert context.positions == {}

    def test_should_reject_second_position_on_same_instrument(self, context: RunContext) -> None:
        """Test at most one open position per instrument."""
        simulator = ExecutionSimulator(make_config())
        first = simulator.open_position(context, make_signal(), T0)
        second = simulator.open_position(context, make_signal(), T0 + timedelta(hours=1))

        assert first is not None
        assert second is None
        assert len(context.positions) == 1

    def test_should_reject_zero_size(self, context: RunContext) -> None:
        """Test that a signal without stop distance is not traded."""
        simulator = ExecutionSimulator(make_config())

        assert simulator.open_position(context, make_signal(stop=100.0), T0) is None

    def test_should_force_close_as_manual(self, context: RunContext) -> None:
        """Test forced exits report MANUAL."""
        simulator = ExecutionSimulator(make_config())
        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None

        trade = simulator.close_position(context, position, T0 + timedelta(days=1), forced=True)

        assert trade.exit_reason == ExitReason.MANUAL
        assert trade.pnl == pytest.approx(-8.0)

    def test_should_refuse_to_close_unknown_position(self, context: RunContext) -> None:
        """Test closing a position that is not open in the context."""
        simulator = ExecutionSimulator(make_config())
        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None
        simulator.close_position(context, position, T0)

        with pytest.raises(PositionNotFoundError):
            simulator.close_position(context, position, T0)

    def test_should_publish_position_events(self, context: RunContext) -> None:
        """Test opened and closed events carry detached snapshots."""
        bus = EventBus()
        opened: list = []
        closed: list = []
        bus.subscribe(EventType.POSITION_OPENED, opened.append)
        bus.subscribe(EventType.POSITION_CLOSED, closed.append)
        simulator = ExecutionSimulator(make_config(), event_bus=bus)

        position = simulator.open_position(context, make_signal(), T0)
        assert position is not None
        position.mark_to_market(110.0)
        trade = simulator.close_position(context, position, T0 + timedelta(hours=1))

        assert len(opened) == 1 and opened[0].position is not position
        assert opened[0].position.status == PositionStatus.OPEN
        assert closed[0].trade is trade
        assert closed[0].position.status == PositionStatus.CLOSED

    def test_should_build_deterministic_position_ids(self) -> None:
        """Test id format."""
        assert position_id("ETH", "spot", T0 + timedelta(seconds=1)) == "ETH_spot_1704067201000"


class TestPositionManager:
    """Test suite for PositionManager."""

    @pytest.fixture
    def market_data(self) -> HistoricalMarketData:
        prices = [100.0, 104.0, 111.0]
        return HistoricalMarketData(
            {
                ("BTC", "crypto"): [
                    Observation("BTC", "crypto", T0 + timedelta(hours=i), price=price)
                    for i, price in enumerate(prices)
                ]
            }
        )

    def test_should_mark_positions_and_collect_exits(self, market_data: HistoricalMarketData) -> None:
        """Test marking and exit detection."""
        config = make_config()
        context = RunContext.create(config)
        ExecutionSimulator(config).open_position(context, make_signal(), T0)
        manager = PositionManager(market_data)

        assert manager.update_positions(context, T0 + timedelta(hours=1)) == []
        position = context.positions[InstrumentKey("BTC", "crypto")]
        assert position.current_price == 104.0
        assert position.unrealized_pnl == pytest.approx(160.0)

        assert manager.update_positions(context, T0 + timedelta(hours=2)) == [position]

    def test_should_carry_last_price_forward_between_bars(
        self, market_data: HistoricalMarketData
    ) -> None:
        """Test that a tick without a fresh bar uses the latest earlier price."""
        config = make_config()
        context = RunContext.create(config)
        ExecutionSimulator(config).open_position(context, make_signal(), T0)

        PositionManager(market_data).update_positions(context, T0 + timedelta(hours=1, minutes=30))

        assert context.positions[InstrumentKey("BTC", "crypto")].current_price == 104.0

    def test_should_report_open_positions_per_instrument(
        self, market_data: HistoricalMarketData
    ) -> None:
        """Test has_open_position."""
        config = make_config()
        context = RunContext.create(config)
        ExecutionSimulator(config).open_position(context, make_signal(), T0)

        assert PositionManager.has_open_position(context, "BTC", "crypto")
        assert not PositionManager.has_open_position(context, "ETH", "crypto")
