"""
Mutable state owned by a single backtest run.

Each run creates its own ``RunContext``; nothing in it is shared with other
runs, which is what lets optimization iterations execute concurrently.
"""

from dataclasses import dataclass, field

from src.core.enums import RunState
from src.core.exceptions.backtest import BacktestException
from src.core.models.backtest import (
    BacktestConfig,
    BacktestSnapshot,
    DrawdownPoint,
    EquityPoint,
)
from src.core.models.market import InstrumentKey
from src.core.models.position import Position
from src.core.models.trade import ClosedTrade


@dataclass
class RunContext:
    """Account, ledger and curve state of one run.

    Cash accounting: ``cash`` is the account balance. Opening a position
    reserves its notional (tracked through the open positions) and debits
    only the entry commission; closing credits the gross P&L minus the exit
    commission. Equity is therefore ``cash + sum(unrealized P&L)``.
    """

    config: BacktestConfig
    state: RunState = RunState.INITIALIZED
    cash: float = 0.0
    equity: float = 0.0
    peak_equity: float = 0.0
    positions: dict[InstrumentKey, Position] = field(default_factory=dict)
    trades: list[ClosedTrade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    drawdown_curve: list[DrawdownPoint] = field(default_factory=list)
    snapshots: list[BacktestSnapshot] = field(default_factory=list)
    processed_ticks: int = 0
    total_ticks: int = 0

    @classmethod
    def create(cls, config: BacktestConfig) -> "RunContext":
        """Fresh context funded with the configured initial capital."""
        capital = config.initial_capital
        return cls(config=config, cash=capital, equity=capital, peak_equity=capital)

    def transition_to(self, target: RunState) -> None:
        """Advance the run state machine.

        Raises:
            BacktestException: On an illegal transition
        """
        if not self.state.can_transition_to(target):
            raise BacktestException(
                f"Illegal run state transition: {self.state.value} -> {target.value}"
            )
        self.state = target

    @property
    def reserved_notional(self) -> float:
        """Notional committed to open positions."""
        return sum(position.notional_value for position in self.positions.values())

    @property
    def available_cash(self) -> float:
        """Cash not committed to open positions."""
        return self.cash - self.reserved_notional

    @property
    def unrealized_pnl(self) -> float:
        return sum(position.unrealized_pnl for position in self.positions.values())

    @property
    def winning_trades(self) -> int:
        return sum(1 for trade in self.trades if trade.is_win)

    @property
    def losing_trades(self) -> int:
        return sum(1 for trade in self.trades if trade.is_loss)

    @property
    def current_drawdown(self) -> float:
        """Percent below the running equity peak."""
        if self.peak_equity <= 0:
            return 0.0
        return max(0.0, (self.peak_equity - self.equity) / self.peak_equity * 100)

    def has_position(self, key: InstrumentKey) -> bool:
        return key in self.positions

    def open_positions(self) -> list[Position]:
        """Open positions in opening order."""
        return list(self.positions.values())
