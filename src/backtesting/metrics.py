"""
Performance metrics calculation.

Every metric is a pure function of the closed-trade ledger and the
equity/drawdown curves; the same inputs always produce the same values.

Unit conventions:
- ``win_rate``, ``max_drawdown`` and returns are percentages
- ``calmar_ratio`` is percent-of-capital return over percent max drawdown
- ``recovery_factor`` is net P&L over the largest peak-to-trough equity
  decline, both in currency
"""

import math
from collections.abc import Sequence

import numpy as np

from src.core.constants import TRADING_DAYS_PER_YEAR
from src.core.interfaces.data import IMetricsCalculator
from src.core.models.backtest import DrawdownPoint, EquityPoint
from src.core.models.metrics import PerformanceMetrics
from src.core.models.trade import ClosedTrade
from src.core.types.financial import ZERO, safe_divide


def calculate_win_rate(trades: Sequence[ClosedTrade]) -> float:
    """Percentage of trades with positive net P&L (0 with no trades)."""
    if not trades:
        return ZERO
    winners = sum(1 for trade in trades if trade.is_win)
    return winners / len(trades) * 100


def calculate_profit_factor(trades: Sequence[ClosedTrade]) -> float:
    """
    Gross profit divided by gross loss.

    Returns ``inf`` when there are profits but no losses and 0 when there
    are neither.
    """
    gross_profit = sum(trade.pnl for trade in trades if trade.pnl > 0)
    gross_loss = abs(sum(trade.pnl for trade in trades if trade.pnl < 0))
    if gross_loss == ZERO:
        return math.inf if gross_profit > 0 else ZERO
    return gross_profit / gross_loss


def calculate_max_drawdown(drawdown_curve: Sequence[DrawdownPoint]) -> float:
    """Largest value of the drawdown curve in percent."""
    if not drawdown_curve:
        return ZERO
    return max(point.drawdown for point in drawdown_curve)


def calculate_max_drawdown_amount(
    equity_curve: Sequence[EquityPoint], initial_capital: float
) -> float:
    """Largest peak-to-trough equity decline in currency.

    The running peak starts at ``initial_capital``, matching the drawdown
    curve.
    """
    if not equity_curve:
        return ZERO
    equity = np.array([point.equity for point in equity_curve], dtype=float)
    peaks = np.maximum.accumulate(np.concatenate(([initial_capital], equity)))[1:]
    return float(max(ZERO, np.max(peaks - equity)))


def calculate_period_returns(equity_curve: Sequence[EquityPoint]) -> np.ndarray:
    """Simple returns between consecutive equity points."""
    if len(equity_curve) < 2:
        return np.array([], dtype=float)
    equity = np.array([point.equity for point in equity_curve], dtype=float)
    previous = equity[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.where(previous != 0, np.diff(equity) / previous, 0.0)
    return returns


def calculate_sharpe_ratio(equity_curve: Sequence[EquityPoint]) -> float:
    """
    Annualized Sharpe ratio of per-period equity returns.

    ``mean / population std * sqrt(252)``; 0 with fewer than two returns or
    zero volatility.
    """
    returns = calculate_period_returns(equity_curve)
    if len(returns) < 2:
        return ZERO

    std = float(np.std(returns))
    if std == ZERO or not math.isfinite(std):
        return ZERO
    return float(np.mean(returns)) / std * math.sqrt(TRADING_DAYS_PER_YEAR)


def calculate_calmar_ratio(total_pnl: float, initial_capital: float, max_drawdown: float) -> float:
    """Percent-of-capital return divided by max drawdown (0 without drawdown)."""
    if max_drawdown == ZERO:
        return ZERO
    return safe_divide(total_pnl, initial_capital) * 100 / max_drawdown


def calculate_recovery_factor(total_pnl: float, max_drawdown_amount: float) -> float:
    """Net P&L divided by the largest equity decline (0 without drawdown)."""
    return safe_divide(total_pnl, max_drawdown_amount)


def calculate_consecutive_streaks(trades: Sequence[ClosedTrade]) -> tuple[int, int]:
    """
    Longest winning and losing streaks in entry-time order.

    Break-even trades end both streaks.

    Returns:
        (consecutive_wins, consecutive_losses)
    """
    ordered = sorted(trades, key=lambda trade: trade.entry_time)
    max_wins = max_losses = current_wins = current_losses = 0

    for trade in ordered:
        if trade.is_win:
            current_wins += 1
            current_losses = 0
        elif trade.is_loss:
            current_losses += 1
            current_wins = 0
        else:
            current_wins = current_losses = 0
        max_wins = max(max_wins, current_wins)
        max_losses = max(max_losses, current_losses)

    return max_wins, max_losses


class MetricsCalculator(IMetricsCalculator):
    """Aggregates the metric functions into a ``PerformanceMetrics`` record."""

    def calculate(
        self,
        trades: Sequence[ClosedTrade],
        equity_curve: Sequence[EquityPoint],
        drawdown_curve: Sequence[DrawdownPoint],
        initial_capital: float,
    ) -> PerformanceMetrics:
        """Derive every metric for a completed run."""
        wins = [trade.pnl for trade in trades if trade.is_win]
        losses = [trade.pnl for trade in trades if trade.is_loss]
        total_trades = len(trades)

        total_pnl = sum(trade.pnl for trade in trades)
        gross_profit = sum(wins)
        gross_loss = abs(sum(losses))
        average_win = safe_divide(gross_profit, len(wins))
        average_loss = safe_divide(gross_loss, len(losses))
        win_rate = calculate_win_rate(trades)

        max_drawdown = calculate_max_drawdown(drawdown_curve)
        max_drawdown_amount = calculate_max_drawdown_amount(equity_curve, initial_capital)
        consecutive_wins, consecutive_losses = calculate_consecutive_streaks(trades)

        win_probability = win_rate / 100
        expectancy = (
            win_probability * average_win - (1 - win_probability) * average_loss
            if total_trades
            else ZERO
        )

        return PerformanceMetrics(
            total_trades=total_trades,
            winning_trades=len(wins),
            losing_trades=len(losses),
            win_rate=win_rate,
            profit_factor=calculate_profit_factor(trades),
            total_pnl=total_pnl,
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            average_win=average_win,
            average_loss=average_loss,
            largest_win=max(wins, default=ZERO),
            largest_loss=min(losses, default=ZERO),
            consecutive_wins=consecutive_wins,
            consecutive_losses=consecutive_losses,
            max_drawdown=max_drawdown,
            max_drawdown_amount=max_drawdown_amount,
            sharpe_ratio=calculate_sharpe_ratio(equity_curve),
            calmar_ratio=calculate_calmar_ratio(total_pnl, initial_capital, max_drawdown),
            recovery_factor=calculate_recovery_factor(total_pnl, max_drawdown_amount),
            profitability_index=safe_divide(total_pnl, total_trades),
            expectancy=expectancy,
            total_commission=sum(trade.commission for trade in trades),
            total_slippage=sum(trade.slippage * trade.quantity for trade in trades),
        )
