"""
Objective scoring for optimization runs.
"""

from src.core.constants import (
    COMPOSITE_DRAWDOWN_WEIGHT,
    COMPOSITE_PROFIT_FACTOR_WEIGHT,
    COMPOSITE_SHARPE_WEIGHT,
    COMPOSITE_WIN_RATE_WEIGHT,
)
from src.core.enums import OptimizationMetric
from src.core.models.backtest import BacktestResult


def calculate_score(result: BacktestResult, metric: OptimizationMetric | str) -> float:
    """
    Reduce a backtest result to a scalar where higher is better.

    Args:
        result: Completed backtest
        metric: Objective; strings are parsed with ``OptimizationMetric.from_string``

    Returns:
        Score of the run. ``maxDrawdown`` is negated so that smaller
        drawdowns rank higher; the composite score weighs win rate, profit
        factor, Sharpe ratio and drawdown.
    """
    if not isinstance(metric, OptimizationMetric):
        metric = OptimizationMetric.from_string(metric)
    metrics = result.metrics

    if metric == OptimizationMetric.TOTAL_RETURN:
        return result.total_return
    if metric == OptimizationMetric.SHARPE_RATIO:
        return metrics.sharpe_ratio
    if metric == OptimizationMetric.WIN_RATE:
        return metrics.win_rate
    if metric == OptimizationMetric.PROFIT_FACTOR:
        return metrics.profit_factor
    if metric == OptimizationMetric.MAX_DRAWDOWN:
        return -metrics.max_drawdown

    return (
        COMPOSITE_WIN_RATE_WEIGHT * metrics.win_rate
        + COMPOSITE_PROFIT_FACTOR_WEIGHT * metrics.profit_factor
        + COMPOSITE_SHARPE_WEIGHT * metrics.sharpe_ratio
        - COMPOSITE_DRAWDOWN_WEIGHT * metrics.max_drawdown
    )
