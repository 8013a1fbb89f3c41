"""
Parameter optimization.

Grid search over backtest parameters with objective scoring, constraint
filtering and ranking.
"""

from .engine import OptimizationEngine, OptimizationJob, rank_results, run_optimization
from .grid import ParameterGrid, total_combinations
from .scoring import calculate_score

__all__ = [
    "OptimizationEngine",
    "OptimizationJob",
    "ParameterGrid",
    "calculate_score",
    "rank_results",
    "run_optimization",
    "total_combinations",
]
