"""
In-memory store for computed results served by the API.
"""

import threading

from cachetools import LRUCache
from loguru import logger

from src.core.constants import MAX_STORED_RESULTS
from src.core.models.backtest import BacktestResult, new_result_id
from src.core.models.optimization import OptimizationResult


class ResultStore:
    """
    Thread-safe, size-bounded result store.

    The least recently used entries are evicted once ``maxsize`` results of
    a kind are held.
    """

    def __init__(self, maxsize: int = MAX_STORED_RESULTS):
        self._backtests: LRUCache[str, BacktestResult] = LRUCache(maxsize=maxsize)
        self._optimizations: LRUCache[str, list[OptimizationResult]] = LRUCache(maxsize=maxsize)
        self._lock = threading.Lock()

    def add_backtest(self, result: BacktestResult, backtest_id: str | None = None) -> str:
        """Store a backtest result under ``backtest_id`` (default: the result id)."""
        backtest_id = backtest_id or result.id
        with self._lock:
            self._backtests[backtest_id] = result
        logger.debug(f"Stored backtest {backtest_id}")
        return backtest_id

    def get_backtest(self, backtest_id: str) -> BacktestResult | None:
        with self._lock:
            return self._backtests.get(backtest_id)

    def list_backtests(self) -> dict[str, BacktestResult]:
        with self._lock:
            return dict(self._backtests.items())

    def add_optimization(
        self, results: list[OptimizationResult], optimization_id: str | None = None
    ) -> str:
        """Store ranked optimization results and return their id."""
        optimization_id = optimization_id or new_result_id()
        with self._lock:
            self._optimizations[optimization_id] = list(results)
        logger.debug(f"Stored optimization {optimization_id} ({len(results)} results)")
        return optimization_id

    def get_optimization(self, optimization_id: str) -> list[OptimizationResult] | None:
        with self._lock:
            return self._optimizations.get(optimization_id)

    def list_optimizations(self) -> dict[str, int]:
        """Stored optimization ids with their result counts."""
        with self._lock:
            return {key: len(results) for key, results in self._optimizations.items()}

    def clear(self) -> None:
        with self._lock:
            self._backtests.clear()
            self._optimizations.clear()
