"""
Backtesting simulation.

This module provides the per-run simulation loop, execution and position
handling, performance metrics and the session facade with its query API.
"""

from .engine import BacktestEngine
from .events import EventBus, EventType
from .execution import ExecutionSimulator
from .metrics import MetricsCalculator
from .orchestrator import BacktestOrchestrator, run_backtest
from .positions import PositionManager
from .run_context import RunContext
from .timeline import TimelineBuilder

__all__ = [
    "BacktestEngine",
    "BacktestOrchestrator",
    "EventBus",
    "EventType",
    "ExecutionSimulator",
    "MetricsCalculator",
    "PositionManager",
    "RunContext",
    "TimelineBuilder",
    "run_backtest",
]
