"""
Signal sources used by the backtesting engine.
"""

from .indicator_signals import IndicatorSignalSource

__all__ = ["IndicatorSignalSource"]
