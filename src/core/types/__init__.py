"""
Core type definitions and utilities.
"""

# Re-export financial utilities for easy access
from .financial import (
    FINANCIAL_DECIMALS,
    HUNDRED,
    ONE,
    PERCENTAGE_DECIMALS,
    ZERO,
    apply_slippage,
    calculate_commission,
    calculate_notional_value,
    calculate_pnl,
    percent_of,
    round_amount,
    round_percentage,
    safe_divide,
    safe_float_comparison,
)

__all__ = [
    # Utility functions
    "round_amount",
    "round_percentage",
    "percent_of",
    "calculate_notional_value",
    "calculate_commission",
    "apply_slippage",
    "calculate_pnl",
    "safe_divide",
    "safe_float_comparison",
    # Constants
    "FINANCIAL_DECIMALS",
    "PERCENTAGE_DECIMALS",
    "ZERO",
    "ONE",
    "HUNDRED",
]
