"""
Financial helpers for high-performance backtesting calculations.

This module provides float-based arithmetic for the simulation loop.
Float64 is used throughout instead of Decimal: historical simulation is
dominated by the number of ticks processed, and the loop must stay cheap.

IMPORTANT PRECISION CONSIDERATIONS:
- Float64 provides ~15-16 significant decimal digits
- Suitable for backtesting historical data where performance > precision
- NOT suitable for production trading (use Decimal for real money operations)
- Compare results with ``safe_float_comparison`` or ``pytest.approx``

All rates in this module are expressed in percent (0.1 means 0.1%).
"""

# Financial calculation precision (number of decimal places)
FINANCIAL_DECIMALS = 8
PERCENTAGE_DECIMALS = 4

# Common financial values as float constants
ZERO = 0.0
ONE = 1.0
HUNDRED = 100.0


def round_amount(amount: float) -> float:
    """Round amount to reporting precision.

    Args:
        amount: Amount value to round

    Returns:
        Rounded amount as float
    """
    return round(amount, FINANCIAL_DECIMALS)


def round_percentage(percentage: float) -> float:
    """Round percentage to reporting precision.

    Args:
        percentage: Percentage value to round

    Returns:
        Rounded percentage as float
    """
    return round(percentage, PERCENTAGE_DECIMALS)


def percent_of(value: float, rate_percent: float) -> float:
    """Return ``rate_percent`` percent of ``value``.

    Examples:
        >>> percent_of(10000.0, 2.0)
        200.0
    """
    return value * (rate_percent / HUNDRED)


def calculate_notional_value(quantity: float, price: float) -> float:
    """Calculate notional value of a quantity at a price."""
    return abs(quantity) * price


def calculate_commission(notional_value: float, commission_percent: float) -> float:
    """Calculate commission charged on a notional value.

    Args:
        notional_value: Traded notional value
        commission_percent: Commission rate in percent

    Returns:
        Commission amount
    """
    return percent_of(abs(notional_value), commission_percent)


def apply_slippage(price: float, slippage_percent: float, direction: int) -> float:
    """Move a price against the trader by the slippage rate.

    ``direction`` is the sign of the order being filled: +1 for a buy order
    (opening a long or covering a short) and -1 for a sell order (opening a
    short or closing a long). Buys fill higher, sells fill lower.

    Args:
        price: Reference price
        slippage_percent: Slippage rate in percent
        direction: +1 for buy orders, -1 for sell orders

    Returns:
        Fill price after slippage

    Examples:
        >>> apply_slippage(100.0, 1.0, 1)
        101.0
        >>> apply_slippage(100.0, 1.0, -1)
        99.0
    """
    if direction not in (1, -1):
        raise ValueError(f"Order direction must be +1 or -1, got {direction}")
    return price * (ONE + direction * slippage_percent / HUNDRED)


def calculate_pnl(entry_price: float, exit_price: float, quantity: float, direction: int) -> float:
    """Calculate P&L of a position.

    Args:
        entry_price: Entry price of position
        exit_price: Exit (or mark) price of position
        quantity: Position quantity (absolute value is used)
        direction: +1 for long, -1 for short

    Returns:
        P&L as float

    Examples:
        >>> calculate_pnl(100.0, 110.0, 40.0, 1)
        400.0
        >>> calculate_pnl(100.0, 110.0, 40.0, -1)
        -400.0
    """
    if direction not in (1, -1):
        raise ValueError(f"Position direction must be +1 or -1, got {direction}")
    return (exit_price - entry_price) * abs(quantity) * direction


def safe_divide(numerator: float, denominator: float, default: float = ZERO) -> float:
    """Divide, returning ``default`` when the denominator is zero."""
    if denominator == ZERO:
        return default
    return numerator / denominator


def safe_float_comparison(a: float, b: float, tolerance: float = 1e-9) -> bool:
    """Compare floats with tolerance for precision issues.

    Args:
        a: First float to compare
        b: Second float to compare
        tolerance: Acceptable difference (default: 1e-9)

    Returns:
        True if floats are equal within tolerance

    Examples:
        >>> safe_float_comparison(0.1 + 0.2, 0.3)
        True
        >>> safe_float_comparison(1000000.1, 1000000.2, 0.01)
        False
    """
    return abs(a - b) < tolerance
