"""
Unit tests for float-based financial helpers.
"""

import pytest

from src.core.types import (
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


class TestPercentages:
    """Test suite for percentage helpers."""

    def test_should_compute_percent_of_value(self) -> None:
        """Test percent_of with whole and fractional rates."""
        assert percent_of(10000.0, 2.0) == pytest.approx(200.0)
        assert percent_of(400.0, 0.1) == pytest.approx(0.4)

    def test_should_charge_commission_on_absolute_notional(self) -> None:
        """Test commission for positive and negative notionals."""
        assert calculate_commission(4000.0, 0.1) == pytest.approx(4.0)
        assert calculate_commission(-4000.0, 0.1) == pytest.approx(4.0)

    def test_should_use_absolute_quantity_for_notional(self) -> None:
        """Test notional value ignores the quantity sign."""
        assert calculate_notional_value(-2.0, 50.0) == 100.0


class TestSlippage:
    """Test suite for apply_slippage."""

    def test_should_fill_buy_orders_higher(self) -> None:
        """Test that buy orders pay the slippage."""
        assert apply_slippage(100.0, 1.0, 1) == pytest.approx(101.0)

    def test_should_fill_sell_orders_lower(self) -> None:
        """Test that sell orders receive less."""
        assert apply_slippage(100.0, 1.0, -1) == pytest.approx(99.0)

    def test_should_leave_price_unchanged_without_slippage(self) -> None:
        """Test zero slippage."""
        assert apply_slippage(123.45, 0.0, 1) == 123.45

    def test_should_reject_invalid_direction(self) -> None:
        """Test that a flat direction is rejected."""
        with pytest.raises(ValueError, match="must be \\+1 or -1"):
            apply_slippage(100.0, 1.0, 0)


class TestPnl:
    """Test suite for calculate_pnl."""

    def test_should_profit_from_rising_price_when_long(self) -> None:
        """Test long P&L."""
        assert calculate_pnl(100.0, 110.0, 40.0, 1) == pytest.approx(400.0)

    def test_should_profit_from_falling_price_when_short(self) -> None:
        """Test short P&L is sign-correct."""
        assert calculate_pnl(100.0, 90.0, 10.0, -1) == pytest.approx(100.0)
        assert calculate_pnl(100.0, 110.0, 10.0, -1) == pytest.approx(-100.0)

    def test_should_reject_flat_direction(self) -> None:
        """Test that direction 0 is invalid."""
        with pytest.raises(ValueError):
            calculate_pnl(100.0, 110.0, 1.0, 0)


class TestRoundingAndComparison:
    """Test suite for rounding and comparison helpers."""

    def test_should_round_to_reporting_precision(self) -> None:
        """Test amount and percentage rounding."""
        assert round_amount(1.123456789123) == 1.12345679
        assert round_percentage(12.345678) == 12.3457

    def test_should_return_default_on_zero_division(self) -> None:
        """Test safe_divide."""
        assert safe_divide(10.0, 4.0) == 2.5
        assert safe_divide(10.0, 0.0) == 0.0
        assert safe_divide(10.0, 0.0, default=-1.0) == -1.0

    def test_should_compare_floats_with_tolerance(self) -> None:
        """Test safe_float_comparison."""
        assert safe_float_comparison(0.1 + 0.2, 0.3)
        assert not safe_float_comparison(1.0, 1.1)
        assert safe_float_comparison(1.0, 1.05, tolerance=0.1)
