"""
Validation utilities for core domain models.

Provides consistent validation across the application.
"""

from datetime import UTC, datetime

from src.core.exceptions.backtest import ValidationError


def validate_positive(value: float, param_name: str) -> float:
    """Validate that a numeric value is positive.

    Args:
        value: Value to validate
        param_name: Parameter name for error messages

    Returns:
        The validated value

    Raises:
        ValidationError: If value is not positive
    """
    if value <= 0:
        raise ValidationError(f"{param_name} must be positive, got {value}")
    return value


def validate_non_negative(value: float, param_name: str) -> float:
    """Validate that a numeric value is zero or greater."""
    if value < 0:
        raise ValidationError(f"{param_name} must be non-negative, got {value}")
    return value


def validate_percentage(value: float, param_name: str = "percentage") -> float:
    """Validate that a value is a valid percentage rate (0-100 inclusive).

    Args:
        value: Value to validate
        param_name: Parameter name for error messages

    Returns:
        The validated percentage

    Raises:
        ValidationError: If value is not between 0 and 100
    """
    if value < 0 or value > 100:
        raise ValidationError(f"{param_name} must be between 0 and 100, got {value}")
    return value


def validate_confidence(value: float, param_name: str = "confidence") -> float:
    """Validate that a confidence score lies in [0, 1]."""
    if value < 0 or value > 1:
        raise ValidationError(f"{param_name} must be between 0 and 1, got {value}")
    return value


def validate_date_range(start_date: datetime, end_date: datetime) -> tuple[datetime, datetime]:
    """Validate that ``end_date`` is strictly after ``start_date``.

    Raises:
        ValidationError: If the range is empty or inverted
    """
    if end_date <= start_date:
        raise ValidationError(
            f"end_date must be after start_date, got {start_date.isoformat()} -> "
            f"{end_date.isoformat()}"
        )
    return start_date, end_date


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so they compare with aware timestamps."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
