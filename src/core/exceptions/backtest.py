"""
Custom exception hierarchy for backtesting platform.

This module defines domain-specific exceptions for better error handling.
"""


class BacktestException(Exception):
    """Base exception for all backtesting-related errors."""

    pass


class ValidationError(BacktestException):
    """Raised when input validation fails."""

    pass


class DataError(BacktestException):
    """Raised when data access or processing fails."""

    pass


class StrategyError(BacktestException):
    """Raised when a signal source is misconfigured or fails."""

    pass


class CalculationError(BacktestException):
    """Raised when mathematical calculations fail."""

    pass


class ConfigurationError(BacktestException):
    """Raised when configuration is invalid."""

    pass


class OptimizationError(BacktestException):
    """Raised when an optimization job cannot be started or evaluated."""

    pass


class IterationFailedError(OptimizationError):
    """Raised for a single failed parameter combination."""

    def __init__(self, parameters: dict[str, float], cause: Exception):
        self.parameters = parameters
        self.cause = cause
        super().__init__(
            f"Optimization iteration failed for {parameters}: {type(cause).__name__}: {cause}"
        )


class PositionNotFoundError(BacktestException):
    """Raised when trying to operate on a non-existent position."""

    def __init__(self, position_id: str):
        self.position_id = position_id
        super().__init__(f"Position not found: {position_id}")
