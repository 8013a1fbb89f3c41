"""
Utility decorators for logging engine operations.
"""

import functools
import inspect
import time
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger

from src.core.exceptions.backtest import ValidationError

F = TypeVar("F", bound=Callable[..., Any])

_CONTEXT_PARAMS = ("config", "parameters", "max_workers", "time_budget")


def _serialize_parameter_value(value: Any) -> Any:
    """Serialize parameter value for logging."""
    if hasattr(value, "value") and hasattr(value, "name"):
        return str(value.value)  # Handle enum values
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list | tuple):
        return [_serialize_parameter_value(item) for item in value]
    return value


def _extract_operation_context(func: Callable[..., Any], args: tuple, kwargs: dict) -> dict:
    """Extract loggable context from function arguments."""
    try:
        bound_args = inspect.signature(func).bind(*args, **kwargs)
    except TypeError:
        return {}
    bound_args.apply_defaults()

    return {
        name: _serialize_parameter_value(value)
        for name, value in bound_args.arguments.items()
        if name in _CONTEXT_PARAMS and value is not None
    }


def _create_success_context(
    base_context: dict[str, Any], execution_time_ms: float, result: Any
) -> dict[str, Any]:
    """Create success logging context."""
    success_context = {
        **base_context,
        "success": True,
        "execution_time_ms": round(execution_time_ms, 2),
        "result_type": type(result).__name__,
    }

    if isinstance(result, bool | int | float | str):
        success_context["result"] = result
    elif isinstance(result, list):
        success_context["result_count"] = len(result)

    return success_context


def _create_error_context(
    base_context: dict[str, Any], execution_time_ms: float, error: Exception
) -> dict[str, Any]:
    """Create error logging context."""
    return {
        **base_context,
        "success": False,
        "execution_time_ms": round(execution_time_ms, 2),
        "error_type": type(error).__name__,
        "error_message": str(error),
    }


def log_operation(func: F) -> F:
    """Decorator to log engine entry points with correlation IDs and timing."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        context = {
            "correlation_id": str(uuid.uuid4())[:8],
            **_extract_operation_context(func, args, kwargs),
        }
        func_name = func.__name__

        logger.bind(**context).debug(f"Operation started: {func_name}")
        start_time = time.perf_counter()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            execution_time_ms = (time.perf_counter() - start_time) * 1000
            error_context = _create_error_context(context, execution_time_ms, e)
            logger.bind(**error_context).error(f"Operation failed: {func_name}")
            raise

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        success_context = _create_success_context(context, execution_time_ms, result)
        logger.bind(**success_context).debug(
            f"Operation completed: {func_name} in {success_context['execution_time_ms']}ms"
        )
        return result

    return wrapper  # type: ignore


def require_non_empty(param_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that rejects calls where ``param_name`` is an empty collection."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound_args = signature.bind(*args, **kwargs)
            bound_args.apply_defaults()
            value = bound_args.arguments.get(param_name)
            if value is not None and len(value) == 0:
                raise ValidationError(f"{param_name} must not be empty")
            return func(*args, **kwargs)

        return wrapper

    return decorator
