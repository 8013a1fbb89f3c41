"""
Shared FastAPI dependencies.
"""

import math

from fastapi import HTTPException, Request

from src.core.models.backtest import BacktestResult

from .store import ResultStore


def get_store(request: Request) -> ResultStore:
    """Result store attached to the application."""
    return request.app.state.store


def get_backtest_or_404(store: ResultStore, backtest_id: str) -> BacktestResult:
    """Fetch a stored backtest or raise 404."""
    result = store.get_backtest(backtest_id)
    if result is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "not_found", "message": f"Backtest {backtest_id} not found"},
        )
    return result


def json_safe(values: dict) -> dict:
    """Replace infinite floats, which JSON cannot encode, with None."""
    return {
        key: (None if isinstance(value, float) and math.isinf(value) else value)
        for key, value in values.items()
    }
