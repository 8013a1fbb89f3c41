"""
Backtest API endpoints.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.core.models.backtest import BacktestResult, BacktestSnapshot
from src.core.utils.validation import ensure_utc

from ..dependencies import get_backtest_or_404, get_store, json_safe
from ..schemas.api_models import (
    BacktestListItem,
    BacktestResults,
    CurvePoint,
    CurveResponse,
    MetricsResponse,
    PositionsResponse,
    SnapshotsResponse,
    TradesResponse,
)
from ..store import ResultStore

router = APIRouter()

StoreDep = Annotated[ResultStore, Depends(get_store)]


@router.get("/")
async def list_backtests(store: StoreDep) -> list[BacktestListItem]:
    """List stored backtests."""
    return [
        BacktestListItem(
            backtest_id=backtest_id,
            symbols=list(result.config.symbols),
            start_date=result.start_date,
            end_date=result.end_date,
            total_return=result.total_return,
            total_trades=result.metrics.total_trades,
        )
        for backtest_id, result in store.list_backtests().items()
    ]


@router.get("/{backtest_id}")
async def get_backtest_results(backtest_id: str, store: StoreDep) -> BacktestResults:
    """Get backtest configuration and performance summary by ID."""
    result = get_backtest_or_404(store, backtest_id)
    return BacktestResults(
        backtest_id=backtest_id,
        status="completed",
        config=result.config.to_dict(),
        summary=json_safe(result.performance_summary()),
    )


@router.get("/{backtest_id}/metrics")
async def get_metrics(backtest_id: str, store: StoreDep) -> MetricsResponse:
    """Get the full performance metrics."""
    result = get_backtest_or_404(store, backtest_id)
    return MetricsResponse(backtest_id=backtest_id, metrics=result.metrics.to_json_safe_dict())


@router.get("/{backtest_id}/trades")
async def get_trades(backtest_id: str, store: StoreDep) -> TradesResponse:
    """Get the closed-trade ledger."""
    result = get_backtest_or_404(store, backtest_id)
    trades = [trade.to_dict() for trade in result.trades]
    return TradesResponse(backtest_id=backtest_id, count=len(trades), trades=trades)


@router.get("/{backtest_id}/equity-curve")
async def get_equity_curve(backtest_id: str, store: StoreDep) -> CurveResponse:
    """Get equity per processed timestamp."""
    result = get_backtest_or_404(store, backtest_id)
    points = [
        CurvePoint(timestamp=point.timestamp, value=point.equity) for point in result.equity_curve
    ]
    return CurveResponse(backtest_id=backtest_id, curve="equity", points=points)


@router.get("/{backtest_id}/drawdown-curve")
async def get_drawdown_curve(backtest_id: str, store: StoreDep) -> CurveResponse:
    """Get drawdown (%) per processed timestamp."""
    result = get_backtest_or_404(store, backtest_id)
    points = [
        CurvePoint(timestamp=point.timestamp, value=point.drawdown)
        for point in result.drawdown_curve
    ]
    return CurveResponse(backtest_id=backtest_id, curve="drawdown", points=points)


@router.get("/{backtest_id}/snapshots")
async def get_snapshots(backtest_id: str, store: StoreDep) -> SnapshotsResponse:
    """Get per-timestamp account snapshots."""
    result = get_backtest_or_404(store, backtest_id)
    snapshots = [snapshot.to_dict() for snapshot in result.snapshots]
    return SnapshotsResponse(backtest_id=backtest_id, count=len(snapshots), snapshots=snapshots)


@router.get("/{backtest_id}/positions")
async def get_positions(
    backtest_id: str,
    store: StoreDep,
    timestamp: Annotated[datetime | None, Query(description="Point in time (default: end)")] = None,
) -> PositionsResponse:
    """Get the open positions recorded at or before ``timestamp``."""
    result = get_backtest_or_404(store, backtest_id)
    snapshot = _snapshot_at(result, timestamp)
    return PositionsResponse(
        backtest_id=backtest_id,
        timestamp=snapshot.timestamp if snapshot else None,
        positions=[position.to_dict() for position in snapshot.positions] if snapshot else [],
    )


def _snapshot_at(result: BacktestResult, timestamp: datetime | None) -> BacktestSnapshot | None:
    if not result.snapshots:
        return None
    if timestamp is None:
        return result.snapshots[-1]
    # Naive timestamps on either side are read as UTC
    timestamp = ensure_utc(timestamp)
    candidates = [
        snapshot for snapshot in result.snapshots if ensure_utc(snapshot.timestamp) <= timestamp
    ]
    return candidates[-1] if candidates else None
