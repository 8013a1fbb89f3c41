"""
Optimization API endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_store
from ..schemas.api_models import OptimizationResultsResponse
from ..store import ResultStore

router = APIRouter()

StoreDep = Annotated[ResultStore, Depends(get_store)]


@router.get("/")
async def list_optimizations(store: StoreDep) -> dict[str, int]:
    """List stored optimization runs with their result counts."""
    return store.list_optimizations()


@router.get("/{optimization_id}")
async def get_optimization_results(
    optimization_id: str,
    store: StoreDep,
    top: Annotated[int | None, Query(gt=0, description="Only the best N results")] = None,
) -> OptimizationResultsResponse:
    """Get ranked optimization results, best first."""
    results = store.get_optimization(optimization_id)
    if results is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "not_found", "message": f"Optimization {optimization_id} not found"},
        )

    selected = results if top is None else results[:top]
    return OptimizationResultsResponse(
        optimization_id=optimization_id,
        total=len(results),
        results=[result.to_dict() for result in selected],
    )
