"""
FastAPI main application for the backtesting query API.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import backtest, optimization
from .store import ResultStore

API_VERSION = "1.0.0"


def create_app(store: ResultStore | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        store: Result store to serve; a fresh empty store when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Strategy Backtesting API",
        version=API_VERSION,
        description="Query API over backtest and optimization results",
    )
    app.state.store = store or ResultStore()

    # Read-only API: only GET is exposed cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",  # Development frontend
            "http://localhost:8080",  # Alternative development port
        ],
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["Content-Type", "Accept", "Origin"],
    )

    app.include_router(backtest.router, prefix="/api/backtest", tags=["backtest"])
    app.include_router(optimization.router, prefix="/api/optimization", tags=["optimization"])

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint returning API information."""
        return {"message": "Strategy Backtesting API", "version": API_VERSION, "status": "running"}

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
