"""
Pydantic schemas for API request/response models.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from src.core.constants import DEFAULT_MIN_CONFIDENCE, DEFAULT_PROGRESS_INTERVAL
from src.core.enums import OptimizationMetric
from src.core.models.backtest import BacktestConfig
from src.core.models.optimization import OptimizationConstraints, OptimizationParameter


class BacktestConfigModel(BaseModel):
    """Validated backtest configuration as accepted from JSON input."""

    start_date: datetime = Field(..., description="Backtest start date")
    end_date: datetime = Field(..., description="Backtest end date")
    initial_capital: float = Field(default=10000.0, gt=0, description="Starting capital")
    symbols: list[str] = Field(..., min_length=1, description="Symbols in the universe")
    markets: list[str] = Field(default=["crypto"], min_length=1, description="Markets")
    commission: float = Field(default=0.1, ge=0.0, le=100.0, description="Commission (%)")
    slippage: float = Field(default=0.05, ge=0.0, le=100.0, description="Slippage (%)")
    max_position_size: float = Field(
        default=10.0, ge=0.0, le=100.0, description="Max position size (% of equity)"
    )
    risk_per_trade: float = Field(default=2.0, ge=0.0, le=100.0, description="Risk per trade (%)")
    timeframes: list[str] = Field(default=["1h"], description="Signal timeframes")
    optimization_metric: OptimizationMetric = Field(
        default=OptimizationMetric.COMPOSITE, description="Optimization objective"
    )
    min_confidence: float = Field(default=DEFAULT_MIN_CONFIDENCE, ge=0.0, le=1.0)
    progress_interval: int = Field(default=DEFAULT_PROGRESS_INTERVAL, gt=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Interpret naive datetimes as UTC."""
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)

    @field_validator("end_date")
    @classmethod
    def validate_date_range(cls, v: datetime, info) -> datetime:
        """Validate that end_date is after start_date."""
        if "start_date" in info.data and v <= info.data["start_date"]:
            raise ValueError("end_date must be after start_date")
        return v

    @field_validator("optimization_metric", mode="before")
    @classmethod
    def parse_metric(cls, v: object) -> OptimizationMetric:
        """Accept camelCase or snake_case objective names."""
        if isinstance(v, OptimizationMetric):
            return v
        return OptimizationMetric.from_string(str(v))

    def to_config(self) -> BacktestConfig:
        """Convert to the domain configuration."""
        return BacktestConfig(**self.model_dump()).validate()


class OptimizationParameterModel(BaseModel):
    """One grid axis."""

    name: str = Field(..., min_length=1)
    min: float
    max: float
    step: float = Field(..., gt=0)

    @field_validator("max")
    @classmethod
    def validate_bounds(cls, v: float, info) -> float:
        """Validate that max is not below min."""
        if "min" in info.data and v < info.data["min"]:
            raise ValueError("max must be >= min")
        return v

    def to_parameter(self) -> OptimizationParameter:
        return OptimizationParameter(name=self.name, min=self.min, max=self.max, step=self.step)


class OptimizationConstraintsModel(BaseModel):
    """Filters applied to optimization results before ranking."""

    min_win_rate: float | None = Field(default=None, ge=0.0, le=100.0)
    max_drawdown: float | None = Field(default=None, ge=0.0)
    min_profit_factor: float | None = Field(default=None, ge=0.0)
    min_trades: int | None = Field(default=None, ge=0)

    def to_constraints(self) -> OptimizationConstraints:
        return OptimizationConstraints(**self.model_dump())


class BacktestListItem(BaseModel):
    """Short description of a stored backtest."""

    backtest_id: str
    symbols: list[str]
    start_date: datetime
    end_date: datetime
    total_return: float
    total_trades: int


class BacktestResults(BaseModel):
    """Response model for backtest results."""

    backtest_id: str
    status: str
    config: dict
    summary: dict


class MetricsResponse(BaseModel):
    """Performance metrics of a stored backtest; infinite values are null."""

    backtest_id: str
    metrics: dict


class TradesResponse(BaseModel):
    """Closed-trade ledger of a stored backtest."""

    backtest_id: str
    count: int
    trades: list[dict]


class CurvePoint(BaseModel):
    """A single curve sample."""

    timestamp: datetime
    value: float


class CurveResponse(BaseModel):
    """Equity or drawdown curve of a stored backtest."""

    backtest_id: str
    curve: str
    points: list[CurvePoint]


class SnapshotsResponse(BaseModel):
    """Per-timestamp account snapshots of a stored backtest."""

    backtest_id: str
    count: int
    snapshots: list[dict]


class PositionsResponse(BaseModel):
    """Open positions at a point in a stored backtest."""

    backtest_id: str
    timestamp: datetime | None = None
    positions: list[dict]


class OptimizationResultsResponse(BaseModel):
    """Ranked results of a stored optimization run."""

    optimization_id: str
    total: int
    results: list[dict]
