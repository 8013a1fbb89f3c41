"""
Domain events and a thread-safe event bus.

Runs publish progress and lifecycle events through an injected ``EventBus``
instead of inheriting from an emitter. Subscribers are observers only: a
failing handler is logged and never interrupts the simulation.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from loguru import logger

from src.core.models.position import Position
from src.core.models.trade import ClosedTrade

if TYPE_CHECKING:
    from src.core.models.backtest import BacktestConfig, BacktestResult
    from src.core.models.optimization import OptimizationResult


class EventType(StrEnum):
    """Names of the events published by the engine."""

    PROGRESS = "progress"
    POSITION_OPENED = "position_opened"
    POSITION_CLOSED = "position_closed"
    COMPLETED = "completed"
    OPTIMIZATION_PROGRESS = "optimization_progress"
    OPTIMIZATION_COMPLETED = "optimization_completed"
    ITERATION_FAILED = "iteration_failed"
    CONFIGURATION_UPDATED = "configuration_updated"


@dataclass(frozen=True)
class ProgressEvent:
    processed: int
    total: int

    @property
    def progress(self) -> float:
        """Completion in percent."""
        return (self.processed / self.total) * 100 if self.total else 100.0


@dataclass(frozen=True)
class PositionOpenedEvent:
    position: Position


@dataclass(frozen=True)
class PositionClosedEvent:
    position: Position
    trade: ClosedTrade


@dataclass(frozen=True)
class CompletedEvent:
    result: "BacktestResult"


@dataclass(frozen=True)
class OptimizationProgressEvent:
    current_iteration: int
    total_combinations: int
    current_score: float
    best_score: float

    @property
    def progress(self) -> float:
        """Completion in percent."""
        if not self.total_combinations:
            return 100.0
        return (self.current_iteration / self.total_combinations) * 100


@dataclass(frozen=True)
class OptimizationCompletedEvent:
    results: tuple["OptimizationResult", ...]
    cancelled: bool = False


@dataclass(frozen=True)
class IterationFailedEvent:
    parameters: dict[str, float]
    error: str


@dataclass(frozen=True)
class ConfigurationUpdatedEvent:
    config: "BacktestConfig"


EVENT_TYPES: dict[type, EventType] = {
    ProgressEvent: EventType.PROGRESS,
    PositionOpenedEvent: EventType.POSITION_OPENED,
    PositionClosedEvent: EventType.POSITION_CLOSED,
    CompletedEvent: EventType.COMPLETED,
    OptimizationProgressEvent: EventType.OPTIMIZATION_PROGRESS,
    OptimizationCompletedEvent: EventType.OPTIMIZATION_COMPLETED,
    IterationFailedEvent: EventType.ITERATION_FAILED,
    ConfigurationUpdatedEvent: EventType.CONFIGURATION_UPDATED,
}

EventHandler = Callable[[Any], None]


class EventBus:
    """Publish/subscribe hub safe to use from worker threads.

    Handlers run synchronously in the publishing thread, in subscription
    order.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[EventHandler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` for ``event_type``.

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        """Deliver ``event`` to every handler registered for its type."""
        event_type = EVENT_TYPES.get(type(event))
        if event_type is None:
            raise TypeError(f"Unknown event type: {type(event).__name__}")

        with self._lock:
            handlers = list(self._handlers.get(event_type, ()))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for {event_type.value}")

    def clear(self) -> None:
        """Remove every subscription."""
        with self._lock:
            self._handlers.clear()

    def handler_count(self, event_type: EventType) -> int:
        """Number of handlers registered for ``event_type``."""
        with self._lock:
            return len(self._handlers.get(event_type, ()))
