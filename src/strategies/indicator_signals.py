"""
Indicator-driven signal source.

Scores bullish and bearish evidence from RSI, MACD, the EMA stack and
Bollinger Bands, and emits a signal when one side clearly dominates.
Stop-loss is a fixed percentage from entry; take-profit is placed at a
multiple of the stop distance.
"""

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from loguru import logger

from src.core.enums import SignalCategory, SignalDirection
from src.core.exceptions.backtest import StrategyError
from src.core.models.market import Observation
from src.core.models.signal import SignalIndicators, TradingSignal
from src.core.types.financial import HUNDRED

# Evidence weights
RSI_EXTREME_WEIGHT = 1.5
RSI_MILD_WEIGHT = 0.5
MACD_WEIGHT = 2.0
EMA_TREND_WEIGHT = 2.0
BOLLINGER_WEIGHT = 1.0
MAX_SCORE = RSI_EXTREME_WEIGHT + MACD_WEIGHT + EMA_TREND_WEIGHT + BOLLINGER_WEIGHT

# One side must lead the other by at least this much
DOMINANCE_MARGIN = 1.0
RSI_MILD_BAND = 10.0

REQUIRED_INDICATORS = ("rsi", "macd", "macd_signal", "macd_histogram", "ema_20", "ema_50", "ema_200")


@dataclass(frozen=True)
class IndicatorSignalSource:
    """
    Rule-based signal source over ``SignalIndicators`` context.

    Every field can be tuned by the optimizer through ``with_parameters``.
    """

    min_confidence: float = 0.6
    min_risk_reward: float = 1.5
    max_risk_reward: float = 5.0
    stop_loss_pct: float = 2.0
    take_profit_ratio: float = 2.0
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    signal_threshold: float = 0.5
    timeframe: str = "1h"

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if not 0 < self.stop_loss_pct < HUNDRED:
            raise StrategyError(f"stop_loss_pct must be in (0, 100), got {self.stop_loss_pct}")
        if self.take_profit_ratio <= 0:
            raise StrategyError(
                f"take_profit_ratio must be positive, got {self.take_profit_ratio}"
            )
        if self.min_risk_reward > self.max_risk_reward:
            raise StrategyError(
                f"min_risk_reward ({self.min_risk_reward}) exceeds "
                f"max_risk_reward ({self.max_risk_reward})"
            )
        if self.rsi_oversold >= self.rsi_overbought:
            raise StrategyError("rsi_oversold must be below rsi_overbought")

    def with_parameters(self, parameters: Mapping[str, float]) -> "IndicatorSignalSource":
        """Copy of this source with matching fields replaced; other names are ignored."""
        known = {f.name for f in fields(self)} - {"timeframe"}
        changes = {name: float(value) for name, value in parameters.items() if name in known}
        return replace(self, **changes) if changes else self

    def generate_signal(
        self, observation: Observation, context: SignalIndicators | None
    ) -> TradingSignal | None:
        """Return a BUY or SELL signal when the evidence is strong enough."""
        if context is None or not context.is_complete(*REQUIRED_INDICATORS):
            return None

        bullish, bearish = self.score_evidence(observation.price, context)
        direction = self._resolve_direction(bullish, bearish)
        if direction is None:
            return None

        confidence = min(max(bullish, bearish) / MAX_SCORE, 1.0)
        if confidence < self.min_confidence:
            return None

        if not self.min_risk_reward <= self.take_profit_ratio <= self.max_risk_reward:
            logger.debug(
                f"Risk/reward {self.take_profit_ratio} outside "
                f"[{self.min_risk_reward}, {self.max_risk_reward}]"
            )
            return None

        entry = observation.price
        stop_distance = entry * self.stop_loss_pct / HUNDRED
        sign = direction.sign
        return TradingSignal(
            symbol=observation.symbol,
            market=observation.market,
            direction=direction,
            confidence=confidence,
            entry_price=entry,
            stop_loss=entry - sign * stop_distance,
            take_profit=entry + sign * stop_distance * self.take_profit_ratio,
            timestamp=observation.timestamp,
            timeframe=self.timeframe,
            category=SignalCategory.TECHNICAL,
            indicators=context,
        )

    def score_evidence(self, price: float, context: SignalIndicators) -> tuple[float, float]:
        """
        Weighted bullish and bearish scores.

        Returns:
            (bullish_score, bearish_score), each at most ``MAX_SCORE``
        """
        bullish = bearish = 0.0

        if context.rsi < self.rsi_oversold:
            bullish += RSI_EXTREME_WEIGHT
        elif context.rsi > self.rsi_overbought:
            bearish += RSI_EXTREME_WEIGHT
        elif context.rsi < self.rsi_oversold + RSI_MILD_BAND:
            bullish += RSI_MILD_WEIGHT
        elif context.rsi > self.rsi_overbought - RSI_MILD_BAND:
            bearish += RSI_MILD_WEIGHT

        if context.macd_histogram > 0 and context.macd > context.macd_signal:
            bullish += MACD_WEIGHT
        elif context.macd_histogram < 0 and context.macd < context.macd_signal:
            bearish += MACD_WEIGHT

        if context.ema_20 > context.ema_50 > context.ema_200:
            bullish += EMA_TREND_WEIGHT
        elif context.ema_20 < context.ema_50 < context.ema_200:
            bearish += EMA_TREND_WEIGHT

        if context.bb_lower is not None and price < context.bb_lower:
            bullish += BOLLINGER_WEIGHT
        elif context.bb_upper is not None and price > context.bb_upper:
            bearish += BOLLINGER_WEIGHT

        return bullish, bearish

    def _resolve_direction(self, bullish: float, bearish: float) -> SignalDirection | None:
        threshold = MAX_SCORE * self.signal_threshold
        if bullish >= threshold and bullish > bearish + DOMINANCE_MARGIN:
            return SignalDirection.BUY
        if bearish >= threshold and bearish > bullish + DOMINANCE_MARGIN:
            return SignalDirection.SELL
        return None
