"""
Recommendation Module
=====================
Turns indicator snapshots into ranked, actionable trade recommendations
with entry, target and stop levels and a short rationale.

Only actionable symbols surface: HOLD evaluations are dropped.
"""

import numpy as np
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from ..features.indicators import IndicatorSet, Pattern
from ..ml.confidence import confidence as heuristic_confidence
from ..ml.scoring_model import ScoringModel

logger = logging.getLogger(__name__)


class Action(Enum):
    """Recommendation actions."""
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"

    @property
    def is_bullish(self) -> bool:
        return self in (Action.BUY, Action.STRONG_BUY)

    @property
    def is_bearish(self) -> bool:
        return self in (Action.SELL, Action.STRONG_SELL)

    @property
    def is_actionable(self) -> bool:
        return self is not Action.HOLD


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class Recommendation:
    """Actionable recommendation for one symbol."""
    symbol: str
    action: Action
    confidence: float  # 0 to 100
    entry_price: float
    stop_loss: float
    take_profit: float
    pattern: Pattern
    risk_level: RiskLevel
    rationale: List[str]
    strength: float = 50.0
    model_score: Optional[float] = None
    timeframe: str = "1-3 days"
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'action': self.action.value,
            'confidence': round(self.confidence, 2),
            'entry_price': self.entry_price,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'pattern': self.pattern.value,
            'risk_level': self.risk_level.value,
            'rationale': list(self.rationale),
            'strength': round(self.strength, 2),
            'model_score': self.model_score,
            'timeframe': self.timeframe,
            'timestamp': self.timestamp.strftime('%Y-%m-%d %H:%M:%S')
        }


def signal_strength(price_change_pct: float, volume_ratio: float) -> float:
    """Momentum/volume strength score in [0, 100]."""
    strength = 50 + abs(price_change_pct) * 5 + (volume_ratio - 1) * 20
    return float(min(100.0, max(0.0, strength)))


def risk_level(strength: float) -> RiskLevel:
    if strength > 80:
        return RiskLevel.LOW
    if strength > 50:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


class RecommendationGenerator:
    """
    Rule table over heuristic confidence.

    BUY:  confidence > 0.65, MACD > 0, RSI < 70
    SELL: confidence < 0.35, MACD < 0, RSI > 30
    The trainable model's score is attached for display only.
    """

    def __init__(self, model: Optional[ScoringModel] = None, config=None):
        from ..config import RecommendationConfig
        self.model = model
        self.config = config or RecommendationConfig()

    def generate(self, indicator_sets: Iterable[IndicatorSet]) -> List[Recommendation]:
        """
        Evaluate every symbol and return actionable recommendations.

        Returns:
            One recommendation per symbol, sorted by confidence then strength,
            HOLD entries removed
        """
        evaluated = []
        for indicators in indicator_sets:
            if not self._is_valid(indicators):
                logger.warning(f"Skipping {getattr(indicators, 'symbol', '?')}: missing or invalid price")
                continue
            evaluated.append(self.evaluate(indicators))

        evaluated.sort(key=lambda r: (r.confidence, r.strength), reverse=True)

        recommendations = []
        seen = set()
        for rec in evaluated:
            if rec.symbol in seen:
                continue
            seen.add(rec.symbol)
            if not rec.action.is_actionable:
                continue
            recommendations.append(rec)

        logger.info(f"Generated {len(recommendations)} actionable recommendations "
                    f"from {len(evaluated)} symbols")
        return recommendations

    def evaluate(self, indicators: IndicatorSet) -> Recommendation:
        """Score a single symbol (may return HOLD)."""
        conf = heuristic_confidence(indicators)
        action = self.decide_action(conf, indicators)
        stop_loss, take_profit = self.calculate_levels(indicators.price, action, indicators.volatility)
        strength = signal_strength(indicators.price_change_pct, indicators.volume_ratio)

        model_score = None
        if self.model is not None:
            model_score = self.model.score(indicators)

        return Recommendation(
            symbol=indicators.symbol,
            action=action,
            confidence=conf * 100,
            entry_price=indicators.price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            pattern=indicators.pattern,
            risk_level=risk_level(strength),
            rationale=self.build_rationale(indicators),
            strength=strength,
            model_score=model_score,
            timeframe=self.config.timeframe
        )

    def decide_action(self, conf: float, indicators: IndicatorSet) -> Action:
        cfg = self.config
        macd = indicators.macd_histogram
        rsi = indicators.rsi

        if conf > cfg.buy_confidence and macd > 0 and rsi < cfg.rsi_overbought:
            if (indicators.price_change_pct > cfg.strong_change_pct
                    and indicators.volume_ratio > cfg.strong_volume_ratio):
                return Action.STRONG_BUY
            return Action.BUY

        if conf < cfg.sell_confidence and macd < 0 and rsi > cfg.rsi_oversold:
            if (indicators.price_change_pct < -cfg.strong_change_pct
                    and indicators.volume_ratio > cfg.strong_volume_ratio):
                return Action.STRONG_SELL
            return Action.SELL

        return Action.HOLD

    def calculate_levels(self, price: float, action: Action, volatility: float) -> Tuple[float, float]:
        """Return (stop_loss, take_profit) as multiplicative offsets from price."""
        cfg = self.config
        wide = volatility > cfg.wide_volatility

        if action.is_bullish:
            target = cfg.buy_target_wide if wide else cfg.buy_target
            stop = cfg.buy_stop_wide if wide else cfg.buy_stop
        elif action.is_bearish:
            target = cfg.sell_target_wide if wide else cfg.sell_target
            stop = cfg.sell_stop_wide if wide else cfg.sell_stop
        else:
            return round(price, 2), round(price, 2)

        return round(price * stop, 2), round(price * target, 2)

    def build_rationale(self, indicators: IndicatorSet) -> List[str]:
        reasons = []

        if indicators.pattern not in (Pattern.UNKNOWN, Pattern.CONSOLIDATION):
            reasons.append(f"Pattern: {indicators.pattern.label}")

        if indicators.rsi < self.config.rsi_oversold:
            reasons.append(f"RSI oversold ({indicators.rsi:.0f})")
        elif indicators.rsi > self.config.rsi_overbought:
            reasons.append(f"RSI overbought ({indicators.rsi:.0f})")

        if indicators.macd_histogram > 0:
            reasons.append("MACD momentum bullish")
        elif indicators.macd_histogram < 0:
            reasons.append("MACD momentum bearish")

        if indicators.volume_ratio > self.config.strong_volume_ratio:
            reasons.append(f"Volume {indicators.volume_ratio:.1f}x average")

        if indicators.options_signal >= 0.2:
            reasons.append(f"Options flow skewed bullish ({indicators.options_signal:+.2f})")
        elif indicators.options_signal <= -0.2:
            reasons.append(f"Options flow skewed bearish ({indicators.options_signal:+.2f})")

        return reasons or ["Technical setup"]

    @staticmethod
    def _is_valid(indicators: Optional[IndicatorSet]) -> bool:
        if indicators is None:
            return False
        price = indicators.price
        return price is not None and np.isfinite(price) and price > 0


def summarize(recommendations: List[Recommendation]) -> Dict[str, int]:
    """Count recommendations per action."""
    counts: Dict[str, int] = {}
    for rec in recommendations:
        counts[rec.action.value] = counts.get(rec.action.value, 0) + 1
    return counts
