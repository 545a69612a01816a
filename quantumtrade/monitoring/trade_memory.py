"""
Trade Memory Module
===================
Bounded log of closed trades, realized performance metrics, and the
feedback loop that trains the scoring model on every outcome.
"""

import numpy as np
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Mapping, Optional
import logging
import threading

from ..features.indicators import Pattern
from ..ml.scoring_model import ScoringModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Trade:
    """A closed trade with the features seen at entry."""
    symbol: str
    features: Mapping[str, float]
    profit: float
    pattern: Pattern = Pattern.UNKNOWN
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_winner(self) -> bool:
        return self.profit > 0

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'features': dict(self.features),
            'profit': self.profit,
            'pattern': self.pattern.value,
            'timestamp': self.timestamp.isoformat()
        }


@dataclass
class PatternStats:
    occurrences: int = 0
    successes: int = 0

    @property
    def success_rate(self) -> float:
        if self.occurrences == 0:
            return 0.0
        return self.successes / self.occurrences


@dataclass
class PerformanceMetrics:
    """Realized performance over the retained trades."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0        # percent
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    avg_return: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0    # percent
    training_samples: int = 0
    top_patterns: List[Dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'total_trades': self.total_trades,
            'winning_trades': self.winning_trades,
            'losing_trades': self.losing_trades,
            'win_rate': self.win_rate,
            'avg_win': self.avg_win,
            'avg_loss': self.avg_loss,
            'profit_factor': self.profit_factor,
            'avg_return': self.avg_return,
            'sharpe_ratio': self.sharpe_ratio,
            'max_drawdown': self.max_drawdown,
            'training_samples': self.training_samples,
            'top_patterns': list(self.top_patterns)
        }


def max_drawdown_pct(profits: List[float]) -> float:
    """Largest peak-to-trough decline of cumulative profit, as a percent of the peak."""
    if not profits:
        return 0.0

    cumulative = 0.0
    peak = 0.0
    max_dd = 0.0
    for profit in profits:
        cumulative += profit
        if cumulative > peak:
            peak = cumulative
        if peak > 0:
            max_dd = max(max_dd, (peak - cumulative) / peak * 100)

    return max_dd


def sharpe_ratio(returns: List[float], periods: int = 252) -> float:
    if len(returns) < 2:
        return 0.0
    std = float(np.std(returns))
    if std == 0:
        return 0.0
    return float(np.mean(returns)) / std * np.sqrt(periods)


class TradeMemory:
    """
    FIFO trade log (oldest evicted first) that drives online training.

    Every recorded trade triggers exactly one ScoringModel.train() call
    with target 1 for a profit and 0 otherwise.
    """

    def __init__(self, model: ScoringModel, capacity: int = 100, top_patterns: int = 3):
        self.model = model
        self.capacity = capacity
        self.top_patterns = top_patterns
        self.trades: Deque[Trade] = deque(maxlen=capacity)
        self.pattern_stats: Dict[Pattern, PatternStats] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, model: ScoringModel, config=None) -> 'TradeMemory':
        from ..config import MemoryConfig
        config = config or MemoryConfig()
        return cls(model, capacity=config.capacity, top_patterns=config.top_patterns)

    def record_trade(self, trade: Trade) -> float:
        """
        Store a closed trade and train the model on its outcome.

        Returns:
            The model's prediction for the trade before the update
        """
        with self._lock:
            if len(self.trades) == self.capacity:
                evicted = self.trades[0]
                logger.debug(f"Trade memory full, evicting {evicted.symbol} @ {evicted.timestamp}")
            self.trades.append(trade)

            stats = self.pattern_stats.setdefault(trade.pattern, PatternStats())
            stats.occurrences += 1
            if trade.is_winner:
                stats.successes += 1

        prediction = self.model.train(trade.features, 1 if trade.is_winner else 0)
        logger.info(f"Recorded {trade.symbol} trade: profit={trade.profit:+.2f} "
                    f"pattern={trade.pattern.value} prior_score={prediction:.3f}")
        return prediction

    def get_trades(self, limit: Optional[int] = None) -> List[Trade]:
        with self._lock:
            trades = list(self.trades)
        return trades[-limit:] if limit else trades

    def get_top_patterns(self, n: Optional[int] = None) -> List[Dict]:
        """Patterns ranked by success rate, then by occurrences."""
        n = n or self.top_patterns
        with self._lock:
            ranked = sorted(
                self.pattern_stats.items(),
                key=lambda item: (item[1].success_rate, item[1].occurrences),
                reverse=True
            )
        return [
            {'name': pattern.value, 'success': stats.success_rate, 'occurrences': stats.occurrences}
            for pattern, stats in ranked[:n]
        ]

    def get_performance_metrics(self) -> PerformanceMetrics:
        """Calculate performance over the retained trades."""
        metrics = PerformanceMetrics(training_samples=self.model.training_samples)

        trades = self.get_trades()
        if not trades:
            return metrics

        profits = [t.profit for t in trades]
        wins = [p for p in profits if p > 0]
        losses = [p for p in profits if p <= 0]

        metrics.total_trades = len(trades)
        metrics.winning_trades = len(wins)
        metrics.losing_trades = len(losses)
        metrics.win_rate = len(wins) / len(trades) * 100

        if wins:
            metrics.avg_win = float(np.mean(wins))
        if losses:
            metrics.avg_loss = abs(float(np.mean(losses)))
        if metrics.avg_loss > 0:
            metrics.profit_factor = metrics.avg_win / metrics.avg_loss

        metrics.avg_return = float(np.mean(profits))
        metrics.sharpe_ratio = sharpe_ratio(profits)
        metrics.max_drawdown = max_drawdown_pct(profits)
        metrics.top_patterns = self.get_top_patterns()

        return metrics

    def reset(self):
        with self._lock:
            self.trades.clear()
            self.pattern_stats.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self.trades)
