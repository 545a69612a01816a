"""
Monitoring Module
=================
"""
from .trade_memory import (
    TradeMemory,
    Trade,
    PerformanceMetrics,
    PatternStats,
    max_drawdown_pct,
    sharpe_ratio
)

__all__ = [
    'TradeMemory',
    'Trade',
    'PerformanceMetrics',
    'PatternStats',
    'max_drawdown_pct',
    'sharpe_ratio'
]
