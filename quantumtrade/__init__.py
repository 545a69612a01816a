"""
QuantumTrade Signal Engine
==========================

Market-signal scoring engine: multi-provider quotes, technical indicators,
an online-trained scoring model and ranked trade recommendations.

PIPELINE:
    ┌──────────────┐
    │    QUOTES    │  ← Polygon → Twelve Data → Alpha Vantage → Yahoo → synthetic (CACHED)
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │  INDICATORS  │  ← RSI, MACD histogram, Bollinger position, volatility, options flow
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │   SCORING    │  ← heuristic confidence + trainable linear model
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │   SIGNALS    │  ← ranked BUY / SELL with entry, stop, target
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │ TRADE MEMORY │  ← closed trades train the model, performance metrics
    └──────────────┘

USAGE:
    # One cycle on the default universe
    python -m quantumtrade.orchestrator

    # Offline, repeatable
    python -m quantumtrade.orchestrator --offline --seed 7 --cycles 3 --interval 1

    # Proxy server
    python -m quantumtrade.server --port 3001

    # Programmatic usage
    from quantumtrade import SignalEngine, SystemConfig

    engine = SignalEngine(SystemConfig())
    engine.initialize()
    result = engine.run_cycle(["AAPL", "NVDA"])

MODULES:
    - data: Quotes, provider chain, price history, options flow
    - features: Technical indicators and pattern classification
    - ml: Scoring model, model stores, heuristic confidence
    - signals: Recommendation generation
    - monitoring: Trade memory and performance metrics
"""

from .config import SystemConfig, DataConfig, ModelConfig, RecommendationConfig
from .orchestrator import SignalEngine, CycleResult, main
from .data import Quote, ProviderChain, PriceHistory, OptionsFlowService, OptionsFlowEntry
from .features import IndicatorCalculator, IndicatorSet, Pattern
from .ml import ScoringModel, JsonFileModelStore, InMemoryModelStore, confidence
from .signals import RecommendationGenerator, Recommendation, Action, RiskLevel
from .monitoring import TradeMemory, Trade, PerformanceMetrics

__version__ = "1.0.0"
__all__ = [
    # Main
    'SignalEngine',
    'CycleResult',
    'SystemConfig',
    'DataConfig',
    'ModelConfig',
    'RecommendationConfig',
    'main',

    # Data
    'Quote',
    'ProviderChain',
    'PriceHistory',
    'OptionsFlowService',
    'OptionsFlowEntry',

    # Features
    'IndicatorCalculator',
    'IndicatorSet',
    'Pattern',

    # ML
    'ScoringModel',
    'JsonFileModelStore',
    'InMemoryModelStore',
    'confidence',

    # Signals
    'RecommendationGenerator',
    'Recommendation',
    'Action',
    'RiskLevel',

    # Monitoring
    'TradeMemory',
    'Trade',
    'PerformanceMetrics'
]
