"""
Signal Engine Orchestrator
==========================
Main pipeline wiring every component into one scoring cycle:
    QUOTES → PRICE HISTORY → INDICATORS → SCORING → RECOMMENDATIONS

Trade outcomes flow back the other way:
    TRADE MEMORY → SCORING MODEL (online training) → MODEL STORE
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional
import logging
import threading

from .config import SystemConfig
from .data import (
    ProviderChain,
    QuoteCache,
    SyntheticQuoteSource,
    PriceHistory,
    OptionsFlowService,
    MockOptionsFlowProvider,
    YFinanceProvider,
    Quote
)
from .features import IndicatorCalculator, IndicatorSet, Pattern
from .ml import (
    ScoringModel,
    ModelStore,
    InMemoryModelStore,
    JsonFileModelStore,
    build_feature_vector
)
from .monitoring import TradeMemory, Trade
from .signals import RecommendationGenerator, Recommendation, summarize

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """Output of one scoring cycle."""
    cycle: int
    quotes: Dict[str, Quote]
    indicators: Dict[str, IndicatorSet]
    recommendations: List[Recommendation]
    skipped: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'cycle': self.cycle,
            'timestamp': self.timestamp.isoformat(),
            'quotes': {s: q.to_dict() for s, q in self.quotes.items()},
            'indicators': {s: i.to_dict() for s, i in self.indicators.items()},
            'recommendations': [r.to_dict() for r in self.recommendations],
            'skipped': list(self.skipped)
        }


def normalize_symbols(symbols: Iterable[str]) -> List[str]:
    """Uppercase, strip and dedupe symbols, keeping order."""
    cleaned = []
    for symbol in symbols:
        if not symbol or not str(symbol).strip():
            continue
        cleaned.append(str(symbol).strip().upper())
    return list(dict.fromkeys(cleaned))


class SignalEngine:
    """
    Main signal engine.

    Owns every stateful component and runs the scoring pipeline:
    1. DATA: Fetch quotes through the provider chain (cache, fallback, synthetic)
    2. HISTORY: Append real closes to the bounded per-symbol series
    3. FEATURES: Compute indicators from one quote snapshot per symbol
    4. SIGNALS: Rank actionable recommendations
    5. FEEDBACK: Record closed trades, train and persist the model
    """

    def __init__(self, config: Optional[SystemConfig] = None,
                 chain: Optional[ProviderChain] = None,
                 options_flow: Optional[OptionsFlowService] = None,
                 model_store: Optional[ModelStore] = None,
                 offline: bool = False,
                 seed: Optional[int] = None):
        self.config = config or SystemConfig()
        self.offline = offline

        if chain is None:
            if offline:
                chain = ProviderChain(
                    providers=[],
                    cache=QuoteCache(ttl_seconds=self.config.data.cache_ttl_seconds),
                    synthetic=SyntheticQuoteSource(seed=seed),
                    max_workers=self.config.data.max_workers
                )
            else:
                chain = ProviderChain.from_config(self.config.data, seed=seed)
        self.chain = chain

        if options_flow is None:
            if offline:
                options_flow = OptionsFlowService(
                    provider=None,
                    fallback=MockOptionsFlowProvider(seed=seed),
                    cache=QuoteCache(ttl_seconds=self.config.data.cache_ttl_seconds)
                )
            else:
                options_flow = OptionsFlowService.from_config(self.config.data, seed=seed)
        self.options_flow = options_flow

        if model_store is None:
            state_path = self.config.model.state_path
            model_store = JsonFileModelStore(state_path) if state_path and not offline else InMemoryModelStore()
        self.model_store = model_store

        self.history = PriceHistory(retention=self.config.data.history_retention)
        self.calculator = IndicatorCalculator()
        self.model = ScoringModel.from_config(self.config.model)
        self.generator = RecommendationGenerator(model=self.model, config=self.config.recommendations)
        self.memory = TradeMemory.from_config(self.model, self.config.memory)

        # Engine state
        self.running = False
        self.cycle_count = 0
        self.last_result: Optional[CycleResult] = None
        self.last_indicators: Dict[str, IndicatorSet] = {}
        self._last_observed: Dict[str, datetime] = {}
        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()

        logger.info(f"SignalEngine initialized ({'offline' if offline else 'live'} data, "
                    f"{len(self.chain.providers)} providers)")

    def initialize(self, symbols: Optional[Iterable[str]] = None):
        """Restore the model and backfill price history."""
        logger.info("Initializing signal engine...")

        self.model.restore(self.model_store)

        if self.config.data.backfill_history and not self.offline:
            self.backfill(symbols or self.config.data.symbols)

        logger.info("Signal engine initialized successfully")

    def backfill(self, symbols: Iterable[str]) -> Dict[str, int]:
        """Seed price history with daily closes from Yahoo Finance."""
        source = next((p for p in self.chain.providers if isinstance(p, YFinanceProvider)), None)
        if source is None:
            source = YFinanceProvider(timeout=self.config.data.request_timeout_seconds)

        loaded = {}
        for symbol in normalize_symbols(symbols):
            if self.history.get(symbol):
                continue
            try:
                closes = source.fetch_history(symbol, days=self.config.data.backfill_days)
            except Exception as e:
                logger.warning(f"History backfill failed for {symbol}: {e}")
                continue
            self.history.extend(symbol, closes)
            loaded[symbol] = len(closes)
            logger.info(f"Backfilled {len(closes)} closes for {symbol}")
        return loaded

    def run_cycle(self, symbols: Optional[Iterable[str]] = None) -> CycleResult:
        """
        Run one complete scoring cycle.

        Args:
            symbols: Symbols to score (defaults to the configured universe)

        Returns:
            CycleResult with quotes, indicators and ranked recommendations
        """
        with self._cycle_lock:
            self.cycle_count += 1
            symbols = normalize_symbols(symbols if symbols is not None else self.config.data.symbols)
            logger.debug(f"=== Cycle {self.cycle_count}: {len(symbols)} symbols ===")

            # 1. DATA
            quotes = self.chain.get_multiple_quotes(symbols)
            flow = self.options_flow.get_flow()

            # 2. HISTORY + 3. FEATURES
            indicators: Dict[str, IndicatorSet] = {}
            skipped: List[str] = []
            for symbol in symbols:
                quote = quotes.get(symbol)
                if quote is None or not quote.is_valid:
                    logger.warning(f"Skipping {symbol}: no valid quote")
                    skipped.append(symbol)
                    continue

                # Cached quotes repeat the last observation
                if not quote.is_synthetic and self._last_observed.get(symbol) != quote.timestamp:
                    self.history.append(symbol, quote.price)
                    self._last_observed[symbol] = quote.timestamp

                try:
                    indicators[symbol] = self.calculator.compute(quote, self.history.get(symbol), flow)
                except ValueError as e:
                    logger.warning(f"Indicator computation failed for {symbol}: {e}")
                    skipped.append(symbol)

            # 4. SIGNALS
            recommendations = self.generator.generate(indicators.values())

            self.last_indicators.update(indicators)
            result = CycleResult(
                cycle=self.cycle_count,
                quotes=quotes,
                indicators=indicators,
                recommendations=recommendations,
                skipped=skipped
            )
            self.last_result = result

        logger.info(f"Cycle {result.cycle}: {len(indicators)} scored, "
                    f"{len(recommendations)} actionable {summarize(recommendations)}")
        return result

    def record_trade(self, symbol: str, profit: float,
                     features: Optional[Mapping[str, float]] = None,
                     pattern: Optional[Pattern] = None) -> float:
        """
        Record a closed trade, train the model on it and persist the model.

        Features and pattern default to the last indicators seen for symbol.

        Returns:
            The model's prediction before the update
        """
        symbol = symbol.strip().upper()
        latest = self.last_indicators.get(symbol)

        if features is None:
            if latest is None:
                raise ValueError(f"No features given and no indicators seen for {symbol}")
            features = build_feature_vector(latest)
        if pattern is None:
            pattern = latest.pattern if latest is not None else Pattern.UNKNOWN

        prediction = self.memory.record_trade(
            Trade(symbol=symbol, features=dict(features), profit=float(profit), pattern=pattern)
        )
        self.save_model()
        return prediction

    def save_model(self) -> bool:
        try:
            self.model.save(self.model_store)
        except OSError as e:
            logger.error(f"Failed to persist model state: {e}")
            return False
        return True

    def run(self, cycles: Optional[int] = None, interval: float = 30.0,
            symbols: Optional[Iterable[str]] = None, on_result=None):
        """
        Main loop.

        Runs until stopped, or for a fixed number of cycles when given.
        """
        self.running = True
        self._stop_event.clear()
        symbols = list(symbols) if symbols is not None else None

        logger.info("Starting signal loop...")

        completed = 0
        while self.running and not self._stop_event.is_set():
            try:
                result = self.run_cycle(symbols)
                if on_result is not None:
                    on_result(result)
            except KeyboardInterrupt:
                logger.info("Keyboard interrupt received")
                break
            except Exception as e:
                logger.error(f"Error in signal loop: {e}")

            completed += 1
            if cycles is not None and completed >= cycles:
                break
            self._stop_event.wait(interval)

        self.running = False

    def stop(self):
        self.running = False
        self._stop_event.set()

    def shutdown(self):
        """Stop the loop and persist the model."""
        logger.info("Shutting down signal engine...")
        self.stop()
        self.save_model()
        logger.info("Signal engine shutdown complete")

    def get_status(self) -> Dict:
        """Get engine status."""
        return {
            'mode': 'offline' if self.offline else 'live',
            'running': self.running,
            'cycles': self.cycle_count,
            'symbols': list(self.config.data.symbols),
            'history': {s: len(self.history.get(s)) for s in self.history.symbols()},
            'model_training_samples': self.model.training_samples,
            'options_flow_fallback': self.options_flow.used_fallback,
            'data': self.chain.get_metrics(),
            'performance': self.memory.get_performance_metrics().to_dict()
        }


def print_cycle(result: CycleResult):
    print("\n" + "=" * 60)
    print(f"CYCLE {result.cycle} @ {result.timestamp.strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    for symbol, ind in result.indicators.items():
        quote = result.quotes[symbol]
        flag = " (synthetic)" if quote.is_synthetic else ""
        print(f"{symbol:<6} {quote.price:>10.2f} {quote.change_pct:>+7.2f}%  "
              f"RSI {ind.rsi:>5.1f}  MACD {ind.macd_histogram:>+8.4f}  "
              f"{ind.pattern.label}{flag}")

    if not result.recommendations:
        print("\nNo actionable recommendations")
        return

    print("\nRECOMMENDATIONS")
    for rec in result.recommendations:
        print(f"{rec.action.value:<12} {rec.symbol:<6} conf {rec.confidence:>5.1f}%  "
              f"entry {rec.entry_price:.2f}  stop {rec.stop_loss:.2f}  "
              f"target {rec.take_profit:.2f}  risk {rec.risk_level.value}")
        print(f"{'':<12} {'; '.join(rec.rationale)}")


def main():
    """Main entry point for the signal engine."""
    import argparse

    parser = argparse.ArgumentParser(description='QuantumTrade Signal Engine')
    parser.add_argument('--symbols', type=str, help='Comma-separated symbols to score')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--cycles', type=int, default=1,
                        help='Number of scoring cycles (0 = run until interrupted)')
    parser.add_argument('--interval', type=float, default=30.0,
                        help='Seconds between cycles')
    parser.add_argument('--offline', action='store_true',
                        help='Use synthetic quotes and mock options flow only')
    parser.add_argument('--seed', type=int, help='Seed for synthetic data')

    args = parser.parse_args()

    config = SystemConfig.load(args.config) if args.config else SystemConfig()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level.upper(), logging.INFO),
        format=config.monitoring.log_format
    )

    if args.symbols:
        config.data.symbols = normalize_symbols(args.symbols.split(','))

    engine = SignalEngine(config, offline=args.offline, seed=args.seed)

    try:
        engine.initialize()
        engine.run(
            cycles=args.cycles or None,
            interval=args.interval,
            on_result=print_cycle
        )
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        engine.shutdown()

    status = engine.get_status()
    print("\n" + "=" * 60)
    print("DATA METRICS")
    print("=" * 60)
    for key, value in status['data'].items():
        print(f"{key}: {value}")


if __name__ == "__main__":
    main()
