"""
Market Data Module
==================
Quote acquisition with short-lived caching and provider failover.

Providers are tried in a fixed priority order; the first structurally
valid response wins. When every provider fails (or none is configured)
a synthetic quote is returned so downstream stages never see None.
"""

import numpy as np
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional
import logging
import threading
import time

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised by a provider when a response is absent or unusable."""


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce a raw payload field to float, falling back to default."""
    if value is None or value == "":
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if np.isnan(result) or np.isinf(result):
        return default
    return result


@dataclass(frozen=True)
class Quote:
    """Normalized point-in-time quote for one symbol."""
    symbol: str
    price: float
    open: float
    high: float
    low: float
    volume: float
    average_volume: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = "unknown"
    is_synthetic: bool = False

    def __post_init__(self):
        # Unknown average volume falls back to the current volume
        if not self.average_volume:
            object.__setattr__(self, 'average_volume', self.volume)

    @property
    def is_valid(self) -> bool:
        return self.price > 0

    @property
    def change_pct(self) -> float:
        """Percentage change from open to current price."""
        if not self.open:
            return 0.0
        return (self.price - self.open) / self.open * 100

    @property
    def volume_ratio(self) -> float:
        """Current volume relative to average volume."""
        if not self.average_volume:
            return 1.0
        return self.volume / self.average_volume

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'price': self.price,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'volume': self.volume,
            'average_volume': self.average_volume,
            'change_pct': self.change_pct,
            'timestamp': self.timestamp.isoformat(),
            'source': self.source,
            'is_synthetic': self.is_synthetic
        }


class QuoteProvider(ABC):
    """A single upstream quote source."""

    name: str = "provider"

    def is_configured(self) -> bool:
        """Whether the provider has the credentials it needs."""
        return True

    @abstractmethod
    def fetch(self, symbol: str) -> Any:
        """Fetch the raw provider payload for a symbol."""
        pass

    @abstractmethod
    def normalize(self, symbol: str, payload: Any) -> Quote:
        """Convert a raw payload to a Quote, raising ProviderError if unusable."""
        pass

    def get_quote(self, symbol: str) -> Quote:
        quote = self.normalize(symbol, self.fetch(symbol))
        if not quote.is_valid:
            raise ProviderError(f"{self.name} returned no usable price for {symbol}")
        return quote


class SyntheticQuoteSource:
    """Pseudo-random quote generator used when every provider fails."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def generate(self, symbol: str) -> Quote:
        with self._lock:
            base_price = float(self._rng.random() * 500 + 100)
            change = float((self._rng.random() - 0.5) * 10)
            volume = float(int(self._rng.random() * 10_000_000) + 1)

        return Quote(
            symbol=symbol,
            price=round(base_price, 2),
            open=round(base_price - base_price * change / 100, 2),
            high=round(base_price * 1.02, 2),
            low=round(base_price * 0.98, 2),
            volume=volume,
            source="synthetic",
            is_synthetic=True
        )


@dataclass
class CacheEntry:
    """Cache entry with fetch time."""
    data: Any
    fetched_at: float

    def is_fresh(self, ttl_seconds: float, now: float) -> bool:
        return now - self.fetched_at < ttl_seconds


@dataclass
class DataMetrics:
    """Track data fetch performance."""
    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    provider_failures: int = 0
    synthetic_quotes: int = 0
    avg_fetch_time_ms: float = 0.0
    last_fetch_time: Optional[datetime] = None

    @property
    def cache_hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return (self.cache_hits / self.total_requests) * 100


class QuoteCache:
    """Thread-safe in-memory TTL cache with one lock per key."""

    def __init__(self, ttl_seconds: float = 30, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.RLock()

    def key_lock(self, key: str) -> threading.Lock:
        """Lock serializing the read-then-fetch-then-write sequence for a key."""
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(self.ttl_seconds, self._clock()):
                del self._cache[key]
                return None
            return entry.data

    def set(self, key: str, data: Any):
        with self._lock:
            self._cache[key] = CacheEntry(data=data, fetched_at=self._clock())

    def clear(self):
        with self._lock:
            self._cache.clear()

    def cleanup_expired(self):
        with self._lock:
            now = self._clock()
            expired_keys = [
                key for key, entry in self._cache.items()
                if not entry.is_fresh(self.ttl_seconds, now)
            ]
            for key in expired_keys:
                del self._cache[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


class ProviderChain:
    """
    Ordered fallback across quote providers with a shared TTL cache.

    Responsibilities:
    - Serve fresh quotes from cache
    - Try providers in priority order, isolating each failure
    - Fall back to synthetic quotes so callers never receive None
    """

    def __init__(self, providers: Iterable[QuoteProvider],
                 cache: Optional[QuoteCache] = None,
                 synthetic: Optional[SyntheticQuoteSource] = None,
                 max_workers: int = 8):
        self.providers: List[QuoteProvider] = list(providers)
        self.cache = cache or QuoteCache()
        self.synthetic = synthetic or SyntheticQuoteSource()
        self.max_workers = max_workers
        self.metrics = DataMetrics()
        self._metrics_lock = threading.Lock()

    @classmethod
    def from_config(cls, config=None, seed: Optional[int] = None) -> 'ProviderChain':
        """Build the default chain (Polygon, Twelve Data, Alpha Vantage, Yahoo)."""
        from ..config import DataConfig
        from .providers import build_providers
        config = config or DataConfig()

        return cls(
            providers=build_providers(config),
            cache=QuoteCache(ttl_seconds=config.cache_ttl_seconds),
            synthetic=SyntheticQuoteSource(seed=seed),
            max_workers=config.max_workers
        )

    @staticmethod
    def cache_key(symbol: str) -> str:
        return f"quote_{symbol.upper()}"

    def get_quote(self, symbol: str) -> Quote:
        """Get a quote for a symbol: cache, then providers, then synthetic."""
        symbol = symbol.strip().upper()
        key = self.cache_key(symbol)
        self._count('total_requests')

        with self.cache.key_lock(key):
            cached = self.cache.get(key)
            if cached is not None:
                self._count('cache_hits')
                logger.debug(f"Cache hit for {symbol}")
                return cached

            self._count('cache_misses')
            quote = self._fetch_from_providers(symbol)
            if quote is None:
                quote = self.synthetic.generate(symbol)
                self._count('synthetic_quotes')
                logger.warning(f"All providers failed for {symbol}, using synthetic quote")

            self.cache.set(key, quote)
            return quote

    def get_multiple_quotes(self, symbols: Iterable[str]) -> Dict[str, Quote]:
        """Fetch quotes for several symbols in parallel."""
        unique = list(dict.fromkeys(symbols))
        if not unique:
            return {}

        workers = max(1, min(self.max_workers, len(unique)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            quotes = list(executor.map(self.get_quote, unique))
        return dict(zip(unique, quotes))

    def get_market_overview(self, symbols: Iterable[str]) -> Dict[str, Any]:
        """Quotes plus an average-change sentiment label."""
        quotes = self.get_multiple_quotes(symbols)
        changes = [q.change_pct for q in quotes.values()]
        avg_change = float(np.mean(changes)) if changes else 0.0

        if avg_change > 0.5:
            sentiment = 'Bullish'
        elif avg_change < -0.5:
            sentiment = 'Bearish'
        else:
            sentiment = 'Neutral'

        return {
            'quotes': quotes,
            'sentiment': sentiment,
            'avg_change': avg_change,
            'timestamp': datetime.now().isoformat()
        }

    def _fetch_from_providers(self, symbol: str) -> Optional[Quote]:
        for provider in self.providers:
            if not provider.is_configured():
                logger.debug(f"Skipping unconfigured provider {provider.name}")
                continue

            start_time = time.time()
            try:
                quote = provider.get_quote(symbol)
            except Exception as e:
                self._count('provider_failures')
                logger.warning(f"Provider {provider.name} failed for {symbol}: {e}")
                continue

            self._update_fetch_time((time.time() - start_time) * 1000)
            logger.info(f"Fetched {symbol} from {provider.name} @ {quote.price:.2f}")
            return quote

        return None

    def _count(self, attr: str):
        with self._metrics_lock:
            setattr(self.metrics, attr, getattr(self.metrics, attr) + 1)

    def _update_fetch_time(self, fetch_time_ms: float):
        """Update rolling average fetch time."""
        with self._metrics_lock:
            self.metrics.last_fetch_time = datetime.now()
            if self.metrics.avg_fetch_time_ms == 0:
                self.metrics.avg_fetch_time_ms = fetch_time_ms
            else:
                # Exponential moving average
                self.metrics.avg_fetch_time_ms = (
                    0.9 * self.metrics.avg_fetch_time_ms + 0.1 * fetch_time_ms
                )

    def get_metrics(self) -> Dict[str, Any]:
        """Get data layer metrics."""
        with self._metrics_lock:
            return {
                'total_requests': self.metrics.total_requests,
                'cache_hits': self.metrics.cache_hits,
                'cache_misses': self.metrics.cache_misses,
                'cache_hit_rate': f"{self.metrics.cache_hit_rate:.1f}%",
                'provider_failures': self.metrics.provider_failures,
                'synthetic_quotes': self.metrics.synthetic_quotes,
                'avg_fetch_time_ms': f"{self.metrics.avg_fetch_time_ms:.1f}",
                'last_fetch': self.metrics.last_fetch_time.isoformat() if self.metrics.last_fetch_time else None
            }

    def clear_cache(self):
        """Clear all cached quotes."""
        self.cache.clear()
        logger.info("Quote cache cleared")


class PriceHistory:
    """Bounded, append-only close series per symbol."""

    def __init__(self, retention: int = 252):
        self.retention = retention
        self._series: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def append(self, symbol: str, close: float):
        if close <= 0:
            return
        with self._lock:
            series = self._series.setdefault(symbol, deque(maxlen=self.retention))
            series.append(float(close))

    def extend(self, symbol: str, closes: Iterable[float]):
        """Append several closes in chronological order."""
        for close in closes:
            self.append(symbol, close)

    def get(self, symbol: str) -> List[float]:
        with self._lock:
            return list(self._series.get(symbol, ()))

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._series.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._series)
