"""
Options Flow
============
Fetches unusual options activity and normalizes it into OptionsFlowEntry
records. Uses the same cache and fallback idiom as the quote chain.
"""

import numpy as np
import requests
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from .market_data import QuoteCache, to_float

logger = logging.getLogger(__name__)


class ContractType(Enum):
    CALL = "CALL"
    PUT = "PUT"


class FlowSentiment(Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class OptionsFlowEntry:
    """A single options flow print."""
    symbol: str
    contract_type: ContractType
    strike: float
    expiry: str
    premium: float
    volume: float
    sentiment: FlowSentiment

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'type': self.contract_type.value,
            'strike': self.strike,
            'expiry': self.expiry,
            'premium': self.premium,
            'volume': self.volume,
            'sentiment': self.sentiment.value
        }


def _parse_contract_type(record: Dict[str, Any]) -> Optional[ContractType]:
    raw = record.get('type') or record.get('order_type') or record.get('put_call') or ''
    raw = str(raw).strip().upper()
    if raw.startswith('C'):
        return ContractType.CALL
    if raw.startswith('P'):
        return ContractType.PUT
    return None


def _parse_sentiment(value: Any) -> FlowSentiment:
    try:
        return FlowSentiment(str(value).strip().upper())
    except ValueError:
        return FlowSentiment.NEUTRAL


def normalize_flow(records: List[Dict[str, Any]]) -> List[OptionsFlowEntry]:
    """Normalize raw flow records, dropping ones without a symbol or contract type."""
    entries = []
    for record in records or []:
        if not isinstance(record, dict):
            continue
        symbol = str(record.get('symbol') or record.get('ticker') or '').upper()
        contract_type = _parse_contract_type(record)
        if not symbol or contract_type is None:
            continue

        entries.append(OptionsFlowEntry(
            symbol=symbol,
            contract_type=contract_type,
            strike=to_float(record.get('strike')),
            expiry=str(record.get('expiry') or record.get('expiration') or ''),
            premium=max(to_float(record.get('premium')), 0.0),
            volume=max(to_float(record.get('volume')), 0.0),
            sentiment=_parse_sentiment(record.get('sentiment'))
        ))
    return entries


class OptionsFlowProvider(ABC):
    """Source of raw options flow records."""

    name: str = "flow"

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    def fetch(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """Fetch raw flow records for a symbol, or market-wide when None."""
        pass


class UnusualWhalesProvider(OptionsFlowProvider):
    """Unusual Whales options flow API."""

    name = "unusual_whales"
    base_url = "https://api.unusualwhales.com/api"

    def __init__(self, api_key: Optional[str] = None, limit: int = 50, timeout: float = 5.0):
        self.api_key = api_key
        self.limit = limit
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def fetch(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        if symbol:
            url = f"{self.base_url}/stock/{symbol}/options-flow"
        else:
            url = f"{self.base_url}/option_flows"

        resp = requests.get(
            url,
            params={'api_key': self.api_key, 'limit': self.limit},
            timeout=self.timeout
        )
        resp.raise_for_status()
        payload = resp.json()

        data = payload.get('data') if isinstance(payload, dict) else payload
        if not isinstance(data, list):
            raise ValueError(f"unexpected options flow payload: {type(data).__name__}")
        return data


class MockOptionsFlowProvider(OptionsFlowProvider):
    """Random flow prints for offline use."""

    name = "mock"
    symbols = ['AAPL', 'TSLA', 'NVDA', 'SPY', 'QQQ']

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def fetch(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        symbols = [symbol] if symbol else self.symbols
        return [
            {
                'symbol': s,
                'type': 'CALL' if self._rng.random() > 0.5 else 'PUT',
                'strike': int(self._rng.random() * 50 + 150),
                'expiry': '2025-08-29',
                'premium': int(self._rng.random() * 1_000_000),
                'volume': int(self._rng.random() * 5000),
                'sentiment': 'BULLISH' if self._rng.random() > 0.5 else 'BEARISH'
            }
            for s in symbols
        ]


class OptionsFlowService:
    """Cached options flow with mock fallback."""

    def __init__(self, provider: Optional[OptionsFlowProvider] = None,
                 fallback: Optional[OptionsFlowProvider] = None,
                 cache: Optional[QuoteCache] = None):
        self.provider = provider
        self.fallback = fallback or MockOptionsFlowProvider()
        self.cache = cache or QuoteCache()
        self.used_fallback = False

    @classmethod
    def from_config(cls, config=None, seed: Optional[int] = None) -> 'OptionsFlowService':
        from ..config import DataConfig
        config = config or DataConfig()
        return cls(
            provider=UnusualWhalesProvider(
                api_key=config.unusual_whales_api_key,
                limit=config.options_flow_limit,
                timeout=config.request_timeout_seconds
            ),
            fallback=MockOptionsFlowProvider(seed=seed),
            cache=QuoteCache(ttl_seconds=config.cache_ttl_seconds)
        )

    def get_flow(self, symbol: Optional[str] = None) -> List[OptionsFlowEntry]:
        """Get normalized flow, filtered to symbol when given."""
        key = f"flow_{symbol.upper()}" if symbol else "flow_all"

        with self.cache.key_lock(key):
            cached = self.cache.get(key)
            if cached is not None:
                return cached

            entries = self._fetch(symbol)
            if symbol:
                entries = [e for e in entries if e.symbol == symbol.upper()]
            self.cache.set(key, entries)
            return entries

    def get_flow_by_symbol(self, symbols: List[str]) -> Dict[str, List[OptionsFlowEntry]]:
        """Group market-wide flow by the requested symbols."""
        entries = self.get_flow()
        grouped: Dict[str, List[OptionsFlowEntry]] = {s: [] for s in symbols}
        for entry in entries:
            for s in symbols:
                if entry.symbol == s.upper():
                    grouped[s].append(entry)
        return grouped

    def _fetch(self, symbol: Optional[str]) -> List[OptionsFlowEntry]:
        if self.provider is not None and self.provider.is_configured():
            try:
                entries = normalize_flow(self.provider.fetch(symbol))
                self.used_fallback = False
                return entries
            except Exception as e:
                logger.warning(f"Options flow fetch from {self.provider.name} failed: {e}")
        else:
            logger.warning("Options flow provider not configured, using mock data")

        self.used_fallback = True
        return normalize_flow(self.fallback.fetch(symbol))
