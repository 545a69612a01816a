"""
Configuration Management
========================
Central configuration for the signal scoring engine.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional
import json
import os


def _env(name: str) -> Optional[str]:
    """Read an API credential from the environment, treating blanks as unset."""
    value = os.getenv(name, "").strip()
    return value or None


@dataclass
class DataConfig:
    """Market data acquisition configuration."""
    # Symbols to score every cycle
    symbols: List[str] = field(default_factory=lambda: ["SPY", "QQQ", "AAPL", "NVDA", "TSLA"])

    # Provider priority order (first valid response wins)
    provider_order: List[str] = field(default_factory=lambda: ["polygon", "twelve", "alpha", "yahoo"])

    # Credentials (None = provider unconfigured and skipped)
    polygon_api_key: Optional[str] = field(default_factory=lambda: _env("POLYGON_API_KEY"))
    twelve_data_api_key: Optional[str] = field(default_factory=lambda: _env("TWELVE_DATA_API_KEY"))
    alpha_vantage_api_key: Optional[str] = field(default_factory=lambda: _env("ALPHA_VANTAGE_API_KEY"))
    unusual_whales_api_key: Optional[str] = field(default_factory=lambda: _env("UNUSUAL_WHALES_API_KEY"))

    # Optional local proxy exposing GET /api/<provider>/<symbol>
    proxy_url: Optional[str] = field(default_factory=lambda: _env("QUANTUMTRADE_PROXY_URL"))

    # Caching and timeouts
    cache_ttl_seconds: int = 30
    request_timeout_seconds: float = 5.0
    max_workers: int = 8

    # Price history
    history_retention: int = 252  # 1 year of trading days
    backfill_days: int = 365
    backfill_history: bool = True

    # Options flow
    options_flow_limit: int = 50


@dataclass
class ModelConfig:
    """Scoring model configuration."""
    learning_rate: float = 0.01
    momentum: float = 0.9
    state_path: Optional[str] = "./data/scoring_model.json"


@dataclass
class RecommendationConfig:
    """Recommendation generator thresholds."""
    buy_confidence: float = 0.65
    sell_confidence: float = 0.35
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0

    # Target / stop multipliers
    buy_target: float = 1.05
    buy_stop: float = 0.98
    buy_target_wide: float = 1.08
    buy_stop_wide: float = 0.95
    sell_target: float = 0.95
    sell_stop: float = 1.02
    sell_target_wide: float = 0.92
    sell_stop_wide: float = 1.05
    wide_volatility: float = 0.3

    # Strong signal upgrade
    strong_change_pct: float = 2.0
    strong_volume_ratio: float = 1.5

    timeframe: str = "1-3 days"


@dataclass
class MemoryConfig:
    """Trade memory configuration."""
    capacity: int = 100
    top_patterns: int = 3


@dataclass
class MonitoringConfig:
    """Logging configuration."""
    log_level: str = "INFO"
    log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class SystemConfig:
    """Master system configuration."""
    data: DataConfig = field(default_factory=DataConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    recommendations: RecommendationConfig = field(default_factory=RecommendationConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def save(self, filepath: str, include_secrets: bool = False):
        """Save configuration to JSON file."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self._to_dict(include_secrets), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'SystemConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    def _to_dict(self, include_secrets: bool = False) -> dict:
        """Convert to dictionary."""
        data = asdict(self)
        if not include_secrets:
            for key in list(data['data']):
                if key.endswith('_api_key'):
                    data['data'][key] = None
        return data

    @classmethod
    def _from_dict(cls, data: dict) -> 'SystemConfig':
        """Create from dictionary, keeping defaults for missing keys."""
        config = cls()
        sections: Dict[str, object] = {
            'data': config.data,
            'model': config.model,
            'recommendations': config.recommendations,
            'memory': config.memory,
            'monitoring': config.monitoring,
        }
        for name, section in sections.items():
            for key, value in (data.get(name) or {}).items():
                if not hasattr(section, key):
                    continue
                # Saved configs never carry secrets; keep the environment's
                if key.endswith('_api_key') and value is None:
                    continue
                setattr(section, key, value)
        return config


# Default configuration instance
DEFAULT_CONFIG = SystemConfig()
