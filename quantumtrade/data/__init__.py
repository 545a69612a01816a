"""
Data Module
===========
"""
from .market_data import (
    Quote,
    QuoteProvider,
    ProviderError,
    ProviderChain,
    QuoteCache,
    DataMetrics,
    PriceHistory,
    SyntheticQuoteSource
)
from .providers import (
    PolygonProvider,
    TwelveDataProvider,
    AlphaVantageProvider,
    YFinanceProvider,
    build_providers
)
from .options_flow import (
    OptionsFlowEntry,
    OptionsFlowService,
    OptionsFlowProvider,
    UnusualWhalesProvider,
    MockOptionsFlowProvider,
    ContractType,
    FlowSentiment,
    normalize_flow
)

__all__ = [
    'Quote', 'QuoteProvider', 'ProviderError', 'ProviderChain', 'QuoteCache',
    'DataMetrics', 'PriceHistory', 'SyntheticQuoteSource',
    'PolygonProvider', 'TwelveDataProvider', 'AlphaVantageProvider',
    'YFinanceProvider', 'build_providers',
    'OptionsFlowEntry', 'OptionsFlowService', 'OptionsFlowProvider',
    'UnusualWhalesProvider', 'MockOptionsFlowProvider', 'ContractType',
    'FlowSentiment', 'normalize_flow'
]
