"""
Signals Module
==============
"""
from .recommendations import (
    RecommendationGenerator,
    Recommendation,
    Action,
    RiskLevel,
    signal_strength,
    risk_level,
    summarize
)

__all__ = [
    'RecommendationGenerator',
    'Recommendation',
    'Action',
    'RiskLevel',
    'signal_strength',
    'risk_level',
    'summarize'
]
