"""
Scoring Models
==============

Two independent scoring paths:
- ScoringModel: trainable linear model with logistic output (predict/train)
- confidence: fixed heuristic rules used for recommendation thresholds
"""

from .scoring_model import (
    ScoringModel,
    ModelStore,
    InMemoryModelStore,
    JsonFileModelStore,
    ModelStateError,
    DEFAULT_WEIGHTS,
    build_feature_vector,
    sigmoid
)
from .confidence import confidence

__all__ = [
    'ScoringModel',
    'ModelStore',
    'InMemoryModelStore',
    'JsonFileModelStore',
    'ModelStateError',
    'DEFAULT_WEIGHTS',
    'build_feature_vector',
    'sigmoid',
    'confidence'
]
