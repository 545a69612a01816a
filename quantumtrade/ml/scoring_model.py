"""
Scoring Model
=============
Weighted linear model with a logistic output, trained online one trade
at a time with a single-step momentum term.

The model is the only durable state of the engine. It is serialized to
JSON and handed to a ModelStore; saved state is merged over the default
weights on restore so older or partial snapshots never break startup.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional
import json
import logging
import os
import tempfile
import threading

from ..features.indicators import IndicatorSet

logger = logging.getLogger(__name__)

STATE_VERSION = 1

# Logistic input is clipped so the output stays strictly inside (0, 1)
MAX_LOGIT = 30.0

DEFAULT_WEIGHTS: Dict[str, float] = {
    'rsi': 0.5,             # oversold -> positive
    'macd': 0.8,
    'bollinger': -0.2,      # stretched above the mean -> negative
    'volume_ratio': 0.3,
    'volatility': -0.3,
    'options_signal': 0.6,
    'pattern_bias': 0.7
}


class ModelStateError(Exception):
    """Raised when persisted model state cannot be used."""


def sigmoid(x: float) -> float:
    x = float(x)
    if np.isnan(x):
        x = 0.0
    x = float(np.clip(x, -MAX_LOGIT, MAX_LOGIT))
    return float(1.0 / (1.0 + np.exp(-x)))


def build_feature_vector(indicators: IndicatorSet) -> Dict[str, float]:
    """Map an indicator snapshot onto roughly unit-scaled model features."""
    macd = 0.0
    if indicators.price > 0:
        macd = float(np.tanh(indicators.macd_histogram / indicators.price * 100))

    return {
        'rsi': (50.0 - indicators.rsi) / 50.0,
        'macd': macd,
        'bollinger': indicators.bollinger_position,
        'volume_ratio': float(np.clip(indicators.volume_ratio - 1.0, -1.0, 3.0)),
        'volatility': indicators.volatility,
        'options_signal': indicators.options_signal,
        'pattern_bias': float(indicators.pattern.bias)
    }


class ModelStore(ABC):
    """Durable home for the serialized model state."""

    @abstractmethod
    def load(self) -> Optional[str]:
        """Return the last saved state, or None if nothing was saved."""
        pass

    @abstractmethod
    def save(self, state: str):
        pass


class InMemoryModelStore(ModelStore):
    """Process-local store, mostly for tests and offline runs."""

    def __init__(self, state: Optional[str] = None):
        self.state = state

    def load(self) -> Optional[str]:
        return self.state

    def save(self, state: str):
        self.state = state


class JsonFileModelStore(ModelStore):
    """Stores the model state as a JSON file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[str]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, 'r') as f:
            return f.read()

    def save(self, state: str):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        # Write-then-rename so a crash never leaves a half-written file
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(state)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class ScoringModel:
    """
    Online logistic scorer.

    predict(features) = sigmoid(bias + sum(w[k] * x[k])) over keys known to
    both sides. train() applies one stochastic update per labeled sample.
    """

    def __init__(self, learning_rate: float = 0.01, momentum: float = 0.9,
                 weights: Optional[Mapping[str, float]] = None, bias: float = 0.0):
        self.learning_rate = learning_rate
        self.momentum = momentum
        self._default_weights = dict(weights if weights is not None else DEFAULT_WEIGHTS)
        self._default_bias = bias

        self.weights: Dict[str, float] = {}
        self.previous_gradients: Dict[str, float] = {}
        self.bias = bias
        self.training_samples = 0
        self._lock = threading.Lock()
        self.reset()

    @classmethod
    def from_config(cls, config=None) -> 'ScoringModel':
        from ..config import ModelConfig
        config = config or ModelConfig()
        return cls(learning_rate=config.learning_rate, momentum=config.momentum)

    def reset(self):
        """Reinitialize weights, bias and gradients to defaults."""
        with self._lock:
            self.weights = dict(self._default_weights)
            self.previous_gradients = {k: 0.0 for k in self.weights}
            self.bias = self._default_bias
            self.training_samples = 0

    # =====================
    # Inference / training
    # =====================

    def _linear(self, features: Mapping[str, float]) -> float:
        total = self.bias
        for key, value in features.items():
            weight = self.weights.get(key)
            if weight is not None:
                total += weight * float(value)
        return total

    def predict(self, features: Mapping[str, float]) -> float:
        """Probability-like score in (0, 1); unknown feature keys are ignored."""
        with self._lock:
            return sigmoid(self._linear(features))

    def train(self, features: Mapping[str, float], target: float) -> float:
        """
        One online gradient step toward target (0 or 1).

        Returns:
            The prediction made before the update
        """
        if target not in (0, 1):
            raise ValueError(f"target must be 0 or 1, got {target!r}")

        with self._lock:
            prediction = sigmoid(self._linear(features))
            error = target - prediction
            slope = prediction * (1 - prediction)

            for key, value in features.items():
                if key not in self.weights:
                    self.weights[key] = 0.0
                    self.previous_gradients[key] = 0.0

                gradient = error * float(value) * slope
                self.weights[key] += (
                    self.learning_rate * gradient
                    + self.momentum * self.previous_gradients[key]
                )
                self.previous_gradients[key] = gradient

            self.bias += self.learning_rate * error
            self.training_samples += 1

        logger.debug(f"Trained on target={target}: prediction={prediction:.4f} error={error:+.4f}")
        return prediction

    def score(self, indicators: IndicatorSet) -> float:
        """predict() on the feature vector derived from an indicator snapshot."""
        return self.predict(build_feature_vector(indicators))

    # =====================
    # Persistence
    # =====================

    def get_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'version': STATE_VERSION,
                'weights': dict(self.weights),
                'bias': self.bias,
                'previous_gradients': dict(self.previous_gradients),
                'training_samples': self.training_samples
            }

    def serialize(self) -> str:
        return json.dumps(self.get_state())

    def load_state(self, state: Mapping[str, Any]):
        """Merge a saved state over the defaults."""
        if not isinstance(state, Mapping):
            raise ModelStateError(f"model state must be a mapping, got {type(state).__name__}")

        saved_weights = state.get('weights') or {}
        saved_gradients = state.get('previous_gradients') or {}
        if not isinstance(saved_weights, Mapping) or not isinstance(saved_gradients, Mapping):
            raise ModelStateError("weights and previous_gradients must be mappings")

        try:
            weights = dict(self._default_weights)
            weights.update({str(k): float(v) for k, v in saved_weights.items()})
            gradients = {k: float(saved_gradients.get(k, 0.0)) for k in weights}
            bias = float(state.get('bias', self._default_bias))
            samples = int(state.get('training_samples', 0))
        except (TypeError, ValueError) as e:
            raise ModelStateError(f"non-numeric model state: {e}") from e

        values = list(weights.values()) + list(gradients.values()) + [bias]
        if not all(np.isfinite(v) for v in values):
            raise ModelStateError("model state contains non-finite values")

        with self._lock:
            self.weights = weights
            self.previous_gradients = gradients
            self.bias = bias
            self.training_samples = samples

    def restore(self, store: ModelStore) -> bool:
        """
        Load state from a store.

        Returns:
            True if saved state was applied, False if defaults are in use
        """
        try:
            raw = store.load()
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read model state: {e}. Starting fresh model")
            self.reset()
            return False

        if raw is None:
            logger.info("No saved model state, starting fresh model")
            return False

        try:
            state = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            self.load_state(state)
        except (ValueError, ModelStateError) as e:
            logger.warning(f"Discarding corrupt model state: {e}")
            self.reset()
            return False

        logger.info(f"Restored model state ({self.training_samples} training samples)")
        return True

    def save(self, store: ModelStore):
        store.save(self.serialize())
