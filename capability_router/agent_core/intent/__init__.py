"""Intent classification."""

from .classifier import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    FALLBACK_CONFIDENCE,
    IntentClassification,
    IntentClassifier,
    parse_completion,
)
from .rules import match_intent

__all__ = [
    "DEFAULT_CONFIDENCE_THRESHOLD",
    "FALLBACK_CONFIDENCE",
    "IntentClassification",
    "IntentClassifier",
    "match_intent",
    "parse_completion",
]
