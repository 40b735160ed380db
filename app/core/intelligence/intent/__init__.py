"""Intent classification module."""

from .types import Intent, IntentResult, OVERRIDE_INTENTS
from .classifier import (
    BaseIntentClassifier,
    IntentClassificationError,
    IntentClassifier,
    RemoteIntentClassifier,
    RuleBasedIntentClassifier,
    get_intent_classifier,
)

__all__ = [
    # Types
    "Intent",
    "IntentResult",
    "OVERRIDE_INTENTS",
    # Classifiers
    "BaseIntentClassifier",
    "IntentClassificationError",
    "IntentClassifier",
    "RemoteIntentClassifier",
    "RuleBasedIntentClassifier",
    "get_intent_classifier",
]
