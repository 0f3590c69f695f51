"""Built-in agents."""

from .intent_agent import IntentClassificationAgent
from .next_best_action import NextBestActionAgent, Recommendation, rule_based_recommendations

__all__ = [
    "IntentClassificationAgent",
    "NextBestActionAgent",
    "Recommendation",
    "rule_based_recommendations",
]
