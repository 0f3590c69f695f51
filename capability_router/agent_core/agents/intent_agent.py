from __future__ import annotations

"""Intent classification exposed as a routable agent."""

from typing import Any, Dict

from ..intent.classifier import IntentClassifier
from ..schemas.domain import AgentRequest


class IntentClassificationAgent:
    """
    Agent handler wrapping an ``IntentClassifier``.

    Classifies ``request.original_input`` (or ``context["user_input"]``) and
    answers with the classified intent, its confidence and reason.
    """

    def __init__(self, classifier: IntentClassifier) -> None:
        self._classifier = classifier

    async def handle(self, request: AgentRequest) -> Dict[str, Any]:
        text = request.original_input or str(request.context.get("user_input") or "")
        if not text.strip():
            raise ValueError("user input cannot be empty")
        result = await self._classifier.classify_intent(text, request.context)
        return {
            "classified_intent": result.intent.value,
            "confidence": result.confidence,
            "reason": result.reason,
            "used_fallback": result.used_fallback,
            "urgency": result.urgency.value,
            "meets_threshold": result.confidence >= self._classifier.get_confidence_threshold(),
        }
