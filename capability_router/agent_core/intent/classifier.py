"""Intent classification with an LLM primary path and a keyword fallback.

``IntentClassifier.classify_intent`` asks the configured ``TextCompletion``
to pick one intent from the known list. The completion is expected to answer
either with ``key: value`` lines::

    intent: scheduling_and_tasks
    confidence: 0.92
    reason: the user asks to book a meeting
    urgency: high

or with an equivalent JSON object. When the completion fails, times out or
returns something that cannot be parsed (unknown intent name, missing or
out-of-range confidence), the keyword rules in ``rules.py`` decide instead and
the result is marked with ``used_fallback=True`` and a fixed confidence of
``FALLBACK_CONFIDENCE``.

``classify_intent`` does not raise for classification problems. Only genuine
task cancellation propagates.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import Field

from ..completion import TextCompletion
from ..schemas.base import BaseSchema
from ..schemas.domain import Intent, UrgencyLevel
from .rules import infer_urgency, match_intent

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.5
DEFAULT_CONFIDENCE_THRESHOLD = 0.7

_SELECTABLE_INTENTS = tuple(i for i in Intent if i not in (Intent.unknown, Intent.intent_classification))


class IntentClassification(BaseSchema):
    intent: Intent
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    used_fallback: bool = False
    urgency: UrgencyLevel = UrgencyLevel.medium
    extracted_entities: Dict[str, Any] = Field(default_factory=dict)


class _Unparsable(ValueError):
    pass


def build_prompt(user_input: str, context: Optional[Mapping[str, Any]] = None) -> str:
    intents = "\n".join(f"- {i.value}" for i in _SELECTABLE_INTENTS)
    prompt = (
        "Classify the intent of the user input below.\n\n"
        f"Available intents:\n{intents}\n\n"
        f'User input: "{user_input}"\n'
    )
    if context:
        prompt += "\nConversation context:\n" + json.dumps(dict(context), default=str, indent=2) + "\n"
    prompt += (
        "\nRespond with one field per line:\n"
        "intent: <one of the intents above>\n"
        "confidence: <number between 0 and 1>\n"
        "reason: <short explanation>\n"
        "urgency: <low|medium|high|critical>\n"
    )
    return prompt


def parse_completion(text: str) -> IntentClassification:
    """
    Parse a completion into an ``IntentClassification``.

    Raises:
        ValueError: If the text has no recognised intent or a valid confidence.
    """
    fields = _parse_fields(text)

    intent = Intent.parse(fields.get("intent"))
    if intent is None or intent is Intent.unknown:
        raise _Unparsable(f"unrecognised intent: {fields.get('intent')!r}")

    try:
        confidence = float(fields["confidence"])
    except (KeyError, TypeError, ValueError) as e:
        raise _Unparsable("missing or invalid confidence") from e
    if not 0.0 <= confidence <= 1.0:
        raise _Unparsable(f"confidence out of range: {confidence}")

    urgency_raw = str(fields.get("urgency") or "").strip().lower()
    try:
        urgency = UrgencyLevel(urgency_raw) if urgency_raw else UrgencyLevel.medium
    except ValueError:
        urgency = UrgencyLevel.medium

    entities = fields.get("entities")
    return IntentClassification(
        intent=intent,
        confidence=confidence,
        reason=str(fields.get("reason") or fields.get("explanation") or "classified by model"),
        urgency=urgency,
        extracted_entities=entities if isinstance(entities, dict) else {},
    )


def _parse_fields(text: str) -> Dict[str, Any]:
    stripped = (text or "").strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
        stripped = stripped.strip()
    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise _Unparsable("invalid JSON") from e
        if not isinstance(data, dict):
            raise _Unparsable("JSON completion must be an object")
        return {str(k).strip().lower(): v for k, v in data.items()}

    fields: Dict[str, Any] = {}
    for line in stripped.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lstrip("-* ").lower()
        if key and key not in fields:
            fields[key] = value.strip()
    return fields


class IntentClassifier:
    """
    Classify free text into an ``Intent``.

    Args:
        completion: LLM boundary; ``None`` means always use the keyword rules.
        confidence_threshold: Minimum confidence callers should trust.
        timeout: Seconds allowed for one completion call.
        max_tokens: Token budget for the completion.
        temperature: Sampling temperature for the completion.
    """

    def __init__(
        self,
        completion: Optional[TextCompletion] = None,
        *,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        timeout: float = 10.0,
        max_tokens: int = 200,
        temperature: float = 0.0,
    ) -> None:
        self._completion = completion
        self._threshold = confidence_threshold
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature

    def get_confidence_threshold(self) -> float:
        return self._threshold

    async def classify_intent(
        self, user_input: str, context: Optional[Mapping[str, Any]] = None
    ) -> IntentClassification:
        """
        Classify ``user_input``.

        A ``force_intent`` entry in ``context`` overrides classification with
        confidence 1.0.

        Returns:
            The classification. Never raises for completion errors.
        """
        forced = Intent.parse((context or {}).get("force_intent"))
        if forced is not None and forced is not Intent.unknown:
            logger.info("Applying forced intent override; intent=%s", forced.value)
            return IntentClassification(
                intent=forced,
                confidence=1.0,
                reason="intent forced by caller",
                urgency=infer_urgency(user_input),
            )

        if self._completion is None:
            return self._fallback(user_input, "no completion backend configured")

        prompt = build_prompt(user_input, context)
        try:
            text = await asyncio.wait_for(
                self._completion.complete(prompt, max_tokens=self._max_tokens, temperature=self._temperature),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Intent classification timed out after %.1fs; using keyword rules", self._timeout)
            return self._fallback(user_input, "classification timed out")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Intent classification failed; using keyword rules; error=%s", type(exc).__name__)
            return self._fallback(user_input, f"classification error: {type(exc).__name__}")

        try:
            result = parse_completion(text)
        except ValueError as exc:
            logger.warning("Unparsable classification output; using keyword rules; detail=%s", exc)
            return self._fallback(user_input, "classification output could not be parsed")

        logger.debug("Intent classified; intent=%s confidence=%.2f", result.intent.value, result.confidence)
        return result

    def _fallback(self, user_input: str, cause: str) -> IntentClassification:
        intent = match_intent(user_input) or Intent.general_inquiry
        return IntentClassification(
            intent=intent,
            confidence=FALLBACK_CONFIDENCE,
            reason=f"fallback keyword rules used ({cause})",
            used_fallback=True,
            urgency=infer_urgency(user_input),
        )
