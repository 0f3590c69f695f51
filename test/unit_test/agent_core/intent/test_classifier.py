from __future__ import annotations

import asyncio
import logging
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from capability_router.agent_core.intent.classifier import (
    FALLBACK_CONFIDENCE,
    IntentClassifier,
    build_prompt,
    parse_completion,
)
from capability_router.agent_core.schemas.domain import Intent, UrgencyLevel


class _FakeCompletion:
    def __init__(self, text: str = "", *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.text = text
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, prompt: str, *, max_tokens: int = 256, temperature: float = 0.0) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


def test_prompt_lists_selectable_intents() -> None:
    prompt = build_prompt("book a call", {"contact": "Ann"})
    assert "- scheduling_and_tasks" in prompt
    assert "- unknown" not in prompt
    assert '"contact": "Ann"' in prompt


def test_parse_key_value_lines() -> None:
    result = parse_completion("Intent: Communication\nconfidence: 0.92\nreason: wants an email\nurgency: HIGH\n")
    assert result.intent is Intent.communication
    assert result.confidence == pytest.approx(0.92)
    assert result.reason == "wants an email"
    assert result.urgency is UrgencyLevel.high
    assert result.used_fallback is False


def test_parse_json_object() -> None:
    result = parse_completion(
        '```json\n{"intent": "data_analysis", "confidence": 0.8, "reason": "stats", '
        '"entities": {"metric": "revenue"}}\n```'
    )
    assert result.intent is Intent.data_analysis
    assert result.extracted_entities == {"metric": "revenue"}
    assert result.urgency is UrgencyLevel.medium


@pytest.mark.parametrize(
    "text",
    [
        "intent: teleportation\nconfidence: 0.9",
        "intent: unknown\nconfidence: 0.9",
        "intent: communication",
        "intent: communication\nconfidence: high",
        "intent: communication\nconfidence: 1.5",
        "{not json",
        "",
    ],
)
def test_parse_rejects_unusable_output(text: str) -> None:
    with pytest.raises(ValueError):
        parse_completion(text)


@pytest.mark.asyncio
async def test_classify_uses_completion() -> None:
    completion = _FakeCompletion("intent: contact_management\nconfidence: 0.85\nreason: update phone")
    classifier = IntentClassifier(completion)

    result = await classifier.classify_intent("Update Ann's phone number")

    assert result.intent is Intent.contact_management
    assert result.confidence == pytest.approx(0.85)
    assert "Update Ann's phone number" in completion.prompts[0]


@pytest.mark.asyncio
async def test_failing_completion_falls_back_to_keywords(caplog: pytest.LogCaptureFixture) -> None:
    classifier = IntentClassifier(_FakeCompletion(error=RuntimeError("provider down")))

    with caplog.at_level(logging.WARNING):
        result = await classifier.classify_intent("Please schedule a meeting with Bob tomorrow")

    assert result.intent is Intent.scheduling_and_tasks
    assert result.confidence == FALLBACK_CONFIDENCE
    assert result.used_fallback is True
    assert result.reason.startswith("fallback keyword rules used")
    assert "Intent classification failed" in caplog.text
    # Prompt text and user input stay out of the logs.
    assert "Bob" not in caplog.text


@pytest.mark.asyncio
async def test_timeout_falls_back() -> None:
    classifier = IntentClassifier(_FakeCompletion("intent: communication\nconfidence: 0.9", delay=1.0), timeout=0.01)
    result = await classifier.classify_intent("send an email to the team")
    assert result.used_fallback is True
    assert result.intent is Intent.communication
    assert "timed out" in result.reason


@pytest.mark.asyncio
async def test_unparsable_output_falls_back() -> None:
    classifier = IntentClassifier(_FakeCompletion("I think it is about emails"))
    result = await classifier.classify_intent("what's the market trend for condos")
    assert result.used_fallback is True
    assert result.intent is Intent.market_intelligence


@pytest.mark.asyncio
async def test_no_keyword_match_is_general_inquiry() -> None:
    result = await IntentClassifier().classify_intent("hello there")
    assert result.intent is Intent.general_inquiry
    assert result.confidence == FALLBACK_CONFIDENCE


@pytest.mark.asyncio
async def test_force_intent_overrides_classification() -> None:
    completion = _FakeCompletion("intent: communication\nconfidence: 0.9")
    classifier = IntentClassifier(completion)

    result = await classifier.classify_intent("urgent: anything", {"force_intent": "report-generation"})

    assert result.intent is Intent.report_generation
    assert result.confidence == 1.0
    assert result.urgency is UrgencyLevel.high
    assert completion.prompts == []


@pytest.mark.asyncio
async def test_cancellation_propagates() -> None:
    classifier = IntentClassifier(_FakeCompletion(delay=5.0), timeout=10.0)
    task = asyncio.ensure_future(classifier.classify_intent("send an email"))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_confidence_threshold_is_configurable() -> None:
    assert IntentClassifier().get_confidence_threshold() == 0.7
    assert IntentClassifier(confidence_threshold=0.9).get_confidence_threshold() == 0.9


@pytest.mark.asyncio
async def test_pydantic_ai_test_model_backend() -> None:
    test_models = pytest.importorskip("pydantic_ai.models.test")
    from capability_router.agent_core.completion import PydanticAITextCompletion

    model = test_models.TestModel(custom_output_text="intent: data_analysis\nconfidence: 0.81\nreason: numbers")
    classifier = IntentClassifier(PydanticAITextCompletion(model))

    result = await classifier.classify_intent("crunch the numbers")

    assert result.intent is Intent.data_analysis
    assert result.used_fallback is False


@pytest.mark.asyncio
async def test_completion_receives_configured_generation_settings() -> None:
    completion = MagicMock()
    completion.complete = AsyncMock(return_value="intent: communication\nconfidence: 0.9\nreason: email")
    classifier = IntentClassifier(completion, max_tokens=64, temperature=0.2)

    result = await classifier.classify_intent("email the landlord")

    assert result.intent is Intent.communication
    completion.complete.assert_awaited_once()
    _, kwargs = completion.complete.call_args
    assert kwargs == {"max_tokens": 64, "temperature": 0.2}
