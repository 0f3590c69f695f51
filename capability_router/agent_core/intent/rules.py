from __future__ import annotations

"""Deterministic keyword rules used when LLM classification is unavailable."""

from typing import Optional, Sequence, Tuple

from ..schemas.domain import Intent, UrgencyLevel

# Order matters: the first rule with a matching keyword wins.
KEYWORD_RULES: Sequence[Tuple[Intent, Tuple[str, ...]]] = (
    (Intent.service_provider_recommendation, ("recommend a", "provider", "vendor", "contractor", "who should i hire")),
    (Intent.scheduling_and_tasks, ("schedule", "meeting", "appointment", "calendar", "remind", "task", "deadline")),
    (Intent.communication, ("email", "send", "message", "call", "text ", "reply", "follow up", "follow-up")),
    (Intent.contact_management, ("contact", "phone number", "address book", "client details", "update client")),
    (Intent.interaction_analysis, ("interaction", "conversation", "sentiment", "transcript")),
    (Intent.market_intelligence, ("market", "competitor", "pricing", "listing", "trend")),
    (Intent.report_generation, ("report", "summary of", "export")),
    (Intent.data_analysis, ("analyze", "analyse", "statistics", "metrics", "chart")),
    (Intent.workflow_automation, ("automate", "workflow", "every day", "whenever")),
    (Intent.business_intelligence, ("kpi", "revenue", "forecast", "pipeline")),
    (Intent.resource_management, ("resource", "assign", "allocate", "capacity")),
)

_URGENCY_WORDS: Sequence[Tuple[UrgencyLevel, Tuple[str, ...]]] = (
    (UrgencyLevel.critical, ("emergency", "critical")),
    (UrgencyLevel.high, ("urgent", "asap", "immediately", "right now")),
    (UrgencyLevel.low, ("whenever", "no rush", "sometime")),
)


def match_intent(text: str) -> Optional[Intent]:
    """Return the first intent whose keywords occur in ``text``, if any."""
    lowered = (text or "").lower()
    for intent, keywords in KEYWORD_RULES:
        if any(k in lowered for k in keywords):
            return intent
    return None


def infer_urgency(text: str) -> UrgencyLevel:
    lowered = (text or "").lower()
    for level, words in _URGENCY_WORDS:
        if any(w in lowered for w in words):
            return level
    return UrgencyLevel.medium
