from __future__ import annotations

import pytest

from capability_router.agent_core.router import (
    DEFAULT_ROUTES,
    INTENT_CLASSIFICATION_AGENT_TYPE,
    IntentRoute,
    IntentRouter,
)
from capability_router.agent_core.schemas.domain import Intent


def test_every_routable_intent_has_a_default_route() -> None:
    router = IntentRouter()
    for intent in Intent:
        if intent is Intent.unknown:
            assert router.route(intent) is None
        else:
            assert router.route(intent) is not None


@pytest.mark.parametrize(
    ("intent", "agent_type", "action"),
    [
        (Intent.contact_management, "contact", "contact:update"),
        (Intent.communication, "communication", "email:send"),
        (Intent.scheduling_and_tasks, "scheduling", "task:schedule"),
        (Intent.intent_classification, INTENT_CLASSIFICATION_AGENT_TYPE, "intent:classify"),
    ],
)
def test_default_routes(intent: Intent, agent_type: str, action: str) -> None:
    assert DEFAULT_ROUTES[intent] == IntentRoute(agent_type, action)


def test_with_routes_overrides_without_mutating_original() -> None:
    router = IntentRouter()
    custom = router.with_routes({Intent.communication: IntentRoute("mailer", "email:draft")})

    assert custom.route(Intent.communication) == IntentRoute("mailer", "email:draft")
    assert router.route(Intent.communication) == IntentRoute("communication", "email:send")


def test_intents_for_agent_type() -> None:
    intents = IntentRouter().intents_for_agent_type("Analytics")
    assert set(intents) == {Intent.data_analysis, Intent.business_intelligence}
