from __future__ import annotations

"""Intent route table.

``IntentRouter`` maps a resolved ``Intent`` to the agent type expected to
handle it and the action that agent will perform. The orchestrator uses the
route to select candidate agents and to authorize the request; an explicit
``AgentRequest.action`` overrides the route's action.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .capabilities.models import normalize_name
from .schemas.domain import Intent

INTENT_CLASSIFICATION_AGENT_TYPE = "intent-classification"


@dataclass(frozen=True)
class IntentRoute:
    agent_type: str
    action: str


DEFAULT_ROUTES: Mapping[Intent, IntentRoute] = MappingProxyType(
    {
        Intent.contact_management: IntentRoute("contact", "contact:update"),
        Intent.interaction_analysis: IntentRoute("interaction", "interaction:analyze"),
        Intent.scheduling_and_tasks: IntentRoute("scheduling", "task:schedule"),
        Intent.communication: IntentRoute("communication", "email:send"),
        Intent.market_intelligence: IntentRoute("market", "market:analyze"),
        Intent.general_inquiry: IntentRoute("general", "knowledge:search"),
        Intent.data_analysis: IntentRoute("analytics", "data:analyze"),
        Intent.report_generation: IntentRoute("reporting", "report:generate"),
        Intent.workflow_automation: IntentRoute("workflow", "workflow:execute"),
        Intent.business_intelligence: IntentRoute("analytics", "insight:analyze"),
        Intent.intent_classification: IntentRoute(INTENT_CLASSIFICATION_AGENT_TYPE, "intent:classify"),
        Intent.resource_management: IntentRoute("resource", "resource:assign"),
        Intent.service_provider_recommendation: IntentRoute("nba", "recommendation:generate"),
    }
)


@dataclass(frozen=True)
class IntentRouter:
    """
    Resolve intents to routes.

    Attributes:
        routes: Intent to route mapping. Defaults to ``DEFAULT_ROUTES``.
    """

    routes: Mapping[Intent, IntentRoute] = field(default_factory=lambda: DEFAULT_ROUTES)

    def route(self, intent: Intent) -> Optional[IntentRoute]:
        """Return the route for ``intent``, or ``None`` when the intent is not routable."""
        return self.routes.get(intent)

    def with_routes(self, overrides: Mapping[Intent, IntentRoute]) -> "IntentRouter":
        merged: Dict[Intent, IntentRoute] = dict(self.routes)
        merged.update(overrides)
        return IntentRouter(routes=MappingProxyType(merged))

    def intents_for_agent_type(self, agent_type: str) -> list[Intent]:
        key = normalize_name(agent_type)
        return [intent for intent, r in self.routes.items() if normalize_name(r.agent_type) == key]
