from __future__ import annotations

"""Convenience factories for wiring the routing core.

``build_routing_core`` assembles the default object graph from
``RouterSettings``: a capability source bound to the capability registry, an
agent registry, the intent classifier and the policy objects. Tests and
advanced deployments can construct ``OrchestratorDeps`` directly instead.
"""

from dataclasses import dataclass
from typing import Optional

from ..core.config import RouterSettings
from .agent_registry import AgentRegistry
from .agents.intent_agent import IntentClassificationAgent
from .audit import AuditSink, LoggingAuditSink
from .capabilities.registry import CapabilityRegistry
from .capabilities.source import CapabilitySource
from .completion import PydanticAITextCompletion, TextCompletion
from .intent.classifier import IntentClassifier
from .policy.approvals import ApprovalGate
from .policy.rate_limit import SlidingWindowRateLimiter
from .router import INTENT_CLASSIFICATION_AGENT_TYPE
from .runtime.models import OrchestratorConfig, OrchestratorDeps
from .runtime.orchestrator import Orchestrator


@dataclass(frozen=True)
class RoutingCore:
    """The assembled routing core; ``close`` stops background work."""

    orchestrator: Orchestrator
    source: CapabilitySource
    capabilities: CapabilityRegistry
    agents: AgentRegistry
    classifier: IntentClassifier

    async def close(self) -> None:
        self.source.stop_watching()
        await self.agents.shutdown()


def build_capability_source(settings: RouterSettings) -> CapabilitySource:
    return CapabilitySource(
        settings.capabilities_file,
        throw_on_file_not_found=settings.throw_on_file_not_found,
        validate_schema=settings.validate_schema,
        debounce_seconds=settings.reload_debounce_seconds,
        poll_interval_seconds=settings.reload_poll_interval_seconds,
    )


def build_classifier(settings: RouterSettings, completion: Optional[TextCompletion] = None) -> IntentClassifier:
    """Build the classifier; a configured model name enables the Pydantic AI backend."""
    if completion is None and settings.classification_model:
        completion = PydanticAITextCompletion(settings.classification_model)
    return IntentClassifier(
        completion,
        confidence_threshold=settings.confidence_threshold,
        timeout=settings.classification_timeout_seconds,
    )


async def build_routing_core(
    settings: Optional[RouterSettings] = None,
    *,
    completion: Optional[TextCompletion] = None,
    audit_sink: Optional[AuditSink] = None,
    register_intent_agent: bool = True,
) -> RoutingCore:
    """
    Assemble the default routing core.

    Args:
        settings: Router settings; read from the environment when omitted.
        completion: LLM boundary for classification; overrides the configured model.
        audit_sink: Audit sink; defaults to ``LoggingAuditSink``.
        register_intent_agent: Register the built-in intent-classification agent
            used for the unknown-intent fallback.
    """
    settings = settings or RouterSettings()

    capabilities = CapabilityRegistry()
    source = build_capability_source(settings)
    source.bind(capabilities)
    if settings.watch_capabilities:
        source.start_watching()

    agents = AgentRegistry(health_check_timeout=settings.health_check_timeout_seconds)
    classifier = build_classifier(settings, completion)
    if register_intent_agent:
        await agents.register_agent(
            "intent-classification-1",
            INTENT_CLASSIFICATION_AGENT_TYPE,
            IntentClassificationAgent(classifier),
            {"builtin": True},
        )

    config = OrchestratorConfig.from_settings(settings)
    deps = OrchestratorDeps(
        capabilities=capabilities,
        agents=agents,
        classifier=classifier,
        approvals=ApprovalGate(ttl_seconds=settings.approval_ttl_seconds),
        rate_limiter=SlidingWindowRateLimiter(window_seconds=settings.rate_limit_window_seconds),
        audit_sink=audit_sink or LoggingAuditSink(),
    )
    return RoutingCore(
        orchestrator=Orchestrator(deps=deps, config=config),
        source=source,
        capabilities=capabilities,
        agents=agents,
        classifier=classifier,
    )
