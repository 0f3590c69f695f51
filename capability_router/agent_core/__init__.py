"""Agent capability registry and request-routing core.

Design overview
---------------

- ``capabilities``: what each agent type may do (actions, tools,
  delegations, limits), loaded from a hot-reloadable YAML document into a
  lock-free ``CapabilityRegistry``.
- ``agent_registry``: the live agent instances and their lifecycle hooks.
- ``intent``: classification of free text into an ``Intent`` with an LLM and
  a deterministic keyword fallback.
- ``policy``: scope tiers, approvals, rate limits and concurrency ceilings.
- ``runtime``: the LangGraph ``Orchestrator`` tying it all together.

Typical usage
-------------

1. Build the core with ``factory.build_routing_core``.
2. Register agents in ``AgentRegistry``.
3. Call ``Orchestrator.process_request`` for every ``AgentRequest``.
"""

from .agent_registry import AgentRegistration, AgentRegistry
from .capabilities import AgentCapability, CapabilityRegistry, CapabilitySource
from .errors import CapabilityRouterError
from .router import IntentRoute, IntentRouter
from .runtime import Orchestrator, OrchestratorConfig, OrchestratorDeps
from .schemas.domain import AgentRequest, AgentResponse, Intent, RequestState, ScopeTier

__all__ = [
    "AgentCapability",
    "AgentRegistration",
    "AgentRegistry",
    "AgentRequest",
    "AgentResponse",
    "CapabilityRegistry",
    "CapabilityRouterError",
    "CapabilitySource",
    "Intent",
    "IntentRoute",
    "IntentRouter",
    "Orchestrator",
    "OrchestratorConfig",
    "OrchestratorDeps",
    "RequestState",
    "ScopeTier",
]
