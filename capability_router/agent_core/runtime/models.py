from __future__ import annotations

"""Orchestrator configuration, dependency bundle and LangGraph state types.

The orchestrator is dependency-injected:

- ``OrchestratorConfig`` holds the tunables (timeouts, approval policy).
- ``OrchestratorDeps`` collects the registries, policy objects and sinks.
- ``_GraphState`` is the state passed between LangGraph nodes for one request.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, NotRequired, Optional, Required, TypedDict

from pydantic import Field

from ...core.config import RouterSettings
from ..agent_registry import AgentRegistration, AgentRegistry
from ..audit import AuditSink, LoggingAuditSink
from ..capabilities.registry import CapabilityRegistry
from ..intent.classifier import IntentClassifier
from ..policy.approvals import ApprovalGate
from ..policy.concurrency import ConcurrencyTracker
from ..policy.models import ScopePolicyConfig
from ..policy.rate_limit import SlidingWindowRateLimiter
from ..policy.scope import ScopePolicy
from ..router import IntentRouter
from ..schemas.base import BaseSchema
from ..schemas.domain import AgentRequest, AgentResponse, RequestState, ScopeTier


class OrchestratorConfig(BaseSchema):
    """Tunables for ``Orchestrator``; built explicitly, never read from globals."""

    handler_timeout_seconds: Optional[float] = Field(default=30.0, gt=0.0)
    fallback_classification_attempts: int = Field(default=2, ge=0, le=5)
    scope_policy: ScopePolicyConfig = Field(default_factory=ScopePolicyConfig)

    @classmethod
    def from_settings(cls, settings: RouterSettings) -> "OrchestratorConfig":
        return cls(
            handler_timeout_seconds=settings.handler_timeout_seconds,
            scope_policy=ScopePolicyConfig(
                require_approval_for_real_world=settings.require_approval_for_real_world,
                approval_ttl_seconds=settings.approval_ttl_seconds,
            ),
        )


@dataclass(frozen=True)
class OrchestratorDeps:
    """Dependency bundle for ``Orchestrator``.

    Only the two registries and the classifier are required; the policy
    objects default to fresh in-memory instances.
    """

    capabilities: CapabilityRegistry
    agents: AgentRegistry
    classifier: IntentClassifier
    router: IntentRouter = field(default_factory=IntentRouter)
    scope_policy: Optional[ScopePolicy] = None
    approvals: ApprovalGate = field(default_factory=ApprovalGate)
    rate_limiter: SlidingWindowRateLimiter = field(default_factory=SlidingWindowRateLimiter)
    concurrency: ConcurrencyTracker = field(default_factory=ConcurrencyTracker)
    audit_sink: AuditSink = field(default_factory=LoggingAuditSink)


@dataclass
class _Lease:
    """Concurrency slot held by a request; released by ``process_request``."""

    agent_id: Optional[str] = None


@dataclass
class _Failure:
    reason: str
    message: str
    status: RequestState = RequestState.failed
    data: Dict[str, Any] = field(default_factory=dict)


class _GraphState(TypedDict):
    """Mutable LangGraph state for a single routed request.

    Required keys:

    - ``request``: the incoming request.
    - ``lease``: concurrency slot holder shared with the caller.
    - ``trace``: request states traversed so far.

    Optional keys are filled in as the request moves through the graph;
    ``failure`` short-circuits the remaining nodes to ``finish``.
    """

    request: Required[AgentRequest]
    lease: Required[_Lease]
    trace: Required[List[RequestState]]
    deadline: NotRequired[Optional[float]]
    cancel_event: NotRequired[Optional[asyncio.Event]]
    intent_confidence: NotRequired[Optional[float]]
    classification_reason: NotRequired[Optional[str]]
    agent_type: NotRequired[Optional[str]]
    action: NotRequired[Optional[str]]
    registration: NotRequired[Optional[AgentRegistration]]
    scope_tier: NotRequired[Optional[ScopeTier]]
    fallback_attempts: NotRequired[int]
    needs_fallback: NotRequired[bool]
    failure: NotRequired[Optional[_Failure]]
    result: NotRequired[Dict[str, Any]]
    response: NotRequired[AgentResponse]
