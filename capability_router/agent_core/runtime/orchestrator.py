from __future__ import annotations

"""LangGraph routing orchestrator.

``Orchestrator.process_request`` moves one ``AgentRequest`` through a small
LangGraph state machine and always answers with an ``AgentResponse``:

::

    resolve_intent -> select_agent -> authorize -> invoke -> finish
          |                |              |
          +--> fallback <--+              +--> finish (denied / pending approval)
                  |
                  +--> select_agent (re-classified) | finish

Request states
--------------

``received -> intent_resolved -> agent_selected -> validated -> invoked ->
completed | failed``; ``pending_approval`` and ``cancelled`` are failure
flavours reported in ``AgentResponse.status``.

Every response carries a fresh ``audit_id`` and a non-empty ``reason``, and an
``AuditRecord`` is written to the configured audit sink. Authorization,
rate-limit and approval failures are terminal and never retried.
"""

import asyncio
import inspect
import logging
from typing import Any, Coroutine, Dict, List, Optional

from langgraph.graph import END, StateGraph
from pydantic import BaseModel

from ..agent_registry import AgentRegistration
from ..audit import log_audit_record
from ..errors import HandlerFailureError, RateLimitExceededError
from ..policy.scope import ScopePolicy
from ..router import INTENT_CLASSIFICATION_AGENT_TYPE
from ..schemas.domain import (
    AgentRequest,
    AgentResponse,
    AuditRecord,
    HealthStatus,
    Intent,
    RequestState,
)
from .models import OrchestratorConfig, OrchestratorDeps, _Failure, _GraphState, _Lease

logger = logging.getLogger(__name__)

_HEALTH_RANK = {HealthStatus.healthy: 0, HealthStatus.unknown: 1, HealthStatus.degraded: 2}


class _Cancelled(Exception):
    pass


class Orchestrator:
    """Route requests to authorized agents with policy enforcement.

    The orchestrator delegates authorization to ``CapabilityRegistry``,
    scope and approval decisions to ``ScopePolicy`` and ``ApprovalGate``, and
    the actual work to agent handlers registered in ``AgentRegistry``.
    """

    def __init__(self, *, deps: OrchestratorDeps, config: Optional[OrchestratorConfig] = None) -> None:
        """
        Initialize the Orchestrator.

        Args:
            deps: Registries, classifier, policy objects and audit sink.
            config: Tunables; defaults to ``OrchestratorConfig()``.
        """
        self._deps = deps
        self._cfg = config or OrchestratorConfig()
        self._scope = deps.scope_policy or ScopePolicy(self._cfg.scope_policy)
        self._graph = self._build_graph()
        deps.agents.on_unregistered(self._forget_agent)

    def _forget_agent(self, agent_id: str) -> None:
        self._deps.rate_limiter.reset(agent_id)

    @property
    def config(self) -> OrchestratorConfig:
        return self._cfg

    @property
    def deps(self) -> OrchestratorDeps:
        return self._deps

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("resolve_intent", self._node_resolve_intent)
        g.add_node("select_agent", self._node_select_agent)
        g.add_node("fallback", self._node_fallback)
        g.add_node("authorize", self._node_authorize)
        g.add_node("invoke", self._node_invoke)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("resolve_intent")
        g.add_conditional_edges(
            "resolve_intent",
            self._route_after_resolve,
            {"select": "select_agent", "fallback": "fallback", "finish": "finish"},
        )
        g.add_conditional_edges(
            "select_agent",
            self._route_after_select,
            {"authorize": "authorize", "fallback": "fallback", "finish": "finish"},
        )
        g.add_conditional_edges(
            "fallback",
            self._route_after_fallback,
            {"select": "select_agent", "finish": "finish"},
        )
        g.add_conditional_edges(
            "authorize",
            self._route_after_authorize,
            {"invoke": "invoke", "finish": "finish"},
        )
        g.add_edge("invoke", "finish")
        g.add_edge("finish", END)
        return g.compile()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def process_request(
        self,
        request: AgentRequest,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AgentResponse:
        """
        Route ``request`` and return the response.

        Args:
            request: The request to route.
            timeout: Deadline in seconds shared by classification and the handler; defaults
                to ``OrchestratorConfig.handler_timeout_seconds``.
            cancel_event: Setting this event aborts classification or the handler; the response
                then has ``reason="cancelled"``.

        Returns:
            An ``AgentResponse``. Failures are reported in the response, not
            raised.
        """
        limit = self._cfg.handler_timeout_seconds if timeout is None else timeout
        loop = asyncio.get_running_loop()
        lease = _Lease()
        state: _GraphState = {
            "request": request,
            "lease": lease,
            "trace": [RequestState.received],
            "deadline": loop.time() + limit if limit else None,
            "cancel_event": cancel_event,
            "fallback_attempts": 0,
        }
        try:
            final = await self._graph.ainvoke(state)
            response = final["response"]
        except Exception as exc:
            logger.exception("Routing failed unexpectedly; request_id=%s", request.id)
            response = AgentResponse(
                success=False,
                request_id=request.id,
                intent=request.intent,
                message="Internal routing error",
                reason=f"internal error: {type(exc).__name__}",
                status=RequestState.failed,
            )
            await self._audit(response, action=request.action)
        finally:
            if lease.agent_id is not None:
                self._deps.concurrency.release(lease.agent_id)
        return response

    # ------------------------------------------------------------------
    # nodes
    # ------------------------------------------------------------------

    async def _node_resolve_intent(self, state: _GraphState) -> _GraphState:
        """Classify the request when its intent is unknown."""
        request = state["request"]
        if self._is_cancelled(state):
            state["failure"] = self._cancelled_failure()
            return state

        if request.intent is Intent.unknown and (request.agent_id is None or request.action is None):
            text = request.original_input.strip()
            if not text:
                state["needs_fallback"] = True
                return state
            try:
                classification = await self._run_with_deadline(
                    self._deps.classifier.classify_intent(text, request.context), state
                )
            except _Cancelled:
                logger.info("Classification cancelled; request_id=%s", request.id)
                state["failure"] = self._cancelled_failure()
                return state
            state["request"] = request.model_copy(update={"intent": classification.intent})
            state["intent_confidence"] = classification.confidence
            state["classification_reason"] = classification.reason
            if classification.confidence < self._deps.classifier.get_confidence_threshold():
                logger.info(
                    "Low-confidence classification; request_id=%s intent=%s confidence=%.2f",
                    request.id,
                    classification.intent.value,
                    classification.confidence,
                )

        self._advance(state, RequestState.intent_resolved)
        return state

    async def _node_select_agent(self, state: _GraphState) -> _GraphState:
        """Resolve the route and pick the best available agent."""
        request = state["request"]
        state["needs_fallback"] = False
        route = self._deps.router.route(request.intent)
        action = request.action or (route.action if route is not None else None)

        target_id = request.agent_id
        if target_id is None and request.approval_id:
            approval = self._deps.approvals.get(request.approval_id)
            if approval is not None:
                target_id = approval.agent_id

        if target_id is not None:
            registration = self._deps.agents.get_registration(target_id)
            if registration is None:
                state["failure"] = _Failure(
                    reason=f"not found: agent {target_id}", message=f"Agent '{target_id}' is not registered"
                )
                return state
            if action is None:
                state["needs_fallback"] = True
                return state
            if registration.health_status is HealthStatus.unhealthy:
                state["failure"] = _Failure(
                    reason=f"agent unavailable: {target_id}", message=f"Agent '{target_id}' is unhealthy"
                )
                return state
            capability = self._deps.capabilities.get_effective_capability(registration.agent_type)
            if not self._deps.concurrency.try_acquire(target_id, capability.max_concurrent_operations):
                state["failure"] = _Failure(
                    reason=f"agent at capacity: {target_id}",
                    message=f"Agent '{target_id}' is at its concurrency limit",
                )
                return state
            return self._selected(state, registration, action)

        if route is None or action is None:
            state["needs_fallback"] = True
            return state

        for registration in self._rank_candidates(route.agent_type):
            capability = self._deps.capabilities.get_effective_capability(registration.agent_type)
            if self._deps.concurrency.try_acquire(registration.agent_id, capability.max_concurrent_operations):
                return self._selected(state, registration, action)

        logger.info("No available agent; request_id=%s agent_type=%s", request.id, route.agent_type)
        state["agent_type"] = route.agent_type
        state["needs_fallback"] = True
        return state

    def _selected(self, state: _GraphState, registration: AgentRegistration, action: str) -> _GraphState:
        state["lease"].agent_id = registration.agent_id
        state["registration"] = registration
        state["agent_type"] = registration.agent_type
        state["action"] = action
        self._advance(state, RequestState.agent_selected)
        return state

    def _rank_candidates(self, agent_type: str) -> List[AgentRegistration]:
        candidates = [
            r for r in self._deps.agents.list_agents_by_type(agent_type) if r.health_status in _HEALTH_RANK
        ]
        concurrency = self._deps.concurrency
        return sorted(candidates, key=lambda r: (_HEALTH_RANK[r.health_status], concurrency.in_flight(r.agent_id)))

    async def _node_fallback(self, state: _GraphState) -> _GraphState:
        """Second classification pass through a registered intent-classification agent."""
        request = state["request"]
        attempts = int(state.get("fallback_attempts") or 0)
        text = request.original_input.strip()
        classifiers = [
            r
            for r in self._rank_candidates(INTENT_CLASSIFICATION_AGENT_TYPE)
            if r.hooks.invoke is not None
        ]

        while text and classifiers and attempts < self._cfg.fallback_classification_attempts:
            attempts += 1
            registration = classifiers[0]
            try:
                classify_request = request.model_copy(update={"intent": Intent.intent_classification})
                output = await self._invoke_with_deadline(registration.hooks.invoke, classify_request, state)
            except _Cancelled:
                logger.info(
                    "Fallback classification cancelled; request_id=%s agent_id=%s", request.id, registration.agent_id
                )
                state["fallback_attempts"] = attempts
                state["failure"] = self._cancelled_failure()
                return state
            except Exception as exc:
                logger.warning(
                    "Fallback classification failed; agent_id=%s attempt=%d error=%s",
                    registration.agent_id,
                    attempts,
                    type(exc).__name__,
                )
                continue
            data = self._coerce_data(output)
            intent = Intent.parse(data.get("classified_intent"))
            if intent is None or intent in (Intent.unknown, request.intent):
                continue
            state["fallback_attempts"] = attempts
            state["request"] = request.model_copy(update={"intent": intent})
            state["intent_confidence"] = data.get("confidence")
            state["classification_reason"] = str(data.get("reason") or "fallback classification")
            self._advance(state, RequestState.intent_resolved)
            return state

        state["fallback_attempts"] = max(attempts, self._cfg.fallback_classification_attempts)
        state["failure"] = self._unknown_intent_failure(request.intent)
        return state

    def _unknown_intent_failure(self, intent: Intent) -> _Failure:
        available = sorted(
            {
                i.value
                for i, route in self._deps.router.routes.items()
                if self._deps.agents.list_agents_by_type(route.agent_type)
            }
        )
        suggestions = ["Rephrase the request with more detail", "Target a specific agent with agent_id"]
        if available:
            suggestions.append("Try one of the supported intents: " + ", ".join(available))
        return _Failure(
            reason=f"no capable agent for intent: {intent.value}",
            message=f"Unable to process intent: {intent.value}. No capable agent is available.",
            data={"suggested_actions": suggestions},
        )

    async def _node_authorize(self, state: _GraphState) -> _GraphState:
        """Capability, delegation, rate-limit, scope and approval checks."""
        request = state["request"]
        registration = state.get("registration")
        if registration is None:
            state["failure"] = _Failure(reason="no agent selected", message="No agent was selected for the request")
            return state
        action = str(state["action"])
        agent_type = registration.agent_type
        deps = self._deps

        authorization = deps.capabilities.validate_action(agent_type, action)
        if not authorization.ok:
            state["failure"] = _Failure(
                reason=authorization.reason,
                message=f"Agent type '{agent_type}' is not authorized to perform {action}",
            )
            return state
        capability = authorization.capability

        if request.delegation_chain:
            chain = list(request.delegation_chain)
            if chain[-1].strip().lower() != agent_type:
                chain.append(agent_type)
            delegation = deps.capabilities.validate_delegation_chain(chain)
            if not delegation.ok:
                state["failure"] = _Failure(reason=delegation.reason, message="Delegation chain rejected")
                return state

        decision = deps.rate_limiter.try_acquire(registration.agent_id, capability.rate_limit_per_minute)
        if not decision.allowed:
            error = RateLimitExceededError(registration.agent_id, capability.rate_limit_per_minute)
            state["failure"] = _Failure(
                reason=error.reason,
                message=str(error),
                data={"retry_after_seconds": round(decision.retry_after_seconds, 3)},
            )
            return state

        scope = self._scope.decide(action, capability)
        state["scope_tier"] = scope.scope_tier
        if scope.require_approval:
            approved = bool(request.approval_id) and deps.approvals.consume(
                str(request.approval_id), agent_id=registration.agent_id, action=action
            )
            if not approved:
                approval = deps.approvals.request(
                    request_id=request.id,
                    agent_id=registration.agent_id,
                    action=action,
                    scope_tier=scope.scope_tier,
                    reason=scope.reason or "approval required",
                )
                state["failure"] = _Failure(
                    reason="requires approval",
                    message=f"Action {action} requires approval before it can run",
                    status=RequestState.pending_approval,
                    data={"approval_id": approval.id, "scope_tier": scope.scope_tier.value},
                )
                return state

        self._advance(state, RequestState.validated)
        return state

    async def _node_invoke(self, state: _GraphState) -> _GraphState:
        """Invoke the selected agent's handler under the request deadline."""
        request = state["request"]
        registration = state.get("registration")
        if registration is None:
            state["failure"] = _Failure(reason="no agent selected", message="No agent was selected for the request")
            return state
        invoke = registration.hooks.invoke
        if invoke is None:
            error = HandlerFailureError(registration.agent_id, TypeError("agent handle is not invocable"))
            state["failure"] = _Failure(reason=error.reason, message=str(error))
            return state

        routed = request.model_copy(update={"action": state["action"]})
        try:
            output = await self._invoke_with_deadline(invoke, routed, state)
        except _Cancelled:
            logger.info("Handler cancelled; request_id=%s agent_id=%s", request.id, registration.agent_id)
            state["failure"] = self._cancelled_failure()
            return state
        except Exception as exc:
            error = HandlerFailureError(registration.agent_id, exc)
            logger.warning(
                "Handler failed; request_id=%s agent_id=%s error=%s",
                request.id,
                registration.agent_id,
                type(exc).__name__,
            )
            state["failure"] = _Failure(reason=error.reason, message=str(error))
            return state

        state["result"] = self._coerce_data(output)
        self._advance(state, RequestState.invoked)
        return state

    async def _node_finish(self, state: _GraphState) -> _GraphState:
        """Build the response and write the audit record."""
        request = state["request"]
        registration = state.get("registration")
        agent_id = registration.agent_id if registration is not None else None
        failure = state.get("failure")

        if failure is None:
            scope_tier = state.get("scope_tier")
            response = AgentResponse(
                success=True,
                agent_id=agent_id,
                data=dict(state.get("result") or {}),
                message=f"Request handled by {agent_id}",
                reason=(
                    f"intent={request.intent.value} agent={agent_id} "
                    f"scope={scope_tier.value if scope_tier is not None else 'unknown'}"
                ),
                request_id=request.id,
                intent=request.intent,
                scope_tier=scope_tier,
                status=RequestState.completed,
            )
        else:
            response = AgentResponse(
                success=False,
                agent_id=agent_id,
                data=dict(failure.data),
                message=failure.message,
                reason=failure.reason,
                request_id=request.id,
                intent=request.intent,
                scope_tier=state.get("scope_tier"),
                status=failure.status,
            )
        self._advance(state, response.status)
        logger.debug(
            "Request finished; request_id=%s trace=%s",
            request.id,
            ",".join(s.value for s in state["trace"]),
        )
        await self._audit(response, action=state.get("action") or request.action)
        state["response"] = response
        return state

    # ------------------------------------------------------------------
    # routing
    # ------------------------------------------------------------------

    def _route_after_resolve(self, state: _GraphState) -> str:
        if state.get("failure") is not None:
            return "finish"
        if state.get("needs_fallback"):
            return "fallback"
        return "select"

    def _route_after_select(self, state: _GraphState) -> str:
        if state.get("failure") is not None:
            return "finish"
        if state.get("needs_fallback"):
            return "fallback"
        return "authorize"

    def _route_after_fallback(self, state: _GraphState) -> str:
        if state.get("failure") is not None:
            return "finish"
        return "select"

    def _route_after_authorize(self, state: _GraphState) -> str:
        if state.get("failure") is not None:
            return "finish"
        return "invoke"

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _advance(state: _GraphState, to: RequestState) -> None:
        state["trace"] = [*state["trace"], to]

    @staticmethod
    def _is_cancelled(state: _GraphState) -> bool:
        event = state.get("cancel_event")
        return event is not None and event.is_set()

    @staticmethod
    async def _call(invoke: Any, request: AgentRequest) -> Any:
        result = invoke(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def _cancelled_failure() -> _Failure:
        return _Failure(reason="cancelled", message="Request cancelled before completion", status=RequestState.cancelled)

    async def _invoke_with_deadline(self, invoke: Any, request: AgentRequest, state: _GraphState) -> Any:
        return await self._run_with_deadline(self._call(invoke, request), state)

    async def _run_with_deadline(self, call: Coroutine[Any, Any, Any], state: _GraphState) -> Any:
        """
        Await ``call`` racing the request deadline and cancel event.

        Raises:
            _Cancelled: The deadline passed or the cancel event was set first.
        """
        if self._is_cancelled(state):
            call.close()
            raise _Cancelled()
        loop = asyncio.get_running_loop()
        deadline = state.get("deadline")
        cancel_event = state.get("cancel_event")

        task = asyncio.ensure_future(call)
        waiters = {task}
        cancel_waiter: Optional[asyncio.Future[Any]] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)
        remaining = None if deadline is None else max(0.0, deadline - loop.time())
        try:
            done, _ = await asyncio.wait(waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        if task in done:
            return task.result()
        raise _Cancelled()

    @staticmethod
    def _coerce_data(output: Any) -> Dict[str, Any]:
        if output is None:
            return {}
        if isinstance(output, dict):
            return dict(output)
        if isinstance(output, BaseModel):
            return output.model_dump(mode="json")
        return {"result": output}

    async def _audit(self, response: AgentResponse, *, action: Optional[str]) -> None:
        record = AuditRecord(
            audit_id=response.audit_id,
            agent_id=response.agent_id,
            action=action,
            reason=response.reason,
            success=response.success,
            timestamp=response.timestamp,
        )
        try:
            await self._deps.audit_sink.record(record)
        except Exception as exc:
            logger.warning("Audit sink failed; recording locally; error=%s", type(exc).__name__)
            log_audit_record(record, level=logging.WARNING)
