"""Registry of live agent instances.

Agents are registered by id together with their agent type and a handle (the
object the orchestrator invokes). Optional lifecycle hooks are discovered
once, at registration time, and stored on the ``AgentRegistration``:

- ``on_start`` (or ``start``): awaited before the agent becomes visible;
- ``on_health_check`` (or ``health_check``): used by ``health_check``;
- ``on_stop`` (or ``stop``): called on unregistration;
- ``close`` / ``aclose`` / ``__exit__``: disposal after ``on_stop``.

The invocation entry point is resolved the same way: a ``handle`` method if
present, otherwise the handle itself when it is callable.

Each hook may be a plain function or a coroutine function.

The registration map is copy-on-write: writers rebuild it under a
``threading.Lock`` and publish it with one assignment, readers never lock.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .capabilities.models import normalize_name
from .errors import AgentAlreadyRegisteredError, NotFoundError
from .schemas.domain import HealthCheckResult, HealthStatus

logger = logging.getLogger(__name__)

Hook = Callable[[], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _first_callable(handle: Any, *names: str) -> Optional[Hook]:
    for name in names:
        candidate = getattr(handle, name, None)
        if callable(candidate):
            return candidate
    return None


@dataclass(frozen=True)
class LifecycleHooks:
    """Lifecycle callables resolved from an agent handle."""

    on_start: Optional[Hook] = None
    on_health_check: Optional[Hook] = None
    on_stop: Optional[Hook] = None
    dispose: Optional[Hook] = None
    invoke: Optional[Callable[..., Any]] = None

    @classmethod
    def resolve(cls, handle: Any) -> "LifecycleHooks":
        dispose = _first_callable(handle, "aclose", "close")
        if dispose is None and callable(getattr(handle, "__exit__", None)):

            def dispose() -> Any:
                return handle.__exit__(None, None, None)

        return cls(
            on_start=_first_callable(handle, "on_start", "start"),
            on_health_check=_first_callable(handle, "on_health_check", "health_check"),
            on_stop=_first_callable(handle, "on_stop", "stop"),
            dispose=dispose,
            invoke=_first_callable(handle, "handle") or (handle if callable(handle) else None),
        )


@dataclass(frozen=True)
class AgentRegistration:
    agent_id: str
    agent_type: str
    handle: Any
    hooks: LifecycleHooks = field(default_factory=LifecycleHooks)
    is_factory_created: bool = False
    health_status: HealthStatus = HealthStatus.unknown
    last_health_check: Optional[HealthCheckResult] = None
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Mapping[str, Any] = field(default_factory=dict)


class AgentRegistry:
    """
    Thread-safe registry of agent instances keyed by agent id.

    Args:
        health_check_timeout: Seconds allowed for one ``on_health_check`` call.
    """

    def __init__(self, *, health_check_timeout: float = 5.0) -> None:
        self._lock = threading.Lock()
        self._agents: Mapping[str, AgentRegistration] = MappingProxyType({})
        self._pending: Set[str] = set()
        self._health_check_timeout = health_check_timeout
        self._probe_task: Optional[asyncio.Task[None]] = None
        self._unregister_listeners: Tuple[Callable[[str], Any], ...] = ()

    def on_unregistered(self, listener: Callable[[str], Any]) -> Callable[[], None]:
        """
        Call ``listener(agent_id)`` after every successful unregistration.

        Returns:
            A callable that removes the listener again.
        """
        with self._lock:
            self._unregister_listeners = self._unregister_listeners + (listener,)

        def _remove() -> None:
            with self._lock:
                self._unregister_listeners = tuple(x for x in self._unregister_listeners if x is not listener)

        return _remove

    def _publish(self, updated: Dict[str, AgentRegistration]) -> None:
        self._agents = MappingProxyType(updated)

    async def register_agent(
        self,
        agent_id: str,
        agent_type: str,
        handle: Any,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        is_factory_created: bool = False,
    ) -> AgentRegistration:
        """
        Register an agent instance and run its ``on_start`` hook.

        Args:
            agent_id: Unique id of the instance.
            agent_type: The capability agent type the instance belongs to.
            handle: The object the orchestrator invokes via ``handle(request)``.
            metadata: Free-form descriptive data.
            is_factory_created: Whether the instance was built by a factory.

        Returns:
            The stored registration.

        Raises:
            AgentAlreadyRegisteredError: If ``agent_id`` is already registered.
            Exception: Whatever ``on_start`` raises; the agent is then not
                registered.
        """
        if not agent_id:
            raise ValueError("agent_id must be non-empty")
        with self._lock:
            if agent_id in self._agents or agent_id in self._pending:
                raise AgentAlreadyRegisteredError(agent_id)
            self._pending.add(agent_id)

        registration = AgentRegistration(
            agent_id=agent_id,
            agent_type=normalize_name(agent_type),
            handle=handle,
            hooks=LifecycleHooks.resolve(handle),
            is_factory_created=is_factory_created,
            metadata=dict(metadata or {}),
        )
        try:
            if registration.hooks.on_start is not None:
                await _maybe_await(registration.hooks.on_start())
        except BaseException:
            with self._lock:
                self._pending.discard(agent_id)
            logger.error("Agent start hook failed; agent_id=%s", agent_id)
            raise

        with self._lock:
            self._pending.discard(agent_id)
            updated = dict(self._agents)
            updated[agent_id] = registration
            self._publish(updated)
        logger.info("Registered agent; agent_id=%s agent_type=%s", agent_id, registration.agent_type)
        return registration

    async def unregister_agent(self, agent_id: str) -> bool:
        """
        Remove an agent, then run its ``on_stop`` and dispose hooks once each.

        Hook failures are logged and do not propagate.

        Returns:
            True if the agent was registered, False otherwise.
        """
        with self._lock:
            registration = self._agents.get(agent_id)
            if registration is None:
                return False
            updated = dict(self._agents)
            del updated[agent_id]
            self._publish(updated)

        for label, hook in (("on_stop", registration.hooks.on_stop), ("dispose", registration.hooks.dispose)):
            if hook is None:
                continue
            try:
                await _maybe_await(hook())
            except Exception as exc:
                logger.warning(
                    "Agent %s hook failed; agent_id=%s error=%s", label, agent_id, type(exc).__name__
                )
        for listener in self._unregister_listeners:
            try:
                listener(agent_id)
            except Exception as exc:
                logger.warning("Unregister listener failed; agent_id=%s error=%s", agent_id, type(exc).__name__)
        logger.info("Unregistered agent; agent_id=%s", agent_id)
        return True

    def get_agent(self, agent_id: str) -> Any:
        registration = self._agents.get(agent_id)
        return registration.handle if registration is not None else None

    def get_registration(self, agent_id: str) -> Optional[AgentRegistration]:
        return self._agents.get(agent_id)

    def list_agents(self) -> List[AgentRegistration]:
        return list(self._agents.values())

    def list_agents_by_type(self, agent_type: str) -> List[AgentRegistration]:
        key = normalize_name(agent_type)
        return [r for r in self._agents.values() if r.agent_type == key]

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    # ------------------------------------------------------------------
    # health
    # ------------------------------------------------------------------

    async def health_check(self, agent_id: str, *, timeout: Optional[float] = None) -> HealthCheckResult:
        """
        Probe one agent and record its health status.

        No hook yields ``unknown``; a failing or timed-out hook yields
        ``unhealthy``. Only the registration's ``health_status`` is updated.

        Raises:
            NotFoundError: If ``agent_id`` is not registered.
        """
        registration = self._agents.get(agent_id)
        if registration is None:
            raise NotFoundError("agent", agent_id)

        hook = registration.hooks.on_health_check
        if hook is None:
            result = HealthCheckResult.unknown("Agent exposes no health check")
        else:
            limit = self._health_check_timeout if timeout is None else timeout
            try:
                raw = await asyncio.wait_for(_maybe_await(hook()), timeout=limit)
                result = self._coerce_health(raw)
            except asyncio.TimeoutError:
                result = HealthCheckResult.unhealthy(f"Health check timed out after {limit}s")
            except Exception as exc:
                result = HealthCheckResult.unhealthy(
                    "Health check raised an exception", details={"error": type(exc).__name__}
                )

        with self._lock:
            current = self._agents.get(agent_id)
            if current is not None:
                updated = dict(self._agents)
                updated[agent_id] = replace(current, health_status=result.status, last_health_check=result)
                self._publish(updated)
        if result.status is not HealthStatus.healthy:
            logger.warning("Agent health check; agent_id=%s status=%s", agent_id, result.status.value)
        return result

    @staticmethod
    def _coerce_health(raw: Any) -> HealthCheckResult:
        if isinstance(raw, HealthCheckResult):
            return raw
        if isinstance(raw, HealthStatus):
            return HealthCheckResult(status=raw, description=f"Agent reported {raw.value}")
        if isinstance(raw, bool):
            return HealthCheckResult.healthy() if raw else HealthCheckResult.unhealthy("Agent reported unhealthy")
        if raw is None:
            return HealthCheckResult.healthy()
        return HealthCheckResult.unknown(f"Unrecognised health check result: {type(raw).__name__}")

    async def health_check_all(self) -> Dict[str, HealthCheckResult]:
        """Probe every registered agent concurrently."""
        ids = list(self._agents)
        results = await asyncio.gather(*(self.health_check(i) for i in ids), return_exceptions=True)
        out: Dict[str, HealthCheckResult] = {}
        for agent_id, result in zip(ids, results):
            if isinstance(result, NotFoundError):
                continue
            if isinstance(result, BaseException):
                raise result
            out[agent_id] = result
        return out

    def start_health_probe(self, interval: float) -> "asyncio.Task[None]":
        """Start periodic probing in the running event loop."""
        if self._probe_task is not None and not self._probe_task.done():
            return self._probe_task

        async def _probe() -> None:
            while True:
                await self.health_check_all()
                await asyncio.sleep(interval)

        self._probe_task = asyncio.get_running_loop().create_task(_probe(), name="agent-health-probe")
        return self._probe_task

    async def stop_health_probe(self) -> None:
        task, self._probe_task = self._probe_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> None:
        """Stop probing and unregister every agent."""
        await self.stop_health_probe()
        for agent_id in list(self._agents):
            await self.unregister_agent(agent_id)

