"""Capability registry.

The registry maps an agent type to its ``AgentCapability`` and answers the
authorization questions the orchestrator asks on every request.

Concurrency model
-----------------

Three maps are kept as immutable snapshots (explicit capabilities, per-type
defaults, and the global default). Writers build a new dict under
``_write_lock`` and publish it with a single reference assignment; readers
never lock and always observe either the previous or the next snapshot, never
a partially updated one. Hot reload uses ``replace_all`` to swap the whole
explicit map in one step.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from ..errors import AuthorizationDeniedError
from .models import AgentCapability, normalize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Outcome of an authorization check.

    Attributes:
        ok: Whether the subject is permitted.
        capability: The effective capability the decision was made against.
        reason: Stable reason string; ``"allowed"`` on success.
    """

    ok: bool
    capability: AgentCapability
    reason: str

    def __bool__(self) -> bool:
        return self.ok


class CapabilityRegistry:
    """
    Thread-safe, in-memory mapping of agent types to capabilities.

    Resolution order for ``get_effective_capability``:

    1. the explicit capability registered for the type; an expired one is
       refreshed through the refresher (see ``set_refresher``) when set;
    2. the default capability set for the type;
    3. the global default for unknown agents, if configured;
    4. ``AgentCapability.deny_all``.
    """

    def __init__(self, *, global_default: Optional[AgentCapability] = None) -> None:
        self._write_lock = threading.Lock()
        self._capabilities: Mapping[str, AgentCapability] = MappingProxyType({})
        self._defaults: Mapping[str, AgentCapability] = MappingProxyType({})
        self._global_default: Optional[AgentCapability] = global_default
        self._version: str = "0"
        self._refresher: Optional[Callable[[], None]] = None

    @property
    def version(self) -> str:
        """Version of the last document applied through ``replace_all``."""
        return self._version

    # ------------------------------------------------------------------
    # writers
    # ------------------------------------------------------------------

    def register_capability(self, agent_type: str, capability: AgentCapability) -> None:
        """Register or replace the explicit capability for ``agent_type`` (last writer wins)."""
        key = normalize_name(agent_type)
        with self._write_lock:
            updated = dict(self._capabilities)
            updated[key] = capability
            self._capabilities = MappingProxyType(updated)
        logger.debug("Registered capability; agent_type=%s version=%s", key, capability.version)

    def set_default_capability(self, agent_type: str, capability: AgentCapability) -> None:
        key = normalize_name(agent_type)
        with self._write_lock:
            updated = dict(self._defaults)
            updated[key] = capability
            self._defaults = MappingProxyType(updated)

    def set_global_default(self, capability: Optional[AgentCapability]) -> None:
        """Set the capability applied to agent types with no explicit or per-type default."""
        with self._write_lock:
            self._global_default = capability

    def set_refresher(self, refresher: Optional[Callable[[], None]]) -> None:
        """
        Set the callable used to re-resolve expired explicit capabilities.

        The refresher is expected to repopulate the registry (normally via
        ``replace_all``); ``CapabilitySource.bind`` installs one that forces a
        reload of the capability file.
        """
        with self._write_lock:
            self._refresher = refresher

    def replace_all(self, capabilities: Mapping[str, AgentCapability], *, version: str = "") -> None:
        """
        Atomically swap the explicit capability map.

        Args:
            capabilities: New capabilities keyed by agent type.
            version: Version of the source document, kept for diagnostics.
        """
        snapshot = MappingProxyType({normalize_name(k): v for k, v in capabilities.items()})
        with self._write_lock:
            self._capabilities = snapshot
            self._version = version or self._version
        logger.info("Capability registry replaced; agents=%d version=%s", len(snapshot), self._version)

    # ------------------------------------------------------------------
    # readers (lock-free)
    # ------------------------------------------------------------------

    def get_capability(self, agent_type: str) -> Optional[AgentCapability]:
        return self._capabilities.get(normalize_name(agent_type))

    def get_default_capability(self, agent_type: str) -> Optional[AgentCapability]:
        return self._defaults.get(normalize_name(agent_type))

    def get_all_capabilities(self) -> Mapping[str, AgentCapability]:
        """Return a read-only view of the current explicit capability snapshot."""
        return self._capabilities

    def get_effective_capability(
        self, agent_type: str, *, now: Optional[datetime] = None
    ) -> AgentCapability:
        """
        Resolve the capability that applies to ``agent_type``.

        Args:
            agent_type: The agent type to resolve.
            now: Reference time for expiry checks (defaults to the current time).

        Returns:
            The effective capability. Never ``None``: unknown types fall back
            to a deny-all capability.
        """
        key = normalize_name(agent_type)
        explicit = self._capabilities.get(key)
        if explicit is not None:
            if not explicit.is_expired(now):
                return explicit
            refreshed = self._refresh_expired(key, now)
            if refreshed is not None:
                return refreshed
            logger.debug("Capability expired; resolving defaults; agent_type=%s", key)

        default = self._defaults.get(key)
        if default is not None:
            return default
        if self._global_default is not None:
            return self._global_default
        return AgentCapability.deny_all(key)

    def _refresh_expired(self, key: str, now: Optional[datetime]) -> Optional[AgentCapability]:
        refresher = self._refresher
        if refresher is None:
            return None
        logger.debug("Capability expired; refreshing; agent_type=%s", key)
        try:
            refresher()
        except Exception as exc:
            logger.warning("Capability refresh failed; agent_type=%s error=%s", key, type(exc).__name__)
            return None
        candidate = self._capabilities.get(key)
        if candidate is None or candidate.is_expired(now):
            return None
        return candidate

    def is_action_allowed(self, agent_type: str, action: str) -> bool:
        return self.get_effective_capability(agent_type).is_action_allowed(action)

    def is_tool_allowed(self, agent_type: str, tool: str, action: str) -> bool:
        return self.get_effective_capability(agent_type).is_tool_allowed(tool, action)

    def can_delegate_to(self, source_agent_type: str, target_agent_type: str, *, depth: int = 1) -> bool:
        """
        Check a single delegation hop.

        Args:
            source_agent_type: The delegating agent type.
            target_agent_type: The agent type receiving the delegation.
            depth: Length of the delegation chain including this hop.

        Returns:
            True if the source may delegate to the target and ``depth`` does
            not exceed the source's ``max_delegation_depth``.
        """
        capability = self.get_effective_capability(source_agent_type)
        return capability.can_delegate_to(target_agent_type) and depth <= capability.max_delegation_depth

    def validate_delegation_chain(self, chain: Sequence[str]) -> AuthorizationResult:
        """
        Validate every hop of a delegation chain.

        The chain lists agent types oldest first. Each consecutive pair must
        be an allowed delegation, and the number of hops may not exceed the
        originating agent's ``max_delegation_depth``.
        """
        types = [normalize_name(t) for t in chain if str(t).strip()]
        origin = self.get_effective_capability(types[0]) if types else AgentCapability.deny_all("")
        hops = len(types) - 1
        if hops <= 0:
            return AuthorizationResult(ok=True, capability=origin, reason="allowed")
        if hops > origin.max_delegation_depth:
            return AuthorizationResult(
                ok=False,
                capability=origin,
                reason=f"delegation denied: depth {hops} exceeds {origin.max_delegation_depth}",
            )
        for depth, (source, target) in enumerate(zip(types, types[1:]), start=1):
            if not self.can_delegate_to(source, target, depth=depth):
                return AuthorizationResult(
                    ok=False,
                    capability=self.get_effective_capability(source),
                    reason=f"delegation denied: {source} -> {target}",
                )
        return AuthorizationResult(ok=True, capability=origin, reason="allowed")

    def validate_action(self, agent_type: str, action: str) -> AuthorizationResult:
        """
        Check whether ``agent_type`` may perform ``action``.

        Returns:
            An ``AuthorizationResult``; on denial ``reason`` is
            ``"authorization denied: <action>"``.
        """
        capability = self.get_effective_capability(agent_type)
        if capability.is_action_allowed(action):
            return AuthorizationResult(ok=True, capability=capability, reason="allowed")
        return AuthorizationResult(ok=False, capability=capability, reason=f"authorization denied: {action}")

    def require_action(self, agent_type: str, action: str) -> AgentCapability:
        """Like ``validate_action`` but raises ``AuthorizationDeniedError`` on denial."""
        result = self.validate_action(agent_type, action)
        if not result.ok:
            raise AuthorizationDeniedError(agent_type, action)
        return result.capability

    def require_tool(self, agent_type: str, tool: str, action: str) -> AgentCapability:
        capability = self.get_effective_capability(agent_type)
        if not capability.is_tool_allowed(tool, action):
            raise AuthorizationDeniedError(agent_type, f"{tool}:{action}", kind="tool")
        return capability

    def agent_types(self) -> Iterable[str]:
        return tuple(self._capabilities)
