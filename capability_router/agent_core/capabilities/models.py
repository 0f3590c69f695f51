"""Capability data model.

``AgentCapability`` describes what one agent type is authorized to do. It is
immutable: registries swap whole capability objects rather than mutating them,
so a reader holding a reference always sees one consistent value.

``CapabilityDocument`` is the hot-reloadable aggregate read from YAML. Its
per-agent entries keep the raw lists as written by the operator so that the
validator can detect duplicates; ``to_capabilities`` converts them into
normalized ``AgentCapability`` objects.

Matching rules
--------------

- All names are compared case-insensitively (they are lower-cased on load).
- ``resource:*`` in ``allowed_actions`` permits every action on ``resource``;
  the same applies to ``tool:*`` in ``allowed_tools``.
- ``*`` in ``allowed_delegations`` permits delegating to any agent type.
- An empty ``allowed_actions`` permits nothing (fail closed).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from pydantic import Field, field_validator

from ..schemas.base import BaseSchema, FrozenSchema

WILDCARD = "*"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_name(value: str) -> str:
    """Normalize an action/tool/agent name for case-insensitive comparison."""
    return str(value).strip().lower()


def _normalize_set(values: Any) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    return frozenset(normalize_name(v) for v in values if str(v).strip())


def wildcard_of(name: str) -> str:
    """Return the ``prefix:*`` form of a ``prefix:suffix`` name."""
    prefix, sep, _ = name.partition(":")
    return f"{prefix}:{WILDCARD}" if sep else name


class AgentCapability(FrozenSchema):
    """Authorization profile of a single agent type."""

    name: str = "default"
    version: str = "1.0"

    rate_limit_per_minute: int = Field(default=100, ge=1)
    max_concurrent_operations: int = Field(default=10, ge=1)
    can_access_sensitive_data: bool = False

    allowed_actions: FrozenSet[str] = Field(default_factory=frozenset)
    allowed_tools: FrozenSet[str] = Field(default_factory=frozenset)
    allowed_delegations: FrozenSet[str] = Field(default_factory=frozenset)
    max_delegation_depth: int = Field(default=3, ge=0)

    requires_approval: bool = False
    actions_requiring_approval: FrozenSet[str] = Field(default_factory=frozenset)

    data_scopes: FrozenSet[str] = Field(default_factory=frozenset)
    cache_expiration: Optional[timedelta] = None
    last_updated: datetime = Field(default_factory=_utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "allowed_actions",
        "allowed_tools",
        "allowed_delegations",
        "actions_requiring_approval",
        "data_scopes",
        mode="before",
    )
    @classmethod
    def _lowercase_sets(cls, v: Any) -> FrozenSet[str]:
        return _normalize_set(v)

    @classmethod
    def deny_all(cls, name: str) -> "AgentCapability":
        """Fail-closed capability: no actions, no tools, no delegations."""
        return cls(name=name, version="0")

    @classmethod
    def with_actions(cls, name: str, *actions: str, **kwargs: Any) -> "AgentCapability":
        return cls(name=name, allowed_actions=frozenset(actions), **kwargs)

    def is_action_allowed(self, action: str) -> bool:
        """
        Check whether ``action`` (``resource:action``) is permitted.

        Args:
            action: The action name to check.

        Returns:
            True if the exact action or its ``resource:*`` wildcard is listed.
        """
        if not action or not self.allowed_actions:
            return False
        key = normalize_name(action)
        return key in self.allowed_actions or wildcard_of(key) in self.allowed_actions

    def is_tool_allowed(self, tool: str, action: str) -> bool:
        """Check whether ``tool:action`` is permitted (``tool:*`` wildcard honoured)."""
        if not tool or not action:
            return False
        key = f"{normalize_name(tool)}:{normalize_name(action)}"
        return key in self.allowed_tools or wildcard_of(key) in self.allowed_tools

    def can_delegate_to(self, agent_type: str) -> bool:
        if not agent_type:
            return False
        return normalize_name(agent_type) in self.allowed_delegations or WILDCARD in self.allowed_delegations

    def requires_action_approval(self, action: str) -> bool:
        """
        Decide whether ``action`` needs human approval under this capability.

        With ``requires_approval`` unset nothing needs approval. With it set and
        an empty ``actions_requiring_approval``, every action does. Otherwise
        only the listed actions (exact, ``resource:*`` or ``*``) do.
        """
        if not self.requires_approval:
            return False
        if not self.actions_requiring_approval:
            return True
        key = normalize_name(action)
        listed = self.actions_requiring_approval
        return key in listed or wildcard_of(key) in listed or WILDCARD in listed

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.cache_expiration is None:
            return False
        now = now or _utc_now()
        return self.last_updated + self.cache_expiration <= now


class AgentCapabilityEntry(BaseSchema):
    """One agent's entry in a ``CapabilityDocument``, as written in YAML."""

    rate_limit_per_minute: int = 100
    max_concurrent_operations: int = 10
    can_access_sensitive_data: bool = False

    allowed_actions: List[str] = Field(default_factory=list)
    allowed_tools: List[str] = Field(default_factory=list)
    allowed_delegations: List[str] = Field(default_factory=list)
    max_delegation_depth: int = 3

    requires_approval: bool = False
    actions_requiring_approval: List[str] = Field(default_factory=list)

    data_scopes: List[str] = Field(default_factory=list)
    cache_expiration_seconds: Optional[float] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_capability(self, name: str, *, version: str, loaded_at: Optional[datetime] = None) -> AgentCapability:
        expiration = (
            timedelta(seconds=self.cache_expiration_seconds) if self.cache_expiration_seconds is not None else None
        )
        metadata = dict(self.metadata)
        if self.description:
            metadata.setdefault("description", self.description)
        return AgentCapability(
            name=name,
            version=version,
            rate_limit_per_minute=self.rate_limit_per_minute,
            max_concurrent_operations=self.max_concurrent_operations,
            can_access_sensitive_data=self.can_access_sensitive_data,
            allowed_actions=frozenset(self.allowed_actions),
            allowed_tools=frozenset(self.allowed_tools),
            allowed_delegations=frozenset(self.allowed_delegations),
            max_delegation_depth=self.max_delegation_depth,
            requires_approval=self.requires_approval,
            actions_requiring_approval=frozenset(self.actions_requiring_approval),
            data_scopes=frozenset(self.data_scopes),
            cache_expiration=expiration,
            last_updated=loaded_at or _utc_now(),
            metadata=metadata,
        )


class CapabilityDocument(FrozenSchema):
    """Hot-reloadable aggregate: schema version plus per-agent-type entries."""

    version: str
    agents: Dict[str, AgentCapabilityEntry] = Field(default_factory=dict)
    loaded_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def empty(cls) -> "CapabilityDocument":
        return cls(version="0")

    def agent_types(self) -> Iterable[str]:
        return (normalize_name(k) for k in self.agents)

    def to_capabilities(self) -> Dict[str, AgentCapability]:
        """Build normalized capabilities keyed by lower-cased agent type."""
        return {
            normalize_name(agent_type): entry.to_capability(
                normalize_name(agent_type), version=self.version, loaded_at=self.loaded_at
            )
            for agent_type, entry in self.agents.items()
        }
