from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import ScopeTier

INNER_WORLD_VERBS = frozenset({"read", "list", "get", "search", "analyze", "classify", "summarize"})
HYBRID_VERBS = frozenset({"create", "update", "assign", "schedule", "draft", "generate", "recommend"})
REAL_WORLD_VERBS = frozenset({"send", "delete", "call", "pay", "publish", "execute", "purchase", "sign"})


class ScopePolicyConfig(BaseSchema):
    """
    Configuration for scope-tier classification and approval gating.

    Actions are classified by their verb (the part after ``resource:``).
    ``scope_overrides`` takes precedence and accepts exact actions or
    ``resource:*`` keys.
    """

    scope_overrides: dict[str, ScopeTier] = Field(
        default_factory=dict,
        description="Explicit action to scope tier mapping, e.g. {'email:draft': 'inner_world'}.",
    )
    require_approval_for_real_world: bool = True
    approval_ttl_seconds: float = Field(default=900.0, ge=0.0, le=86400.0)


@dataclass(frozen=True)
class ScopeDecision:
    """
    Result of classifying an action and deciding its approval requirement.

    Attributes:
        scope_tier: The tier the action falls into.
        require_approval: Whether a human must approve before invocation.
        reason: Short explanation of how the tier was chosen.
    """

    scope_tier: ScopeTier
    require_approval: bool
    reason: Optional[str] = None
