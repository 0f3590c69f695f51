from __future__ import annotations

"""Scope-tier classification.

Every action is placed in one of three tiers by its external effect:

- ``inner_world``: reads and analysis with no side effects. Only schema
  validation applies; never gated by approval.
- ``hybrid``: drafts and internal state changes. Gated only when the agent's
  capability requires approval for the action.
- ``real_world``: irreversible external effects (sending, paying, deleting).
  Gated when ``require_approval_for_real_world`` is set or the capability
  requires it.

Verbs not found in any table are treated as ``hybrid``.
"""

import logging
import re

from ..capabilities.models import AgentCapability, normalize_name, wildcard_of
from ..schemas.domain import ScopeTier
from .models import HYBRID_VERBS, INNER_WORLD_VERBS, REAL_WORLD_VERBS, ScopeDecision, ScopePolicyConfig

logger = logging.getLogger(__name__)

_VERB_SPLIT = re.compile(r"[_.\-\s]+")


def action_verb(action: str) -> str:
    """Return the verb of ``resource:verb`` (or the leading token of a bare action)."""
    name = normalize_name(action)
    _, sep, verb = name.partition(":")
    token = verb if sep else name
    parts = _VERB_SPLIT.split(token)
    return parts[0] if parts else ""


class ScopePolicy:
    """Classify actions into scope tiers and decide approval gating."""

    def __init__(self, config: ScopePolicyConfig | None = None) -> None:
        self._cfg = config or ScopePolicyConfig()
        self._overrides = {normalize_name(k): v for k, v in self._cfg.scope_overrides.items()}

    @property
    def config(self) -> ScopePolicyConfig:
        return self._cfg

    def classify_scope(self, action: str) -> ScopeTier:
        """
        Classify ``action`` into a scope tier.

        Precedence: exact override, ``resource:*`` override, verb table,
        then ``hybrid``.
        """
        key = normalize_name(action)
        override = self._overrides.get(key) or self._overrides.get(wildcard_of(key))
        if override is not None:
            return override

        verb = action_verb(key)
        if verb in INNER_WORLD_VERBS:
            return ScopeTier.inner_world
        if verb in REAL_WORLD_VERBS:
            return ScopeTier.real_world
        if verb not in HYBRID_VERBS:
            logger.debug("Unknown action verb; defaulting to hybrid; action=%s", key)
        return ScopeTier.hybrid

    def decide(self, action: str, capability: AgentCapability) -> ScopeDecision:
        tier = self.classify_scope(action)
        if tier is ScopeTier.inner_world:
            return ScopeDecision(scope_tier=tier, require_approval=False, reason="inner-world action")

        capability_requires = capability.requires_action_approval(action)
        if tier is ScopeTier.hybrid:
            return ScopeDecision(
                scope_tier=tier,
                require_approval=capability_requires,
                reason="capability requires approval" if capability_requires else "hybrid action",
            )

        require = self._cfg.require_approval_for_real_world or capability_requires
        return ScopeDecision(
            scope_tier=tier,
            require_approval=require,
            reason="real-world action requires approval" if require else "real-world action",
        )
