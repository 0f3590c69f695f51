"""Runtime policy for routed requests.

The policy layer decides, for an already authorized action, whether it may
run now:

- ``ScopePolicy``: classifies actions into inner-world, hybrid and real-world
  tiers and decides whether human approval is needed.
- ``ApprovalGate``: parks approvals and lets approved requests through once.
- ``SlidingWindowRateLimiter``: per-agent requests per rolling minute.
- ``ConcurrencyTracker``: per-agent in-flight operation ceilings.
"""

from .approvals import ApprovalGate
from .concurrency import ConcurrencyTracker
from .models import ScopeDecision, ScopePolicyConfig
from .rate_limit import RateLimitDecision, SlidingWindowRateLimiter
from .scope import ScopePolicy, action_verb

__all__ = [
    "ApprovalGate",
    "ConcurrencyTracker",
    "RateLimitDecision",
    "ScopeDecision",
    "ScopePolicy",
    "ScopePolicyConfig",
    "SlidingWindowRateLimiter",
    "action_verb",
]
