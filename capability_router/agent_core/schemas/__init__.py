"""Schemas shared across the routing core.

- ``BaseSchema``: strict pydantic base (``extra="forbid"``).
- Domain enums (``Intent``, ``ScopeTier``, ``HealthStatus``, ``RequestState``).
- Request/response envelopes and audit/approval records.
"""

from .base import BaseSchema, FrozenSchema
from .domain import (
    AgentRequest,
    AgentResponse,
    Approval,
    ApprovalDecision,
    AuditRecord,
    HealthCheckResult,
    HealthStatus,
    Intent,
    RequestState,
    ScopeTier,
    UrgencyLevel,
)

__all__ = [
    "BaseSchema",
    "FrozenSchema",
    "AgentRequest",
    "AgentResponse",
    "Approval",
    "ApprovalDecision",
    "AuditRecord",
    "HealthCheckResult",
    "HealthStatus",
    "Intent",
    "RequestState",
    "ScopeTier",
    "UrgencyLevel",
]
