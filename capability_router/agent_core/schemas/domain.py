from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Intent(str, Enum):
    unknown = "unknown"
    contact_management = "contact_management"
    interaction_analysis = "interaction_analysis"
    scheduling_and_tasks = "scheduling_and_tasks"
    communication = "communication"
    market_intelligence = "market_intelligence"
    general_inquiry = "general_inquiry"
    data_analysis = "data_analysis"
    report_generation = "report_generation"
    workflow_automation = "workflow_automation"
    business_intelligence = "business_intelligence"
    intent_classification = "intent_classification"
    resource_management = "resource_management"
    service_provider_recommendation = "service_provider_recommendation"

    @classmethod
    def parse(cls, value: Any) -> Optional["Intent"]:
        """Parse an intent name leniently (case, spaces and dashes ignored)."""
        if isinstance(value, Intent):
            return value
        if value is None:
            return None
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        if not key:
            return None
        for member in cls:
            if member.value == key or member.value.replace("_", "") == key:
                return member
        return None


class UrgencyLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class HealthStatus(str, Enum):
    healthy = "healthy"
    degraded = "degraded"
    unhealthy = "unhealthy"
    unknown = "unknown"


class ScopeTier(str, Enum):
    """Risk classification of an action by its external effect."""

    inner_world = "inner_world"
    hybrid = "hybrid"
    real_world = "real_world"


class RequestState(str, Enum):
    received = "received"
    intent_resolved = "intent_resolved"
    agent_selected = "agent_selected"
    validated = "validated"
    invoked = "invoked"
    completed = "completed"
    failed = "failed"
    pending_approval = "pending_approval"
    cancelled = "cancelled"


class ApprovalDecision(str, Enum):
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


class AgentRequest(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))

    intent: Intent = Intent.unknown
    original_input: str = ""
    context: Dict[str, Any] = Field(default_factory=dict)

    agent_id: Optional[str] = Field(default=None, description="Explicit target agent instance.")
    action: Optional[str] = Field(default=None, description="Overrides the action derived from the intent route.")
    delegation_chain: List[str] = Field(
        default_factory=list,
        description="Agent types already traversed by this request, oldest first.",
    )
    approval_id: Optional[str] = None


class AgentResponse(BaseSchema):
    success: bool
    agent_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    message: str = ""

    audit_id: UUID = Field(default_factory=uuid4)
    reason: str = Field(min_length=1)

    request_id: Optional[str] = None
    intent: Optional[Intent] = None
    scope_tier: Optional[ScopeTier] = None
    status: RequestState = RequestState.completed
    timestamp: datetime = Field(default_factory=_utc_now)


class AuditRecord(BaseSchema):
    audit_id: UUID
    agent_id: Optional[str] = None
    action: Optional[str] = None
    reason: str
    success: bool
    timestamp: datetime = Field(default_factory=_utc_now)


class Approval(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    request_id: str

    agent_id: str
    action: str
    scope_tier: ScopeTier

    reason: str
    requested_at: datetime = Field(default_factory=_utc_now)
    expires_at: Optional[datetime] = None

    decision: Optional[ApprovalDecision] = None
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None
    consumed: bool = False


class HealthCheckResult(BaseSchema):
    status: HealthStatus = HealthStatus.unknown
    description: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)
    checked_at: datetime = Field(default_factory=_utc_now)
    reason: str = "Health check completed"

    @classmethod
    def healthy(cls, description: str = "Agent is healthy") -> "HealthCheckResult":
        return cls(status=HealthStatus.healthy, description=description, reason="Agent passed health check")

    @classmethod
    def degraded(cls, description: str, details: Optional[Dict[str, Any]] = None) -> "HealthCheckResult":
        return cls(
            status=HealthStatus.degraded,
            description=description,
            details=details or {},
            reason="Agent is experiencing issues but still functional",
        )

    @classmethod
    def unhealthy(cls, description: str, details: Optional[Dict[str, Any]] = None) -> "HealthCheckResult":
        return cls(
            status=HealthStatus.unhealthy,
            description=description,
            details=details or {},
            reason="Agent failed health check",
        )

    @classmethod
    def unknown(cls, description: str = "Agent health status is unknown") -> "HealthCheckResult":
        return cls(
            status=HealthStatus.unknown,
            description=description,
            reason="Unable to determine agent health status",
        )
