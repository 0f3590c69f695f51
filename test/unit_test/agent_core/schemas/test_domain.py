from __future__ import annotations

import pytest
from pydantic import ValidationError

from capability_router.agent_core.schemas.domain import (
    AgentRequest,
    AgentResponse,
    HealthCheckResult,
    HealthStatus,
    Intent,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("contact_management", Intent.contact_management),
        ("Contact Management", Intent.contact_management),
        ("scheduling-and-tasks", Intent.scheduling_and_tasks),
        ("generalinquiry", Intent.general_inquiry),
        (Intent.communication, Intent.communication),
        ("", None),
        (None, None),
        ("nonsense", None),
    ],
)
def test_intent_parse(raw, expected) -> None:
    assert Intent.parse(raw) is expected


def test_response_requires_reason() -> None:
    with pytest.raises(ValidationError):
        AgentResponse(success=True, reason="")


def test_responses_get_distinct_audit_ids() -> None:
    first = AgentResponse(success=True, reason="ok")
    second = AgentResponse(success=True, reason="ok")
    assert first.audit_id != second.audit_id


def test_request_defaults_and_strictness() -> None:
    request = AgentRequest()
    assert request.intent is Intent.unknown
    assert request.delegation_chain == []
    assert request.id
    with pytest.raises(ValidationError):
        AgentRequest(unexpected=1)


def test_health_result_factories() -> None:
    assert HealthCheckResult.healthy().status is HealthStatus.healthy
    assert HealthCheckResult.degraded("slow").status is HealthStatus.degraded
    assert HealthCheckResult.unhealthy("down").status is HealthStatus.unhealthy
    assert HealthCheckResult.unknown().status is HealthStatus.unknown
