from __future__ import annotations

import pytest

from capability_router.agent_core.errors import (
    AgentAlreadyRegisteredError,
    ApprovalRequiredError,
    AuthorizationDeniedError,
    CapabilityFileNotFoundError,
    CapabilityRouterError,
    ClassificationFailedError,
    ConfigurationInvalidError,
    HandlerFailureError,
    NotFoundError,
    RateLimitExceededError,
)


@pytest.mark.parametrize(
    ("error", "reason"),
    [
        (AuthorizationDeniedError("contact", "email:send"), "authorization denied: email:send"),
        (RateLimitExceededError("contact-1", 10), "Rate limit exceeded for agent contact-1 (10/min)"),
        (ApprovalRequiredError("ap-1", "email:send"), "requires approval"),
        (ClassificationFailedError(), "classification failed"),
        (HandlerFailureError("contact-1", KeyError("id")), "handler failure: KeyError: 'id'"),
        (ConfigurationInvalidError(["version: Version is required"]), "configuration invalid"),
        (CapabilityFileNotFoundError("caps.yaml"), "not found"),
        (NotFoundError("agent", "ghost"), "not found: agent ghost"),
        (AgentAlreadyRegisteredError("contact-1"), "agent already registered"),
    ],
)
def test_errors_expose_stable_reason(error: CapabilityRouterError, reason: str) -> None:
    assert isinstance(error, CapabilityRouterError)
    assert error.reason == reason


def test_configuration_error_lists_every_problem() -> None:
    error = ConfigurationInvalidError(["a: bad", "b: worse"], file_path="caps.yaml")
    assert error.errors == ["a: bad", "b: worse"]
    assert "caps.yaml" in str(error)
    assert "b: worse" in str(error)
