"""Error types for the routing core.

Defines a small hierarchy of exceptions raised by registries, the capability
source and the orchestrator. Each error exposes a stable ``reason`` string that
the orchestrator copies verbatim into failed responses.
"""

from __future__ import annotations

from typing import Sequence


class CapabilityRouterError(Exception):
    """Base error for all routing-core exceptions."""

    reason: str = "error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class AuthorizationDeniedError(CapabilityRouterError):
    """Raised when an action, tool or delegation is not in the effective capability."""

    def __init__(self, agent_type: str, subject: str, *, kind: str = "action") -> None:
        self.agent_type = agent_type
        self.subject = subject
        super().__init__(
            f"Agent '{agent_type}' is not authorized to perform {kind}: {subject}",
            reason=f"authorization denied: {subject}",
        )


class RateLimitExceededError(CapabilityRouterError):
    """Raised when an agent exceeds its per-minute request budget."""

    def __init__(self, agent_id: str, limit: int) -> None:
        self.agent_id = agent_id
        self.limit = limit
        super().__init__(
            f"Rate limit exceeded for agent '{agent_id}' ({limit}/min)",
            reason=f"Rate limit exceeded for agent {agent_id} ({limit}/min)",
        )


class ApprovalRequiredError(CapabilityRouterError):
    """Raised when a request is parked waiting for human approval."""

    def __init__(self, approval_id: str, action: str) -> None:
        self.approval_id = approval_id
        self.action = action
        super().__init__(f"Action '{action}' requires approval ({approval_id})", reason="requires approval")


class ClassificationFailedError(CapabilityRouterError):
    """Raised when no usable intent could be resolved, even after fallback."""

    def __init__(self, message: str = "intent could not be classified") -> None:
        super().__init__(message, reason="classification failed")


class HandlerFailureError(CapabilityRouterError):
    """Wraps an exception raised by an agent handler during invocation."""

    def __init__(self, agent_id: str, cause: BaseException) -> None:
        self.agent_id = agent_id
        self.cause = cause
        summary = f"{type(cause).__name__}: {cause}"
        super().__init__(f"Agent '{agent_id}' failed: {summary}", reason=f"handler failure: {summary}")


class ConfigurationInvalidError(CapabilityRouterError):
    """Raised when a capability document fails load-time validation."""

    def __init__(self, errors: Sequence[str], *, file_path: str = "") -> None:
        self.errors = list(errors)
        self.file_path = file_path
        location = f" in {file_path}" if file_path else ""
        super().__init__(
            f"Invalid capability document{location}:\n" + "\n".join(self.errors),
            reason="configuration invalid",
        )


class CapabilityFileNotFoundError(CapabilityRouterError):
    """Raised when the capability file is missing and the source is configured to fail."""

    def __init__(self, file_path: str) -> None:
        self.file_path = file_path
        super().__init__(f"Agent capabilities file not found: {file_path}", reason="not found")


class NotFoundError(CapabilityRouterError):
    """Raised for unknown agent ids or agent types."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: '{key}'", reason=f"not found: {kind} {key}")


class AgentAlreadyRegisteredError(CapabilityRouterError):
    """Raised when registering an agent id that is already present."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent already registered: '{agent_id}'", reason="agent already registered")
