"""Agent capabilities: model, validation, registry and hot-reloadable source."""

from .models import AgentCapability, AgentCapabilityEntry, CapabilityDocument
from .registry import AuthorizationResult, CapabilityRegistry
from .source import CapabilitiesReloadedEvent, CapabilitySource, ReloadStats
from .validator import CapabilityDocumentValidator

__all__ = [
    "AgentCapability",
    "AgentCapabilityEntry",
    "AuthorizationResult",
    "CapabilitiesReloadedEvent",
    "CapabilityDocument",
    "CapabilityDocumentValidator",
    "CapabilityRegistry",
    "CapabilitySource",
    "ReloadStats",
]
