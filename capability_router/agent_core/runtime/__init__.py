"""Routing runtime: the LangGraph orchestrator and its configuration."""

from .models import OrchestratorConfig, OrchestratorDeps
from .orchestrator import Orchestrator

__all__ = ["Orchestrator", "OrchestratorConfig", "OrchestratorDeps"]
