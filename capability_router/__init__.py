"""capability-router.

This package contains the agent capability registry and request-routing core:
the subsystem that decides *which* agent may handle a request and *whether* it
may run at all.

High-level architecture
-----------------------

- **Capabilities** describe what an agent type is authorized to do: the
  ``resource:action`` pairs it may perform, the ``tool:action`` pairs it may
  use, and the agent types it may delegate to. They are loaded from a YAML
  document that is hot-reloaded while the process runs.
- **Agents** are live handler instances registered under an agent type. They
  carry optional lifecycle hooks (start, health check, stop).
- **Routing** classifies a request into an ``Intent``, maps the intent to an
  agent type and action, validates the action against the agent's
  capability, applies rate limits, scope tiers and approval gates, and then
  invokes the agent.

Core subpackages
----------------

- ``capability_router.agent_core``: capability model, registries, intent
  classification, policy primitives and the LangGraph-based orchestrator.
- ``capability_router.core``: settings and logging configuration.

Typical workflow
----------------

Most integrations should use ``capability_router.agent_core.factory``:

1. Build settings with ``RouterSettings()``.
2. Build the routing core with ``build_routing_core(...)``.
3. Register agents with ``RoutingCore.agents``.
4. Call ``Orchestrator.process_request(AgentRequest(...))``.

Every response, success or failure, carries a fresh ``audit_id`` and a
non-empty ``reason``.
"""
