from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Callable, Dict

import pytest
import yaml
from pydantic_ai import models

SAMPLE_DOCUMENT: Dict[str, Any] = {
    "version": "1.0",
    "agents": {
        "contact": {
            "rate_limit_per_minute": 10,
            "max_concurrent_operations": 2,
            "allowed_actions": ["contact:read", "contact:update", "contact:create"],
            "allowed_tools": ["crm:*"],
            "allowed_delegations": ["communication"],
            "max_delegation_depth": 2,
        },
        "communication": {
            "rate_limit_per_minute": 30,
            "allowed_actions": ["email:send", "email:draft"],
            "allowed_tools": ["smtp:send"],
        },
        "scheduling": {
            "allowed_actions": ["task:*"],
            "requires_approval": True,
            "actions_requiring_approval": ["task:delete"],
        },
    },
}


@pytest.fixture(autouse=True)
def _offline_models(monkeypatch: pytest.MonkeyPatch):
    """Block real LLM requests; tests use ``TestModel`` or fake completions."""
    monkeypatch.setattr(models, "ALLOW_MODEL_REQUESTS", False)


@pytest.fixture(autouse=True)
def _isolated_router_env(monkeypatch: pytest.MonkeyPatch):
    for name in list(os.environ):
        if name.startswith("CAPABILITY_ROUTER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_capabilities(tmp_path: Path) -> Callable[..., Path]:
    """Write a capability document and return its path.

    Each write bumps the file's mtime so change detection never depends on
    the file system's timestamp resolution.
    """
    path = tmp_path / "agent_capabilities.yaml"
    counter = {"n": 0}

    def _write(document: Any = SAMPLE_DOCUMENT, *, raw: str | None = None) -> Path:
        text = raw if raw is not None else yaml.safe_dump(document, sort_keys=False)
        path.write_text(text, encoding="utf-8")
        counter["n"] += 1
        stamp = path.stat().st_mtime_ns + counter["n"] * 1_000_000_000
        os.utime(path, ns=(stamp, stamp))
        return path

    return _write


@pytest.fixture
def sample_document() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def capability_file(write_capabilities: Callable[..., Path]) -> Path:
    return write_capabilities()
