"""Load-time validation of capability documents.

The validator works on the raw mapping produced by the YAML parser, before
it is turned into a ``CapabilityDocument``. Validating the raw form lets it
see what the operator actually wrote: a duplicated action in a YAML list is
silently collapsed once it becomes a set, so duplicates must be caught here.

All problems are collected and reported together. A single problem rejects
the whole document; there is no partial acceptance of the valid agents.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping

from pydantic import ValidationError

from ..errors import ConfigurationInvalidError
from .models import CapabilityDocument, normalize_name

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^\d+\.\d+$")
_NAME_RE = re.compile(r"^[a-z0-9_:*.-]+$")

_NAME_LIST_FIELDS = ("allowed_actions", "allowed_tools")
_PLAIN_LIST_FIELDS = ("allowed_delegations", "actions_requiring_approval", "data_scopes")


class CapabilityDocumentValidator:
    """Validate raw capability documents against the expected schema."""

    def __init__(self, *, require_agents: bool = True) -> None:
        self._require_agents = require_agents

    def validate(self, raw: Any, *, file_path: str = "") -> CapabilityDocument:
        """
        Validate a raw document and build the ``CapabilityDocument``.

        Args:
            raw: The object returned by ``yaml.safe_load``.
            file_path: Source path, used only in error messages.

        Returns:
            The parsed document.

        Raises:
            ConfigurationInvalidError: If any rule is violated. The error lists
                every violation found.
        """
        errors: List[str] = []
        if not isinstance(raw, Mapping):
            raise ConfigurationInvalidError(["document root must be a mapping"], file_path=file_path)

        version = raw.get("version")
        version_str = "" if version is None else str(version).strip()
        if not version_str:
            errors.append("version: Version is required")
        elif not _VERSION_RE.match(version_str):
            errors.append("version: Must be in format 'major.minor'")

        agents = raw.get("agents")
        if agents is None:
            agents = {}
        if not isinstance(agents, Mapping):
            errors.append("agents: Must be a mapping of agent type to capability entry")
            agents = {}
        elif not agents and self._require_agents:
            errors.append("agents: At least one agent configuration is required")

        seen_agents: Dict[str, str] = {}
        for agent_type, entry in agents.items():
            name = "" if agent_type is None else str(agent_type).strip()
            if not name:
                errors.append("agents: Agent name cannot be empty")
                continue
            key = normalize_name(name)
            if key in seen_agents:
                errors.append(f"agents.{name}: Duplicate agent type (also defined as '{seen_agents[key]}')")
            seen_agents[key] = name
            self._validate_agent(name, entry, errors)

        if not errors:
            normalized = dict(raw)
            normalized["version"] = version_str
            normalized["agents"] = dict(agents)
            try:
                document = CapabilityDocument.model_validate(normalized)
            except ValidationError as e:
                for err in e.errors():
                    loc = ".".join(str(p) for p in err.get("loc", ()))
                    errors.append(f"{loc}: {err.get('msg')}")
            else:
                return document

        logger.error("Capability document rejected; file=%s errors=%d", file_path or "<memory>", len(errors))
        raise ConfigurationInvalidError(errors, file_path=file_path)

    def _validate_agent(self, agent_name: str, entry: Any, errors: List[str]) -> None:
        if entry is None:
            entry = {}
        if not isinstance(entry, Mapping):
            errors.append(f"agents.{agent_name}: Capability entry must be a mapping")
            return

        for field in _NAME_LIST_FIELDS:
            values = entry.get(field) or []
            if not isinstance(values, list):
                errors.append(f"agents.{agent_name}.{field}: Must be a list")
                continue
            seen: set[str] = set()
            for i, value in enumerate(values):
                path = f"agents.{agent_name}.{field}[{i}]"
                if not isinstance(value, str) or not value.strip():
                    errors.append(f"{path}: Name is required")
                    continue
                key = normalize_name(value)
                if not _NAME_RE.match(key):
                    errors.append(f"{path}: Must contain only letters, numbers and '_', ':', '*', '.', '-'")
                if key in seen:
                    errors.append(f"{path}: Duplicate name '{value}'")
                seen.add(key)

        for field in _PLAIN_LIST_FIELDS:
            values = entry.get(field)
            if values is not None and not isinstance(values, list):
                errors.append(f"agents.{agent_name}.{field}: Must be a list")

        for field in ("rate_limit_per_minute", "max_concurrent_operations"):
            value = entry.get(field)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value <= 0):
                errors.append(f"agents.{agent_name}.{field}: Must be an integer greater than 0")

        depth = entry.get("max_delegation_depth")
        if depth is not None and (not isinstance(depth, int) or isinstance(depth, bool) or depth < 0):
            errors.append(f"agents.{agent_name}.max_delegation_depth: Must be a non-negative integer")

        expiration = entry.get("cache_expiration_seconds")
        if expiration is not None and (
            not isinstance(expiration, (int, float)) or isinstance(expiration, bool) or expiration <= 0
        ):
            errors.append(f"agents.{agent_name}.cache_expiration_seconds: Must be a positive number")
