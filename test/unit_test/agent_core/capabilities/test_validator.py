from __future__ import annotations

from typing import Any, Dict

import pytest

from capability_router.agent_core.capabilities.validator import CapabilityDocumentValidator
from capability_router.agent_core.errors import ConfigurationInvalidError


def _with_contact(doc: Dict[str, Any], **agent_overrides: Any) -> Dict[str, Any]:
    doc["agents"]["contact"].update(agent_overrides)
    return doc


def _errors(raw: Any) -> list[str]:
    with pytest.raises(ConfigurationInvalidError) as exc_info:
        CapabilityDocumentValidator().validate(raw, file_path="caps.yaml")
    assert exc_info.value.file_path == "caps.yaml"
    return exc_info.value.errors


def test_valid_document_is_parsed(sample_document: Dict[str, Any]) -> None:
    doc = CapabilityDocumentValidator().validate(sample_document)
    assert doc.version == "1.0"
    assert set(doc.agents) == {"contact", "communication", "scheduling"}


def test_duplicate_actions_reject_whole_document(sample_document: Dict[str, Any]) -> None:
    errors = _errors(_with_contact(sample_document, allowed_actions=["contact:read", "Contact:Read"]))
    assert len(errors) == 1
    assert "Duplicate name 'Contact:Read'" in errors[0]
    assert errors[0].startswith("agents.contact.allowed_actions[1]")


def test_duplicate_tools_are_rejected(sample_document: Dict[str, Any]) -> None:
    errors = _errors(_with_contact(sample_document, allowed_tools=["crm:*", "CRM:*"]))
    assert any("allowed_tools" in e and "Duplicate" in e for e in errors)


@pytest.mark.parametrize(
    ("version", "fragment"),
    [
        (None, "Version is required"),
        ("", "Version is required"),
        ("1", "major.minor"),
        ("v1.0", "major.minor"),
        ("1.0.0", "major.minor"),
    ],
)
def test_version_rules(sample_document: Dict[str, Any], version: Any, fragment: str) -> None:
    sample_document["version"] = version
    errors = _errors(sample_document)
    assert any(e.startswith("version:") and fragment in e for e in errors)


def test_numeric_version_is_accepted(sample_document: Dict[str, Any]) -> None:
    sample_document["version"] = 2.5
    assert CapabilityDocumentValidator().validate(sample_document).version == "2.5"


def test_document_without_agents_is_rejected() -> None:
    errors = _errors({"version": "1.0", "agents": {}})
    assert any("At least one agent" in e for e in errors)


def test_empty_agents_allowed_when_not_required() -> None:
    doc = CapabilityDocumentValidator(require_agents=False).validate({"version": "1.0"})
    assert doc.agents == {}


def test_invalid_action_name_characters(sample_document: Dict[str, Any]) -> None:
    errors = _errors(_with_contact(sample_document, allowed_actions=["send email"]))
    assert any("Must contain only" in e for e in errors)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("rate_limit_per_minute", 0),
        ("rate_limit_per_minute", -5),
        ("max_concurrent_operations", 0),
        ("max_concurrent_operations", True),
        ("max_delegation_depth", -1),
        ("cache_expiration_seconds", 0),
    ],
)
def test_numeric_limits(sample_document: Dict[str, Any], field: str, value: Any) -> None:
    errors = _errors(_with_contact(sample_document, **{field: value}))
    assert any(e.startswith(f"agents.contact.{field}") for e in errors)


def test_zero_delegation_depth_is_valid(sample_document: Dict[str, Any]) -> None:
    doc = CapabilityDocumentValidator().validate(_with_contact(sample_document, max_delegation_depth=0))
    assert doc.agents["contact"].max_delegation_depth == 0


def test_all_errors_are_collected(sample_document: Dict[str, Any]) -> None:
    doc = _with_contact(sample_document, allowed_actions=["a:b", "a:b"], rate_limit_per_minute=0)
    doc["version"] = "x"
    errors = _errors(doc)
    assert len(errors) == 3


def test_non_mapping_root_is_rejected() -> None:
    errors = _errors(["not", "a", "mapping"])
    assert errors == ["document root must be a mapping"]


def test_unknown_entry_field_is_reported(sample_document: Dict[str, Any]) -> None:
    errors = _errors(_with_contact(sample_document, unexpected_field=True))
    assert any("unexpected_field" in e for e in errors)
