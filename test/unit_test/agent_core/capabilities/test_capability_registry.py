from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from capability_router.agent_core.capabilities.models import AgentCapability
from capability_router.agent_core.capabilities.registry import CapabilityRegistry
from capability_router.agent_core.errors import AuthorizationDeniedError


def _chain_registry(max_depth: int = 2) -> CapabilityRegistry:
    reg = CapabilityRegistry()
    reg.register_capability("a", AgentCapability(name="a", allowed_delegations=["b"], max_delegation_depth=max_depth))
    reg.register_capability("b", AgentCapability(name="b", allowed_delegations=["c"], max_delegation_depth=max_depth))
    reg.register_capability("c", AgentCapability(name="c", allowed_delegations=["d"], max_delegation_depth=max_depth))
    reg.register_capability("d", AgentCapability(name="d"))
    return reg


def test_unknown_type_resolves_to_deny_all() -> None:
    reg = CapabilityRegistry()
    cap = reg.get_effective_capability("ghost")
    assert cap.version == "0"
    assert reg.is_action_allowed("ghost", "contact:read") is False


def test_register_then_get_returns_same_instance() -> None:
    reg = CapabilityRegistry()
    cap = AgentCapability.with_actions("contact", "contact:read")
    reg.register_capability("Contact", cap)

    assert reg.get_capability("contact") is cap
    assert reg.get_effective_capability("CONTACT") is cap


def test_register_overwrites_existing_type() -> None:
    reg = CapabilityRegistry()
    first = AgentCapability.with_actions("contact", "contact:read")
    second = AgentCapability.with_actions("contact", "contact:update")
    reg.register_capability("contact", first)
    reg.register_capability("contact", second)

    assert reg.get_capability("contact") is second
    assert reg.is_action_allowed("contact", "contact:read") is False


def test_resolution_prefers_explicit_then_type_default_then_global() -> None:
    global_default = AgentCapability.with_actions("global", "knowledge:search")
    reg = CapabilityRegistry(global_default=global_default)
    type_default = AgentCapability.with_actions("contact", "contact:read")
    reg.set_default_capability("contact", type_default)

    assert reg.get_effective_capability("contact") is type_default
    assert reg.get_effective_capability("unknown") is global_default

    explicit = AgentCapability.with_actions("contact", "contact:*")
    reg.register_capability("contact", explicit)
    assert reg.get_effective_capability("contact") is explicit
    assert reg.get_default_capability("contact") is type_default

    reg.set_global_default(None)
    assert reg.get_effective_capability("unknown").version == "0"


def test_expired_capability_falls_back_to_default(caplog: pytest.LogCaptureFixture) -> None:
    loaded = datetime(2024, 1, 1, tzinfo=timezone.utc)
    reg = CapabilityRegistry()
    explicit = AgentCapability.with_actions(
        "contact", "contact:*", last_updated=loaded, cache_expiration=timedelta(seconds=30)
    )
    default = AgentCapability.with_actions("contact", "contact:read")
    reg.register_capability("contact", explicit)
    reg.set_default_capability("contact", default)

    assert reg.get_effective_capability("contact", now=loaded + timedelta(seconds=10)) is explicit
    with caplog.at_level(logging.DEBUG, logger="capability_router.agent_core.capabilities.registry"):
        assert reg.get_effective_capability("contact", now=loaded + timedelta(seconds=31)) is default
    assert "Capability expired" in caplog.text


def test_expired_capability_is_refreshed_when_refresher_is_set() -> None:
    loaded = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ttl = timedelta(seconds=30)
    reg = CapabilityRegistry()
    reg.register_capability(
        "contact", AgentCapability.with_actions("contact", "contact:*", last_updated=loaded, cache_expiration=ttl)
    )
    refreshed = AgentCapability.with_actions(
        "contact", "contact:*", last_updated=loaded + timedelta(seconds=31), cache_expiration=ttl
    )
    calls: List[int] = []

    def _refresh() -> None:
        calls.append(1)
        reg.replace_all({"contact": refreshed})

    reg.set_refresher(_refresh)

    assert reg.get_effective_capability("contact", now=loaded + timedelta(seconds=31)) is refreshed
    assert len(calls) == 1


def test_failing_refresher_falls_back_to_defaults(caplog: pytest.LogCaptureFixture) -> None:
    loaded = datetime(2024, 1, 1, tzinfo=timezone.utc)
    reg = CapabilityRegistry()
    reg.register_capability(
        "contact",
        AgentCapability.with_actions(
            "contact", "contact:*", last_updated=loaded, cache_expiration=timedelta(seconds=30)
        ),
    )

    def _refresh() -> None:
        raise OSError("disk gone")

    reg.set_refresher(_refresh)
    with caplog.at_level(logging.WARNING, logger="capability_router.agent_core.capabilities.registry"):
        capability = reg.get_effective_capability("contact", now=loaded + timedelta(seconds=31))

    assert capability.allowed_actions == frozenset()
    assert "Capability refresh failed" in caplog.text


def test_validate_action_result() -> None:
    reg = CapabilityRegistry()
    reg.register_capability("contact", AgentCapability.with_actions("contact", "contact:read"))

    ok = reg.validate_action("contact", "contact:read")
    assert ok and ok.reason == "allowed"

    denied = reg.validate_action("contact", "contact:delete")
    assert not denied
    assert denied.reason == "authorization denied: contact:delete"
    assert denied.capability.name == "contact"


def test_require_action_raises_on_denial() -> None:
    reg = CapabilityRegistry()
    reg.register_capability("contact", AgentCapability.with_actions("contact", "contact:read"))

    assert reg.require_action("contact", "contact:read").name == "contact"
    with pytest.raises(AuthorizationDeniedError) as exc_info:
        reg.require_action("contact", "email:send")
    assert exc_info.value.reason == "authorization denied: email:send"


def test_require_tool() -> None:
    reg = CapabilityRegistry()
    reg.register_capability("contact", AgentCapability(name="contact", allowed_tools=["crm:*"]))

    assert reg.is_tool_allowed("contact", "crm", "lookup") is True
    reg.require_tool("contact", "crm", "lookup")
    with pytest.raises(AuthorizationDeniedError) as exc_info:
        reg.require_tool("contact", "smtp", "send")
    assert exc_info.value.reason == "authorization denied: smtp:send"


def test_can_delegate_to_checks_pair_and_depth() -> None:
    reg = _chain_registry(max_depth=2)
    assert reg.can_delegate_to("a", "b") is True
    assert reg.can_delegate_to("a", "c") is False
    assert reg.can_delegate_to("a", "b", depth=3) is False


def test_delegation_chain_within_depth_is_allowed() -> None:
    reg = _chain_registry(max_depth=2)
    assert reg.validate_delegation_chain(["a", "b", "c"]).ok is True


def test_delegation_chain_exceeding_depth_is_rejected() -> None:
    reg = _chain_registry(max_depth=2)
    result = reg.validate_delegation_chain(["a", "b", "c", "d"])
    assert result.ok is False
    assert result.reason == "delegation denied: depth 3 exceeds 2"


def test_delegation_chain_with_disallowed_hop() -> None:
    reg = _chain_registry(max_depth=3)
    result = reg.validate_delegation_chain(["a", "c"])
    assert result.ok is False
    assert result.reason == "delegation denied: a -> c"


def test_single_element_chain_is_trivially_valid() -> None:
    assert CapabilityRegistry().validate_delegation_chain(["solo"]).ok is True
    assert CapabilityRegistry().validate_delegation_chain([]).ok is True


def test_replace_all_swaps_snapshot() -> None:
    reg = CapabilityRegistry()
    reg.register_capability("old", AgentCapability.with_actions("old", "a:b"))
    before = reg.get_all_capabilities()

    reg.replace_all({"New": AgentCapability.with_actions("new", "c:d")}, version="2.0")

    assert reg.version == "2.0"
    assert set(reg.get_all_capabilities()) == {"new"}
    assert set(before) == {"old"}
    assert tuple(reg.agent_types()) == ("new",)


def test_snapshot_is_read_only() -> None:
    reg = CapabilityRegistry()
    reg.register_capability("contact", AgentCapability.with_actions("contact", "a:b"))
    with pytest.raises(TypeError):
        reg.get_all_capabilities()["x"] = AgentCapability(name="x")  # type: ignore[index]


def test_readers_never_observe_partial_replace() -> None:
    reg = CapabilityRegistry()
    gen_a = {f"agent{i}": AgentCapability(name=f"agent{i}", version="A") for i in range(20)}
    gen_b = {f"agent{i}": AgentCapability(name=f"agent{i}", version="B") for i in range(20)}
    reg.replace_all(gen_a, version="A")

    stop = threading.Event()
    mixed: list[set] = []

    def writer() -> None:
        for n in range(200):
            reg.replace_all(gen_b if n % 2 else gen_a)
        stop.set()

    def reader() -> None:
        while not stop.is_set():
            versions = {c.version for c in reg.get_all_capabilities().values()}
            if len(versions) != 1:
                mixed.append(versions)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for t in readers:
        t.start()
    writer()
    for t in readers:
        t.join(5)

    assert mixed == []
