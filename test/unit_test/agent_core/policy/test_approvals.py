from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from capability_router.agent_core.errors import NotFoundError
from capability_router.agent_core.policy.approvals import ApprovalGate
from capability_router.agent_core.schemas.domain import ApprovalDecision, ScopeTier


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _park(gate: ApprovalGate, *, agent_id: str = "comm-1", action: str = "email:send"):
    return gate.request(
        request_id="req-1",
        agent_id=agent_id,
        action=action,
        scope_tier=ScopeTier.real_world,
        reason="real-world action requires approval",
    )


def test_request_parks_pending_approval() -> None:
    clock = _Clock()
    gate = ApprovalGate(ttl_seconds=60, clock=clock)
    approval = _park(gate, action="Email:Send")

    assert approval.action == "email:send"
    assert approval.expires_at == clock.now + timedelta(seconds=60)
    assert gate.get(approval.id) == approval
    assert gate.pending() == [approval]


def test_approved_approval_is_consumed_exactly_once() -> None:
    gate = ApprovalGate()
    approval = _park(gate)
    gate.approve(approval.id, decided_by="ops")

    assert gate.consume(approval.id, agent_id="comm-1", action="email:send") is True
    assert gate.consume(approval.id, agent_id="comm-1", action="email:send") is False


def test_pending_or_rejected_approval_does_not_pass() -> None:
    gate = ApprovalGate()
    approval = _park(gate)
    assert gate.consume(approval.id, agent_id="comm-1", action="email:send") is False

    gate.reject(approval.id)
    assert gate.get(approval.id).decision is ApprovalDecision.rejected
    assert gate.consume(approval.id, agent_id="comm-1", action="email:send") is False


def test_mismatched_agent_or_action_does_not_pass() -> None:
    gate = ApprovalGate()
    approval = _park(gate)
    gate.approve(approval.id)

    assert gate.consume(approval.id, agent_id="comm-2", action="email:send") is False
    assert gate.consume(approval.id, agent_id="comm-1", action="email:delete") is False
    assert gate.consume(approval.id, agent_id="comm-1", action="EMAIL:SEND") is True


def test_expired_approval_does_not_pass() -> None:
    clock = _Clock()
    gate = ApprovalGate(ttl_seconds=60, clock=clock)
    approval = _park(gate)
    gate.approve(approval.id)

    clock.advance(61)
    assert gate.consume(approval.id, agent_id="comm-1", action="email:send") is False
    assert gate.pending() == []


def test_approving_after_expiry_records_expired() -> None:
    clock = _Clock()
    gate = ApprovalGate(ttl_seconds=60, clock=clock)
    approval = _park(gate)
    clock.advance(120)

    assert gate.approve(approval.id).decision is ApprovalDecision.expired


def test_resolve_twice_and_unknown() -> None:
    gate = ApprovalGate()
    approval = _park(gate)
    gate.approve(approval.id)

    with pytest.raises(ValueError):
        gate.reject(approval.id)
    with pytest.raises(NotFoundError):
        gate.approve("missing")


def test_zero_ttl_disables_expiry() -> None:
    gate = ApprovalGate(ttl_seconds=0)
    assert _park(gate).expires_at is None


def test_purge_drops_expired() -> None:
    clock = _Clock()
    gate = ApprovalGate(ttl_seconds=60, clock=clock)
    stale = _park(gate)
    clock.advance(30)
    fresh = _park(gate)
    clock.advance(40)

    assert gate.purge_expired() == 1
    assert gate.get(fresh.id) is not None
    assert gate.get(stale.id) is None


def test_parking_drops_consumed_and_expired_approvals() -> None:
    clock = _Clock()
    gate = ApprovalGate(ttl_seconds=60, clock=clock)
    used = _park(gate)
    gate.approve(used.id)
    assert gate.consume(used.id, agent_id="comm-1", action="email:send") is True
    expiring = _park(gate)
    assert gate.get(used.id) is None
    assert len(gate) == 1

    clock.advance(61)
    latest = _park(gate)

    assert gate.get(expiring.id) is None
    assert gate.get(latest.id) is not None
    assert len(gate) == 1


def test_store_stays_bounded_under_steady_traffic() -> None:
    clock = _Clock()
    gate = ApprovalGate(ttl_seconds=60, clock=clock)
    for _ in range(500):
        approval = _park(gate)
        gate.approve(approval.id)
        gate.consume(approval.id, agent_id="comm-1", action="email:send")
        clock.advance(1)

    assert len(gate) <= 1
