"""Human approval gate.

When policy requires approval, the orchestrator parks an ``Approval`` here and
answers the caller with ``status=pending_approval``. An operator later
resolves it with ``approve`` or ``reject``. Resubmitting the request with the
approval id passes the gate exactly once, provided the approval is approved,
unexpired, and matches the agent and action it was issued for.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ..capabilities.models import normalize_name
from ..errors import NotFoundError
from ..schemas.domain import Approval, ApprovalDecision, ScopeTier

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalGate:
    """
    In-memory store of parked approvals.

    Args:
        ttl_seconds: Lifetime of a parked approval; ``0`` disables expiry.
        clock: Time source, injectable for tests.
    """

    def __init__(self, *, ttl_seconds: float = 900.0, clock: Callable[[], datetime] = _utc_now) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._approvals: Dict[str, Approval] = {}

    def request(
        self,
        *,
        request_id: str,
        agent_id: str,
        action: str,
        scope_tier: ScopeTier,
        reason: str,
    ) -> Approval:
        """Park a new approval and return it."""
        now = self._clock()
        approval = Approval(
            request_id=request_id,
            agent_id=agent_id,
            action=normalize_name(action),
            scope_tier=scope_tier,
            reason=reason,
            requested_at=now,
            expires_at=now + timedelta(seconds=self._ttl) if self._ttl > 0 else None,
        )
        with self._lock:
            self._drop_stale(now)
            self._approvals[approval.id] = approval
        logger.info(
            "Approval requested; approval_id=%s agent_id=%s action=%s scope=%s",
            approval.id,
            agent_id,
            approval.action,
            scope_tier.value,
        )
        return approval

    def get(self, approval_id: str) -> Optional[Approval]:
        return self._approvals.get(approval_id)

    def pending(self) -> List[Approval]:
        now = self._clock()
        return [a for a in self._approvals.values() if a.decision is None and not self._expired(a, now)]

    def resolve(self, approval_id: str, decision: ApprovalDecision, *, decided_by: Optional[str] = None) -> Approval:
        """
        Record a decision for a parked approval.

        Raises:
            NotFoundError: If ``approval_id`` is unknown.
            ValueError: If the approval was already decided.
        """
        with self._lock:
            current = self._approvals.get(approval_id)
            if current is None:
                raise NotFoundError("approval", approval_id)
            if current.decision is not None:
                raise ValueError(f"approval already resolved: {approval_id}")
            if decision is ApprovalDecision.approved and self._expired(current, self._clock()):
                decision = ApprovalDecision.expired
            updated = current.model_copy(
                update={"decision": decision, "decided_at": self._clock(), "decided_by": decided_by}
            )
            self._approvals[approval_id] = updated
        logger.info("Approval resolved; approval_id=%s decision=%s", approval_id, decision.value)
        return updated

    def approve(self, approval_id: str, *, decided_by: Optional[str] = None) -> Approval:
        return self.resolve(approval_id, ApprovalDecision.approved, decided_by=decided_by)

    def reject(self, approval_id: str, *, decided_by: Optional[str] = None) -> Approval:
        return self.resolve(approval_id, ApprovalDecision.rejected, decided_by=decided_by)

    def consume(self, approval_id: str, *, agent_id: str, action: str) -> bool:
        """
        Use an approval to pass the gate.

        Returns:
            True exactly once for an approved, unexpired, unconsumed approval
            issued for ``agent_id`` and ``action``; False otherwise.
        """
        with self._lock:
            current = self._approvals.get(approval_id)
            if current is None or current.consumed:
                return False
            if current.decision is not ApprovalDecision.approved:
                return False
            if self._expired(current, self._clock()):
                return False
            if current.agent_id != agent_id or current.action != normalize_name(action):
                logger.warning(
                    "Approval does not match request; approval_id=%s agent_id=%s action=%s",
                    approval_id,
                    agent_id,
                    action,
                )
                return False
            self._approvals[approval_id] = current.model_copy(update={"consumed": True})
        return True

    def purge_expired(self) -> int:
        """Drop expired or consumed approvals; returns how many were removed."""
        with self._lock:
            return self._drop_stale(self._clock())

    def __len__(self) -> int:
        return len(self._approvals)

    def _drop_stale(self, now: datetime) -> int:
        # Caller holds _lock.
        stale = [k for k, a in self._approvals.items() if a.consumed or self._expired(a, now)]
        for key in stale:
            del self._approvals[key]
        return len(stale)

    @staticmethod
    def _expired(approval: Approval, now: datetime) -> bool:
        return approval.expires_at is not None and approval.expires_at <= now
