"""Audit sinks.

Every orchestrator response produces one ``AuditRecord``. Sinks receive the
record asynchronously; a failing sink must never change the response, so the
orchestrator falls back to ``log_audit_record`` when ``record`` raises.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, runtime_checkable

from .schemas.domain import AuditRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditSink(Protocol):
    async def record(self, record: AuditRecord) -> None: ...


def log_audit_record(record: AuditRecord, *, level: int = logging.INFO) -> None:
    logger.log(
        level,
        "audit audit_id=%s agent_id=%s action=%s success=%s reason=%s",
        record.audit_id,
        record.agent_id,
        record.action,
        record.success,
        record.reason,
    )


class LoggingAuditSink:
    """Write audit records to the ``capability_router`` audit logger."""

    async def record(self, record: AuditRecord) -> None:
        log_audit_record(record)


class InMemoryAuditSink:
    """Keep audit records in a list. Useful for tests and diagnostics."""

    def __init__(self) -> None:
        self.records: List[AuditRecord] = []

    async def record(self, record: AuditRecord) -> None:
        self.records.append(record)
