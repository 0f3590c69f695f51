from __future__ import annotations

import logging
from uuid import uuid4

import pytest

from capability_router.agent_core.audit import AuditSink, InMemoryAuditSink, LoggingAuditSink
from capability_router.agent_core.schemas.domain import AuditRecord


def _record(**overrides) -> AuditRecord:
    values = {"audit_id": uuid4(), "agent_id": "contact-1", "action": "contact:read", "reason": "ok", "success": True}
    values.update(overrides)
    return AuditRecord(**values)


def test_sinks_satisfy_protocol() -> None:
    assert isinstance(LoggingAuditSink(), AuditSink)
    assert isinstance(InMemoryAuditSink(), AuditSink)


@pytest.mark.asyncio
async def test_in_memory_sink_keeps_records() -> None:
    sink = InMemoryAuditSink()
    record = _record()
    await sink.record(record)
    assert sink.records == [record]


@pytest.mark.asyncio
async def test_logging_sink_writes_metadata(caplog: pytest.LogCaptureFixture) -> None:
    record = _record(success=False, reason="authorization denied: email:send")
    with caplog.at_level(logging.INFO, logger="capability_router.agent_core.audit"):
        await LoggingAuditSink().record(record)
    assert str(record.audit_id) in caplog.text
    assert "authorization denied: email:send" in caplog.text
