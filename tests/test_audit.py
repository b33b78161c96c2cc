"""Tests for the audit logger."""

import asyncio

from r2r.audit import AuditLogger, create_correlation_id
from r2r.models.audit import AuditEventBuilder, AuditEventType
from r2r.services import AuditStorageInterface, KeyValueAuditStorage


class FailingAuditStorage(AuditStorageInterface):
    async def append_event(self, event):
        raise OSError("disk full")

    async def get_events_by_correlation_id(self, correlation_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:
    def test_events_are_persisted(self, client):
        storage = KeyValueAuditStorage(client)
        audit_logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        async def scenario():
            await audit_logger.log_ingest_received("u1", "sms", 42, 0, correlation_id)
            await audit_logger.log_transactions_ingested("u1", 2, None, correlation_id)
            await audit_logger.log_tax_export("u1", 5)
            return await storage.get_events_by_correlation_id(correlation_id)

        events = asyncio.run(scenario())
        assert [e.event_type for e in events] == [
            AuditEventType.INGEST_RECEIVED,
            AuditEventType.TRANSACTIONS_INGESTED,
        ]

    def test_storage_failure_does_not_raise(self):
        """A broken audit store never breaks the flow that logs to it."""
        audit_logger = AuditLogger(FailingAuditStorage())
        event = AuditEventBuilder.budget_saved("b1", "u1", 3, 2025, "500")
        assert asyncio.run(audit_logger.log(event)) is False

    def test_local_only_logging(self):
        audit_logger = AuditLogger()
        event = AuditEventBuilder.external_service_error("gemini", "predict", "timeout")
        assert asyncio.run(audit_logger.log(event)) is True
