"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of ingests, edits and analyses
2. Visibility of external failures that the gateway turns into empty results
3. A history the user can inspect

The audit logger:
- Is async to fit the flows that call it
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from r2r.models.audit import AuditEvent, AuditEventBuilder
from r2r.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_user_signed_up(self, user_id: str, email: str) -> None:
        await self.log(AuditEventBuilder.user_signed_up(user_id, email))

    async def log_user_logged_in(self, user_id: str, streak_count: int) -> None:
        await self.log(AuditEventBuilder.user_logged_in(user_id, streak_count))

    async def log_login_failed(self, email: str) -> None:
        await self.log(AuditEventBuilder.login_failed(email))

    async def log_household_changed(
        self,
        user_id: str,
        household_id: Optional[str],
        previous_household_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.household_changed(
            user_id=user_id,
            household_id=household_id,
            previous_household_id=previous_household_id,
        ))

    async def log_ingest_received(
        self,
        user_id: str,
        source_type: str,
        text_length: int,
        image_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log an ingest request before extraction starts."""
        event = AuditEventBuilder.ingest_received(
            user_id=user_id,
            source_type=source_type,
            text_length=text_length,
            image_count=image_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transactions_ingested(
        self,
        user_id: str,
        count: int,
        household_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transactions_ingested(
            user_id=user_id,
            count=count,
            household_id=household_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_extraction_rejected_items(
        self,
        user_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log extracted items that failed data-entry validation."""
        event = AuditEventBuilder.extraction_rejected_items(
            user_id=user_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            user_id=user_id,
            changes=changes,
        )
        await self.log(event)

    async def log_update_failed(self, transaction_id: str, reason: str) -> None:
        await self.log(AuditEventBuilder.update_failed(transaction_id, reason))

    async def log_budget_saved(
        self,
        budget_id: str,
        user_id: str,
        month: int,
        year: int,
        overall_budget: str,
    ) -> None:
        event = AuditEventBuilder.budget_saved(
            budget_id=budget_id,
            user_id=user_id,
            month=month,
            year=year,
            overall_budget=overall_budget,
        )
        await self.log(event)

    async def log_analysis_completed(
        self,
        summary_id: str,
        user_id: str,
        total_spend: str,
        total_transactions: int,
        insights_available: bool,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.analysis_completed(
            summary_id=summary_id,
            user_id=user_id,
            total_spend=total_spend,
            total_transactions=total_transactions,
            insights_available=insights_available,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bills_predicted(
        self,
        user_id: str,
        prediction_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.bills_predicted(
            user_id=user_id,
            prediction_count=prediction_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_tax_export(self, user_id: str, row_count: int) -> None:
        await self.log(AuditEventBuilder.tax_export_generated(user_id, row_count))

    async def log_external_service_error(
        self,
        service: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an external failure that was replaced by an empty result."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., an ingest).
    Pass it through all subsequent operations.
    """
    return uuid4()
