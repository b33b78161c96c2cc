"""
Audit Models for R2R

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of ingests, edits and analyses
2. Debugging information when the AI service misbehaves
3. A record of silently-defaulted external failures

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    USER_SIGNED_UP = "user_signed_up"
    USER_LOGGED_IN = "user_logged_in"
    LOGIN_FAILED = "login_failed"
    HOUSEHOLD_JOINED = "household_joined"
    HOUSEHOLD_LEFT = "household_left"

    # Ingest
    INGEST_RECEIVED = "ingest_received"
    TRANSACTIONS_INGESTED = "transactions_ingested"
    EXTRACTION_REJECTED_ITEMS = "extraction_rejected_items"

    # Transaction edits
    TRANSACTION_UPDATED = "transaction_updated"
    UPDATE_FAILED = "update_failed"

    # Budgets
    BUDGET_SAVED = "budget_saved"

    # Analysis
    ANALYSIS_COMPLETED = "analysis_completed"
    BILLS_PREDICTED = "bills_predicted"
    TAX_EXPORT_GENERATED = "tax_export_generated"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'budget', 'summary')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="User who triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one ingest request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.budget_saved(budget_id, user_id, 3, 2025, ...)
        event = AuditEventBuilder.external_service_error("gemini", "timeout", ...)
    """

    @staticmethod
    def user_signed_up(user_id: str, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_UP,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"User signed up: {email}",
            is_user_action=True,
        )

    @staticmethod
    def user_logged_in(user_id: str, streak_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_LOGGED_IN,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"User logged in ({streak_count} day streak)",
            details={"streak_count": streak_count},
            is_user_action=True,
        )

    @staticmethod
    def login_failed(email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description="Login failed",
            details={"email": email[:254]},
            is_user_action=True,
        )

    @staticmethod
    def household_changed(
        user_id: str,
        household_id: Optional[str],
        previous_household_id: Optional[str],
    ) -> AuditEvent:
        joined = household_id is not None
        return AuditEvent(
            event_type=(
                AuditEventType.HOUSEHOLD_JOINED
                if joined
                else AuditEventType.HOUSEHOLD_LEFT
            ),
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=(
                f"User joined household {household_id}"
                if joined
                else f"User left household {previous_household_id}"
            ),
            details={
                "household_id": household_id,
                "previous_household_id": previous_household_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def ingest_received(
        user_id: str,
        source_type: str,
        text_length: int,
        image_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INGEST_RECEIVED,
            entity_type="ingest",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Ingest received: {source_type}",
            details={
                "source_type": source_type,
                "text_length": text_length,
                "image_count": image_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def transactions_ingested(
        user_id: str,
        count: int,
        household_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_INGESTED,
            entity_type="transaction",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{count} transactions ingested",
            details={
                "count": count,
                "household_id": household_id,
            },
        )

    @staticmethod
    def extraction_rejected_items(
        user_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_REJECTED_ITEMS,
            severity=AuditSeverity.WARNING,
            entity_type="ingest",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{len(issues)} extracted items rejected",
            details={"issues": issues},
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        user_id: str,
        changes: dict[str, Any],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            description=f"Transaction updated: {', '.join(changes) or 'no changes'}",
            details={"changes": changes},
            is_user_action=True,
        )

    @staticmethod
    def update_failed(transaction_id: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UPDATE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction update rejected",
            error_message=reason,
        )

    @staticmethod
    def budget_saved(
        budget_id: str,
        user_id: str,
        month: int,
        year: int,
        overall_budget: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SAVED,
            entity_type="budget",
            entity_id=budget_id,
            user_id=user_id,
            description=f"Budget saved for {year}-{month:02d}",
            details={
                "month": month,
                "year": year,
                "overall_budget": overall_budget,
            },
            is_user_action=True,
        )

    @staticmethod
    def analysis_completed(
        summary_id: str,
        user_id: str,
        total_spend: str,
        total_transactions: int,
        insights_available: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_COMPLETED,
            entity_type="summary",
            entity_id=summary_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=(
                f"Analysis archived: {total_transactions} transactions, "
                f"total {total_spend}"
            ),
            details={
                "total_spend": total_spend,
                "total_transactions": total_transactions,
                "insights_available": insights_available,
            },
        )

    @staticmethod
    def bills_predicted(
        user_id: str,
        prediction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_PREDICTED,
            entity_type="prediction",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{prediction_count} recurring bills predicted",
            details={"prediction_count": prediction_count},
        )

    @staticmethod
    def tax_export_generated(user_id: str, row_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TAX_EXPORT_GENERATED,
            entity_type="export",
            user_id=user_id,
            description=f"Tax export generated with {row_count} rows",
            details={"row_count": row_count},
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service} ({operation})",
            error_message=error_message,
            details={
                "service": service,
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
