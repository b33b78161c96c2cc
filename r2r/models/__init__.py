"""
Data Models Package

This package contains all Pydantic models used in R2R.
All data flowing through the system must conform to these schemas.
"""

from r2r.models.finance import (
    AnalysisSummary,
    BillFrequency,
    BillPrediction,
    Budget,
    BudgetBand,
    BudgetComparison,
    BudgetLine,
    CategoryAggregate,
    CategoryBudget,
    ChatMessage,
    ImageUpload,
    Insights,
    Leak,
    PeriodAggregate,
    SourceType,
    Suggestion,
    Transaction,
    TransactionCategory,
    User,
    ValidationIssue,
    new_id,
)
from r2r.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "AnalysisSummary",
    "BillFrequency",
    "BillPrediction",
    "Budget",
    "BudgetBand",
    "BudgetComparison",
    "BudgetLine",
    "CategoryAggregate",
    "CategoryBudget",
    "ChatMessage",
    "ImageUpload",
    "Insights",
    "Leak",
    "PeriodAggregate",
    "SourceType",
    "Suggestion",
    "Transaction",
    "TransactionCategory",
    "User",
    "ValidationIssue",
    "new_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
