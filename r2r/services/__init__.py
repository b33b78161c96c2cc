"""Services package."""

from r2r.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    InMemoryKeyValueClient,
    JsonFileKeyValueClient,
    KeyValueAuditStorage,
    KeyValueBudgetStorage,
    KeyValueClient,
    KeyValueSummaryStorage,
    KeyValueTransactionStorage,
    KeyValueUserStorage,
    NotFoundError,
    StorageError,
    SummaryStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
    create_storage_client,
)
from r2r.services.transactions import ImmutableFieldError, TransactionRepository
from r2r.services.summaries import SummaryArchive
from r2r.services.accounts import AccountService, ValidationFailure

__all__ = [
    # Storage
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "DuplicateError",
    "InMemoryKeyValueClient",
    "JsonFileKeyValueClient",
    "KeyValueAuditStorage",
    "KeyValueBudgetStorage",
    "KeyValueClient",
    "KeyValueSummaryStorage",
    "KeyValueTransactionStorage",
    "KeyValueUserStorage",
    "NotFoundError",
    "StorageError",
    "SummaryStorageInterface",
    "TransactionStorageInterface",
    "UserStorageInterface",
    "create_storage_client",
    # Domain services
    "AccountService",
    "ImmutableFieldError",
    "SummaryArchive",
    "TransactionRepository",
    "ValidationFailure",
]
