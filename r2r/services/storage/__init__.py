"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements a JSON key-value store, but designed to be swappable.
"""

from r2r.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    SummaryStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)
from r2r.services.storage.key_value import (
    InMemoryKeyValueClient,
    JsonFileKeyValueClient,
    KeyValueAuditStorage,
    KeyValueBudgetStorage,
    KeyValueClient,
    KeyValueSummaryStorage,
    KeyValueTransactionStorage,
    KeyValueUserStorage,
    create_storage_client,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "SummaryStorageInterface",
    "TransactionStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Key-value implementation
    "InMemoryKeyValueClient",
    "JsonFileKeyValueClient",
    "KeyValueAuditStorage",
    "KeyValueBudgetStorage",
    "KeyValueClient",
    "KeyValueSummaryStorage",
    "KeyValueTransactionStorage",
    "KeyValueUserStorage",
    "create_storage_client",
]
