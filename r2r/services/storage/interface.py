"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface per entity kind.
This allows us to:
1. Swap the key-value store for a real database later
2. Use in-memory storage for testing
3. Keep the analytics core decoupled from storage implementation

The interface is intentionally simple - list, append, update-by-id
and the budget upsert. Filtering by user mostly happens on read.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from r2r.models.audit import AuditEvent
from r2r.models.finance import (
    AnalysisSummary,
    Budget,
    Transaction,
    User,
)


class UserStorageInterface(ABC):
    """Abstract interface for user records."""

    @abstractmethod
    async def save_user(self, user: User) -> User:
        """
        Store a new user.

        Raises:
            DuplicateError: If the email is already registered
        """
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """
        Replace the stored user with the same id.

        Raises:
            NotFoundError: If no user has this id
        """
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction records.

    Order matters: list_transactions returns records in the order
    they were appended.
    """

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """All stored transactions, in insertion order."""
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def append_transactions(self, transactions: list[Transaction]) -> int:
        """
        Append transactions to the end of the collection.

        Returns:
            Number of transactions appended
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace the stored transaction with the same id, in place.

        Raises:
            NotFoundError: If no transaction has this id
        """
        pass


class BudgetStorageInterface(ABC):
    """Abstract interface for monthly budgets."""

    @abstractmethod
    async def get_budget(
        self,
        user_id: str,
        month: int,
        year: int,
    ) -> Optional[Budget]:
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        """
        Upsert a budget.

        An existing budget for the same (user_id, month, year) is replaced,
        otherwise the budget is appended.
        """
        pass

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        pass


class SummaryStorageInterface(ABC):
    """
    Abstract interface for archived analysis summaries.

    Append-only: summaries are never modified or removed.
    """

    @abstractmethod
    async def append_summary(self, summary: AnalysisSummary) -> AnalysisSummary:
        pass

    @abstractmethod
    async def list_summaries(self, user_id: str) -> list[AnalysisSummary]:
        """The user's summaries in the order they were appended."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events for one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
