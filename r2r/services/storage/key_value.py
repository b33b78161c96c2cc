"""
Key-Value Storage Implementation

DESIGN DECISION: Records are kept as JSON lists under one key per entity
kind ("r2r_transactions", "r2r_budgets", ...), the same layout the browser
version kept in local storage. Two backends share that layout:
1. In-memory - tests, demos, throwaway sessions
2. JSON file - a single document on disk for local use

TRADEOFFS:
- Every operation loads the whole list (fine for one person's history)
- No transactions; read-modify-write sections hold the client's lock
- Filtering happens in Python

The entity storages follow the abstract interfaces, so a real database
can replace them without touching the analytics core.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel

from r2r.config import StorageSettings
from r2r.models.audit import AuditEvent
from r2r.models.finance import (
    AnalysisSummary,
    Budget,
    Transaction,
    User,
)
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


logger = structlog.get_logger(__name__)

USERS_KEY = "r2r_users"
TRANSACTIONS_KEY = "r2r_transactions"
SUMMARIES_KEY = "r2r_summaries"
BUDGETS_KEY = "r2r_budgets"
AUDIT_KEY = "r2r_audit"

ModelT = TypeVar("ModelT", bound=BaseModel)


class KeyValueClient(ABC):
    """
    Low-level store of JSON lists addressed by key.

    Missing keys read as empty lists. Callers that read, modify and write
    back must hold `lock` for the whole sequence.

    NOTE: `lock` only serialises coroutines on one event loop. The UI runs
    each call on a fresh loop and Streamlit sessions share one client, so
    two sessions writing at the same moment are not serialised against
    each other. Concurrent multi-user writes are not supported.
    """

    def __init__(self):
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def lock(self) -> asyncio.Lock:
        """Lock for the running event loop; replaced when the loop changes."""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    @abstractmethod
    async def get_items(self, key: str) -> list[dict]:
        pass

    @abstractmethod
    async def set_items(self, key: str, items: list[dict]) -> None:
        pass

    async def load(self, key: str, model: type[ModelT]) -> list[ModelT]:
        try:
            return [model.model_validate(item) for item in await self.get_items(key)]
        except ValueError as e:
            raise StorageError(f"Corrupt records under {key}: {e}") from e

    async def store(self, key: str, records: list[BaseModel]) -> None:
        await self.set_items(key, [r.model_dump(mode="json") for r in records])


class InMemoryKeyValueClient(KeyValueClient):
    """
    Process-local backend.

    Values are held as JSON text, like browser local storage, so callers
    never share mutable state with the store.
    """

    def __init__(self):
        super().__init__()
        self._data: dict[str, str] = {}

    async def get_items(self, key: str) -> list[dict]:
        return json.loads(self._data.get(key, "[]"))

    async def set_items(self, key: str, items: list[dict]) -> None:
        self._data[key] = json.dumps(items)

    def clear(self) -> None:
        self._data.clear()


class JsonFileKeyValueClient(KeyValueClient):
    """
    Single JSON document on disk: {"r2r_users": [...], "r2r_transactions": [...]}.

    Writes go to a temporary file that replaces the document, so a crash
    mid-write leaves the previous version intact.
    """

    def __init__(self, path: str):
        super().__init__()
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict[str, list[dict]]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Store file {self._path} is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise StorageError(f"Store file {self._path} must hold a JSON object")
        return document

    def _write_document(self, document: dict[str, list[dict]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, self._path)

    async def get_items(self, key: str) -> list[dict]:
        document = await asyncio.to_thread(self._read_document)
        return document.get(key, [])

    async def set_items(self, key: str, items: list[dict]) -> None:
        def _update() -> None:
            document = self._read_document()
            document[key] = items
            self._write_document(document)

        await asyncio.to_thread(_update)


def create_storage_client(settings: Optional[StorageSettings] = None) -> KeyValueClient:
    """Build the backend selected in settings."""
    settings = settings or StorageSettings()
    if settings.backend == "memory":
        return InMemoryKeyValueClient()
    logger.info("json_store_opened", path=settings.data_path)
    return JsonFileKeyValueClient(settings.data_path)


class KeyValueUserStorage(UserStorageInterface):
    """User records under r2r_users."""

    def __init__(self, client: KeyValueClient):
        self._client = client

    async def save_user(self, user: User) -> User:
        async with self._client.lock:
            users = await self._client.load(USERS_KEY, User)
            if any(u.email == user.email for u in users):
                raise DuplicateError(f"Email already registered: {user.email}")
            users.append(user)
            await self._client.store(USERS_KEY, users)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        users = await self._client.load(USERS_KEY, User)
        return next((u for u in users if u.id == user_id), None)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        users = await self._client.load(USERS_KEY, User)
        return next((u for u in users if u.email == email), None)

    async def update_user(self, user: User) -> User:
        async with self._client.lock:
            users = await self._client.load(USERS_KEY, User)
            for idx, existing in enumerate(users):
                if existing.id == user.id:
                    users[idx] = user
                    await self._client.store(USERS_KEY, users)
                    return user
        raise NotFoundError(f"User {user.id} not found")

    async def list_users(self) -> list[User]:
        return await self._client.load(USERS_KEY, User)


class KeyValueTransactionStorage(TransactionStorageInterface):
    """Transaction records under r2r_transactions, in insertion order."""

    def __init__(self, client: KeyValueClient):
        self._client = client

    async def list_transactions(self) -> list[Transaction]:
        return await self._client.load(TRANSACTIONS_KEY, Transaction)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        transactions = await self.list_transactions()
        return next((t for t in transactions if t.id == transaction_id), None)

    async def append_transactions(self, transactions: list[Transaction]) -> int:
        if not transactions:
            return 0
        async with self._client.lock:
            existing = await self._client.load(TRANSACTIONS_KEY, Transaction)
            known_ids = {t.id for t in existing}
            for transaction in transactions:
                if transaction.id in known_ids:
                    raise DuplicateError(f"Transaction {transaction.id} already stored")
                known_ids.add(transaction.id)
            await self._client.store(TRANSACTIONS_KEY, existing + list(transactions))
        return len(transactions)

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        async with self._client.lock:
            transactions = await self._client.load(TRANSACTIONS_KEY, Transaction)
            for idx, existing in enumerate(transactions):
                if existing.id == transaction.id:
                    transactions[idx] = transaction
                    await self._client.store(TRANSACTIONS_KEY, transactions)
                    return transaction
        raise NotFoundError(f"Transaction {transaction.id} not found")


class KeyValueBudgetStorage(BudgetStorageInterface):
    """Budget records under r2r_budgets, upserted on (user, month, year)."""

    def __init__(self, client: KeyValueClient):
        self._client = client

    async def get_budget(
        self,
        user_id: str,
        month: int,
        year: int,
    ) -> Optional[Budget]:
        budgets = await self._client.load(BUDGETS_KEY, Budget)
        return next((b for b in budgets if b.key == (user_id, month, year)), None)

    async def save_budget(self, budget: Budget) -> Budget:
        async with self._client.lock:
            budgets = await self._client.load(BUDGETS_KEY, Budget)
            for idx, existing in enumerate(budgets):
                if existing.key == budget.key:
                    budgets[idx] = budget
                    break
            else:
                budgets.append(budget)
            await self._client.store(BUDGETS_KEY, budgets)
        return budget

    async def list_budgets(self, user_id: str) -> list[Budget]:
        budgets = await self._client.load(BUDGETS_KEY, Budget)
        return [b for b in budgets if b.user_id == user_id]


class KeyValueSummaryStorage(SummaryStorageInterface):
    """One global, append-only list under r2r_summaries."""

    def __init__(self, client: KeyValueClient):
        self._client = client

    async def append_summary(self, summary: AnalysisSummary) -> AnalysisSummary:
        async with self._client.lock:
            summaries = await self._client.load(SUMMARIES_KEY, AnalysisSummary)
            summaries.append(summary)
            await self._client.store(SUMMARIES_KEY, summaries)
        return summary

    async def list_summaries(self, user_id: str) -> list[AnalysisSummary]:
        summaries = await self._client.load(SUMMARIES_KEY, AnalysisSummary)
        return [s for s in summaries if s.user_id == user_id]


class KeyValueAuditStorage(AuditStorageInterface):
    """Append-only audit events under r2r_audit."""

    def __init__(self, client: KeyValueClient):
        self._client = client

    async def append_event(self, event: AuditEvent) -> bool:
        async with self._client.lock:
            events = await self._client.load(AUDIT_KEY, AuditEvent)
            events.append(event)
            await self._client.store(AUDIT_KEY, events)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = await self._client.load(AUDIT_KEY, AuditEvent)
        matching = [e for e in events if e.correlation_id == correlation_id]
        return sorted(matching, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = await self._client.load(AUDIT_KEY, AuditEvent)
        return list(reversed(events))[:limit]
