"""
Transaction Repository

Reads and writes transactions on behalf of a user.

Visibility: a user sees the transactions they own plus, while they belong
to a household, every transaction tagged with that household. Ownership is
never replaced by household membership, only added to.

Household tags are a SNAPSHOT taken at ingest time. A transaction ingested
while its owner was in household "smiths" stays tagged "smiths" even after
the owner leaves, so the remaining members keep seeing it.
"""

from typing import Optional

from r2r.models.finance import Transaction, TransactionCategory
from r2r.services.storage import (
    NotFoundError,
    TransactionStorageInterface,
    UserStorageInterface,
)


# Fields a stored transaction may change after creation
MUTABLE_FIELDS = frozenset({"is_business", "category"})


class ImmutableFieldError(ValueError):
    """An update tried to change a field that is fixed after creation."""

    def __init__(self, transaction_id: str, fields: list[str]):
        self.transaction_id = transaction_id
        self.fields = fields
        super().__init__(
            f"Transaction {transaction_id}: cannot change {', '.join(fields)}"
        )


class TransactionRepository:
    """User- and household-scoped access to transactions."""

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        users: UserStorageInterface,
    ):
        self._transactions = transactions
        self._users = users

    async def _household_of(self, user_id: str) -> Optional[str]:
        user = await self._users.get_user(user_id)
        return user.household_id if user else None

    async def list_for_user(self, user_id: str) -> list[Transaction]:
        """
        Own transactions plus those of the user's current household,
        in insertion order.
        """
        household_id = await self._household_of(user_id)
        visible = []
        for transaction in await self._transactions.list_transactions():
            if transaction.user_id == user_id:
                visible.append(transaction)
            elif household_id and transaction.household_id == household_id:
                visible.append(transaction)
        return visible

    async def recent(self, user_id: str, limit: int) -> list[Transaction]:
        """The last `limit` visible transactions, oldest first."""
        if limit <= 0:
            return []
        return (await self.list_for_user(user_id))[-limit:]

    async def ingest(
        self,
        user_id: str,
        transactions: list[Transaction],
    ) -> list[Transaction]:
        """
        Append newly extracted transactions for user_id.

        Each one is stamped with the user's household as of now.
        """
        household_id = await self._household_of(user_id)
        tagged = [
            t.model_copy(update={"user_id": user_id, "household_id": household_id})
            for t in transactions
        ]
        await self._transactions.append_transactions(tagged)
        return tagged

    async def get(self, transaction_id: str) -> Transaction:
        """
        Raises:
            NotFoundError: If no transaction has this id
        """
        transaction = await self._transactions.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def update(self, transaction: Transaction) -> Transaction:
        """
        Replace the stored transaction with the same id.

        Raises:
            NotFoundError: If the id is not stored
            ImmutableFieldError: If anything besides the business flag or
                category differs from the stored record
        """
        stored = await self.get(transaction.id)
        changed = [
            name
            for name in Transaction.model_fields
            if name not in MUTABLE_FIELDS
            and getattr(stored, name) != getattr(transaction, name)
        ]
        if changed:
            raise ImmutableFieldError(transaction.id, changed)
        return await self._transactions.update_transaction(transaction)

    async def toggle_business(self, transaction_id: str) -> Transaction:
        stored = await self.get(transaction_id)
        return await self.update(
            stored.model_copy(update={"is_business": not stored.is_business})
        )

    async def correct_category(
        self,
        transaction_id: str,
        category: TransactionCategory,
    ) -> Transaction:
        stored = await self.get(transaction_id)
        return await self.update(stored.model_copy(update={"category": category}))
