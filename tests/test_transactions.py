"""Tests for the transaction repository, summary archive and accounts."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest

from r2r.models.finance import AnalysisSummary, TransactionCategory
from r2r.services import (
    AccountService,
    ImmutableFieldError,
    KeyValueSummaryStorage,
    KeyValueTransactionStorage,
    KeyValueUserStorage,
    NotFoundError,
    SummaryArchive,
    TransactionRepository,
    ValidationFailure,
)
from r2r.services.accounts import hash_password, verify_password


@pytest.fixture
def accounts(client):
    return AccountService(KeyValueUserStorage(client))


@pytest.fixture
def repository(client):
    return TransactionRepository(
        KeyValueTransactionStorage(client),
        KeyValueUserStorage(client),
    )


def signup(accounts, name, household_id=None):
    async def scenario():
        user = await accounts.signup(name, f"{name.lower()}@example.com", "secret")
        if household_id:
            user = await accounts.join_household(user.id, household_id)
        return user

    return asyncio.run(scenario())


class TestHouseholdVisibility:
    """Own transactions plus the current household's."""

    def test_household_members_see_each_other(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice", "smiths")
        bob = signup(accounts, "Bob", "smiths")

        async def scenario():
            await repository.ingest(alice.id, [make_transaction("10")])
            await repository.ingest(bob.id, [make_transaction("20")])
            return await repository.list_for_user(alice.id)

        visible = asyncio.run(scenario())
        assert sorted(t.amount for t in visible) == [Decimal("10"), Decimal("20")]

    def test_user_without_household_sees_only_own(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice", "smiths")
        carol = signup(accounts, "Carol")

        async def scenario():
            await repository.ingest(alice.id, [make_transaction("10")])
            await repository.ingest(carol.id, [make_transaction("5")])
            return await repository.list_for_user(carol.id)

        visible = asyncio.run(scenario())
        assert [t.amount for t in visible] == [Decimal("5")]

    def test_household_tag_is_a_snapshot(self, accounts, repository, make_transaction):
        """A transaction stays shared after its owner leaves the household."""
        alice = signup(accounts, "Alice", "smiths")
        bob = signup(accounts, "Bob", "smiths")

        async def scenario():
            saved = await repository.ingest(alice.id, [make_transaction("10")])
            await accounts.leave_household(alice.id)
            later = await repository.ingest(alice.id, [make_transaction("99")])
            return saved, later, await repository.list_for_user(bob.id)

        saved, later, bob_visible = asyncio.run(scenario())
        assert saved[0].household_id == "smiths"
        assert later[0].household_id is None
        assert [t.amount for t in bob_visible] == [Decimal("10")]

    def test_ingest_stamps_owner(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice")
        saved = asyncio.run(repository.ingest(alice.id, [make_transaction(user_id="other")]))
        assert saved[0].user_id == alice.id

    def test_recent_returns_last_n(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice")

        async def scenario():
            await repository.ingest(
                alice.id, [make_transaction(str(i)) for i in range(10)]
            )
            return await repository.recent(alice.id, 3)

        assert [t.amount for t in asyncio.run(scenario())] == [
            Decimal("7"), Decimal("8"), Decimal("9")
        ]


class TestTransactionUpdates:
    def test_toggle_business(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice")

        async def scenario():
            saved = await repository.ingest(alice.id, [make_transaction()])
            await repository.toggle_business(saved[0].id)
            return await repository.get(saved[0].id)

        assert asyncio.run(scenario()).is_business is True

    def test_correct_category(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice")

        async def scenario():
            saved = await repository.ingest(alice.id, [make_transaction()])
            return await repository.correct_category(
                saved[0].id, TransactionCategory.SUBSCRIPTIONS
            )

        assert asyncio.run(scenario()).category == TransactionCategory.SUBSCRIPTIONS

    def test_update_unknown_id_raises(self, repository, make_transaction):
        """Updating a missing transaction is an error, not a silent no-op."""
        with pytest.raises(NotFoundError):
            asyncio.run(repository.update(make_transaction()))

    def test_amount_is_immutable(self, accounts, repository, make_transaction):
        alice = signup(accounts, "Alice")

        async def scenario():
            saved = await repository.ingest(alice.id, [make_transaction("10")])
            await repository.update(saved[0].model_copy(update={"amount": Decimal("1")}))

        with pytest.raises(ImmutableFieldError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.fields == ["amount"]


class TestSummaryArchive:
    def test_latest_is_last_appended(self, client):
        """Latest means most recently archived, not latest period."""
        archive = SummaryArchive(KeyValueSummaryStorage(client))
        newer_period = AnalysisSummary(
            user_id="u1",
            period_start=datetime(2025, 3, 1),
            period_end=datetime(2025, 3, 31),
        )
        older_period = AnalysisSummary(
            user_id="u1",
            period_start=datetime(2025, 1, 1),
            period_end=datetime(2025, 1, 31),
        )

        async def scenario():
            await archive.archive(newer_period)
            await archive.archive(older_period)
            return await archive.latest("u1"), await archive.history("u1")

        latest, history = asyncio.run(scenario())
        assert latest.id == older_period.id
        assert len(history) == 2

    def test_latest_without_summaries(self, client):
        archive = SummaryArchive(KeyValueSummaryStorage(client))
        assert asyncio.run(archive.latest("nobody")) is None


class TestAccounts:
    def test_password_hash_round_trip(self):
        hashed = hash_password("hunter2")
        assert "hunter2" not in hashed
        assert verify_password("hunter2", hashed)
        assert not verify_password("hunter3", hashed)

    def test_duplicate_signup_rejected(self, accounts):
        signup(accounts, "Alice")
        with pytest.raises(ValidationFailure, match="User already exists"):
            signup(accounts, "Alice")

    def test_login_with_wrong_password(self, accounts):
        signup(accounts, "Alice")
        with pytest.raises(ValidationFailure, match="Invalid credentials"):
            asyncio.run(accounts.login("alice@example.com", "wrong"))

    def test_login_unknown_email(self, accounts):
        with pytest.raises(ValidationFailure, match="Invalid credentials"):
            asyncio.run(accounts.login("ghost@example.com", "secret"))

    def test_streak(self, accounts):
        """Consecutive days add one, the same day is unchanged, a gap resets."""

        async def scenario():
            user = await accounts.signup("Dana", "dana@example.com", "pw", today=date(2025, 3, 1))
            same_day = await accounts.login("dana@example.com", "pw", today=date(2025, 3, 1))
            next_day = await accounts.login("dana@example.com", "pw", today=date(2025, 3, 2))
            after_gap = await accounts.login("dana@example.com", "pw", today=date(2025, 3, 9))
            return user, same_day, next_day, after_gap

        user, same_day, next_day, after_gap = asyncio.run(scenario())
        assert user.streak_count == 1
        assert same_day.streak_count == 1
        assert next_day.streak_count == 2
        assert after_gap.streak_count == 1

    def test_blank_household_leaves(self, accounts):
        alice = signup(accounts, "Alice", "smiths")
        updated = asyncio.run(accounts.join_household(alice.id, "  "))
        assert updated.household_id is None
