"""
Accounts and Households

Signup, login, the daily activity streak and household membership.

NOT a security boundary: there are no sessions or tokens here, and the
password hash only keeps plain text out of the store. Household
membership is a single field on the user; there is no join/approval flow.
"""

import hashlib
import hmac
import secrets
from datetime import date, timedelta
from typing import Optional

from r2r.models.finance import User
from r2r.services.storage import (
    DuplicateError,
    NotFoundError,
    UserStorageInterface,
)


class ValidationFailure(Exception):
    """A user-facing rejection, shown inline (e.g. duplicate email)."""
    pass


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Return "salt$digest" for a password."""
    salt = salt or secrets.token_hex(8)
    digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, _, _ = password_hash.partition("$")
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def next_streak(user: User, today: date) -> tuple[int, bool]:
    """
    Streak count after activity on `today`.

    Returns (streak_count, changed). Same day: unchanged. Next day: +1.
    Any longer gap starts over at 1.
    """
    if user.last_active_date == today:
        return user.streak_count, False
    if user.last_active_date == today - timedelta(days=1):
        return user.streak_count + 1, True
    return 1, True


class AccountService:
    """User lifecycle on top of the user storage."""

    def __init__(self, users: UserStorageInterface):
        self._users = users

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        today: Optional[date] = None,
    ) -> User:
        """
        Raises:
            ValidationFailure: If the email is taken or a field is invalid
        """
        if not password:
            raise ValidationFailure("Password is required")
        try:
            user = User(
                name=name,
                email=email,
                password_hash=hash_password(password),
                streak_count=1,
                last_active_date=today or date.today(),
            )
        except ValueError as e:
            raise ValidationFailure(str(e)) from e

        if await self._users.get_user_by_email(user.email):
            raise ValidationFailure("User already exists")
        try:
            return await self._users.save_user(user)
        except DuplicateError as e:
            raise ValidationFailure("User already exists") from e

    async def login(
        self,
        email: str,
        password: str,
        today: Optional[date] = None,
    ) -> User:
        """
        Raises:
            ValidationFailure: On unknown email or wrong password
        """
        user = await self._users.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise ValidationFailure("Invalid credentials")
        return await self.update_streak(user.id, today)

    async def get_user(self, user_id: str) -> User:
        user = await self._users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def update_streak(self, user_id: str, today: Optional[date] = None) -> User:
        user = await self.get_user(user_id)
        today = today or date.today()
        streak, changed = next_streak(user, today)
        if not changed:
            return user
        return await self._users.update_user(
            user.model_copy(update={"streak_count": streak, "last_active_date": today})
        )

    async def join_household(self, user_id: str, household_id: Optional[str]) -> User:
        """Set the user's household. A blank id leaves the current household."""
        user = await self.get_user(user_id)
        household_id = (household_id or "").strip() or None
        return await self._users.update_user(
            user.model_copy(update={"household_id": household_id})
        )

    async def leave_household(self, user_id: str) -> User:
        return await self.join_household(user_id, None)
