"""
Core Data Models for R2R

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is Decimal everywhere. Percentages are floats
because they are only ever displayed, never summed back into money.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a record identifier."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionCategory(str, Enum):
    """
    Supported spending categories.

    DESIGN DECISION: The extraction prompt names exactly these categories.
    Anything else the model returns is mapped to MISC at ingest.
    """
    FOOD_DELIVERY = "Food & Delivery"
    GROCERIES = "Groceries"
    TRANSPORT_FUEL = "Transport & Fuel"
    SHOPPING = "Shopping"
    SUBSCRIPTIONS = "Subscriptions"
    BILLS_UTILITIES = "Bills & Utilities"
    RENT = "Rent"
    MISC = "Misc"

    @classmethod
    def parse(cls, value: Any) -> "TransactionCategory":
        """Match a free-text category case-insensitively, falling back to MISC."""
        if isinstance(value, str):
            wanted = value.strip().lower()
            for category in cls:
                if category.value.lower() == wanted:
                    return category
        return cls.MISC


class SourceType(str, Enum):
    """Where a transaction was extracted from."""
    RECEIPT_IMAGE = "receipt_image"
    EMAIL = "email"
    SMS = "sms"
    MANUAL = "manual"


class BillFrequency(str, Enum):
    """Recurrence of a predicted bill."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ANNUAL = "annual"


class BudgetBand(str, Enum):
    """
    Usage band of spend against a budget.

    Drives status colouring on the analysis page.
    """
    UNKNOWN = "unknown"        # No budget set (amount <= 0)
    UNDER = "under"            # Below 80% used
    NEAR_LIMIT = "near_limit"  # 80% to 100% used
    OVER = "over"              # Above 100% used


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single spending record.

    Frozen: the only sanctioned changes after creation are the business
    flag and a category correction, both made through the repository.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    household_id: Optional[str] = Field(
        default=None,
        description="Household of the submitting user at ingest time"
    )
    occurred_at: datetime = Field(
        ...,
        description="When the transaction happened (naive UTC)"
    )
    merchant: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=1, max_length=10)
    category: TransactionCategory = TransactionCategory.MISC
    source_type: SourceType = SourceType.MANUAL
    raw_text: str = ""
    is_business: bool = False

    @field_validator('occurred_at')
    @classmethod
    def normalise_timezone(cls, v: datetime) -> datetime:
        """Store aware datetimes as naive UTC so comparisons never mix kinds."""
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator('household_id')
    @classmethod
    def blank_household_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class CategoryAggregate(BaseModel):
    """Spend for one category within a period. Derived, never stored alone."""

    category: TransactionCategory
    amount: Decimal
    percentage: float = Field(
        ...,
        ge=0.0,
        description="Share of the period total, 0-100"
    )


class PeriodAggregate(BaseModel):
    """Result of aggregating a transaction set over an inclusive range."""

    period_start: datetime
    period_end: datetime
    total_spend: Decimal = Decimal("0")
    total_transactions: int = Field(default=0, ge=0)
    top_categories: list[CategoryAggregate] = Field(default_factory=list)


# =============================================================================
# BUDGETS
# =============================================================================

class CategoryBudget(BaseModel):
    """Spending limit for one category."""

    category: TransactionCategory
    amount: Decimal = Field(default=Decimal("0"), ge=0)


class Budget(BaseModel):
    """
    Monthly budget.

    Unique per (user_id, month, year); saving again replaces the record.
    """

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    overall_budget: Decimal = Field(default=Decimal("0"), ge=0)
    category_budgets: list[CategoryBudget] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_categories(self) -> 'Budget':
        seen = set()
        for entry in self.category_budgets:
            if entry.category in seen:
                raise ValueError(
                    f"Category {entry.category.value} budgeted more than once"
                )
            seen.add(entry.category)
        return self

    @property
    def key(self) -> tuple[str, int, int]:
        return self.user_id, self.month, self.year


class BudgetLine(BaseModel):
    """One row of a budget-vs-actual comparison."""

    category: Optional[TransactionCategory] = Field(
        default=None,
        description="None for the overall budget line"
    )
    budget_amount: Decimal
    actual: Decimal
    percent_used: float
    band: BudgetBand


class BudgetComparison(BaseModel):
    """Overall and per-category budget usage for a period."""

    overall: BudgetLine
    categories: list[BudgetLine] = Field(default_factory=list)


# =============================================================================
# AI-GENERATED PAYLOADS
# =============================================================================

class Leak(BaseModel):
    """Recurring wasteful spending pattern identified by the AI."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str
    description: str = ""
    amount: Decimal = Decimal("0")


class Suggestion(BaseModel):
    """Actionable recommendation with its estimated monthly saving."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    action: str
    rationale: str = ""
    estimated_monthly_saving: Decimal = Decimal("0")


class Insights(BaseModel):
    """Leaks and suggestions for a transaction set."""

    leaks: list[Leak] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.leaks and not self.suggestions


class BillPrediction(BaseModel):
    """
    A predicted recurring bill.

    Recomputed on every request, never persisted.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    merchant: str = Field(..., min_length=1)
    estimated_amount: Decimal = Field(..., ge=0)
    frequency: BillFrequency
    next_expected_date: date
    confidence: float = Field(..., ge=0.0, le=1.0)
    is_subscription: bool = False

    @field_validator('next_expected_date', mode='before')
    @classmethod
    def accept_datetime_strings(cls, v):
        """The model sometimes returns a full timestamp instead of a date."""
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


class AnalysisSummary(BaseModel):
    """
    Archived result of one analysis run.

    Append-only. "Latest" means most recently appended for a user,
    not the one with the latest period.
    """

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1)
    period_start: datetime
    period_end: datetime
    total_spend: Decimal = Decimal("0")
    total_transactions: int = Field(default=0, ge=0)
    top_categories: list[CategoryAggregate] = Field(default_factory=list)
    leaks: list[Leak] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_period(self) -> 'AnalysisSummary':
        if self.period_end < self.period_start:
            raise ValueError("Period end cannot be before period start")
        return self


# =============================================================================
# USERS AND CHAT
# =============================================================================

class User(BaseModel):
    """An app user. Household membership is a single mutable field."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password_hash: str
    household_id: Optional[str] = None
    streak_count: int = Field(default=1, ge=0)
    last_active_date: Optional[date] = None

    @field_validator('email')
    @classmethod
    def normalise_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError(f"Invalid email address: {v}")
        return v.lower()

    @field_validator('household_id')
    @classmethod
    def blank_household_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class ChatMessage(BaseModel):
    """One turn of the chat assistant conversation."""

    role: str = Field(..., pattern="^(user|model)$")
    text: str


# =============================================================================
# INGEST MODELS
# =============================================================================

class ImageUpload(BaseModel):
    """A receipt image submitted for extraction."""

    filename: str = Field(..., min_length=1)
    mime_type: str
    data: bytes = Field(..., repr=False)

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only allow image types."""
        allowed = {'image/jpeg', 'image/png', 'image/webp'}
        if v.lower() not in allowed:
            raise ValueError(f"Unsupported image type: {v}. Allowed: {allowed}")
        return v.lower()

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class ValidationIssue(BaseModel):
    """One extracted item that was rejected at the data-entry boundary."""

    index: int = Field(..., ge=0, description="Position in the extracted list")
    field: str
    message: str
    raw_value: Optional[str] = None
