"""
Tests for R2R

Test strategy:
1. Unit tests for individual components (models, analytics, validators)
2. Integration tests for flows (with a fake Gemini model)
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from r2r.models.finance import (
    AnalysisSummary,
    BillFrequency,
    BillPrediction,
    Budget,
    BudgetBand,
    CategoryBudget,
    ImageUpload,
    Insights,
    Suggestion,
    Transaction,
    TransactionCategory,
    User,
)
from r2r.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_transaction_creation(self, make_transaction):
        """Test Transaction model creation with defaults."""
        tx = make_transaction(amount="12.50")
        assert tx.amount == Decimal("12.50")
        assert tx.currency == "USD"
        assert tx.is_business is False
        assert tx.household_id is None
        assert len(tx.id) == 32

    def test_transaction_strips_whitespace(self, make_transaction):
        """Test that whitespace is stripped from the merchant."""
        tx = make_transaction(merchant="  Uber Eats  ")
        assert tx.merchant == "Uber Eats"

    def test_transaction_rejects_negative_amount(self, make_transaction):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            make_transaction(amount="-1")

    def test_transaction_is_frozen(self, make_transaction):
        """Test that stored transactions cannot be mutated in place."""
        tx = make_transaction()
        with pytest.raises(ValueError):
            tx.amount = Decimal("99")

    def test_aware_datetime_becomes_naive_utc(self, make_transaction):
        """Test that timezone-aware timestamps are normalised to naive UTC."""
        plus_two = timezone(timedelta(hours=2))
        tx = make_transaction(occurred_at=datetime(2025, 3, 10, 12, 0, tzinfo=plus_two))
        assert tx.occurred_at == datetime(2025, 3, 10, 10, 0)
        assert tx.occurred_at.tzinfo is None

    def test_blank_household_is_none(self, make_transaction):
        tx = make_transaction(household_id="")
        assert tx.household_id is None


class TestCategories:
    """Tests for category parsing."""

    def test_all_categories_exist(self):
        """Test that all expected categories are defined."""
        expected = {
            "Food & Delivery",
            "Groceries",
            "Transport & Fuel",
            "Shopping",
            "Subscriptions",
            "Bills & Utilities",
            "Rent",
            "Misc",
        }
        assert {c.value for c in TransactionCategory} == expected

    def test_parse_is_case_insensitive(self):
        assert TransactionCategory.parse("groceries") == TransactionCategory.GROCERIES
        assert TransactionCategory.parse(" FOOD & DELIVERY ") == TransactionCategory.FOOD_DELIVERY

    def test_unknown_category_maps_to_misc(self):
        assert TransactionCategory.parse("Crypto") == TransactionCategory.MISC
        assert TransactionCategory.parse(None) == TransactionCategory.MISC


class TestBudgetModel:
    """Tests for the Budget model."""

    def test_budget_key(self):
        budget = Budget(user_id="u1", month=3, year=2025, overall_budget=Decimal("500"))
        assert budget.key == ("u1", 3, 2025)

    def test_budget_month_bounds(self):
        """Test that months are 1-12."""
        with pytest.raises(ValueError):
            Budget(user_id="u1", month=0, year=2025)
        with pytest.raises(ValueError):
            Budget(user_id="u1", month=13, year=2025)

    def test_budget_rejects_duplicate_category(self):
        """Test that a category cannot be budgeted twice."""
        with pytest.raises(ValueError):
            Budget(
                user_id="u1",
                month=3,
                year=2025,
                category_budgets=[
                    CategoryBudget(category=TransactionCategory.RENT, amount=Decimal("1")),
                    CategoryBudget(category=TransactionCategory.RENT, amount=Decimal("2")),
                ],
            )


class TestAIPayloadModels:
    """Tests for models filled from Gemini responses."""

    def test_bill_prediction_from_camel_case(self):
        """Test that the camelCase payload keys are accepted."""
        prediction = BillPrediction.model_validate({
            "merchant": "Netflix",
            "estimatedAmount": 15.99,
            "frequency": "monthly",
            "nextExpectedDate": "2025-04-01T00:00:00Z",
            "confidence": 0.9,
            "isSubscription": True,
        })
        assert prediction.frequency == BillFrequency.MONTHLY
        assert prediction.next_expected_date == date(2025, 4, 1)
        assert prediction.is_subscription is True

    def test_bill_prediction_confidence_bounds(self):
        """Test confidence must be between 0 and 1."""
        with pytest.raises(ValueError):
            BillPrediction(
                merchant="Gym",
                estimated_amount=Decimal("30"),
                frequency=BillFrequency.MONTHLY,
                next_expected_date=date(2025, 4, 1),
                confidence=1.5,
            )

    def test_suggestion_accepts_both_spellings(self):
        by_alias = Suggestion.model_validate({"action": "Cook", "estimatedMonthlySaving": 40})
        by_name = Suggestion(action="Cook", estimated_monthly_saving=Decimal("40"))
        assert by_alias.estimated_monthly_saving == by_name.estimated_monthly_saving

    def test_empty_insights(self):
        assert Insights().is_empty


class TestAnalysisSummary:
    def test_period_validation(self):
        """Test that the period cannot end before it starts."""
        with pytest.raises(ValueError):
            AnalysisSummary(
                user_id="u1",
                period_start=datetime(2025, 3, 31),
                period_end=datetime(2025, 3, 1),
            )


class TestUserAndUploadModels:
    def test_email_is_lowercased(self):
        user = User(name="Ana", email="Ana@Example.COM", password_hash="x")
        assert user.email == "ana@example.com"
        assert user.streak_count == 1

    def test_invalid_email_rejected(self):
        with pytest.raises(ValueError):
            User(name="Ana", email="not-an-email", password_hash="x")

    def test_image_upload_rejects_non_images(self):
        with pytest.raises(ValueError):
            ImageUpload(filename="notes.pdf", mime_type="application/pdf", data=b"%PDF")

    def test_image_upload_size(self):
        upload = ImageUpload(filename="r.png", mime_type="IMAGE/PNG", data=b"12345")
        assert upload.mime_type == "image/png"
        assert upload.size_bytes == 5


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.BUDGET_SAVED,
            description="Budget saved",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEventBuilder.transactions_ingested(
            user_id="u1",
            count=3,
            household_id="smiths",
            correlation_id=correlation_id,
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transactions_ingested"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["details"]["count"] == 3

    def test_external_service_error_is_error_severity(self):
        event = AuditEventBuilder.external_service_error(
            service="gemini",
            operation="insights",
            error_message="timeout",
        )
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.severity == AuditSeverity.ERROR

    def test_household_changed_event_type(self):
        joined = AuditEventBuilder.household_changed("u1", "smiths", None)
        left = AuditEventBuilder.household_changed("u1", None, "smiths")
        assert joined.event_type == AuditEventType.HOUSEHOLD_JOINED
        assert left.event_type == AuditEventType.HOUSEHOLD_LEFT
