"""
Main Orchestrator for R2R

This module ties together all the components and defines the
end-to-end flows for:
1. Ingest (text/images -> AI extraction -> validate -> stamp household -> save)
2. Analysis (visible transactions -> aggregate -> AI insights -> archive)
3. Budgets, bill predictions, dashboard, tax export, chat and accounts

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the store without passing data-entry validation
- Numbers come from r2r.analytics, never from the AI
- External failures become empty results, and every one is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from r2r.agents import FinancialChat, GatewayResult, GeminiGateway
from r2r.analytics import (
    aggregate_period,
    business_total,
    compare_budget,
    filter_by_period,
    resolve_period,
)
from r2r.audit import AuditLogger, create_correlation_id
from r2r.config import AppSettings, Settings, get_settings
from r2r.export import business_transactions, export_business_csv, export_filename
from r2r.models.finance import (
    AnalysisSummary,
    BillPrediction,
    Budget,
    BudgetComparison,
    CategoryBudget,
    ImageUpload,
    SourceType,
    Transaction,
    TransactionCategory,
    User,
    ValidationIssue,
)
from r2r.services import (
    AccountService,
    BudgetStorageInterface,
    ImmutableFieldError,
    KeyValueAuditStorage,
    KeyValueBudgetStorage,
    KeyValueClient,
    KeyValueSummaryStorage,
    KeyValueTransactionStorage,
    KeyValueUserStorage,
    NotFoundError,
    SummaryArchive,
    TransactionRepository,
    ValidationFailure,
    create_storage_client,
)
from r2r.validation import ExtractionValidator, UserInputFailure


logger = structlog.get_logger(__name__)

PeriodBound = Union[date, datetime]


async def _audit_failure(
    audit_logger: Optional[AuditLogger],
    result: GatewayResult,
    correlation_id: Optional[UUID] = None,
) -> None:
    """Record a gateway failure that was replaced by an empty default."""
    if audit_logger and result.failure is not None:
        await audit_logger.log_external_service_error(
            service="gemini",
            operation=result.failure.operation,
            error_message=str(result.failure),
            correlation_id=correlation_id,
        )


class IngestFlow:
    """
    Orchestrates transaction ingest.

    Flow:
    1. Check the payload (some text or at least one image)
    2. Extract → text once, then each image separately as a receipt
    3. Validate → reject malformed items, report them to the user
    4. Save → stamp with the user's current household and append

    If extraction fails the ingest saves nothing and says so; it does
    not raise.
    """

    def __init__(
        self,
        gateway: GeminiGateway,
        repository: TransactionRepository,
        validator: Optional[ExtractionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gateway = gateway
        self._repository = repository
        self._validator = validator or ExtractionValidator()
        self._audit_logger = audit_logger

    async def ingest(
        self,
        user_id: str,
        source_type: SourceType,
        raw_text: Optional[str] = None,
        images: Optional[list[ImageUpload]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[Transaction], list[ValidationIssue], str]:
        """
        Extract and store transactions.

        Returns:
            (saved_transactions, rejected_item_issues, user_message)

        Raises:
            UserInputFailure: If there is nothing to extract from
        """
        correlation_id = correlation_id or create_correlation_id()
        raw_text = raw_text or ""
        images = images or []

        self._validator.validate_ingest_payload(raw_text, images)

        if self._audit_logger:
            await self._audit_logger.log_ingest_received(
                user_id=user_id,
                source_type=source_type.value,
                text_length=len(raw_text),
                image_count=len(images),
                correlation_id=correlation_id,
            )

        # (source type, raw text, coroutine) per extraction
        batches = []
        if raw_text.strip():
            batches.append((
                source_type,
                raw_text,
                self._gateway.try_extract_transactions(raw_text, source_type, user_id),
            ))
        for image in images:
            batches.append((
                SourceType.RECEIPT_IMAGE,
                "",
                self._gateway.try_extract_transactions(
                    "", SourceType.RECEIPT_IMAGE, user_id, image=image
                ),
            ))

        results = await asyncio.gather(*(coro for _, _, coro in batches))

        transactions: list[Transaction] = []
        issues: list[ValidationIssue] = []
        failures = 0
        for (batch_source, batch_text, _), result in zip(batches, results):
            if not result.ok:
                failures += 1
                await _audit_failure(self._audit_logger, result, correlation_id)
                continue
            batch_transactions, batch_issues = self._validator.to_transactions(
                result.value, user_id, batch_source, batch_text
            )
            transactions.extend(batch_transactions)
            issues.extend(batch_issues)

        if issues and self._audit_logger:
            await self._audit_logger.log_extraction_rejected_items(
                user_id=user_id,
                issues=[issue.model_dump() for issue in issues],
                correlation_id=correlation_id,
            )

        saved: list[Transaction] = []
        if transactions:
            saved = await self._repository.ingest(user_id, transactions)
            if self._audit_logger:
                await self._audit_logger.log_transactions_ingested(
                    user_id=user_id,
                    count=len(saved),
                    household_id=saved[0].household_id,
                    correlation_id=correlation_id,
                )

        return saved, issues, self._message(saved, issues, failures, len(batches))

    def _message(
        self,
        saved: list[Transaction],
        issues: list[ValidationIssue],
        failures: int,
        batch_count: int,
    ) -> str:
        if failures == batch_count:
            return "We couldn't reach the extraction service. Nothing was saved, please try again."
        parts = []
        if saved:
            parts.append(f"Saved {len(saved)} transaction(s).")
        else:
            parts.append("No transactions were found.")
        if failures:
            parts.append(f"{failures} of {batch_count} upload(s) could not be processed.")
        if issues:
            parts.append(self._validator.get_user_friendly_summary(issues))
        return "\n".join(parts)


class BillsFlow:
    """Recurring bill prediction from recent history."""

    def __init__(
        self,
        gateway: GeminiGateway,
        repository: TransactionRepository,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._gateway = gateway
        self._repository = repository
        self._audit_logger = audit_logger
        self._settings = settings or AppSettings()

    async def predict(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[BillPrediction]:
        """
        Predict bills from the user's most recent transactions.

        Predictions are recomputed on every call and never stored.
        """
        correlation_id = correlation_id or create_correlation_id()
        history = await self._repository.recent(
            user_id, self._settings.prediction_history_size
        )
        result = await self._gateway.try_predict_bills(history)
        await _audit_failure(self._audit_logger, result, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_bills_predicted(
                user_id=user_id,
                prediction_count=len(result.value),
                correlation_id=correlation_id,
            )
        return result.value


class AnalysisFlow:
    """
    Orchestrates analysis of a period.

    CRITICAL BOUNDARIES:
    1. Totals and category shares come from the aggregation engine
    2. Only leaks and suggestions come from the AI
    3. A failed AI call still archives a summary, with empty insights
    """

    def __init__(
        self,
        gateway: GeminiGateway,
        repository: TransactionRepository,
        archive: SummaryArchive,
        budgets: BudgetStorageInterface,
        bills_flow: Optional[BillsFlow] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._gateway = gateway
        self._repository = repository
        self._archive = archive
        self._budgets = budgets
        self._settings = settings or AppSettings()
        self._bills_flow = bills_flow or BillsFlow(
            gateway, repository, audit_logger, self._settings
        )
        self._audit_logger = audit_logger

    def default_period(self, today: Optional[date] = None) -> tuple[date, date]:
        """The last `default_analysis_days` days, ending today."""
        today = today or date.today()
        return today - timedelta(days=self._settings.default_analysis_days), today

    async def analyze(
        self,
        user_id: str,
        start: Optional[PeriodBound] = None,
        end: Optional[PeriodBound] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AnalysisSummary:
        """
        Aggregate the user's visible transactions over [start, end],
        add AI insights, and archive the result.

        Raises:
            UserInputFailure: If start is after end
        """
        correlation_id = correlation_id or create_correlation_id()
        if start is None or end is None:
            default_start, default_end = self.default_period()
            start = start if start is not None else default_start
            end = end if end is not None else default_end
        try:
            period_start, period_end = resolve_period(start, end)
        except ValueError as e:
            raise UserInputFailure(str(e)) from e

        visible = await self._repository.list_for_user(user_id)
        aggregate = aggregate_period(visible, period_start, period_end)

        result = await self._gateway.try_generate_insights(
            filter_by_period(visible, period_start, period_end)
        )
        await _audit_failure(self._audit_logger, result, correlation_id)

        summary = await self._archive.archive(AnalysisSummary(
            user_id=user_id,
            period_start=aggregate.period_start,
            period_end=aggregate.period_end,
            total_spend=aggregate.total_spend,
            total_transactions=aggregate.total_transactions,
            top_categories=aggregate.top_categories,
            leaks=result.value.leaks,
            suggestions=result.value.suggestions,
        ))

        if self._audit_logger:
            await self._audit_logger.log_analysis_completed(
                summary_id=summary.id,
                user_id=user_id,
                total_spend=str(summary.total_spend),
                total_transactions=summary.total_transactions,
                insights_available=result.ok,
                correlation_id=correlation_id,
            )
        return summary

    async def latest_summary(self, user_id: str) -> Optional[AnalysisSummary]:
        return await self._archive.latest(user_id)

    async def budget_comparison(
        self,
        user_id: str,
        summary: AnalysisSummary,
    ) -> BudgetComparison:
        """Compare a summary with the budget for the month its period starts in."""
        budget = await self._budgets.get_budget(
            user_id, summary.period_start.month, summary.period_start.year
        )
        return compare_budget(budget, summary.top_categories, summary.total_spend)

    async def refresh(
        self,
        user_id: str,
        start: Optional[PeriodBound] = None,
        end: Optional[PeriodBound] = None,
    ) -> tuple[AnalysisSummary, list[BillPrediction]]:
        """Run analysis and bill prediction concurrently."""
        correlation_id = create_correlation_id()
        summary, predictions = await asyncio.gather(
            self.analyze(user_id, start, end, correlation_id=correlation_id),
            self._bills_flow.predict(user_id, correlation_id=correlation_id),
        )
        return summary, predictions


class BudgetFlow:
    """Monthly budgets, one per (user, month, year)."""

    def __init__(
        self,
        budgets: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budgets
        self._audit_logger = audit_logger

    @staticmethod
    def default_category_budgets() -> list[CategoryBudget]:
        """Every category with a zero limit."""
        return [
            CategoryBudget(category=category, amount=Decimal("0"))
            for category in TransactionCategory
        ]

    async def get_budget(self, user_id: str, month: int, year: int) -> Optional[Budget]:
        return await self._budgets.get_budget(user_id, month, year)

    async def get_or_default(self, user_id: str, month: int, year: int) -> Budget:
        """The stored budget, or an unsaved blank one to edit."""
        budget = await self.get_budget(user_id, month, year)
        if budget is not None:
            return budget
        return Budget(
            user_id=user_id,
            month=month,
            year=year,
            category_budgets=self.default_category_budgets(),
        )

    async def save_budget(self, budget: Budget) -> Budget:
        """Insert or replace the budget for its (user, month, year)."""
        saved = await self._budgets.save_budget(budget)
        if self._audit_logger:
            await self._audit_logger.log_budget_saved(
                budget_id=saved.id,
                user_id=saved.user_id,
                month=saved.month,
                year=saved.year,
                overall_budget=str(saved.overall_budget),
            )
        return saved


@dataclass
class DashboardSnapshot:
    """Everything the dashboard page shows."""

    latest_summary: Optional[AnalysisSummary]
    recent_transactions: list[Transaction] = field(default_factory=list)
    business_total: Decimal = Decimal("0")
    streak_count: int = 0
    transaction_count: int = 0


class DashboardFlow:
    def __init__(
        self,
        repository: TransactionRepository,
        archive: SummaryArchive,
        accounts: AccountService,
        settings: Optional[AppSettings] = None,
    ):
        self._repository = repository
        self._archive = archive
        self._accounts = accounts
        self._settings = settings or AppSettings()

    async def snapshot(self, user_id: str) -> DashboardSnapshot:
        """Latest summary, newest transactions first, business total and streak."""
        user = await self._accounts.get_user(user_id)
        visible = await self._repository.list_for_user(user_id)
        recent_count = self._settings.dashboard_recent_count
        recent = list(reversed(visible[-recent_count:])) if recent_count > 0 else []
        return DashboardSnapshot(
            latest_summary=await self._archive.latest(user_id),
            recent_transactions=recent,
            business_total=business_total(visible),
            streak_count=user.streak_count,
            transaction_count=len(visible),
        )


class TransactionFlow:
    """Edits to stored transactions and the tax export."""

    def __init__(
        self,
        repository: TransactionRepository,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._audit_logger = audit_logger

    async def list_for_user(self, user_id: str) -> list[Transaction]:
        return await self._repository.list_for_user(user_id)

    async def toggle_business(self, user_id: str, transaction_id: str) -> Transaction:
        """
        Raises:
            NotFoundError: If the transaction does not exist
        """
        try:
            updated = await self._repository.toggle_business(transaction_id)
        except (NotFoundError, ImmutableFieldError) as e:
            if self._audit_logger:
                await self._audit_logger.log_update_failed(transaction_id, str(e))
            raise
        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id=transaction_id,
                user_id=user_id,
                changes={"is_business": updated.is_business},
            )
        return updated

    async def correct_category(
        self,
        user_id: str,
        transaction_id: str,
        category: TransactionCategory,
    ) -> Transaction:
        """
        Raises:
            NotFoundError: If the transaction does not exist
        """
        try:
            updated = await self._repository.correct_category(transaction_id, category)
        except (NotFoundError, ImmutableFieldError) as e:
            if self._audit_logger:
                await self._audit_logger.log_update_failed(transaction_id, str(e))
            raise
        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction_id=transaction_id,
                user_id=user_id,
                changes={"category": updated.category.value},
            )
        return updated

    async def export_tax(
        self,
        user_id: str,
        year: Optional[int] = None,
    ) -> tuple[str, str]:
        """
        Business transactions as CSV.

        Returns:
            (filename, csv_text)
        """
        year_label = year or date.today().year
        visible = await self._repository.list_for_user(user_id)
        csv_text = export_business_csv(visible, year)
        if self._audit_logger:
            await self._audit_logger.log_tax_export(
                user_id, len(business_transactions(visible, year))
            )
        return export_filename(year_label), csv_text


class ChatFlow:
    def __init__(
        self,
        gateway: GeminiGateway,
        repository: TransactionRepository,
        settings: Optional[AppSettings] = None,
    ):
        self._gateway = gateway
        self._repository = repository
        self._settings = settings or AppSettings()

    async def start(self, user_id: str) -> FinancialChat:
        """Open a chat seeded with the user's recent transactions."""
        history_size = self._settings.chat_history_size
        recent = await self._repository.recent(user_id, history_size)
        return FinancialChat.start(self._gateway, recent, history_size)


class AccountFlow:
    """Signup, login and household membership, audited."""

    def __init__(
        self,
        accounts: AccountService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._accounts = accounts
        self._audit_logger = audit_logger

    async def signup(self, name: str, email: str, password: str) -> User:
        user = await self._accounts.signup(name, email, password)
        if self._audit_logger:
            await self._audit_logger.log_user_signed_up(user.id, user.email)
        return user

    async def login(self, email: str, password: str) -> User:
        """
        Raises:
            ValidationFailure: On unknown email or wrong password
        """
        try:
            user = await self._accounts.login(email, password)
        except ValidationFailure:
            if self._audit_logger:
                await self._audit_logger.log_login_failed(email)
            raise
        if self._audit_logger:
            await self._audit_logger.log_user_logged_in(user.id, user.streak_count)
        return user

    async def get_user(self, user_id: str) -> User:
        return await self._accounts.get_user(user_id)

    async def join_household(self, user_id: str, household_id: Optional[str]) -> User:
        previous = (await self._accounts.get_user(user_id)).household_id
        user = await self._accounts.join_household(user_id, household_id)
        if self._audit_logger and previous != user.household_id:
            await self._audit_logger.log_household_changed(
                user_id=user_id,
                household_id=user.household_id,
                previous_household_id=previous,
            )
        return user

    async def leave_household(self, user_id: str) -> User:
        return await self.join_household(user_id, None)


@dataclass
class AppComponents:
    """All flows, wired to one storage client."""

    accounts: AccountFlow
    ingest: IngestFlow
    analysis: AnalysisFlow
    budgets: BudgetFlow
    bills: BillsFlow
    dashboard: DashboardFlow
    transactions: TransactionFlow
    chat: ChatFlow
    audit_logger: AuditLogger
    client: KeyValueClient


def create_app_components(
    settings: Optional[Settings] = None,
    gateway: Optional[GeminiGateway] = None,
    client: Optional[KeyValueClient] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Configuration (defaults to the environment)
        gateway: AI gateway. Built from the Gemini settings when omitted,
                which requires GEMINI_API_KEY.
        client: Key-value client. Built from the storage settings when
                omitted (in-memory or JSON file).
    """
    settings = settings or get_settings()
    app_settings = settings.app

    client = client or create_storage_client(settings.storage)
    gateway = gateway or GeminiGateway(settings.gemini, app_settings)

    users = KeyValueUserStorage(client)
    budgets = KeyValueBudgetStorage(client)
    audit_logger = AuditLogger(KeyValueAuditStorage(client))

    repository = TransactionRepository(KeyValueTransactionStorage(client), users)
    archive = SummaryArchive(KeyValueSummaryStorage(client))
    accounts = AccountService(users)
    validator = ExtractionValidator(app_settings)

    bills = BillsFlow(gateway, repository, audit_logger, app_settings)

    logger.info(
        "app_components_created",
        storage_backend=type(client).__name__,
        environment=app_settings.app_environment,
    )

    return AppComponents(
        accounts=AccountFlow(accounts, audit_logger),
        ingest=IngestFlow(gateway, repository, validator, audit_logger),
        analysis=AnalysisFlow(
            gateway, repository, archive, budgets, bills, audit_logger, app_settings
        ),
        budgets=BudgetFlow(budgets, audit_logger),
        bills=bills,
        dashboard=DashboardFlow(repository, archive, accounts, app_settings),
        transactions=TransactionFlow(repository, audit_logger),
        chat=ChatFlow(gateway, repository, app_settings),
        audit_logger=audit_logger,
        client=client,
    )
