"""
Data-Entry Validation

DESIGN DECISION: Malformed input is rejected HERE, at the boundary between
the AI extraction and the store, never inside the analytics core. The
aggregation and budget code can then assume every amount is a
non-negative Decimal and every timestamp is a real datetime.

Two checks live here:
1. Ingest payload - the user must submit some text or at least one image
2. Extracted items - each record the AI returns is converted into a
   Transaction or reported as a ValidationIssue

IMPORTANT: Rejected items are reported, not silently repaired. The only
normalisation is mapping unknown categories to Misc and filling in the
default currency.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import ValidationError

from r2r.config import AppSettings
from r2r.models.finance import (
    ImageUpload,
    SourceType,
    Transaction,
    TransactionCategory,
    ValidationIssue,
)


# Formats seen in receipts and bank SMS, tried after ISO 8601
DATETIME_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d %b %Y",
    "%b %d, %Y",
]

_AMOUNT_NOISE = re.compile(r"[^\d.\-]")


class UserInputFailure(ValueError):
    """The request itself is unusable (empty payload, bad image, bad range)."""
    pass


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount such as 12.5, "12.50", "$1,204.99" or "USD 7".

    Returns None when the value is not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        text = _AMOUNT_NOISE.sub("", str(value))
    if not text or text in {"-", ".", "-."}:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp from the extraction. Returns None if unrecognised."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return False


class ExtractionValidator:
    """
    Converts raw extracted records into transactions.

    A record is rejected when:
    - the amount is missing, non-numeric or negative
    - the merchant is missing
    - the datetime is missing or unparseable
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or AppSettings()

    def validate_ingest_payload(
        self,
        raw_text: Optional[str],
        images: Optional[list[ImageUpload]] = None,
    ) -> None:
        """
        Raises:
            UserInputFailure: If there is nothing to extract from, or an
                image is too large or in an unsupported format
        """
        images = images or []
        if not (raw_text and raw_text.strip()) and not images:
            raise UserInputFailure("Paste some text or attach at least one receipt image")

        for image in images:
            if image.size_bytes == 0:
                raise UserInputFailure(f"{image.filename} is empty")
            if image.size_bytes > self._settings.max_upload_size_bytes:
                raise UserInputFailure(
                    f"{image.filename} is larger than "
                    f"{self._settings.max_upload_size_mb} MB"
                )
            extension = image.filename.rsplit(".", 1)[-1].lower()
            if "." in image.filename and extension not in self._settings.supported_formats_list:
                raise UserInputFailure(
                    f"{image.filename}: unsupported format .{extension}"
                )

    def to_transaction(
        self,
        index: int,
        record: dict[str, Any],
        user_id: str,
        source_type: SourceType,
        raw_text: str = "",
    ) -> tuple[Optional[Transaction], list[ValidationIssue]]:
        """Convert one record. Returns (transaction or None, issues)."""
        issues = []

        merchant = str(record.get("merchant") or "").strip()
        if not merchant:
            issues.append(ValidationIssue(
                index=index,
                field="merchant",
                message="Merchant is missing",
            ))

        raw_amount = record.get("amount")
        amount = parse_amount(raw_amount)
        if amount is None:
            issues.append(ValidationIssue(
                index=index,
                field="amount",
                message="Amount is not a number",
                raw_value=None if raw_amount is None else str(raw_amount),
            ))
        elif amount < 0:
            issues.append(ValidationIssue(
                index=index,
                field="amount",
                message="Amount cannot be negative",
                raw_value=str(raw_amount),
            ))

        raw_datetime = record.get("datetime")
        occurred_at = parse_datetime(raw_datetime)
        if occurred_at is None:
            issues.append(ValidationIssue(
                index=index,
                field="datetime",
                message="Date is missing or unreadable",
                raw_value=None if raw_datetime is None else str(raw_datetime),
            ))

        if issues:
            return None, issues

        currency = (
            str(record.get("currency") or "").strip()
            or self._settings.default_currency
        )
        try:
            transaction = Transaction(
                user_id=user_id,
                occurred_at=occurred_at,
                merchant=merchant[:200],
                amount=amount,
                currency=currency.upper()[:10],
                category=TransactionCategory.parse(record.get("category")),
                source_type=source_type,
                raw_text=raw_text,
                is_business=parse_flag(record.get("isBusiness")),
            )
        except ValidationError as e:
            return None, [
                ValidationIssue(
                    index=index,
                    field=".".join(str(part) for part in error["loc"]) or "record",
                    message=error["msg"],
                    raw_value=None if error.get("input") is None else str(error["input"])[:100],
                )
                for error in e.errors()
            ]
        return transaction, []

    def to_transactions(
        self,
        records: list[dict[str, Any]],
        user_id: str,
        source_type: SourceType,
        raw_text: str = "",
    ) -> tuple[list[Transaction], list[ValidationIssue]]:
        """
        Convert every record, keeping the valid ones.

        Returns:
            (transactions, issues) - issues describe the rejected records
        """
        transactions = []
        issues = []
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                issues.append(ValidationIssue(
                    index=index,
                    field="record",
                    message="Extracted item is not an object",
                    raw_value=str(record)[:100],
                ))
                continue
            transaction, record_issues = self.to_transaction(
                index, record, user_id, source_type, raw_text
            )
            if transaction is not None:
                transactions.append(transaction)
            issues.extend(record_issues)
        return transactions, issues

    def get_user_friendly_summary(self, issues: list[ValidationIssue]) -> str:
        """Short message for the upload page."""
        if not issues:
            return "All extracted transactions look good."
        skipped = len({issue.index for issue in issues})
        lines = [f"{skipped} extracted item(s) were skipped:"]
        for issue in issues[:5]:
            lines.append(f"- item {issue.index + 1}: {issue.message}")
        if len(issues) > 5:
            lines.append(f"... and {len(issues) - 5} more")
        return "\n".join(lines)
