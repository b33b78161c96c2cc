"""
Tax export.

Business-flagged transactions as CSV, for the accountant.
"""

import csv
import io
from typing import Optional

from r2r.models.finance import Transaction


CSV_HEADER = ["Date", "Merchant", "Amount", "Category", "Currency"]


def export_filename(year: int) -> str:
    return f"R2R_Tax_Export_{year}.csv"


def business_transactions(
    transactions: list[Transaction],
    year: Optional[int] = None,
) -> list[Transaction]:
    """
    Business transactions, oldest first.

    Args:
        transactions: Candidate transactions
        year: Only keep transactions from this calendar year (None keeps all)
    """
    selected = [
        t for t in transactions
        if t.is_business and (year is None or t.occurred_at.year == year)
    ]
    return sorted(selected, key=lambda t: t.occurred_at)


def export_business_csv(
    transactions: list[Transaction],
    year: Optional[int] = None,
) -> str:
    """
    Render business transactions as CSV text.

    Always includes the header row, even when nothing matches. Fields
    containing commas or quotes are quoted.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for t in business_transactions(transactions, year):
        writer.writerow([
            t.occurred_at.isoformat(),
            t.merchant,
            str(t.amount),
            t.category.value,
            t.currency,
        ])
    return buffer.getvalue()
