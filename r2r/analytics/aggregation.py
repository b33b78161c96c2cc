"""
Period Aggregation Engine

DESIGN DECISION: Aggregation is DETERMINISTIC and pure.
The AI service never computes totals or shares; it only gets to
comment on a transaction set. Everything on the dashboard that is a
number comes from this module.

Contract:
- A transaction is in the period when start <= occurred_at <= end
  (both bounds inclusive, compared as timestamps)
- Category percentages are 100 * category / total, or 0 when the total is 0
- Categories are ordered by amount, largest first; ties keep the order in
  which the categories were first seen
- An empty period yields zero totals and no categories, never an error
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterable, Union

from r2r.models.finance import (
    CategoryAggregate,
    PeriodAggregate,
    Transaction,
    TransactionCategory,
)


PeriodBound = Union[date, datetime]


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def resolve_period(start: PeriodBound, end: PeriodBound) -> tuple[datetime, datetime]:
    """
    Turn user-facing bounds into an inclusive datetime range.

    Plain dates cover the whole day: the start date from midnight,
    the end date up to its last microsecond.

    Raises:
        ValueError: If start is after end
    """
    # datetime is a subclass of date, so check it first
    if isinstance(start, datetime):
        start_dt = _as_naive_utc(start)
    else:
        start_dt = datetime.combine(start, time.min)

    if isinstance(end, datetime):
        end_dt = _as_naive_utc(end)
    else:
        end_dt = datetime.combine(end, time.max)

    if start_dt > end_dt:
        raise ValueError(
            f"Period start {start_dt.isoformat()} is after end {end_dt.isoformat()}"
        )
    return start_dt, end_dt


def filter_by_period(
    transactions: Iterable[Transaction],
    start: datetime,
    end: datetime,
) -> list[Transaction]:
    """Transactions whose timestamp falls within [start, end]."""
    start = _as_naive_utc(start)
    end = _as_naive_utc(end)
    return [t for t in transactions if start <= t.occurred_at <= end]


def total_spend(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), Decimal("0"))


def business_total(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of the transactions flagged as business expenses."""
    return total_spend(t for t in transactions if t.is_business)


def category_breakdown(
    transactions: Iterable[Transaction],
    total: Decimal,
) -> list[CategoryAggregate]:
    """
    Group amounts by category and compute each category's share of total.

    The caller passes the total so that the shares are always relative to
    the same figure that is reported as the period's spend.
    """
    # dicts keep insertion order, which gives first-seen order for ties
    sums: dict[TransactionCategory, Decimal] = {}
    for transaction in transactions:
        sums[transaction.category] = (
            sums.get(transaction.category, Decimal("0")) + transaction.amount
        )

    breakdown = [
        CategoryAggregate(
            category=category,
            amount=amount,
            percentage=float(amount * 100 / total) if total > 0 else 0.0,
        )
        for category, amount in sums.items()
    ]
    # sorted() is stable
    return sorted(breakdown, key=lambda agg: agg.amount, reverse=True)


def aggregate_period(
    transactions: Iterable[Transaction],
    start: datetime,
    end: datetime,
) -> PeriodAggregate:
    """
    Compute totals and the category breakdown for one period.

    Pure: the same transactions and range always give the same result.
    """
    in_period = filter_by_period(transactions, start, end)
    total = total_spend(in_period)

    return PeriodAggregate(
        period_start=_as_naive_utc(start),
        period_end=_as_naive_utc(end),
        total_spend=total,
        total_transactions=len(in_period),
        top_categories=category_breakdown(in_period, total),
    )
