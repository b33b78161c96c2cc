"""
Budget Comparator

Joins a period's category aggregates against a stored budget.

Usage bands (the analysis page colours rows by these):
- budget <= 0            -> UNKNOWN
- percent < 80           -> UNDER
- 80 <= percent <= 100   -> NEAR_LIMIT
- percent > 100          -> OVER

The same classify_usage() serves the overall indicator and every
category row. Arithmetic is Decimal so the 80 and 100 boundaries are exact.
"""

from decimal import Decimal
from typing import Optional, Union

from r2r.models.finance import (
    Budget,
    BudgetBand,
    BudgetComparison,
    BudgetLine,
    CategoryAggregate,
)


NEAR_LIMIT_PERCENT = Decimal("80")
FULL_PERCENT = Decimal("100")

Number = Union[Decimal, int, float]


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() avoids binary float artefacts such as 0.1 -> 0.1000000000000000055
    return Decimal(str(value))


def usage_percent(actual: Number, budget_amount: Number) -> Decimal:
    """100 * actual / budget, or 0 when there is no positive budget."""
    actual = _to_decimal(actual)
    budget_amount = _to_decimal(budget_amount)
    if budget_amount <= 0:
        return Decimal("0")
    return actual * 100 / budget_amount


def percent_used(actual: Number, budget_amount: Number) -> float:
    return float(usage_percent(actual, budget_amount))


def classify_usage(actual: Number, budget_amount: Number) -> BudgetBand:
    """Band for spend against a budget amount."""
    if _to_decimal(budget_amount) <= 0:
        return BudgetBand.UNKNOWN

    percent = usage_percent(actual, budget_amount)
    if percent < NEAR_LIMIT_PERCENT:
        return BudgetBand.UNDER
    if percent <= FULL_PERCENT:
        return BudgetBand.NEAR_LIMIT
    return BudgetBand.OVER


def budget_line(
    actual: Number,
    budget_amount: Number,
    category=None,
) -> BudgetLine:
    actual = _to_decimal(actual)
    budget_amount = _to_decimal(budget_amount)
    return BudgetLine(
        category=category,
        budget_amount=budget_amount,
        actual=actual,
        percent_used=percent_used(actual, budget_amount),
        band=classify_usage(actual, budget_amount),
    )


def compare_budget(
    budget: Optional[Budget],
    top_categories: list[CategoryAggregate],
    total_spend: Number,
) -> BudgetComparison:
    """
    Budget-vs-actual for the overall budget and each budgeted category.

    Categories with spend but no budget entry are not reported; budgeted
    categories with no spend report an actual of 0.
    """
    if budget is None:
        return BudgetComparison(overall=budget_line(total_spend, 0))

    actual_by_category = {agg.category: agg.amount for agg in top_categories}

    categories = [
        budget_line(
            actual_by_category.get(entry.category, Decimal("0")),
            entry.amount,
            category=entry.category,
        )
        for entry in budget.category_budgets
    ]

    return BudgetComparison(
        overall=budget_line(total_spend, budget.overall_budget),
        categories=categories,
    )
