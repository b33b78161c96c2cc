"""Deterministic analytics package."""

from r2r.analytics.aggregation import (
    aggregate_period,
    business_total,
    category_breakdown,
    filter_by_period,
    resolve_period,
    total_spend,
)
from r2r.analytics.budget import (
    budget_line,
    classify_usage,
    compare_budget,
    percent_used,
    usage_percent,
)

__all__ = [
    "aggregate_period",
    "budget_line",
    "business_total",
    "category_breakdown",
    "classify_usage",
    "compare_budget",
    "filter_by_period",
    "percent_used",
    "resolve_period",
    "total_spend",
    "usage_percent",
]
