"""Data-entry validation package."""

from r2r.validation.validator import (
    ExtractionValidator,
    UserInputFailure,
    parse_amount,
    parse_datetime,
)

__all__ = [
    "ExtractionValidator",
    "UserInputFailure",
    "parse_amount",
    "parse_datetime",
]
