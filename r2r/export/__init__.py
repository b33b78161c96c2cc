"""Data export package."""

from r2r.export.tax import (
    business_transactions,
    export_business_csv,
    export_filename,
)

__all__ = [
    "business_transactions",
    "export_business_csv",
    "export_filename",
]
