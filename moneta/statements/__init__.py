"""Monthly statement archival and annual rollups."""

from moneta.statements.annual import build_annual_statements
from moneta.statements.archiver import (
    archivable_months,
    archived_transaction_ids,
    build_statement,
    select_month_transactions,
    statement_ids,
)

__all__ = [
    "archivable_months",
    "archived_transaction_ids",
    "build_annual_statements",
    "build_statement",
    "select_month_transactions",
    "statement_ids",
]
