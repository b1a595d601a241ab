"""
Statement Archiver

Pure helpers behind month archival: selecting one month of a business's
live ledger, freezing it into a MonthlyStatement, and listing the months
an auto-archive sweep is allowed to close. Storage access lives in
`StatementArchiveFlow`.

CRITICAL: Business matching is exact. The "no business" context (None)
matches only transactions without a business id.
"""

from datetime import date
from typing import Iterable, Optional

from moneta.models.ledger import Transaction
from moneta.models.statement import MonthlyStatement, StatementSummary


def select_month_transactions(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
    business_id: Optional[str],
) -> list[Transaction]:
    """
    Pick the live transactions belonging to one (year, month, business).

    Args:
        transactions: Live ledger to select from
        year: Calendar year
        month: Zero-based month index
        business_id: Business context, None for the personal context
    """
    return [
        tx for tx in transactions
        if tx.business_id == business_id and tx.in_month(year, month)
    ]


def build_statement(
    year: int,
    month: int,
    business_id: Optional[str],
    transactions: list[Transaction],
    archived_at: int,
) -> Optional[MonthlyStatement]:
    """
    Freeze `transactions` into a statement.

    Returns None for an empty selection; an empty month is never archived.
    """
    if not transactions:
        return None

    frozen = [tx.model_copy(deep=True) for tx in transactions]
    return MonthlyStatement(
        id=MonthlyStatement.make_id(year, month),
        year=year,
        month=month,
        month_name=MonthlyStatement.name_of_month(month),
        business_id=business_id,
        transactions=frozen,
        summary=StatementSummary.from_transactions(frozen),
        archived_at=archived_at,
    )


def archivable_months(today: date, lookback_years: int = 3) -> list[tuple[int, int]]:
    """
    Months an auto-archive sweep may close, as (year, zero-based month).

    Covers the current year and the `lookback_years - 1` before it. In the
    current year only months strictly before the current one qualify; the
    in-progress month is never returned.
    """
    months: list[tuple[int, int]] = []
    for year in range(today.year, today.year - lookback_years, -1):
        last_month = today.month - 1 if year == today.year else 12
        for month in range(last_month):
            months.append((year, month))
    return months


def statement_ids(statements: Iterable[MonthlyStatement]) -> set[str]:
    return {s.id for s in statements}


def archived_transaction_ids(statements: Iterable[MonthlyStatement]) -> set[str]:
    """Ids of every transaction frozen in the given statements."""
    return {tx.id for s in statements for tx in s.transactions}
