"""
Annual Aggregator

Yearly rollups are a projection of the monthly statements and are rebuilt
on every call. Nothing here is cached or persisted.
"""

from typing import Iterable, Optional

from moneta.models.statement import AnnualStatement, AnnualSummary, MonthlyStatement


def build_annual_statements(
    statements: Iterable[MonthlyStatement],
    business_id: Optional[str],
) -> list[AnnualStatement]:
    """
    Group a business's monthly statements into annual statements.

    Years are sorted newest first, and so are the months within each year.
    Statements of other business contexts are ignored.
    """
    by_year: dict[int, list[MonthlyStatement]] = {}
    for statement in statements:
        if statement.business_id != business_id:
            continue
        by_year.setdefault(statement.year, []).append(statement)

    annual: list[AnnualStatement] = []
    for year in sorted(by_year, reverse=True):
        months = sorted(by_year[year], key=lambda s: s.month, reverse=True)
        summary = AnnualSummary()
        for statement in months:
            summary.total_income += statement.summary.total_income
            summary.total_expenses += statement.summary.total_expenses
            summary.net_amount += statement.summary.net_amount
            summary.total_transactions += statement.summary.transaction_count
        annual.append(AnnualStatement(
            year=year,
            monthly_statements=months,
            annual_summary=summary,
        ))
    return annual
