"""
Statement Models for Moneta

A monthly statement is an immutable snapshot of one business's
transactions for one calendar month, removed from the live ledger at
archive time. Annual statements are never persisted; they are derived
from monthly statements on every read.
"""

import calendar
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator

from moneta.models.ledger import Transaction


class StatementSummary(BaseModel):
    """Aggregates computed once, when a month is archived."""

    total_income: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Sum of positive amounts"
    )
    total_expenses: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Sum of absolute values of negative amounts"
    )
    net_amount: Decimal = Field(
        default=Decimal("0"),
        description="Sum of all signed amounts"
    )
    transaction_count: int = Field(default=0, ge=0)

    @classmethod
    def from_transactions(cls, transactions: Iterable[Transaction]) -> 'StatementSummary':
        income = Decimal("0")
        expenses = Decimal("0")
        net = Decimal("0")
        count = 0
        for tx in transactions:
            if tx.amount > 0:
                income += tx.amount
            elif tx.amount < 0:
                expenses += abs(tx.amount)
            net += tx.amount
            count += 1
        return cls(
            total_income=income,
            total_expenses=expenses,
            net_amount=net,
            transaction_count=count,
        )


class MonthlyStatement(BaseModel):
    """
    A closed month for one business context.

    CRITICAL: `transactions` are exactly the live transactions for
    (year, month, business) at archive time. No partial archival.
    """

    id: str = Field(
        ...,
        description="'{year}-{month}' with a zero-based month"
    )
    year: int = Field(..., ge=1)
    month: int = Field(
        ...,
        ge=0,
        le=11,
        description="Zero-based month index"
    )
    month_name: str
    business_id: Optional[str] = None
    transactions: list[Transaction] = Field(default_factory=list)
    summary: StatementSummary
    archived_at: int = Field(
        ...,
        description="When the month was archived (epoch ms)"
    )

    @field_validator('business_id', mode='before')
    @classmethod
    def blank_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @staticmethod
    def make_id(year: int, month: int) -> str:
        return f"{year}-{month}"

    @staticmethod
    def name_of_month(month: int) -> str:
        return calendar.month_name[month + 1]


class AnnualSummary(BaseModel):
    """Summed monthly summaries for one year."""

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")
    total_transactions: int = 0


class AnnualStatement(BaseModel):
    """Derived yearly rollup. Never persisted."""

    year: int
    monthly_statements: list[MonthlyStatement] = Field(default_factory=list)
    annual_summary: AnnualSummary = Field(default_factory=AnnualSummary)
