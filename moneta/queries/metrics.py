"""
Ledger Metrics

DESIGN DECISION: Metrics are DETERMINISTIC read-only projections.
They are computed from the live ledger on every call and never stored,
so archiving or unarchiving a month can never leave a stale figure.

GUARANTEES:
- Only reads storage, never writes
- Scoped to one business context
- Decimal arithmetic throughout
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from moneta.config import get_settings
from moneta.models.ledger import SubscriptionType, Transaction, TransactionType
from moneta.scheduler.clock import Clock, from_ms, now_ms
from moneta.services.storage import LedgerStorageInterface

ZERO = Decimal("0")


class BusinessMetrics(BaseModel):
    """Business cash flow since the start of the current month."""

    income: Decimal = ZERO
    expenses: Decimal = ZERO
    net: Decimal = ZERO


class SaaSMetrics(BaseModel):
    """Subscription-business indicators over the live ledger."""

    mrr: Decimal = Field(
        default=ZERO,
        description="Business income marked as recurring"
    )
    total_income: Decimal = ZERO
    fixed_costs: Decimal = ZERO
    tax_reserve: Decimal = ZERO
    monthly_burn_rate: Decimal = ZERO
    burn_rate_vs_revenue: Optional[Decimal] = Field(
        default=ZERO,
        description="Fixed costs as a percentage of MRR; None when there is no MRR to compare against"
    )


class LedgerMetrics:
    """
    Computes dashboard figures for one business context.

    The context is passed on every call; nothing is cached between calls.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        clock: Clock = now_ms,
    ):
        self._storage = storage
        self._clock = clock
        self._settings = get_settings().metrics

    def _today(self) -> date:
        return from_ms(self._clock()).date()

    async def account_balance(
        self,
        business_id: Optional[str],
        account_id: str,
    ) -> Decimal:
        """Sum of signed amounts booked on an account."""
        transactions = await self._storage.list_transactions(business_id)
        return sum(
            (tx.amount for tx in transactions if tx.account_id == account_id),
            ZERO,
        )

    async def current_month_transactions(
        self,
        business_id: Optional[str],
    ) -> list[Transaction]:
        """Live transactions dated in the current calendar month."""
        today = self._today()
        transactions = await self._storage.list_transactions(business_id)
        return [tx for tx in transactions if tx.in_month(today.year, today.month - 1)]

    async def business_metrics(self, business_id: Optional[str]) -> BusinessMetrics:
        """Income, expenses and net of business transactions this month."""
        month_start = self._today().replace(day=1)
        transactions = await self._storage.list_transactions(business_id)
        business = [
            tx for tx in transactions
            if tx.type == TransactionType.BUSINESS and tx.transaction_date >= month_start
        ]

        income = sum((tx.amount for tx in business if tx.amount > 0), ZERO)
        expenses = sum((abs(tx.amount) for tx in business if tx.amount < 0), ZERO)

        return BusinessMetrics(income=income, expenses=expenses, net=income - expenses)

    async def saas_metrics(self, business_id: Optional[str]) -> SaaSMetrics:
        """
        MRR, fixed costs and burn rate over all live business transactions.

        Fixed costs are expenses whose category name is one of the
        configured fixed-cost categories.
        """
        transactions = await self._storage.list_transactions(business_id)
        categories = await self._storage.get_categories(business_id)

        fixed_names = set(self._settings.fixed_cost_categories_list)
        fixed_category_ids = {c.id for c in categories if c.name in fixed_names}

        business = [tx for tx in transactions if tx.type == TransactionType.BUSINESS]

        mrr = sum(
            (
                tx.amount for tx in business
                if tx.amount > 0 and tx.subscription_type == SubscriptionType.RECURRING
            ),
            ZERO,
        )
        total_income = sum((tx.amount for tx in business if tx.amount > 0), ZERO)
        fixed_costs = sum(
            (
                abs(tx.amount) for tx in business
                if tx.amount < 0 and tx.category_id in fixed_category_ids
            ),
            ZERO,
        )
        tax_reserve = total_income * Decimal(str(self._settings.tax_reserve_rate))

        if fixed_costs <= 0:
            burn_ratio: Optional[Decimal] = ZERO
        elif mrr == 0:
            burn_ratio = None
        else:
            burn_ratio = fixed_costs / mrr * 100

        return SaaSMetrics(
            mrr=mrr,
            total_income=total_income,
            fixed_costs=fixed_costs,
            tax_reserve=tax_reserve,
            monthly_burn_rate=fixed_costs,
            burn_rate_vs_revenue=burn_ratio,
        )
