"""
Recurrence Expander

Turns one recurring rule into the transactions that fell due between its
last run and "now", advancing the rule's bookkeeping as it goes.

DESIGN DECISION: Catch-up, not lump sums. A rule that was dormant for
several periods produces one transaction per elapsed period.

DESIGN DECISION: Generated ids are derived from the rule id and the
occurrence timestamp (`rec-{rule_id}-{timestamp}`). Expanding the same
rule state twice yields the same ids, which is what lets the caller
detect and drop replays before inserting.

The caller's rule instance is never mutated; the advanced rule is
returned as a copy.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from moneta.models.ledger import (
    RecurringRule,
    SubscriptionType,
    Transaction,
    TransactionType,
)
from moneta.scheduler.clock import from_ms, parse_iso_timestamp
from moneta.scheduler.intervals import advance

logger = structlog.get_logger(__name__)


class ExpansionResult(BaseModel):
    """Transactions generated for one rule plus its updated state."""

    transactions: list[Transaction] = Field(default_factory=list)
    rule: RecurringRule
    deactivated: bool = Field(
        default=False,
        description="The rule ran past its end date during this expansion"
    )
    exhausted: bool = Field(
        default=False,
        description="The rule's end date was already behind its next run; nothing was touched"
    )

    @property
    def changed(self) -> bool:
        return bool(self.transactions) or self.deactivated


def occurrence_id(rule_id: str, timestamp: int) -> str:
    """Deterministic id of the transaction a rule produces at `timestamp`."""
    return f"rec-{rule_id}-{timestamp}"


def build_occurrence(
    rule: RecurringRule,
    timestamp: int,
    transaction_type: TransactionType = TransactionType.BUSINESS,
    created_at: Optional[int] = None,
) -> Transaction:
    """Synthesize the transaction for one occurrence of `rule`."""
    return Transaction(
        id=occurrence_id(rule.id, timestamp),
        account_id=rule.account_id,
        business_id=rule.business_id,
        recurring_id=rule.id,
        transaction_date=from_ms(timestamp).date(),
        amount=rule.signed_amount,
        category_id=rule.category_id,
        description=rule.description or ("Expense" if rule.is_expense else "Income"),
        type=transaction_type,
        subscription_type=SubscriptionType.RECURRING,
        created_at=created_at if created_at is not None else timestamp,
    )


def starting_point(rule: RecurringRule, now: int) -> int:
    """
    Where expansion resumes for `rule`.

    `next_run_at` wins when set; otherwise the start date. A start date
    that cannot be parsed makes the rule resume from `now`.
    """
    if rule.next_run_at is not None:
        return rule.next_run_at
    start = parse_iso_timestamp(rule.start_date)
    if start is None:
        logger.warning(
            "recurring_rule_malformed_start",
            rule_id=rule.id,
            start_date=rule.start_date,
        )
        return now
    return start


def expand_due(
    rule: RecurringRule,
    now: int,
    transaction_type: TransactionType = TransactionType.BUSINESS,
) -> ExpansionResult:
    """
    Generate every transaction `rule` owes up to and including `now`.

    Args:
        rule: The recurring rule to expand
        now: Current time (epoch ms)
        transaction_type: Scope stamped on generated transactions,
            normally the owning account's category

    Returns:
        ExpansionResult with zero or more transactions and the advanced rule
    """
    if not rule.active:
        return ExpansionResult(rule=rule)

    next_run = starting_point(rule, now)
    end = parse_iso_timestamp(rule.end_date)

    if end is not None and end < next_run:
        return ExpansionResult(rule=rule, exhausted=True)

    updated = rule.model_copy(deep=True)
    generated: list[Transaction] = []
    deactivated = False

    while next_run <= now:
        if end is not None and next_run > end:
            updated.active = False
            deactivated = True
            break

        generated.append(
            build_occurrence(updated, next_run, transaction_type, created_at=now)
        )

        updated.last_run_at = next_run
        next_run = advance(next_run, updated)
        updated.next_run_at = next_run

    return ExpansionResult(
        transactions=generated,
        rule=updated,
        deactivated=deactivated,
    )
