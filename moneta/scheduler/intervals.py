"""
Interval Calculator

Given a rule's frequency and an occurrence timestamp, computes the next
occurrence timestamp. Pure function, no side effects.

Calendar steps use overflow semantics rather than clamping: stepping
Jan 31 by one month lands on Mar 3 (Mar 2 in leap years) because the
surplus days roll into the following month. Feb 29 stepped by one year
lands on Mar 1.

The weekly step is a flat 7 days and the monthly step is one calendar
month from the anchor; `weekday` and `day_of_month` are not consulted.
"""

from datetime import datetime, timedelta

from moneta.models.ledger import Frequency, RecurringRule
from moneta.scheduler.clock import from_ms, to_ms

DEFAULT_DAILY_INTERVAL_DAYS = 1
DEFAULT_CUSTOM_INTERVAL_DAYS = 30


def add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, rolling surplus days into the next month."""
    total = moment.year * 12 + (moment.month - 1) + months
    year, month_index = divmod(total, 12)
    first = moment.replace(year=year, month=month_index + 1, day=1)
    return first + timedelta(days=moment.day - 1)


def _interval_days(rule: RecurringRule, default: int) -> int:
    if rule.interval_days and rule.interval_days > 0:
        return rule.interval_days
    return default


def advance(timestamp: int, rule: RecurringRule) -> int:
    """
    Compute the occurrence that follows `timestamp` for `rule`.

    Raises:
        ValueError: If the computed step would not move time forward
    """
    moment = from_ms(timestamp)

    if rule.frequency == Frequency.DAILY:
        following = moment + timedelta(days=_interval_days(rule, DEFAULT_DAILY_INTERVAL_DAYS))
    elif rule.frequency == Frequency.WEEKLY:
        following = moment + timedelta(days=7)
    elif rule.frequency == Frequency.MONTHLY:
        following = add_months(moment, 1)
    elif rule.frequency == Frequency.YEARLY:
        following = add_months(moment, 12)
    else:
        following = moment + timedelta(days=_interval_days(rule, DEFAULT_CUSTOM_INTERVAL_DAYS))

    result = to_ms(following)
    if result <= timestamp:
        raise ValueError(
            f"Interval for rule {rule.id} did not advance past {timestamp}"
        )
    return result
