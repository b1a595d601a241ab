"""Pytest configuration and fixtures."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from moneta.audit import AuditLogger
from moneta.config import get_settings
from moneta.models.ledger import RecurringRule, Transaction, TransactionType
from moneta.scheduler.clock import fixed_clock, to_ms
from moneta.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage

# 2024-04-14 12:00 UTC; April is the in-progress month in every test
NOW = to_ms(datetime(2024, 4, 14, 12, 0, tzinfo=timezone.utc))

BUSINESS_ID = "b_acme001"
OTHER_BUSINESS_ID = "b_other01"


def make_rule(**overrides) -> RecurringRule:
    """A monthly $49 hosting expense on the LLC checking account."""
    fields = dict(
        id="r_hosting",
        business_id=BUSINESS_ID,
        account_id="2",
        amount=Decimal("49.00"),
        is_expense=True,
        category_id="5",
        description="Hosting",
        frequency="monthly",
        start_date="2024-01-20",
    )
    fields.update(overrides)
    return RecurringRule(**fields)


def make_transaction(
    tx_id: str,
    day: date,
    amount: str,
    business_id=BUSINESS_ID,
    **overrides,
) -> Transaction:
    fields = dict(
        id=tx_id,
        account_id="2",
        business_id=business_id,
        transaction_date=day,
        amount=Decimal(amount),
        category_id="2",
        description=f"Transaction {tx_id}",
        type=TransactionType.BUSINESS,
    )
    fields.update(overrides)
    return Transaction(**fields)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; give every test a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)
