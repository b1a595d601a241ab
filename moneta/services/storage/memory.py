"""
In-Memory Storage Implementation

Dictionary-backed storage for tests and for applications that embed the
ledger core and persist elsewhere. Every read returns deep copies so
callers get the same isolation a serializing backend would give them.
"""

from typing import Optional
from uuid import UUID

from moneta.models.audit import AuditEvent
from moneta.models.ledger import (
    Account,
    Business,
    Category,
    RecurringRule,
    Transaction,
    default_accounts,
    default_categories,
)
from moneta.models.statement import MonthlyStatement
from moneta.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


def _copies(records: list) -> list:
    return [record.model_copy(deep=True) for record in records]


def check_batch_scope(
    business_id: Optional[str],
    transactions: list[Transaction],
    live_ids: set[str],
) -> None:
    """Validate an append batch against its target ledger before any write."""
    seen: set[str] = set()
    for tx in transactions:
        if tx.business_id != business_id:
            raise StorageError(
                f"Transaction {tx.id} belongs to business {tx.business_id!r}, "
                f"not {business_id!r}"
            )
        if tx.id in live_ids or tx.id in seen:
            raise DuplicateError(f"Transaction already in live ledger: {tx.id}")
        seen.add(tx.id)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    In-memory implementation of ledger storage.

    Accounts and categories fall back to the built-in defaults unless
    seeded with `set_reference_data`.
    """

    def __init__(self):
        self._businesses: dict[str, Business] = {}
        self._active_business_id: Optional[str] = None
        self._recurrings: dict[str, dict[str, RecurringRule]] = {}
        self._transactions: dict[Optional[str], list[Transaction]] = {}
        self._statements: dict[Optional[str], list[MonthlyStatement]] = {}
        self._accounts: dict[Optional[str], list[Account]] = {}
        self._categories: dict[Optional[str], list[Category]] = {}

    def set_reference_data(
        self,
        business_id: Optional[str],
        accounts: Optional[list[Account]] = None,
        categories: Optional[list[Category]] = None,
    ) -> None:
        """Seed reference data for a business context."""
        if accounts is not None:
            self._accounts[business_id] = _copies(accounts)
        if categories is not None:
            self._categories[business_id] = _copies(categories)

    # Businesses

    async def get_businesses(self) -> list[Business]:
        return _copies(list(self._businesses.values()))

    async def add_business(self, business: Business) -> None:
        if business.id in self._businesses:
            raise DuplicateError(f"Business already exists: {business.id}")
        self._businesses[business.id] = business.model_copy(deep=True)

    async def update_business(self, business: Business) -> None:
        self._businesses[business.id] = business.model_copy(deep=True)

    async def delete_business(self, business_id: str) -> None:
        self._businesses.pop(business_id, None)
        self._recurrings.pop(business_id, None)
        self._transactions.pop(business_id, None)
        self._statements.pop(business_id, None)
        self._accounts.pop(business_id, None)
        self._categories.pop(business_id, None)
        if self._active_business_id == business_id:
            self._active_business_id = None

    async def get_active_business_id(self) -> Optional[str]:
        return self._active_business_id

    async def set_active_business_id(self, business_id: Optional[str]) -> None:
        self._active_business_id = business_id or None

    # Recurring rules

    async def get_recurrings(self, business_id: str) -> list[RecurringRule]:
        return _copies(list(self._recurrings.get(business_id, {}).values()))

    async def add_recurring(self, business_id: str, rule: RecurringRule) -> None:
        rules = self._recurrings.setdefault(business_id, {})
        if rule.id in rules:
            raise DuplicateError(f"Recurring rule already exists: {rule.id}")
        rules[rule.id] = rule.model_copy(deep=True)

    async def update_recurring(self, business_id: str, rule: RecurringRule) -> None:
        self._recurrings.setdefault(business_id, {})[rule.id] = rule.model_copy(deep=True)

    async def delete_recurring(self, business_id: str, rule_id: str) -> bool:
        return self._recurrings.get(business_id, {}).pop(rule_id, None) is not None

    # Reference data

    async def get_accounts(self, business_id: Optional[str]) -> list[Account]:
        if business_id in self._accounts:
            return _copies(self._accounts[business_id])
        return default_accounts()

    async def get_categories(self, business_id: Optional[str]) -> list[Category]:
        if business_id in self._categories:
            return _copies(self._categories[business_id])
        return default_categories()

    # Live ledger

    async def list_transactions(self, business_id: Optional[str]) -> list[Transaction]:
        return _copies(self._transactions.get(business_id, []))

    async def append_transactions(
        self,
        business_id: Optional[str],
        transactions: list[Transaction],
    ) -> None:
        ledger = self._transactions.setdefault(business_id, [])
        check_batch_scope(business_id, transactions, {tx.id for tx in ledger})
        ledger.extend(_copies(transactions))

    async def update_transaction(
        self,
        business_id: Optional[str],
        transaction: Transaction,
    ) -> None:
        ledger = self._transactions.get(business_id, [])
        for idx, existing in enumerate(ledger):
            if existing.id == transaction.id:
                ledger[idx] = transaction.model_copy(deep=True)
                return
        raise NotFoundError(f"Transaction not found: {transaction.id}")

    async def remove_transactions(
        self,
        business_id: Optional[str],
        transaction_ids: list[str],
    ) -> int:
        ledger = self._transactions.get(business_id, [])
        doomed = set(transaction_ids)
        kept = [tx for tx in ledger if tx.id not in doomed]
        removed = len(ledger) - len(kept)
        self._transactions[business_id] = kept
        return removed

    # Statements

    async def list_statements(self, business_id: Optional[str]) -> list[MonthlyStatement]:
        return _copies(self._statements.get(business_id, []))

    async def save_statement(self, statement: MonthlyStatement) -> None:
        statements = self._statements.setdefault(statement.business_id, [])
        if any(s.id == statement.id for s in statements):
            raise DuplicateError(f"Statement already exists: {statement.id}")
        statements.append(statement.model_copy(deep=True))

    async def delete_statement(
        self,
        business_id: Optional[str],
        statement_id: str,
    ) -> bool:
        statements = self._statements.get(business_id, [])
        kept = [s for s in statements if s.id != statement_id]
        self._statements[business_id] = kept
        return len(kept) != len(statements)


class InMemoryAuditStorage(AuditStorageInterface):
    """In-memory append-only audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
