"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the local JSON store for a remote one later
2. Use in-memory storage for testing
3. Keep scheduler and archiver logic decoupled from persistence transport

Everything is keyed by business id. For ledger data (transactions,
statements, reference data) a business id of None addresses the
"no business" context, which is a scope of its own and never matches
a real business.

Ledger access is explicit (append / remove / list) rather than a
wholesale dataset rewrite, so a partially failed batch can never
clobber unrelated records.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from moneta.models.audit import AuditEvent
from moneta.models.ledger import (
    Account,
    Business,
    Category,
    RecurringRule,
    Transaction,
)
from moneta.models.statement import MonthlyStatement


class LedgerStorageInterface(ABC):
    """
    Abstract interface for business-scoped ledger storage.

    Any storage implementation (in-memory, JSON files, remote sync)
    must implement these methods. Implementations return copies:
    mutating a returned record never changes stored state.
    """

    # ------------------------------------------------------------------
    # Businesses
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_businesses(self) -> list[Business]:
        """List all businesses."""
        pass

    @abstractmethod
    async def add_business(self, business: Business) -> None:
        """
        Add a new business.

        Raises:
            DuplicateError: If a business with the same id exists
        """
        pass

    @abstractmethod
    async def update_business(self, business: Business) -> None:
        """Upsert a business by id."""
        pass

    @abstractmethod
    async def delete_business(self, business_id: str) -> None:
        """
        Delete a business together with its dataset and recurring rules.

        Clears the active business id when it pointed at the deleted one.
        """
        pass

    @abstractmethod
    async def get_active_business_id(self) -> Optional[str]:
        """Get the persisted active business id, if any."""
        pass

    @abstractmethod
    async def set_active_business_id(self, business_id: Optional[str]) -> None:
        """Persist the active business id (None clears it)."""
        pass

    # ------------------------------------------------------------------
    # Recurring rules
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_recurrings(self, business_id: str) -> list[RecurringRule]:
        """List recurring rules stored for a business, in insertion order."""
        pass

    @abstractmethod
    async def add_recurring(self, business_id: str, rule: RecurringRule) -> None:
        """
        Add a recurring rule.

        Raises:
            DuplicateError: If a rule with the same id exists
        """
        pass

    @abstractmethod
    async def update_recurring(self, business_id: str, rule: RecurringRule) -> None:
        """Upsert a recurring rule by id."""
        pass

    @abstractmethod
    async def delete_recurring(self, business_id: str, rule_id: str) -> bool:
        """
        Delete a recurring rule.

        Returns:
            True if a rule was removed
        """
        pass

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_accounts(self, business_id: Optional[str]) -> list[Account]:
        """Accounts for a business context (defaults when none stored)."""
        pass

    @abstractmethod
    async def get_categories(self, business_id: Optional[str]) -> list[Category]:
        """Categories for a business context (defaults when none stored)."""
        pass

    # ------------------------------------------------------------------
    # Live ledger
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_transactions(self, business_id: Optional[str]) -> list[Transaction]:
        """List live transactions whose business id equals `business_id` exactly."""
        pass

    @abstractmethod
    async def append_transactions(
        self,
        business_id: Optional[str],
        transactions: list[Transaction],
    ) -> None:
        """
        Append transactions to a live ledger in one batch.

        The batch is all-or-nothing.

        Raises:
            DuplicateError: If any id is already live in this context
            StorageError: If a transaction belongs to another context
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        business_id: Optional[str],
        transaction: Transaction,
    ) -> None:
        """
        Replace a live transaction.

        Raises:
            NotFoundError: If the transaction is not live in this context
        """
        pass

    @abstractmethod
    async def remove_transactions(
        self,
        business_id: Optional[str],
        transaction_ids: list[str],
    ) -> int:
        """
        Remove live transactions by id.

        Returns:
            Number of transactions removed
        """
        pass

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_statements(self, business_id: Optional[str]) -> list[MonthlyStatement]:
        """List archived monthly statements for a business context."""
        pass

    @abstractmethod
    async def save_statement(self, statement: MonthlyStatement) -> None:
        """
        Store a new monthly statement under its own business context.

        Raises:
            DuplicateError: If the context already has a statement with that id
        """
        pass

    @abstractmethod
    async def delete_statement(
        self,
        business_id: Optional[str],
        statement_id: str,
    ) -> bool:
        """
        Delete a statement record.

        Returns:
            True if a statement was removed
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass
