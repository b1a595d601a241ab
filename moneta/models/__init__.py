"""
Data Models Package

This package contains all Pydantic models used by Moneta.
Everything read from or written to storage must conform to these schemas.
"""

from moneta.models.ledger import (
    Account,
    AccountCategory,
    Business,
    BusinessSettings,
    Category,
    CategoryKind,
    Frequency,
    RecurringRule,
    SchedulerRunResult,
    SubscriptionType,
    Transaction,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    default_accounts,
    default_categories,
)
from moneta.models.statement import (
    AnnualStatement,
    AnnualSummary,
    MonthlyStatement,
    StatementSummary,
)
from moneta.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountCategory",
    "Business",
    "BusinessSettings",
    "Category",
    "CategoryKind",
    "Frequency",
    "RecurringRule",
    "SchedulerRunResult",
    "SubscriptionType",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "ValidationResult",
    "default_accounts",
    "default_categories",
    # Statement models
    "AnnualStatement",
    "AnnualSummary",
    "MonthlyStatement",
    "StatementSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
