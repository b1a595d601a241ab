"""
Core Ledger Models for Moneta

These models define the schemas for everything the scheduler and the
archiver read from and write back to storage:
1. Reference data (accounts, categories, businesses)
2. Recurring rules and their scheduler bookkeeping
3. Live ledger transactions

DESIGN DECISION: Rule amounts are stored as an unsigned magnitude plus an
`is_expense` flag. Transaction amounts are signed. The sign is derived
exactly once, when a rule is expanded into a transaction.
"""

import math
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountCategory(str, Enum):
    """Ownership category of an account."""
    PERSONAL = "personal"
    BUSINESS = "business"


class CategoryKind(str, Enum):
    """Whether a category classifies income or expenses."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionType(str, Enum):
    """
    Transaction scope.

    Mirrors the owning account's category at creation time.
    Never recomputed afterwards.
    """
    PERSONAL = "personal"
    BUSINESS = "business"


class SubscriptionType(str, Enum):
    """Optional subscription marker on a transaction."""
    ONE_TIME = "one-time"
    RECURRING = "recurring"


class Frequency(str, Enum):
    """
    How often a recurring rule fires.

    Unknown values loaded from storage are treated as CUSTOM.
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


# =============================================================================
# REFERENCE DATA
# =============================================================================

class Account(BaseModel):
    """
    A money account (checking, credit card, ...).

    Immutable once created except for `is_active`.
    Referenced by transactions, never owns them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    kind: str = Field(
        ...,
        description="Account kind (e.g., checking, credit_card)"
    )
    category: AccountCategory = Field(
        ...,
        description="Whether the account is personal or business owned"
    )
    is_active: bool = True


class Category(BaseModel):
    """Income / expense category. Static reference data."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    kind: CategoryKind
    business_relevant: bool = False


class BusinessSettings(BaseModel):
    """Optional per-business preferences."""

    default_account_id: Optional[str] = None
    starting_balance: Optional[Decimal] = None


class Business(BaseModel):
    """A business context. All ledger data is scoped to one."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code"
    )
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone, e.g. America/Los_Angeles"
    )
    created_at: int = Field(
        ...,
        description="Creation timestamp (epoch ms)"
    )
    settings: Optional[BusinessSettings] = None


def default_categories() -> list[Category]:
    """Categories every business starts with."""
    rows = [
        ("1", "Owner Contribution", CategoryKind.INCOME, True),
        ("2", "Revenue", CategoryKind.INCOME, True),
        ("3", "Salary", CategoryKind.INCOME, False),
        ("4", "Software/SaaS", CategoryKind.EXPENSE, True),
        ("5", "Hosting", CategoryKind.EXPENSE, True),
        ("6", "Marketing", CategoryKind.EXPENSE, True),
        ("7", "Office Supplies", CategoryKind.EXPENSE, True),
        ("8", "Travel", CategoryKind.EXPENSE, True),
        ("9", "Meals & Entertainment", CategoryKind.EXPENSE, True),
        ("10", "Professional Services", CategoryKind.EXPENSE, True),
        ("11", "Taxes & Licenses", CategoryKind.EXPENSE, True),
        ("12", "Groceries", CategoryKind.EXPENSE, False),
        ("13", "Rent/Mortgage", CategoryKind.EXPENSE, False),
        ("14", "Utilities", CategoryKind.EXPENSE, False),
        ("15", "Transportation", CategoryKind.EXPENSE, False),
        ("16", "Healthcare", CategoryKind.EXPENSE, False),
        ("17", "Entertainment", CategoryKind.EXPENSE, False),
    ]
    return [
        Category(id=cid, name=name, kind=kind, business_relevant=relevant)
        for cid, name, kind, relevant in rows
    ]


def default_accounts() -> list[Account]:
    """Accounts every business starts with."""
    return [
        Account(id="1", name="Personal Checking", kind="checking",
                category=AccountCategory.PERSONAL),
        Account(id="2", name="LLC Checking", kind="checking",
                category=AccountCategory.BUSINESS),
        Account(id="3", name="Credit Card", kind="credit_card",
                category=AccountCategory.PERSONAL),
    ]


# =============================================================================
# RECURRING RULE
# =============================================================================

class RecurringRule(BaseModel):
    """
    A user-defined template that periodically produces transactions.

    `last_run_at` / `next_run_at` are scheduler bookkeeping (epoch ms).
    They are advanced only by the scheduler or by a user edit.

    NOTE: `day_of_month` and `weekday` are advisory. The interval
    calculator steps weekly rules by a flat 7 days and monthly rules by one
    calendar month from the anchor date without snapping to them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    business_id: Optional[str] = None
    account_id: str
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Unsigned magnitude; sign comes from is_expense"
    )
    is_expense: bool = False
    category_id: str
    description: Optional[str] = Field(default=None, max_length=500)
    frequency: Frequency = Frequency.MONTHLY
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    weekday: Optional[int] = Field(default=None, ge=0, le=6)
    interval_days: Optional[int] = Field(
        default=None,
        description="Step for daily/custom rules; non-positive values fall back to the default"
    )
    start_date: str = Field(
        ...,
        description="ISO start date. Unparseable values make the rule start from 'now'"
    )
    end_date: Optional[str] = Field(
        default=None,
        description="Optional inclusive ISO end date"
    )
    active: bool = True
    last_run_at: Optional[int] = None
    next_run_at: Optional[int] = None

    @field_validator('business_id', 'description', 'end_date', mode='before')
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator('frequency', mode='before')
    @classmethod
    def unknown_frequency_is_custom(cls, v: Any) -> Any:
        if isinstance(v, Frequency):
            return v
        if isinstance(v, str) and v in Frequency._value2member_map_:
            return v
        return Frequency.CUSTOM

    @field_validator('last_run_at', 'next_run_at', mode='before')
    @classmethod
    def coerce_bad_timestamp(cls, v: Any) -> Any:
        """Malformed bookkeeping (NaN, garbage) is treated as unset."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, float):
            return None if math.isnan(v) or math.isinf(v) else int(v)
        if isinstance(v, str):
            try:
                parsed = float(v)
            except ValueError:
                return None
            return None if math.isnan(parsed) or math.isinf(parsed) else int(parsed)
        return None

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it lands in the ledger (negative for expenses)."""
        magnitude = abs(self.amount)
        return -magnitude if self.is_expense else magnitude


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single ledger entry.

    Lives either in the live ledger or in exactly one archived statement.
    `recurring_id` is a non-owning back-reference to the generating rule.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    account_id: str
    business_id: Optional[str] = None
    recurring_id: Optional[str] = None
    transaction_date: date = Field(
        ...,
        description="Calendar date of the transaction"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount (positive = income, negative = expense)"
    )
    category_id: str
    description: str = Field(default="", max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    type: TransactionType = TransactionType.BUSINESS
    subscription_type: Optional[SubscriptionType] = None
    business_category: Optional[str] = None
    created_at: Optional[int] = Field(
        default=None,
        description="Creation timestamp (epoch ms)"
    )

    @field_validator('business_id', 'recurring_id', mode='before')
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def in_month(self, year: int, month: int) -> bool:
        """Check membership of a calendar month (`month` is zero-based)."""
        return (
            self.transaction_date.year == year
            and self.transaction_date.month == month + 1
        )


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'unknown_reference')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Result of validating a recurring rule before it is saved."""

    rule_id: str
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# SCHEDULER RESULT
# =============================================================================

class SchedulerRunResult(BaseModel):
    """
    Outcome of one scheduler batch for a business.

    `error` is set when the batch failed soft; the caller never sees an
    exception.
    """

    business_id: Optional[str] = None
    generated: list[Transaction] = Field(default_factory=list)
    saved_rule_ids: list[str] = Field(default_factory=list)
    deactivated_rule_ids: list[str] = Field(default_factory=list)
    failed_rule_ids: list[str] = Field(default_factory=list)
    skipped_duplicates: int = 0
    error: Optional[str] = None

    @property
    def generated_count(self) -> int:
        return len(self.generated)

    @model_validator(mode='after')
    def check_generated_scope(self) -> 'SchedulerRunResult':
        """Generated transactions must belong to the batch's business."""
        for tx in self.generated:
            if tx.business_id != self.business_id:
                raise ValueError(
                    f"Generated transaction {tx.id} belongs to business "
                    f"{tx.business_id!r}, not {self.business_id!r}"
                )
        return self
