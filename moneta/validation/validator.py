"""
Recurring Rule Validation

DESIGN DECISION: Rules are validated in two stages before they are saved:

STAGE 1 - SCHEMA VALIDATION:
- Business context present
- Positive amount
- Parseable start and end dates, end not before start
- Frequency-specific fields in range

STAGE 2 - REFERENCE VALIDATION:
- Target account exists and is active
- Category exists
- Needs storage, so it is async

IMPORTANT: Validation NEVER silently fixes a rule.
It reports issues; the caller decides not to save a rule with errors.
"""

from typing import Optional

import structlog

from moneta.models.ledger import (
    Frequency,
    RecurringRule,
    ValidationIssue,
    ValidationResult,
)
from moneta.scheduler.clock import parse_iso_timestamp
from moneta.services.storage import LedgerStorageInterface, StorageError

logger = structlog.get_logger(__name__)


class RecurringRuleValidator:
    """
    Validates recurring rules through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Reference validation (needs storage for accounts/categories)
    """

    def __init__(self, storage: Optional[LedgerStorageInterface] = None):
        """
        Args:
            storage: Ledger storage for reference checks.
                     If None, stage 2 is skipped.
        """
        self._storage = storage

    def _validate_schema(
        self,
        rule: RecurringRule,
        business_id: Optional[str],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if business_id is None and rule.business_id is None:
            issues.append(ValidationIssue(
                field="business_id",
                issue_type="missing",
                message="Recurring rules can only be created inside a business",
                severity="error",
            ))
        elif (
            business_id is not None
            and rule.business_id is not None
            and rule.business_id != business_id
        ):
            issues.append(ValidationIssue(
                field="business_id",
                issue_type="inconsistent",
                message=(
                    f"Rule belongs to business {rule.business_id}, "
                    f"not the current business {business_id}"
                ),
                severity="error",
            ))

        if rule.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        start = parse_iso_timestamp(rule.start_date)
        if start is None:
            issues.append(ValidationIssue(
                field="start_date",
                issue_type="invalid_format",
                message=f"Start date ({rule.start_date!r}) is not an ISO date",
                severity="error",
            ))

        if rule.end_date is not None:
            end = parse_iso_timestamp(rule.end_date)
            if end is None:
                issues.append(ValidationIssue(
                    field="end_date",
                    issue_type="invalid_format",
                    message=f"End date ({rule.end_date!r}) is not an ISO date",
                    severity="error",
                ))
            elif start is not None and end < start:
                issues.append(ValidationIssue(
                    field="end_date",
                    issue_type="inconsistent",
                    message="End date is before start date",
                    severity="error",
                ))

        if rule.day_of_month is not None and not 1 <= rule.day_of_month <= 31:
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="invalid_value",
                message="Day of month must be between 1 and 31",
                severity="error",
            ))

        if rule.weekday is not None and not 0 <= rule.weekday <= 6:
            issues.append(ValidationIssue(
                field="weekday",
                issue_type="invalid_value",
                message="Weekday must be between 0 (Monday) and 6 (Sunday)",
                severity="error",
            ))

        if (
            rule.frequency in (Frequency.DAILY, Frequency.CUSTOM)
            and rule.interval_days is not None
            and rule.interval_days < 1
        ):
            issues.append(ValidationIssue(
                field="interval_days",
                issue_type="invalid_value",
                message="Interval must be at least one day",
                severity="error",
            ))

        # Advisory fields the interval calculator does not use
        if rule.frequency == Frequency.WEEKLY and rule.weekday is not None:
            issues.append(ValidationIssue(
                field="weekday",
                issue_type="ignored",
                message="Weekly rules repeat every 7 days from the start date; weekday is not used",
                severity="warning",
            ))
        if rule.frequency == Frequency.MONTHLY and rule.day_of_month is not None:
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="ignored",
                message="Monthly rules repeat from the start date; day of month is not used",
                severity="warning",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _validate_references(
        self,
        rule: RecurringRule,
        business_id: Optional[str],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Reference validation against the business's accounts
        and categories.
        """
        issues = []

        if self._storage is None:
            return True, issues

        try:
            accounts = await self._storage.get_accounts(business_id)
            categories = await self._storage.get_categories(business_id)
        except StorageError as e:
            logger.warning(
                "rule_reference_check_failed",
                rule_id=rule.id,
                business_id=business_id,
                error=str(e),
            )
            issues.append(ValidationIssue(
                field="references",
                issue_type="unchecked",
                message="Account and category could not be checked",
                severity="warning",
            ))
            return True, issues

        account = next((a for a in accounts if a.id == rule.account_id), None)
        if account is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_reference",
                message=f"Account {rule.account_id} does not exist",
                severity="error",
            ))
        elif not account.is_active:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="inactive_reference",
                message=f"Account {account.name} is inactive",
                severity="error",
            ))

        if not any(c.id == rule.category_id for c in categories):
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="unknown_reference",
                message=f"Category {rule.category_id} does not exist",
                severity="error",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def validate(
        self,
        rule: RecurringRule,
        business_id: Optional[str],
    ) -> ValidationResult:
        """
        Run the full validation pipeline.

        Args:
            rule: The rule about to be saved
            business_id: Current business context

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(rule, business_id)
        all_issues.extend(schema_issues)

        # Reference checks only make sense for a structurally valid rule
        references_valid = False
        if schema_valid:
            references_valid, reference_issues = await self._validate_references(
                rule, business_id or rule.business_id,
            )
            all_issues.extend(reference_issues)

        return ValidationResult(
            rule_id=rule.id,
            is_valid=schema_valid and references_valid,
            issues=all_issues,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Summarize a validation result for display next to the rule editor."""
        if result.is_valid and not result.issues:
            return "All checks passed."

        lines = []
        errors = [i for i in result.issues if i.severity == "error"]
        warnings = [i for i in result.issues if i.severity == "warning"]

        if errors:
            lines.append("This rule cannot be saved:")
            lines.extend(f"  - {issue.message}" for issue in errors)

        if warnings:
            if lines:
                lines.append("")
            lines.append("Please note:")
            lines.extend(f"  - {issue.message}" for issue in warnings)

        return "\n".join(lines)
