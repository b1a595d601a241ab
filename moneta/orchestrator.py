"""
Main Orchestrator for Moneta

This module ties together all the components and defines the
end-to-end flows for:
1. Recurring scheduler (rules → due transactions → ledger)
2. Statement archival (live month → frozen statement, and back)
3. Recurring rule management (validate → save)
4. Live ledger maintenance
5. Business context switching

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every call names its business context explicitly (None = personal)
- Nothing crosses from one business context into another
- The scheduler fails soft; its failures land in the audit log
- Every step is audited

Storage calls are the only suspension points. Callers serialize access;
two flows never run concurrently against the same business.
"""

import secrets
import string
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from moneta.audit import AuditLogger, create_correlation_id
from moneta.config import Settings, get_settings
from moneta.models.ledger import (
    Business,
    RecurringRule,
    SchedulerRunResult,
    SubscriptionType,
    Transaction,
    TransactionType,
    ValidationResult,
)
from moneta.models.statement import AnnualStatement, MonthlyStatement
from moneta.notifications import NotificationHub
from moneta.queries import LedgerMetrics
from moneta.scheduler import Clock, expand_due, from_ms, now_ms
from moneta.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    JsonFileAuditStorage,
    JsonFileClient,
    JsonFileLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from moneta.statements import (
    archivable_months,
    archived_transaction_ids,
    build_annual_statements,
    build_statement,
    select_month_transactions,
    statement_ids,
)
from moneta.validation import RecurringRuleValidator

logger = structlog.get_logger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _random_id(prefix: str) -> str:
    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))


def new_rule_id() -> str:
    """Fresh recurring rule id (`r_` + 7 base36 characters)."""
    return _random_id("r_")


def new_business_id() -> str:
    """Fresh business id (`b_` + 7 base36 characters)."""
    return _random_id("b_")


class RecurringSchedulerFlow:
    """
    Expands every recurring rule of a business up to "now".

    Flow:
    1. Read → rules and accounts of the business
    2. Expand → one ExpansionResult per rule
    3. Save → each advanced rule (per-rule failure isolation)
    4. Dedupe → drop ids already live or archived (replay guard)
    5. Append → the remaining transactions in one batch

    Rules are saved before the batch is appended. If the append then
    fails, the rules are already advanced and that run's transactions
    are lost; nothing is ever half-written into the ledger.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = now_ms,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock

    async def run_due(
        self,
        business_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> SchedulerRunResult:
        """
        Run the scheduler for one business.

        Never raises on storage failure; the returned result carries
        `error` instead.
        """
        if not business_id:
            return SchedulerRunResult(business_id=None)

        correlation_id = correlation_id or create_correlation_id()
        now = self._clock()
        result = SchedulerRunResult(business_id=business_id)

        try:
            rules = await self._storage.get_recurrings(business_id)
            accounts = await self._storage.get_accounts(business_id)
        except Exception as e:
            result.error = f"Could not read recurring rules: {e}"
            await self._audit_logger.log_scheduler_failure(
                business_id=business_id,
                stage="read",
                error_message=str(e),
                lost_transactions=0,
                correlation_id=correlation_id,
            )
            return result

        account_types = {
            account.id: TransactionType(account.category.value)
            for account in accounts
        }

        batch: list[Transaction] = []
        for rule in rules:
            if rule.business_id is None:
                rule = rule.model_copy(update={"business_id": business_id})
            elif rule.business_id != business_id:
                await self._audit_logger.log_rule_skipped(
                    business_id=business_id,
                    rule_id=rule.id,
                    reason=f"rule is owned by business {rule.business_id}",
                    correlation_id=correlation_id,
                )
                continue

            try:
                expansion = expand_due(
                    rule,
                    now,
                    account_types.get(rule.account_id, TransactionType.BUSINESS),
                )
            except (ValueError, OverflowError) as e:
                await self._audit_logger.log_rule_skipped(
                    business_id=business_id,
                    rule_id=rule.id,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
                continue

            try:
                await self._storage.update_recurring(business_id, expansion.rule)
            except Exception as e:
                result.failed_rule_ids.append(rule.id)
                await self._audit_logger.log_rule_save_failed(
                    business_id=business_id,
                    rule_id=rule.id,
                    error_message=str(e),
                    dropped_transactions=len(expansion.transactions),
                    correlation_id=correlation_id,
                )
                continue

            result.saved_rule_ids.append(rule.id)
            if expansion.deactivated:
                result.deactivated_rule_ids.append(rule.id)
                await self._audit_logger.log_rule_deactivated(
                    business_id=business_id,
                    rule_id=rule.id,
                    end_date=rule.end_date,
                    correlation_id=correlation_id,
                )
            batch.extend(expansion.transactions)

        if batch:
            try:
                fresh = await self._drop_known(business_id, batch)
                result.skipped_duplicates = len(batch) - len(fresh)
                if fresh:
                    await self._storage.append_transactions(business_id, fresh)
            except Exception as e:
                result.error = f"Could not append generated transactions: {e}"
                await self._audit_logger.log_scheduler_failure(
                    business_id=business_id,
                    stage="append",
                    error_message=str(e),
                    lost_transactions=len(batch) - result.skipped_duplicates,
                    correlation_id=correlation_id,
                )
                return result
            result.generated = fresh

        await self._audit_logger.log_scheduler_run(
            business_id=business_id,
            generated_count=result.generated_count,
            rules_processed=len(result.saved_rule_ids),
            skipped_duplicates=result.skipped_duplicates,
            correlation_id=correlation_id,
        )
        return result

    async def _drop_known(
        self,
        business_id: str,
        batch: list[Transaction],
    ) -> list[Transaction]:
        """Remove transactions whose ids are already live or archived."""
        live = await self._storage.list_transactions(business_id)
        statements = await self._storage.list_statements(business_id)
        known = {tx.id for tx in live} | archived_transaction_ids(statements)

        fresh = []
        for tx in batch:
            if tx.id in known:
                continue
            known.add(tx.id)
            fresh.append(tx)
        return fresh


class StatementArchiveFlow:
    """
    Moves closed months between the live ledger and archived statements.

    CRITICAL: A transaction is either live or inside exactly one
    statement. Archive writes the statement before removing the live
    copies and rolls the statement back if the removal fails.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = now_ms,
        lookback_years: Optional[int] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock
        self._lookback_years = lookback_years or get_settings().archive.lookback_years

    async def archive_month(
        self,
        year: int,
        month: int,
        business_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[MonthlyStatement]:
        """
        Archive one month of a business's live ledger.

        Args:
            year: Calendar year
            month: Zero-based month (0 = January)
            business_id: Business context, None for personal

        Returns:
            The new statement, or None when the month has no transactions
            or is already archived
        """
        if not 0 <= month <= 11:
            raise ValueError(f"Month must be between 0 and 11, got {month}")

        correlation_id = correlation_id or create_correlation_id()

        live = await self._storage.list_transactions(business_id)
        selected = select_month_transactions(live, year, month, business_id)
        if not selected:
            return None

        statement_id = MonthlyStatement.make_id(year, month)
        existing = await self._storage.list_statements(business_id)
        if statement_id in statement_ids(existing):
            await self._audit_logger.log_archive_failure(
                business_id=business_id,
                operation="archive",
                error_message=f"Statement {statement_id} already exists; unarchive it first",
                correlation_id=correlation_id,
            )
            return None

        statement = build_statement(
            year, month, business_id, selected, archived_at=self._clock(),
        )

        await self._storage.save_statement(statement)
        try:
            await self._storage.remove_transactions(
                business_id, [tx.id for tx in selected],
            )
        except Exception as e:
            await self._storage.delete_statement(business_id, statement.id)
            await self._audit_logger.log_archive_failure(
                business_id=business_id,
                operation="archive",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_month_archived(
            business_id=business_id,
            statement_id=statement.id,
            transaction_count=statement.summary.transaction_count,
            net_amount=str(statement.summary.net_amount),
            correlation_id=correlation_id,
        )
        return statement

    async def unarchive_month(
        self,
        statement_id: str,
        business_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Move a statement's transactions back into the live ledger.

        Refused (returns False) when the statement does not belong to
        `business_id`.
        """
        correlation_id = correlation_id or create_correlation_id()

        statements = await self._storage.list_statements(business_id)
        statement = next((s for s in statements if s.id == statement_id), None)

        if statement is None:
            owner = await self._find_owner(statement_id, business_id)
            reason = (
                f"statement belongs to business {owner}"
                if owner is not None else "statement not found"
            )
            await self._audit_logger.log_unarchive_refused(
                business_id=business_id,
                statement_id=statement_id,
                reason=reason,
                correlation_id=correlation_id,
            )
            return False

        if statement.business_id != business_id:
            await self._audit_logger.log_unarchive_refused(
                business_id=business_id,
                statement_id=statement_id,
                reason=f"statement belongs to business {statement.business_id}",
                correlation_id=correlation_id,
            )
            return False

        live_ids = {tx.id for tx in await self._storage.list_transactions(business_id)}
        restore = [tx for tx in statement.transactions if tx.id not in live_ids]

        if restore:
            await self._storage.append_transactions(business_id, restore)
        try:
            await self._storage.delete_statement(business_id, statement.id)
        except Exception as e:
            if restore:
                await self._storage.remove_transactions(
                    business_id, [tx.id for tx in restore],
                )
            await self._audit_logger.log_archive_failure(
                business_id=business_id,
                operation="unarchive",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_month_unarchived(
            business_id=business_id,
            statement_id=statement.id,
            transaction_count=len(restore),
            correlation_id=correlation_id,
        )
        return True

    async def _find_owner(
        self,
        statement_id: str,
        business_id: Optional[str],
    ) -> Optional[str]:
        """Name another context holding `statement_id`, if any."""
        contexts: list[Optional[str]] = [None]
        contexts.extend(b.id for b in await self._storage.get_businesses())
        for context in contexts:
            if context == business_id:
                continue
            statements = await self._storage.list_statements(context)
            if statement_id in statement_ids(statements):
                return context or "(personal)"
        return None

    async def check_for_archivable_months(
        self,
        business_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> list[MonthlyStatement]:
        """
        Auto-archive every closed month that still has live transactions.

        Looks back over the configured number of calendar years and never
        touches the current month. Running it twice archives nothing new
        the second time.
        """
        correlation_id = correlation_id or create_correlation_id()
        today = from_ms(self._clock()).date()

        try:
            existing = statement_ids(await self._storage.list_statements(business_id))
            live = await self._storage.list_transactions(business_id)
        except StorageError as e:
            await self._audit_logger.log_archive_failure(
                business_id=business_id,
                operation="sweep",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return []

        archived: list[MonthlyStatement] = []
        for year, month in archivable_months(today, self._lookback_years):
            if MonthlyStatement.make_id(year, month) in existing:
                continue
            if not select_month_transactions(live, year, month, business_id):
                continue
            try:
                statement = await self.archive_month(
                    year, month, business_id, correlation_id,
                )
            except Exception as e:
                logger.warning(
                    "archive_sweep_month_failed",
                    business_id=business_id,
                    year=year,
                    month=month,
                    error=str(e),
                )
                continue
            if statement is not None:
                archived.append(statement)

        await self._audit_logger.log_archive_sweep(
            business_id=business_id,
            archived_ids=[s.id for s in archived],
            correlation_id=correlation_id,
        )
        return archived

    async def list_statements(self, business_id: Optional[str]) -> list[MonthlyStatement]:
        statements = await self._storage.list_statements(business_id)
        return [s for s in statements if s.business_id == business_id]

    async def annual_statements(self, business_id: Optional[str]) -> list[AnnualStatement]:
        """Yearly rollups, rebuilt from the monthly statements on every call."""
        statements = await self._storage.list_statements(business_id)
        return build_annual_statements(statements, business_id)


class RecurringRuleFlow:
    """
    Create, edit and delete recurring rules.

    Every save goes through RecurringRuleValidator; a rule with
    error-level issues is never written.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[RecurringRuleValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._validator = validator or RecurringRuleValidator(storage)
        self._audit_logger = audit_logger or AuditLogger()

    async def list_rules(self, business_id: str) -> list[RecurringRule]:
        return await self._storage.get_recurrings(business_id)

    async def get_rule(self, business_id: str, rule_id: str) -> Optional[RecurringRule]:
        rules = await self._storage.get_recurrings(business_id)
        return next((r for r in rules if r.id == rule_id), None)

    async def save_rule(
        self,
        rule: RecurringRule,
        business_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[RecurringRule], ValidationResult]:
        """
        Validate and persist a rule.

        A new rule is added; an existing one is replaced, keeping its
        scheduler bookkeeping unless the incoming rule carries its own.

        Returns:
            (saved_rule, validation_result); saved_rule is None when
            validation failed
        """
        correlation_id = correlation_id or create_correlation_id()

        if rule.business_id is None and business_id is not None:
            rule = rule.model_copy(update={"business_id": business_id})

        validation = await self._validator.validate(rule, business_id)
        if validation.has_errors:
            await self._audit_logger.log_rule_rejected(
                business_id=business_id,
                rule_id=rule.id,
                issues=[issue.model_dump() for issue in validation.issues],
                correlation_id=correlation_id,
            )
            return None, validation

        existing = await self.get_rule(rule.business_id, rule.id)
        if existing is None:
            await self._storage.add_recurring(rule.business_id, rule)
        else:
            rule = rule.model_copy(update={
                "last_run_at": rule.last_run_at if rule.last_run_at is not None else existing.last_run_at,
                "next_run_at": rule.next_run_at if rule.next_run_at is not None else existing.next_run_at,
            })
            await self._storage.update_recurring(rule.business_id, rule)

        await self._audit_logger.log_rule_saved(
            business_id=rule.business_id,
            rule_id=rule.id,
            created=existing is None,
            correlation_id=correlation_id,
        )
        return rule, validation

    async def delete_rule(
        self,
        business_id: str,
        rule_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Delete a rule. Transactions it already generated stay in the ledger."""
        removed = await self._storage.delete_recurring(business_id, rule_id)
        if removed:
            await self._audit_logger.log_rule_deleted(
                business_id=business_id,
                rule_id=rule_id,
                correlation_id=correlation_id or create_correlation_id(),
            )
        return removed


class LedgerFlow:
    """Direct user edits of the live ledger."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        clock: Clock = now_ms,
    ):
        self._storage = storage
        self._clock = clock

    async def list_transactions(
        self,
        business_id: Optional[str],
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        transactions = await self._storage.list_transactions(business_id)
        if transaction_type is None:
            return transactions
        return [tx for tx in transactions if tx.type == transaction_type]

    async def add_transaction(
        self,
        business_id: Optional[str],
        account_id: str,
        amount: Decimal,
        category_id: str,
        transaction_date: date,
        description: str = "",
        notes: Optional[str] = None,
        subscription_type: Optional[SubscriptionType] = None,
        business_category: Optional[str] = None,
    ) -> Transaction:
        """
        Record a transaction entered by the user.

        The transaction type is taken from the account's ownership
        category and is never recomputed afterwards.

        Raises:
            NotFoundError: If the account does not exist in this context
        """
        accounts = await self._storage.get_accounts(business_id)
        account = next((a for a in accounts if a.id == account_id), None)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")

        now = self._clock()
        live_ids = {tx.id for tx in await self._storage.list_transactions(business_id)}
        stamp = now
        while str(stamp) in live_ids:
            stamp += 1

        transaction = Transaction(
            id=str(stamp),
            account_id=account_id,
            business_id=business_id,
            transaction_date=transaction_date,
            amount=amount,
            category_id=category_id,
            description=description,
            notes=notes,
            type=TransactionType(account.category.value),
            subscription_type=subscription_type,
            business_category=business_category,
            created_at=now,
        )
        await self._storage.append_transactions(business_id, [transaction])
        return transaction

    async def update_transaction(
        self,
        business_id: Optional[str],
        transaction: Transaction,
    ) -> Transaction:
        """
        Replace a live transaction. Its id, type and creation time are kept.

        Raises:
            NotFoundError: If the transaction is not live in this context
        """
        live = await self._storage.list_transactions(business_id)
        current = next((tx for tx in live if tx.id == transaction.id), None)
        if current is None:
            raise NotFoundError(f"Transaction not found: {transaction.id}")

        updated = transaction.model_copy(update={
            "business_id": business_id,
            "type": current.type,
            "created_at": current.created_at,
        })
        await self._storage.update_transaction(business_id, updated)
        return updated

    async def delete_transaction(
        self,
        business_id: Optional[str],
        transaction_id: str,
    ) -> bool:
        removed = await self._storage.remove_transactions(business_id, [transaction_id])
        return removed > 0


class BusinessContextFlow:
    """
    Manages businesses and the active business context.

    Switching context persists the active id first, then notifies the
    registered business-switched handlers (the scheduler among them).
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        notifications: NotificationHub,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = now_ms,
    ):
        self._storage = storage
        self._notifications = notifications
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock

    async def list_businesses(self) -> list[Business]:
        return await self._storage.get_businesses()

    async def active_business_id(self) -> Optional[str]:
        return await self._storage.get_active_business_id()

    async def create_business(
        self,
        name: str,
        currency: str = "USD",
        timezone: Optional[str] = None,
    ) -> Business:
        """Create a business and switch to it."""
        business = Business(
            id=new_business_id(),
            name=name,
            currency=currency,
            timezone=timezone,
            created_at=self._clock(),
        )
        await self._storage.add_business(business)
        await self.switch_business(business.id)
        return business

    async def switch_business(
        self,
        business_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Make `business_id` the active context (None = personal).

        Raises:
            NotFoundError: If no such business exists
        """
        correlation_id = correlation_id or create_correlation_id()
        business_id = business_id or None

        if business_id is not None:
            known = {b.id for b in await self._storage.get_businesses()}
            if business_id not in known:
                raise NotFoundError(f"Business not found: {business_id}")

        previous = await self._storage.get_active_business_id()
        await self._storage.set_active_business_id(business_id)

        await self._audit_logger.log_business_switched(
            previous_id=previous,
            business_id=business_id,
            correlation_id=correlation_id,
        )
        await self._notifications.business_switched(business_id)

    async def delete_business(self, business_id: str) -> None:
        """Delete a business and its data. Clears the active id if it was active."""
        await self._storage.delete_business(business_id)

    async def open_recurring_rule(
        self,
        business_id: Optional[str],
        rule_id: Optional[str],
    ) -> bool:
        """
        Ask the rule editor to open the rule behind a generated transaction.

        Returns False without notifying when the rule does not exist in
        this business.
        """
        if not business_id or not rule_id:
            return False
        rules = await self._storage.get_recurrings(business_id)
        if not any(r.id == rule_id for r in rules):
            return False
        await self._notifications.open_recurring(business_id, rule_id)
        return True


class MonetaApp:
    """Wired application components."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: AuditLogger,
        notifications: NotificationHub,
        scheduler: RecurringSchedulerFlow,
        archive: StatementArchiveFlow,
        rules: RecurringRuleFlow,
        ledger: LedgerFlow,
        businesses: BusinessContextFlow,
        metrics: LedgerMetrics,
        settings: Settings,
    ):
        self.storage = storage
        self.audit_logger = audit_logger
        self.notifications = notifications
        self.scheduler = scheduler
        self.archive = archive
        self.rules = rules
        self.ledger = ledger
        self.businesses = businesses
        self.metrics = metrics
        self.settings = settings

    async def start(self) -> tuple[Optional[SchedulerRunResult], list[MonthlyStatement]]:
        """
        App-start behaviour: run the scheduler for the active business,
        then sweep closed months into statements.

        Returns:
            (scheduler_result, archived_statements); the scheduler result
            is None when running on start is disabled
        """
        business_id = await self.storage.get_active_business_id()
        correlation_id = create_correlation_id()

        run_result = None
        if self.settings.scheduler.run_on_start:
            run_result = await self.scheduler.run_due(business_id, correlation_id)

        archived: list[MonthlyStatement] = []
        if self.settings.archive.auto_archive_on_start:
            archived = await self.archive.check_for_archivable_months(
                business_id, correlation_id,
            )
        return run_result, archived


def create_app_components(
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Optional[Clock] = None,
) -> MonetaApp:
    """
    Factory function to create all application components.

    Args:
        storage: Ledger storage. Built from settings when omitted.
        audit_storage: Audit event storage. Built from settings when
                       both storages are omitted; otherwise logs stay local.
        clock: Epoch-ms clock; defaults to wall time.

    Returns:
        MonetaApp with every flow wired to the same storage
    """
    settings = get_settings()
    clock = clock or now_ms

    if storage is None:
        if settings.storage.backend == "json":
            client = JsonFileClient(settings.storage.data_dir)
            storage = JsonFileLedgerStorage(client)
            if audit_storage is None:
                audit_storage = JsonFileAuditStorage(client)
        else:
            storage = InMemoryLedgerStorage()
            if audit_storage is None:
                audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    notifications = NotificationHub()

    scheduler = RecurringSchedulerFlow(storage, audit_logger, clock)
    archive = StatementArchiveFlow(
        storage, audit_logger, clock, settings.archive.lookback_years,
    )
    businesses = BusinessContextFlow(storage, notifications, audit_logger, clock)

    if settings.scheduler.run_on_business_switch:
        notifications.on_business_switched(scheduler.run_due)

    return MonetaApp(
        storage=storage,
        audit_logger=audit_logger,
        notifications=notifications,
        scheduler=scheduler,
        archive=archive,
        rules=RecurringRuleFlow(storage, audit_logger=audit_logger),
        ledger=LedgerFlow(storage, clock),
        businesses=businesses,
        metrics=LedgerMetrics(storage, clock),
        settings=settings,
    )
