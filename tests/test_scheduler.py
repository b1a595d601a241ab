"""
Tests for RecurringSchedulerFlow.

Storage failures are simulated with small InMemoryLedgerStorage
subclasses; the scheduler must never raise them to the caller.
"""

from datetime import date

import pytest

from moneta.models.audit import AuditEventType
from moneta.models.ledger import TransactionType
from moneta.orchestrator import RecurringSchedulerFlow, StatementArchiveFlow
from moneta.scheduler.clock import date_to_ms
from moneta.services.storage import InMemoryLedgerStorage, StorageError

from tests.conftest import BUSINESS_ID, OTHER_BUSINESS_ID, NOW, make_rule


class FailingRuleSaveStorage(InMemoryLedgerStorage):
    def __init__(self, failing_rule_id: str):
        super().__init__()
        self.failing_rule_id = failing_rule_id

    async def update_recurring(self, business_id, rule):
        if rule.id == self.failing_rule_id:
            raise StorageError("disk full")
        await super().update_recurring(business_id, rule)


class FailingAppendStorage(InMemoryLedgerStorage):
    async def append_transactions(self, business_id, transactions):
        raise StorageError("quota exceeded")


class FailingReadStorage(InMemoryLedgerStorage):
    async def get_recurrings(self, business_id):
        raise StorageError("connection reset")


def event_types(audit_storage) -> list[AuditEventType]:
    return [e.event_type for e in audit_storage.events]


@pytest.fixture
def scheduler(storage, audit_logger, clock):
    return RecurringSchedulerFlow(storage, audit_logger, clock)


class TestRunDue:
    """Tests for a normal scheduler run."""

    @pytest.mark.asyncio
    async def test_no_business_is_a_noop(self, scheduler, storage):
        result = await scheduler.run_due(None)

        assert result.generated == []
        assert result.error is None
        assert await storage.list_transactions(None) == []

    @pytest.mark.asyncio
    async def test_no_rules_is_a_noop(self, scheduler, storage):
        result = await scheduler.run_due(BUSINESS_ID)

        assert result.generated_count == 0
        assert result.error is None

    @pytest.mark.asyncio
    async def test_catch_up_lands_in_ledger(self, scheduler, storage):
        await storage.add_recurring(BUSINESS_ID, make_rule())

        result = await scheduler.run_due(BUSINESS_ID)

        ledger = await storage.list_transactions(BUSINESS_ID)
        assert result.generated_count == 3
        assert {tx.id for tx in ledger} == {tx.id for tx in result.generated}

    @pytest.mark.asyncio
    async def test_rule_state_is_persisted(self, scheduler, storage):
        await storage.add_recurring(BUSINESS_ID, make_rule())

        await scheduler.run_due(BUSINESS_ID)

        [saved] = await storage.get_recurrings(BUSINESS_ID)
        assert saved.last_run_at == date_to_ms(date(2024, 3, 20))
        assert saved.next_run_at == date_to_ms(date(2024, 4, 20))

    @pytest.mark.asyncio
    async def test_second_run_generates_nothing(self, scheduler, storage):
        await storage.add_recurring(BUSINESS_ID, make_rule())

        await scheduler.run_due(BUSINESS_ID)
        second = await scheduler.run_due(BUSINESS_ID)

        assert second.generated == []
        assert len(await storage.list_transactions(BUSINESS_ID)) == 3

    @pytest.mark.asyncio
    async def test_multiple_rules_are_batched(self, scheduler, storage):
        await storage.add_recurring(BUSINESS_ID, make_rule())
        await storage.add_recurring(BUSINESS_ID, make_rule(
            id="r_retainer",
            is_expense=False,
            amount="1500",
            category_id="2",
            start_date="2024-04-01",
        ))

        result = await scheduler.run_due(BUSINESS_ID)

        assert result.generated_count == 4
        assert sorted(result.saved_rule_ids) == ["r_hosting", "r_retainer"]

    @pytest.mark.asyncio
    async def test_type_follows_account_category(self, scheduler, storage):
        await storage.add_recurring(BUSINESS_ID, make_rule(account_id="1"))

        result = await scheduler.run_due(BUSINESS_ID)

        assert all(tx.type == TransactionType.PERSONAL for tx in result.generated)

    @pytest.mark.asyncio
    async def test_deactivated_rule_is_saved(self, scheduler, storage, audit_storage):
        await storage.add_recurring(BUSINESS_ID, make_rule(end_date="2024-02-20"))

        result = await scheduler.run_due(BUSINESS_ID)

        [saved] = await storage.get_recurrings(BUSINESS_ID)
        assert saved.active is False
        assert result.deactivated_rule_ids == ["r_hosting"]
        assert AuditEventType.RULE_DEACTIVATED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_unowned_rule_is_stamped_with_business(self, scheduler, storage):
        await storage.add_recurring(BUSINESS_ID, make_rule(business_id=None))

        result = await scheduler.run_due(BUSINESS_ID)

        [saved] = await storage.get_recurrings(BUSINESS_ID)
        assert saved.business_id == BUSINESS_ID
        assert all(tx.business_id == BUSINESS_ID for tx in result.generated)

    @pytest.mark.asyncio
    async def test_rule_of_other_business_is_skipped(self, scheduler, storage, audit_storage):
        await storage.add_recurring(BUSINESS_ID, make_rule(business_id=OTHER_BUSINESS_ID))

        result = await scheduler.run_due(BUSINESS_ID)

        assert result.generated == []
        assert await storage.list_transactions(OTHER_BUSINESS_ID) == []
        assert AuditEventType.RULE_SKIPPED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_run_is_audited(self, scheduler, storage, audit_storage):
        await storage.add_recurring(BUSINESS_ID, make_rule())

        await scheduler.run_due(BUSINESS_ID)

        [event] = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.SCHEDULER_RUN_COMPLETED
        ]
        assert event.details["generated_count"] == 3


class TestReplayGuard:
    """Generated ids already in the ledger are not inserted twice."""

    @pytest.mark.asyncio
    async def test_stale_rule_state_does_not_duplicate(self, scheduler, storage):
        rule = make_rule()
        await storage.add_recurring(BUSINESS_ID, rule)
        await scheduler.run_due(BUSINESS_ID)

        # Simulate a rule save that was lost after the append succeeded
        await storage.update_recurring(BUSINESS_ID, rule)
        result = await scheduler.run_due(BUSINESS_ID)

        assert result.generated == []
        assert result.skipped_duplicates == 3
        assert len(await storage.list_transactions(BUSINESS_ID)) == 3

    @pytest.mark.asyncio
    async def test_archived_occurrences_are_not_regenerated(
        self, scheduler, storage, audit_logger, clock,
    ):
        rule = make_rule()
        await storage.add_recurring(BUSINESS_ID, rule)
        await scheduler.run_due(BUSINESS_ID)
        archive = StatementArchiveFlow(storage, audit_logger, clock, lookback_years=3)
        await archive.archive_month(2024, 0, BUSINESS_ID)

        await storage.update_recurring(BUSINESS_ID, rule)
        result = await scheduler.run_due(BUSINESS_ID)

        assert result.skipped_duplicates == 3
        assert len(await storage.list_transactions(BUSINESS_ID)) == 2


class TestFailureIsolation:
    """The scheduler fails soft."""

    @pytest.mark.asyncio
    async def test_failed_rule_save_does_not_stop_other_rules(self, audit_logger, audit_storage, clock):
        storage = FailingRuleSaveStorage("r_broken")
        await storage.add_recurring(BUSINESS_ID, make_rule())
        await storage.add_recurring(BUSINESS_ID, make_rule(id="r_broken"))
        scheduler = RecurringSchedulerFlow(storage, audit_logger, clock)

        result = await scheduler.run_due(BUSINESS_ID)

        ledger = await storage.list_transactions(BUSINESS_ID)
        assert result.failed_rule_ids == ["r_broken"]
        assert result.saved_rule_ids == ["r_hosting"]
        assert {tx.recurring_id for tx in ledger} == {"r_hosting"}
        assert AuditEventType.RULE_SAVE_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_failed_rule_regenerates_next_run(self, audit_logger, clock):
        storage = FailingRuleSaveStorage("r_hosting")
        await storage.add_recurring(BUSINESS_ID, make_rule())
        scheduler = RecurringSchedulerFlow(storage, audit_logger, clock)
        await scheduler.run_due(BUSINESS_ID)

        storage.failing_rule_id = None
        result = await scheduler.run_due(BUSINESS_ID)

        assert result.generated_count == 3

    @pytest.mark.asyncio
    async def test_append_failure_is_reported_not_raised(self, audit_logger, audit_storage, clock):
        storage = FailingAppendStorage()
        await storage.add_recurring(BUSINESS_ID, make_rule())
        scheduler = RecurringSchedulerFlow(storage, audit_logger, clock)

        result = await scheduler.run_due(BUSINESS_ID)

        assert result.error is not None
        assert result.generated == []
        assert AuditEventType.SCHEDULER_RUN_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_read_failure_is_reported_not_raised(self, audit_logger, audit_storage, clock):
        scheduler = RecurringSchedulerFlow(FailingReadStorage(), audit_logger, clock)

        result = await scheduler.run_due(BUSINESS_ID)

        assert "connection reset" in result.error
        [event] = audit_storage.events
        assert event.event_type == AuditEventType.SCHEDULER_RUN_FAILED
        assert event.details["stage"] == "read"

    @pytest.mark.asyncio
    async def test_out_of_range_bookkeeping_skips_only_that_rule(
        self, storage, audit_logger, audit_storage, clock,
    ):
        await storage.add_recurring(BUSINESS_ID, make_rule())
        await storage.add_recurring(
            BUSINESS_ID, make_rule(id="r_corrupt", next_run_at=-70_000_000_000_000),
        )
        scheduler = RecurringSchedulerFlow(storage, audit_logger, clock)

        result = await scheduler.run_due(BUSINESS_ID)

        assert result.error is None
        assert result.saved_rule_ids == ["r_hosting"]
        assert result.generated_count == 3
        assert AuditEventType.RULE_SKIPPED in event_types(audit_storage)
