"""
Tests for the storage backends.

The same behaviour is checked against the in-memory and the JSON file
backend.
"""

import json
from datetime import date
from uuid import uuid4

import pytest

from moneta.models.audit import AuditEventBuilder
from moneta.models.ledger import Business
from moneta.services.storage import (
    DuplicateError,
    InMemoryLedgerStorage,
    JsonFileAuditStorage,
    JsonFileClient,
    JsonFileLedgerStorage,
    NotFoundError,
    StorageError,
)
from moneta.statements import build_statement

from tests.conftest import BUSINESS_ID, NOW, OTHER_BUSINESS_ID, make_rule, make_transaction


@pytest.fixture(params=["memory", "json"])
def ledger_storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryLedgerStorage()
    return JsonFileLedgerStorage(JsonFileClient(tmp_path))


class TestBusinesses:
    """Business index operations."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, ledger_storage):
        await ledger_storage.add_business(Business(id=BUSINESS_ID, name="Acme LLC", created_at=NOW))

        [business] = await ledger_storage.get_businesses()
        assert business.name == "Acme LLC"
        assert business.currency == "USD"

    @pytest.mark.asyncio
    async def test_duplicate_business(self, ledger_storage):
        business = Business(id=BUSINESS_ID, name="Acme LLC", created_at=NOW)
        await ledger_storage.add_business(business)

        with pytest.raises(DuplicateError):
            await ledger_storage.add_business(business)

    @pytest.mark.asyncio
    async def test_delete_clears_active_id_and_data(self, ledger_storage):
        await ledger_storage.add_business(Business(id=BUSINESS_ID, name="Acme LLC", created_at=NOW))
        await ledger_storage.set_active_business_id(BUSINESS_ID)
        await ledger_storage.add_recurring(BUSINESS_ID, make_rule())

        await ledger_storage.delete_business(BUSINESS_ID)

        assert await ledger_storage.get_active_business_id() is None
        assert await ledger_storage.get_recurrings(BUSINESS_ID) == []

    @pytest.mark.asyncio
    async def test_blank_active_id_is_none(self, ledger_storage):
        await ledger_storage.set_active_business_id("")
        assert await ledger_storage.get_active_business_id() is None


class TestRecurrings:
    """Recurring rule operations."""

    @pytest.mark.asyncio
    async def test_update_is_an_upsert(self, ledger_storage):
        await ledger_storage.update_recurring(BUSINESS_ID, make_rule())
        await ledger_storage.update_recurring(BUSINESS_ID, make_rule(next_run_at=NOW))

        [rule] = await ledger_storage.get_recurrings(BUSINESS_ID)
        assert rule.next_run_at == NOW

    @pytest.mark.asyncio
    async def test_add_rejects_duplicates(self, ledger_storage):
        await ledger_storage.add_recurring(BUSINESS_ID, make_rule())
        with pytest.raises(DuplicateError):
            await ledger_storage.add_recurring(BUSINESS_ID, make_rule())

    @pytest.mark.asyncio
    async def test_rules_are_scoped_by_business(self, ledger_storage):
        await ledger_storage.add_recurring(BUSINESS_ID, make_rule())
        assert await ledger_storage.get_recurrings(OTHER_BUSINESS_ID) == []

    @pytest.mark.asyncio
    async def test_delete(self, ledger_storage):
        await ledger_storage.add_recurring(BUSINESS_ID, make_rule())

        assert await ledger_storage.delete_recurring(BUSINESS_ID, "r_hosting") is True
        assert await ledger_storage.delete_recurring(BUSINESS_ID, "r_hosting") is False


class TestLedger:
    """Live ledger operations."""

    @pytest.mark.asyncio
    async def test_append_and_list(self, ledger_storage):
        tx = make_transaction("t1", date(2024, 3, 1), "-12.34")
        await ledger_storage.append_transactions(BUSINESS_ID, [tx])

        assert await ledger_storage.list_transactions(BUSINESS_ID) == [tx]
        assert await ledger_storage.list_transactions(None) == []

    @pytest.mark.asyncio
    async def test_append_is_all_or_nothing(self, ledger_storage):
        await ledger_storage.append_transactions(
            BUSINESS_ID, [make_transaction("t1", date(2024, 3, 1), "1")],
        )

        with pytest.raises(DuplicateError):
            await ledger_storage.append_transactions(BUSINESS_ID, [
                make_transaction("t2", date(2024, 3, 2), "2"),
                make_transaction("t1", date(2024, 3, 1), "1"),
            ])

        assert [tx.id for tx in await ledger_storage.list_transactions(BUSINESS_ID)] == ["t1"]

    @pytest.mark.asyncio
    async def test_append_rejects_foreign_transactions(self, ledger_storage):
        foreign = make_transaction("t1", date(2024, 3, 1), "1", business_id=OTHER_BUSINESS_ID)
        with pytest.raises(StorageError):
            await ledger_storage.append_transactions(BUSINESS_ID, [foreign])

    @pytest.mark.asyncio
    async def test_update_missing_transaction(self, ledger_storage):
        with pytest.raises(NotFoundError):
            await ledger_storage.update_transaction(
                BUSINESS_ID, make_transaction("ghost", date(2024, 3, 1), "1"),
            )

    @pytest.mark.asyncio
    async def test_remove_counts(self, ledger_storage):
        await ledger_storage.append_transactions(BUSINESS_ID, [
            make_transaction("t1", date(2024, 3, 1), "1"),
            make_transaction("t2", date(2024, 3, 2), "2"),
        ])

        removed = await ledger_storage.remove_transactions(BUSINESS_ID, ["t1", "missing"])

        assert removed == 1

    @pytest.mark.asyncio
    async def test_default_reference_data(self, ledger_storage):
        accounts = await ledger_storage.get_accounts(BUSINESS_ID)
        categories = await ledger_storage.get_categories(BUSINESS_ID)

        assert [a.id for a in accounts] == ["1", "2", "3"]
        assert len(categories) == 17


class TestStatements:
    """Statement operations."""

    @pytest.mark.asyncio
    async def test_save_list_delete(self, ledger_storage):
        statement = build_statement(
            2024, 2, BUSINESS_ID,
            [make_transaction("t1", date(2024, 3, 1), "10.50")],
            archived_at=NOW,
        )
        await ledger_storage.save_statement(statement)

        assert await ledger_storage.list_statements(BUSINESS_ID) == [statement]
        with pytest.raises(DuplicateError):
            await ledger_storage.save_statement(statement)

        assert await ledger_storage.delete_statement(BUSINESS_ID, "2024-2") is True
        assert await ledger_storage.list_statements(BUSINESS_ID) == []


class TestJsonFileLayout:
    """Tests specific to the JSON file backend."""

    @pytest.mark.asyncio
    async def test_one_document_per_context(self, tmp_path):
        storage = JsonFileLedgerStorage(JsonFileClient(tmp_path))
        await storage.append_transactions(
            BUSINESS_ID, [make_transaction("t1", date(2024, 3, 1), "1")],
        )
        await storage.append_transactions(
            None, [make_transaction("p1", date(2024, 3, 1), "1", business_id=None)],
        )

        names = sorted(p.name for p in tmp_path.glob("*.json"))
        assert names == ["_personal.json", f"b-{BUSINESS_ID}.json"]

    @pytest.mark.asyncio
    async def test_amounts_survive_serialization(self, tmp_path):
        storage = JsonFileLedgerStorage(JsonFileClient(tmp_path))
        await storage.append_transactions(
            BUSINESS_ID, [make_transaction("t1", date(2024, 3, 1), "0.10")],
        )

        reloaded = JsonFileLedgerStorage(JsonFileClient(tmp_path))
        [tx] = await reloaded.list_transactions(BUSINESS_ID)
        assert str(tx.amount) == "0.10"

    @pytest.mark.asyncio
    async def test_nan_bookkeeping_loads_as_unset(self, tmp_path):
        client = JsonFileClient(tmp_path)
        rule = make_rule().model_dump(mode="json")
        rule["next_run_at"] = "NaN"
        client.write(client.dataset_path(BUSINESS_ID), {"recurrings": [rule]})

        [loaded] = await JsonFileLedgerStorage(client).get_recurrings(BUSINESS_ID)

        assert loaded.next_run_at is None

    @pytest.mark.asyncio
    async def test_corrupt_document_raises_storage_error(self, tmp_path):
        client = JsonFileClient(tmp_path)
        client.dataset_path(BUSINESS_ID).write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            await JsonFileLedgerStorage(client).list_transactions(BUSINESS_ID)

    @pytest.mark.asyncio
    async def test_malformed_record_raises_storage_error(self, tmp_path):
        client = JsonFileClient(tmp_path)
        client.write(client.dataset_path(BUSINESS_ID), {"transactions": [{"id": "broken"}]})

        with pytest.raises(StorageError):
            await JsonFileLedgerStorage(client).list_transactions(BUSINESS_ID)

    @pytest.mark.asyncio
    async def test_audit_log_round_trip(self, tmp_path):
        audit = JsonFileAuditStorage(JsonFileClient(tmp_path))
        correlation_id = uuid4()
        event = AuditEventBuilder.month_archived(
            business_id=BUSINESS_ID,
            statement_id="2024-2",
            transaction_count=3,
            net_amount="750.00",
            correlation_id=correlation_id,
        )

        assert await audit.append_event(event) is True

        [stored] = await audit.get_events_by_correlation_id(correlation_id)
        assert stored.event_id == event.event_id
        lines = (tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[0])["event_type"] == event.event_type.value
