"""
JSON File Storage Implementation

DESIGN DECISION: The local JSON store mirrors how the browser app kept its
data: one index document for businesses and the active business id, plus
one dataset document per business context holding its transactions,
statements, reference data and recurring rules.

TRADEOFFS:
- Whole-document rewrites (fine for personal / small-business volumes)
- No cross-process locking; a single writer is assumed
- Writes go through a temp file + rename so a crash never leaves a
  half-written dataset behind

The implementation follows the abstract interface, so a remote sync
backend can replace it without changing scheduler or archiver logic.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote
from uuid import UUID

from pydantic import BaseModel, ValidationError
from tenacity import retry, stop_after_attempt, wait_exponential

from moneta.config import get_settings
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
from moneta.services.storage.memory import check_batch_scope


INDEX_FILE = "businesses.json"
AUDIT_FILE = "audit.jsonl"
NO_BUSINESS_KEY = "_personal"

DATASET_KEYS = ("transactions", "statements", "accounts", "categories", "recurrings")


class JsonFileClient:
    """
    Low-level JSON document store.

    Handles file layout and provides retry logic for writes.
    """

    def __init__(self, data_dir: Optional[str | Path] = None):
        self._data_dir = Path(data_dir or get_settings().storage.data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def dataset_path(self, business_id: Optional[str]) -> Path:
        key = NO_BUSINESS_KEY if business_id is None else "b-" + quote(business_id, safe="")
        return self._data_dir / f"{key}.json"

    def index_path(self) -> Path:
        return self._data_dir / INDEX_FILE

    def audit_path(self) -> Path:
        return self._data_dir / AUDIT_FILE

    def read(self, path: Path) -> Optional[dict[str, Any]]:
        """Read a JSON document; None if it does not exist."""
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path.name}: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def write(self, path: Path, document: dict[str, Any]) -> None:
        """Atomically replace a JSON document."""
        self._data_dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2)
        os.replace(tmp, path)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_line(self, path: Path, line: str) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def remove(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class JsonFileLedgerStorage(LedgerStorageInterface):
    """
    JSON file implementation of ledger storage.

    Records are serialized with `model_dump(mode="json")` and validated
    back into models on every read.
    """

    def __init__(self, client: Optional[JsonFileClient] = None):
        self._client = client or JsonFileClient()

    # Document helpers

    def _load_index(self) -> dict[str, Any]:
        doc = self._client.read(self._client.index_path()) or {}
        doc.setdefault("businesses", [])
        doc.setdefault("active_business_id", None)
        return doc

    def _save_index(self, doc: dict[str, Any]) -> None:
        try:
            self._client.write(self._client.index_path(), doc)
        except OSError as e:
            raise StorageError(f"Failed to write business index: {e}") from e

    def _load_dataset(self, business_id: Optional[str]) -> dict[str, Any]:
        doc = self._client.read(self._client.dataset_path(business_id)) or {}
        for key in DATASET_KEYS:
            doc.setdefault(key, None if key in ("accounts", "categories") else [])
        return doc

    def _save_dataset(self, business_id: Optional[str], doc: dict[str, Any]) -> None:
        try:
            self._client.write(self._client.dataset_path(business_id), doc)
        except OSError as e:
            raise StorageError(f"Failed to write dataset for {business_id!r}: {e}") from e

    @staticmethod
    def _dump(records: list) -> list[dict]:
        return [record.model_dump(mode="json") for record in records]

    @staticmethod
    def _parse(model: type[BaseModel], rows: list) -> list:
        try:
            return [model.model_validate(row) for row in rows]
        except ValidationError as e:
            raise StorageError(f"Malformed {model.__name__} record: {e}") from e

    # Businesses

    async def get_businesses(self) -> list[Business]:
        return self._parse(Business, self._load_index()["businesses"])

    async def add_business(self, business: Business) -> None:
        doc = self._load_index()
        if any(b.get("id") == business.id for b in doc["businesses"]):
            raise DuplicateError(f"Business already exists: {business.id}")
        doc["businesses"].append(business.model_dump(mode="json"))
        self._save_index(doc)

    async def update_business(self, business: Business) -> None:
        doc = self._load_index()
        record = business.model_dump(mode="json")
        for idx, existing in enumerate(doc["businesses"]):
            if existing.get("id") == business.id:
                doc["businesses"][idx] = record
                break
        else:
            doc["businesses"].append(record)
        self._save_index(doc)

    async def delete_business(self, business_id: str) -> None:
        doc = self._load_index()
        doc["businesses"] = [b for b in doc["businesses"] if b.get("id") != business_id]
        if doc["active_business_id"] == business_id:
            doc["active_business_id"] = None
        self._save_index(doc)
        self._client.remove(self._client.dataset_path(business_id))

    async def get_active_business_id(self) -> Optional[str]:
        return self._load_index()["active_business_id"] or None

    async def set_active_business_id(self, business_id: Optional[str]) -> None:
        doc = self._load_index()
        doc["active_business_id"] = business_id or None
        self._save_index(doc)

    # Recurring rules

    async def get_recurrings(self, business_id: str) -> list[RecurringRule]:
        rows = self._load_dataset(business_id)["recurrings"]
        return self._parse(RecurringRule, rows)

    async def add_recurring(self, business_id: str, rule: RecurringRule) -> None:
        doc = self._load_dataset(business_id)
        if any(r.get("id") == rule.id for r in doc["recurrings"]):
            raise DuplicateError(f"Recurring rule already exists: {rule.id}")
        doc["recurrings"].append(rule.model_dump(mode="json"))
        self._save_dataset(business_id, doc)

    async def update_recurring(self, business_id: str, rule: RecurringRule) -> None:
        doc = self._load_dataset(business_id)
        record = rule.model_dump(mode="json")
        for idx, existing in enumerate(doc["recurrings"]):
            if existing.get("id") == rule.id:
                doc["recurrings"][idx] = record
                break
        else:
            doc["recurrings"].append(record)
        self._save_dataset(business_id, doc)

    async def delete_recurring(self, business_id: str, rule_id: str) -> bool:
        doc = self._load_dataset(business_id)
        kept = [r for r in doc["recurrings"] if r.get("id") != rule_id]
        if len(kept) == len(doc["recurrings"]):
            return False
        doc["recurrings"] = kept
        self._save_dataset(business_id, doc)
        return True

    # Reference data

    async def get_accounts(self, business_id: Optional[str]) -> list[Account]:
        rows = self._load_dataset(business_id)["accounts"]
        if rows is None:
            return default_accounts()
        return self._parse(Account, rows)

    async def get_categories(self, business_id: Optional[str]) -> list[Category]:
        rows = self._load_dataset(business_id)["categories"]
        if rows is None:
            return default_categories()
        return self._parse(Category, rows)

    async def save_reference_data(
        self,
        business_id: Optional[str],
        accounts: Optional[list[Account]] = None,
        categories: Optional[list[Category]] = None,
    ) -> None:
        """Persist reference data for a business context."""
        doc = self._load_dataset(business_id)
        if accounts is not None:
            doc["accounts"] = self._dump(accounts)
        if categories is not None:
            doc["categories"] = self._dump(categories)
        self._save_dataset(business_id, doc)

    # Live ledger

    async def list_transactions(self, business_id: Optional[str]) -> list[Transaction]:
        rows = self._load_dataset(business_id)["transactions"]
        return self._parse(Transaction, rows)

    async def append_transactions(
        self,
        business_id: Optional[str],
        transactions: list[Transaction],
    ) -> None:
        if not transactions:
            return
        doc = self._load_dataset(business_id)
        live_ids = {t.get("id") for t in doc["transactions"]}
        check_batch_scope(business_id, transactions, live_ids)
        doc["transactions"].extend(self._dump(transactions))
        self._save_dataset(business_id, doc)

    async def update_transaction(
        self,
        business_id: Optional[str],
        transaction: Transaction,
    ) -> None:
        doc = self._load_dataset(business_id)
        for idx, existing in enumerate(doc["transactions"]):
            if existing.get("id") == transaction.id:
                doc["transactions"][idx] = transaction.model_dump(mode="json")
                self._save_dataset(business_id, doc)
                return
        raise NotFoundError(f"Transaction not found: {transaction.id}")

    async def remove_transactions(
        self,
        business_id: Optional[str],
        transaction_ids: list[str],
    ) -> int:
        doc = self._load_dataset(business_id)
        doomed = set(transaction_ids)
        kept = [t for t in doc["transactions"] if t.get("id") not in doomed]
        removed = len(doc["transactions"]) - len(kept)
        if removed:
            doc["transactions"] = kept
            self._save_dataset(business_id, doc)
        return removed

    # Statements

    async def list_statements(self, business_id: Optional[str]) -> list[MonthlyStatement]:
        rows = self._load_dataset(business_id)["statements"]
        return self._parse(MonthlyStatement, rows)

    async def save_statement(self, statement: MonthlyStatement) -> None:
        doc = self._load_dataset(statement.business_id)
        if any(s.get("id") == statement.id for s in doc["statements"]):
            raise DuplicateError(f"Statement already exists: {statement.id}")
        doc["statements"].append(statement.model_dump(mode="json"))
        self._save_dataset(statement.business_id, doc)

    async def delete_statement(
        self,
        business_id: Optional[str],
        statement_id: str,
    ) -> bool:
        doc = self._load_dataset(business_id)
        kept = [s for s in doc["statements"] if s.get("id") != statement_id]
        if len(kept) == len(doc["statements"]):
            return False
        doc["statements"] = kept
        self._save_dataset(business_id, doc)
        return True


class JsonFileAuditStorage(AuditStorageInterface):
    """
    JSON-lines implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[JsonFileClient] = None):
        self._client = client or JsonFileClient()

    def _read_all(self) -> list[AuditEvent]:
        path = self._client.audit_path()
        events = []
        try:
            with path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    if line.strip():
                        events.append(AuditEvent.model_validate_json(line))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read audit log: {e}") from e
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._client.append_line(self._client.audit_path(), event.model_dump_json())
            return True
        except OSError:
            # Audit logging should not break the main flow; AuditLogger reports it
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_all() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_all()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._read_all(), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
