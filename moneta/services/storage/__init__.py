"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a local JSON file backend; both are
swappable behind the same interface.
"""

from moneta.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from moneta.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from moneta.services.storage.json_file import (
    JsonFileAuditStorage,
    JsonFileClient,
    JsonFileLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # JSON file implementation
    "JsonFileAuditStorage",
    "JsonFileClient",
    "JsonFileLedgerStorage",
]
