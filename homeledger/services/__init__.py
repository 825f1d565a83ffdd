"""Services package."""

from homeledger.services.storage import (
    ConnectionError,
    InMemoryLedgerStore,
    InMemoryProfileDirectory,
    LedgerStoreInterface,
    ProfileDirectoryInterface,
    StorageError,
    SupabaseClient,
    SupabaseLedgerStore,
    SupabaseProfileDirectory,
)

__all__ = [
    "ConnectionError",
    "InMemoryLedgerStore",
    "InMemoryProfileDirectory",
    "LedgerStoreInterface",
    "ProfileDirectoryInterface",
    "StorageError",
    "SupabaseClient",
    "SupabaseLedgerStore",
    "SupabaseProfileDirectory",
]
