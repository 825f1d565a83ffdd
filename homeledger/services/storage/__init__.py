"""
Storage Services Package

Read-only interfaces to the ledger backend, with a Supabase implementation
and an in-memory one for tests and local runs.
"""

from homeledger.services.storage.interface import (
    ConnectionError,
    LedgerStoreInterface,
    ProfileDirectoryInterface,
    StorageError,
)
from homeledger.services.storage.memory import (
    InMemoryLedgerStore,
    InMemoryProfileDirectory,
)
from homeledger.services.storage.supabase_store import (
    SupabaseClient,
    SupabaseLedgerStore,
    SupabaseProfileDirectory,
)

__all__ = [
    # Interfaces
    "LedgerStoreInterface",
    "ProfileDirectoryInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Implementations
    "InMemoryLedgerStore",
    "InMemoryProfileDirectory",
    "SupabaseClient",
    "SupabaseLedgerStore",
    "SupabaseProfileDirectory",
]
