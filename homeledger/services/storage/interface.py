"""
Abstract Storage Interfaces

DESIGN DECISION: The ledger itself lives in a hosted backend that this
package does not own. We only read snapshots from it, through these
interfaces:
1. LedgerStoreInterface - expense rows and payment request rows for a home
2. ProfileDirectoryInterface - user id -> display name

Stores hand back RAW rows (plain dicts). Parsing and validation happen
in one place, the LedgerValidator, so a malformed row is reported with
its id instead of being silently dropped by whichever store produced it.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from homeledger.models.ledger import PaymentStatus


class LedgerStoreInterface(ABC):
    """
    Read-only access to a home's ledger records.

    Any backend (Supabase, an in-memory fixture, ...) must implement these.
    """

    @abstractmethod
    async def fetch_expenses(
        self,
        home_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch expense rows for a home.

        Args:
            home_id: The home whose expenses to read
            date_from: Only rows created on or after this instant
            date_to: Only rows created strictly before this instant

        Returns:
            Raw expense rows, in no particular order

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def fetch_payment_requests(
        self,
        home_id: str,
        status: Optional[PaymentStatus] = PaymentStatus.APPROVED,
    ) -> list[dict[str, Any]]:
        """
        Fetch payment request rows for a home.

        Args:
            home_id: The home whose settlements to read
            status: Only rows with this status; None for every status

        Returns:
            Raw payment request rows, in no particular order

        Raises:
            StorageError: If the backend cannot be read
        """
        pass


class ProfileDirectoryInterface(ABC):
    """Best-effort lookup of display names."""

    @abstractmethod
    async def get_display_names(self, user_ids: Iterable[str]) -> dict[str, str]:
        """
        Resolve display names for the given users.

        Unknown users are simply absent from the returned mapping.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
