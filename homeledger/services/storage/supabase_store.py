"""
Supabase Storage Implementation

The household app keeps its ledger in Supabase (Postgres behind a REST
API). We read three tables:

    expenses          id, home_id, amount, payer_id, participants[], created_at, ...
    payment_requests  id, home_id, amount, from_user_id, to_user_id, status, created_at, ...
    profiles          id, name, email

TRADEOFFS:
- The client is synchronous; calls block the event loop briefly.
  A home's ledger is small, so we accept that.
- Filtering by home, status and date range is pushed to Postgres.
  Ordering is not: the engine re-sorts anyway.
"""

from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from supabase import Client, create_client
from tenacity import retry, stop_after_attempt, wait_exponential

from homeledger.config import get_settings
from homeledger.config.settings import SupabaseSettings
from homeledger.models.ledger import PaymentStatus
from homeledger.services.storage.interface import (
    ConnectionError,
    LedgerStoreInterface,
    ProfileDirectoryInterface,
    StorageError,
)


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Handles connection setup and provides retry logic for reads.
    """

    def __init__(
        self,
        settings: Optional[SupabaseSettings] = None,
        client: Optional[Client] = None,
        wait: Optional[Callable] = None,
        attempts: int = 3,
    ):
        self._settings = settings or get_settings().supabase
        self._client = client
        self._run_with_retry = retry(
            stop=stop_after_attempt(attempts),
            wait=wait or wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )(self._run_once)

    @property
    def settings(self) -> SupabaseSettings:
        return self._settings

    def connect(self) -> Client:
        """Create the Supabase client on first use."""
        if self._client is None:
            try:
                self._client = create_client(self._settings.url, self._settings.key)
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client

    def table(self, name: str):
        return self.connect().table(name)

    def _run_once(self, build_query: Callable[[], Any]) -> list[dict[str, Any]]:
        response = build_query().execute()
        return list(response.data or [])

    def run(self, build_query: Callable[[], Any]) -> list[dict[str, Any]]:
        """
        Execute a query, retrying transient failures.

        build_query is called again on every attempt, since supabase
        query builders cannot be re-executed safely.
        """
        try:
            return self._run_with_retry(build_query)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Supabase query failed: {e}")


class SupabaseLedgerStore(LedgerStoreInterface):
    """Reads expense and payment request rows from Supabase."""

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def fetch_expenses(
        self,
        home_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        table_name = self._client.settings.expenses_table

        def build_query():
            query = self._client.table(table_name).select("*").eq("home_id", home_id)
            if date_from:
                query = query.gte("created_at", date_from.isoformat())
            if date_to:
                query = query.lt("created_at", date_to.isoformat())
            return query

        return self._client.run(build_query)

    async def fetch_payment_requests(
        self,
        home_id: str,
        status: Optional[PaymentStatus] = PaymentStatus.APPROVED,
    ) -> list[dict[str, Any]]:
        table_name = self._client.settings.payments_table

        def build_query():
            query = self._client.table(table_name).select("*").eq("home_id", home_id)
            if status is not None:
                query = query.eq("status", status.value)
            return query

        return self._client.run(build_query)


class SupabaseProfileDirectory(ProfileDirectoryInterface):
    """
    Resolves display names from the profiles table.

    A profile without a name falls back to its email, like the app does.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def get_display_names(self, user_ids: Iterable[str]) -> dict[str, str]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}

        table_name = self._client.settings.profiles_table
        rows = self._client.run(
            lambda: self._client.table(table_name).select("id, name, email").in_("id", ids)
        )

        names = {}
        for row in rows:
            label = row.get("name") or row.get("email")
            if row.get("id") and label:
                names[str(row["id"])] = label
        return names
