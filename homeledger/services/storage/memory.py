"""
In-Memory Storage Implementation

Holds ledger rows in plain lists. Used by the tests and for running the
recompute flow locally without a Supabase project.

Rows are stored exactly as given (dicts), so malformed rows reach the
validator just like they would from the hosted backend.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

from homeledger.models.ledger import Expense, PaymentRequest, PaymentStatus
from homeledger.services.storage.interface import (
    LedgerStoreInterface,
    ProfileDirectoryInterface,
)


def _row_time(row: dict[str, Any]) -> Optional[datetime]:
    value = row.get("created_at")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class InMemoryLedgerStore(LedgerStoreInterface):
    """Ledger store backed by python lists."""

    def __init__(self):
        self._expenses: list[dict[str, Any]] = []
        self._payments: list[dict[str, Any]] = []
        self.fetch_count = 0

    def add_expense(self, expense: Union[Expense, dict[str, Any]]) -> None:
        row = expense.model_dump(mode="json") if isinstance(expense, Expense) else dict(expense)
        self._expenses.append(row)

    def add_payment(self, payment: Union[PaymentRequest, dict[str, Any]]) -> None:
        row = payment.model_dump(mode="json") if isinstance(payment, PaymentRequest) else dict(payment)
        self._payments.append(row)

    def set_payment_status(self, payment_id: str, status: PaymentStatus) -> bool:
        """
        Approve or reject a pending payment request.

        Returns False if the request does not exist or has already been
        decided; a decided request never changes again.
        """
        for row in self._payments:
            if row.get("id") == payment_id:
                if not PaymentRequest.model_validate(row).can_transition_to(status):
                    return False
                row["status"] = status.value
                return True
        return False

    async def fetch_expenses(
        self,
        home_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        self.fetch_count += 1
        rows = []
        for row in self._expenses:
            if row.get("home_id") != home_id:
                continue
            created = _row_time(row)
            # rows with an unreadable timestamp are left for the validator
            if created is not None:
                if date_from and created < date_from:
                    continue
                if date_to and created >= date_to:
                    continue
            rows.append(dict(row))
        return rows

    async def fetch_payment_requests(
        self,
        home_id: str,
        status: Optional[PaymentStatus] = PaymentStatus.APPROVED,
    ) -> list[dict[str, Any]]:
        return [
            dict(row)
            for row in self._payments
            if row.get("home_id") == home_id
            and (status is None or row.get("status") == status.value)
        ]


class InMemoryProfileDirectory(ProfileDirectoryInterface):
    """Profile directory backed by a dict of id -> name."""

    def __init__(self, names: Optional[dict[str, str]] = None):
        self._names = dict(names or {})

    async def get_display_names(self, user_ids: Iterable[str]) -> dict[str, str]:
        return {uid: self._names[uid] for uid in user_ids if uid in self._names}
