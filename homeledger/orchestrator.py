"""
Balance Recompute Orchestrator

Ties the store, the validator and the balance engine together and
decides which result a home is currently showing.

DESIGN DECISION: There is no reactive global state. Instead:
- Every refresh of a home takes a new sequence number
- A result is published only if no newer refresh for that home has
  started meanwhile; older results are discarded (last write wins)
- Change notifications mark the home dirty and schedule ONE debounced
  refresh; triggers arriving inside the window are coalesced

The engine call itself is synchronous and pure; everything that can
block or fail (store reads, name lookups) happens here.
"""

import asyncio
from typing import Optional
from uuid import UUID

from homeledger.audit import AuditLogger, create_correlation_id
from homeledger.config import get_settings
from homeledger.config.settings import LedgerSettings
from homeledger.engine import compute_balances
from homeledger.models.ledger import (
    BalanceResult,
    Expense,
    PaymentRequest,
    ValidationError,
)
from homeledger.queries.scope import LedgerScope, make_scope
from homeledger.queries.summary import BalanceSummary, summarize
from homeledger.services.storage import (
    LedgerStoreInterface,
    ProfileDirectoryInterface,
    StorageError,
)
from homeledger.validation import LedgerValidator


GENERIC_FAILURE_MESSAGE = "Failed to calculate balances"


class BalanceRecomputeFlow:
    """
    Orchestrates balance recomputation for any number of homes.

    Flow for one refresh:
    1. Take a sequence number for the home
    2. Load expense rows (scoped) and approved payment rows
    3. Parse rows into models (schema validation)
    4. Resolve display names (best effort)
    5. Compute balances (semantic validation + replay)
    6. Publish, unless a newer refresh started in the meantime
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        profiles: Optional[ProfileDirectoryInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._profiles = profiles
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger
        self._validator = LedgerValidator(self._settings.currency_code)

        self._sequence: dict[str, int] = {}
        self._latest: dict[str, BalanceResult] = {}
        self._scopes: dict[str, LedgerScope] = {}
        self._dirty: set[str] = set()
        self._pending: dict[str, asyncio.Task] = {}
        self._triggers: dict[str, int] = {}

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def version(self, home_id: str) -> int:
        """Sequence number of the most recent refresh started for the home."""
        return self._sequence.get(home_id, 0)

    def latest(self, home_id: str) -> Optional[BalanceResult]:
        """Most recently published result for the home."""
        return self._latest.get(home_id)

    def is_dirty(self, home_id: str) -> bool:
        return home_id in self._dirty

    def summary(self, home_id: str) -> list[BalanceSummary]:
        """Display rows for the latest published result (empty if none or failed)."""
        result = self._latest.get(home_id)
        if result is None or not result.success:
            return []
        return summarize(
            result.balances,
            symbol=self._settings.currency_symbol,
            decimals=self._settings.display_decimals,
            unknown_user_label=self._settings.unknown_user_label,
        )

    def _next_sequence(self, home_id: str) -> int:
        sequence = self._sequence.get(home_id, 0) + 1
        self._sequence[home_id] = sequence
        return sequence

    def _publish(
        self,
        home_id: str,
        sequence: int,
        result: BalanceResult,
        correlation_id: UUID,
    ) -> Optional[BalanceResult]:
        latest_sequence = self._sequence[home_id]
        if sequence != latest_sequence:
            self._audit.log_stale_result(
                home_id=home_id,
                sequence=sequence,
                latest_sequence=latest_sequence,
                correlation_id=correlation_id,
            )
            return None
        self._latest[home_id] = result
        return result

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def _load(
        self,
        scope: LedgerScope,
    ) -> tuple[list[Expense], list[PaymentRequest], list[ValidationError]]:
        expense_rows = await self._store.fetch_expenses(
            scope.home_id,
            date_from=scope.date_from,
            date_to=scope.date_to,
        )
        payment_rows = await self._store.fetch_payment_requests(scope.home_id)

        expenses, expense_errors = self._validator.parse_expenses(expense_rows)
        payments, payment_errors = self._validator.parse_payments(payment_rows)
        return expenses, payments, expense_errors + payment_errors

    async def _display_names(
        self,
        home_id: str,
        expenses: list[Expense],
        correlation_id: UUID,
    ) -> dict[str, str]:
        if self._profiles is None:
            return {}
        user_ids = set()
        for expense in expenses:
            user_ids.add(expense.payer_id)
            user_ids.update(expense.participants)
        try:
            return await self._profiles.get_display_names(user_ids)
        except StorageError as e:
            # names are cosmetic; balances still go out with the fallback label
            self._audit.log_storage_error(
                home_id=home_id,
                error_message=f"Profile lookup failed: {e}",
                correlation_id=correlation_id,
            )
            return {}

    async def refresh(
        self,
        home_id: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Optional[BalanceResult]:
        """
        Recompute a home's balances.

        Args:
            home_id: The home to recompute
            year, month: Restrict expenses to one calendar month (both or neither)

        Returns:
            The published result, or None if a newer refresh for the same
            home started while this one was loading.

        Raises:
            ScopeError: If year/month do not form a valid month
        """
        scope = make_scope(home_id, year, month)
        self._scopes[home_id] = scope
        sequence = self._next_sequence(home_id)
        return await self._run(scope, sequence, create_correlation_id())

    async def _run(
        self,
        scope: LedgerScope,
        sequence: int,
        correlation_id: UUID,
    ) -> Optional[BalanceResult]:
        home_id = scope.home_id
        self._dirty.discard(home_id)

        self._audit.log_recompute_requested(
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            scope=scope.label(),
        )

        try:
            expenses, payments, schema_errors = await self._load(scope)
        except StorageError as e:
            self._audit.log_storage_error(
                home_id=home_id,
                error_message=str(e),
                correlation_id=correlation_id,
                sequence=sequence,
            )
            result = BalanceResult.failed(error_message=GENERIC_FAILURE_MESSAGE)
            return self._publish(home_id, sequence, result, correlation_id)

        skip = self._settings.skip_invalid_records
        if schema_errors and not skip:
            result = BalanceResult.failed(schema_errors, GENERIC_FAILURE_MESSAGE)
        else:
            names = await self._display_names(home_id, expenses, correlation_id)
            computed = compute_balances(
                expenses,
                payments,
                names,
                unknown_user_label=self._settings.unknown_user_label,
                skip_invalid=skip,
                currency_code=self._settings.currency_code,
            )
            if computed.success:
                result = BalanceResult.ok(
                    computed.balances,
                    skipped=schema_errors + computed.errors,
                )
            else:
                result = BalanceResult.failed(computed.errors, GENERIC_FAILURE_MESSAGE)

        if result.has_errors:
            self._audit.log_records_refused(
                home_id=home_id,
                sequence=sequence,
                errors=[e.model_dump(mode="json") for e in result.errors],
                correlation_id=correlation_id,
                skipped=result.success,
            )
        if result.success:
            self._audit.log_balances_computed(
                home_id=home_id,
                sequence=sequence,
                balance_count=len(result.balances),
                correlation_id=correlation_id,
                expense_count=len(expenses),
                payment_count=len(payments),
            )

        return self._publish(home_id, sequence, result, correlation_id)

    # -------------------------------------------------------------------------
    # Change notifications
    # -------------------------------------------------------------------------

    def notify_change(self, home_id: str) -> asyncio.Task:
        """
        Record that a home's expenses or settlements changed.

        Must be called from a running event loop. Schedules a refresh after
        the debounce window; a new notification inside the window restarts
        it, so a burst of changes costs one recomputation. A refresh that
        is already loading is left to finish and is superseded by the new one.

        Returns the task that will run the refresh.
        """
        self._dirty.add(home_id)
        in_window = home_id in self._triggers
        self._triggers[home_id] = self._triggers.get(home_id, 0) + 1

        pending = self._pending.get(home_id)
        if in_window and pending is not None and not pending.done():
            pending.cancel()
            self._audit.log_recompute_coalesced(home_id, self._triggers[home_id])

        task = asyncio.get_running_loop().create_task(self._debounced_refresh(home_id))
        self._pending[home_id] = task
        return task

    async def _debounced_refresh(self, home_id: str) -> Optional[BalanceResult]:
        try:
            await asyncio.sleep(self._settings.recompute_debounce_seconds)
            self._triggers.pop(home_id, None)

            scope = self._scopes.get(home_id) or make_scope(home_id)
            sequence = self._next_sequence(home_id)
            correlation_id = create_correlation_id()
            try:
                return await self._run(scope, sequence, correlation_id)
            except Exception as e:
                # nobody awaits this task, so the failure has to land somewhere visible
                self._audit.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"home_id": home_id, "sequence": sequence},
                    correlation_id=correlation_id,
                )
                result = BalanceResult.failed(error_message=GENERIC_FAILURE_MESSAGE)
                return self._publish(home_id, sequence, result, correlation_id)
        finally:
            # a cancelled task has already been replaced by a newer one
            if self._pending.get(home_id) is asyncio.current_task():
                del self._pending[home_id]

    async def wait_idle(self, home_id: str) -> Optional[BalanceResult]:
        """Wait until no refresh of the home is scheduled or running."""
        while True:
            task = self._pending.get(home_id)
            if task is None:
                return self._latest.get(home_id)
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
            if self._pending.get(home_id) is task:
                # cancelled before it ever ran
                del self._pending[home_id]
