"""
Tests for the balance recompute flow.

Async paths are driven with asyncio.run; the store is in memory.
"""

import asyncio

import pytest

from homeledger.audit import AuditLogger
from homeledger.config import LedgerSettings
from homeledger.models.audit import AuditEventType
from homeledger.models.ledger import PaymentStatus, ValidationReason
from homeledger.orchestrator import GENERIC_FAILURE_MESSAGE, BalanceRecomputeFlow
from homeledger.queries import ScopeError
from homeledger.services.storage import (
    InMemoryLedgerStore,
    InMemoryProfileDirectory,
    StorageError,
)
from tests.factories import expense, payment


class GatedStore(InMemoryLedgerStore):
    """Blocks the next expense fetch until its gate is set."""

    def __init__(self):
        super().__init__()
        self.gate = None

    async def fetch_expenses(self, home_id, date_from=None, date_to=None):
        gate, self.gate = self.gate, None
        rows = await super().fetch_expenses(home_id, date_from, date_to)
        if gate is not None:
            await gate.wait()
        return rows


class RecordingStore(InMemoryLedgerStore):
    """Remembers the date range of every expense fetch."""

    def __init__(self):
        super().__init__()
        self.ranges = []

    async def fetch_expenses(self, home_id, date_from=None, date_to=None):
        self.ranges.append((date_from, date_to))
        return await super().fetch_expenses(home_id, date_from, date_to)


class FailingStore(InMemoryLedgerStore):
    def __init__(self, error):
        super().__init__()
        self.error = error

    async def fetch_expenses(self, home_id, date_from=None, date_to=None):
        raise self.error


class BrokenOnceStore(InMemoryLedgerStore):
    """The next expense fetch waits for its gate, then fails with a bug."""

    def __init__(self):
        super().__init__()
        self.gate = None

    async def fetch_expenses(self, home_id, date_from=None, date_to=None):
        gate, self.gate = self.gate, None
        if gate is not None:
            await gate.wait()
            raise RuntimeError("bug")
        return await super().fetch_expenses(home_id, date_from, date_to)


class FailingDirectory(InMemoryProfileDirectory):
    async def get_display_names(self, user_ids):
        raise StorageError("profiles unavailable")


def settings(**overrides) -> LedgerSettings:
    values = {"recompute_debounce_seconds": 0.01}
    values.update(overrides)
    return LedgerSettings(**values)


def make_flow(store, profiles=None, **setting_overrides):
    events = []
    flow = BalanceRecomputeFlow(
        store=store,
        profiles=profiles,
        audit_logger=AuditLogger(sink=events.append),
        settings=settings(**setting_overrides),
    )
    return flow, events


def event_types(events):
    return [e.event_type for e in events]


def seeded_store(store=None):
    store = store or InMemoryLedgerStore()
    store.add_expense(expense("e1", 300, "A", ["A", "B", "C"], minute=1))
    return store


class TestRefresh:
    """Tests for a single refresh."""

    def test_computes_and_publishes(self):
        store = seeded_store()
        store.add_payment(payment("p1", "B", "A", minute=2))
        flow, events = make_flow(store, InMemoryProfileDirectory({"A": "Alice", "C": "Cara"}))

        result = asyncio.run(flow.refresh("home-1"))

        assert result.success is True
        assert [b.user_id for b in result.balances] == ["A", "C"]
        assert result.balance_for("A").user_name == "Alice"
        assert result.balance_for("A").net_balance == pytest.approx(100)
        assert result.balance_for("C").net_balance == pytest.approx(-100)
        assert flow.latest("home-1") is result
        assert flow.version("home-1") == 1
        assert event_types(events) == [
            AuditEventType.RECOMPUTE_REQUESTED,
            AuditEventType.BALANCES_COMPUTED,
        ]
        assert events[0].correlation_id == events[1].correlation_id

    def test_pending_payment_does_not_settle(self):
        store = seeded_store()
        store.add_payment(payment("p1", "B", "A", minute=2, status=PaymentStatus.PENDING))
        flow, _ = make_flow(store)

        result = asyncio.run(flow.refresh("home-1"))
        assert result.balance_for("B").net_balance == pytest.approx(-100)

    def test_unknown_users_get_fallback_label(self):
        flow, _ = make_flow(seeded_store(), unknown_user_label="Someone")
        result = asyncio.run(flow.refresh("home-1"))
        assert {b.user_name for b in result.balances} == {"Someone"}

    def test_month_scope_filters_expenses(self):
        store = RecordingStore()
        store.add_expense(expense("nov", 100, "A", ["A", "B"], minute=-24 * 60))
        store.add_expense(expense("dec", 60, "A", ["A", "B"], minute=5))
        flow, _ = make_flow(store)

        result = asyncio.run(flow.refresh("home-1", 2024, 12))

        assert result.balance_for("B").owes == {"A": pytest.approx(30)}
        date_from, date_to = store.ranges[-1]
        assert (date_from.year, date_from.month) == (2024, 12)
        assert (date_to.year, date_to.month) == (2025, 1)

    def test_invalid_scope_raises(self):
        flow, _ = make_flow(seeded_store())
        with pytest.raises(ScopeError):
            asyncio.run(flow.refresh("home-1", 2024, 13))

    def test_other_homes_untouched(self):
        store = seeded_store()
        store.add_expense(expense("e9", 80, "X", ["X", "Y"], home_id="home-2"))
        flow, _ = make_flow(store)

        result = asyncio.run(flow.refresh("home-2"))
        assert {b.user_id for b in result.balances} == {"X", "Y"}
        assert flow.latest("home-1") is None
        assert flow.version("home-1") == 0


class TestRefreshFailures:
    """Tests for bad data and unavailable storage."""

    def test_malformed_row_fails_computation(self):
        store = seeded_store()
        store.add_expense({
            "id": "broken",
            "home_id": "home-1",
            "amount": 50,
            "payer_id": "A",
            "participants": [],
            "created_at": "2024-12-01T13:00:00+00:00",
        })
        flow, events = make_flow(store)

        result = asyncio.run(flow.refresh("home-1"))

        assert result.success is False
        assert result.error_message == GENERIC_FAILURE_MESSAGE
        assert [e.record_id for e in result.errors] == ["broken"]
        assert AuditEventType.RECORDS_REJECTED in event_types(events)
        assert AuditEventType.BALANCES_COMPUTED not in event_types(events)

    def test_semantic_error_fails_computation(self):
        store = seeded_store()
        store.add_expense(expense("dup", 20, "A", ["A", "B", "B"], minute=3))
        flow, _ = make_flow(store)

        result = asyncio.run(flow.refresh("home-1"))
        assert result.success is False
        assert result.errors[0].reason == ValidationReason.DUPLICATE_PARTICIPANT

    def test_skip_mode_reports_and_continues(self):
        store = seeded_store()
        store.add_expense({"id": "broken", "home_id": "home-1", "amount": "?"})
        store.add_payment(payment("self", "C", "C", minute=4))
        flow, events = make_flow(store, skip_invalid_records=True)

        result = asyncio.run(flow.refresh("home-1"))

        assert result.success is True
        assert {e.record_id for e in result.errors} == {"broken", "self"}
        assert result.balance_for("A").net_balance == pytest.approx(200)
        assert AuditEventType.RECORDS_SKIPPED in event_types(events)
        assert AuditEventType.BALANCES_COMPUTED in event_types(events)

    def test_foreign_currency_uses_configured_code(self):
        store = seeded_store()
        store.add_expense(expense("usd", 20, "A", ["A", "B"], minute=3, currency="USD"))
        flow, _ = make_flow(store, currency_code="BDT")

        result = asyncio.run(flow.refresh("home-1"))
        assert result.errors[0].reason == ValidationReason.UNKNOWN_CURRENCY

    def test_storage_error_becomes_failed_result(self):
        flow, events = make_flow(FailingStore(StorageError("db down")))

        result = asyncio.run(flow.refresh("home-1"))

        assert result.success is False
        assert result.error_message == GENERIC_FAILURE_MESSAGE
        assert result.errors == []
        assert flow.latest("home-1") is result
        assert AuditEventType.STORAGE_ERROR in event_types(events)

    def test_profile_failure_is_not_fatal(self):
        flow, events = make_flow(seeded_store(), FailingDirectory())

        result = asyncio.run(flow.refresh("home-1"))

        assert result.success is True
        assert {b.user_name for b in result.balances} == {"Unknown User"}
        assert AuditEventType.STORAGE_ERROR in event_types(events)


class TestStaleResults:
    """Tests for last-write-wins publication."""

    def test_older_refresh_is_discarded(self):
        store = seeded_store(GatedStore())
        flow, events = make_flow(store)

        async def scenario():
            gate = asyncio.Event()
            store.gate = gate
            first = asyncio.create_task(flow.refresh("home-1"))
            await asyncio.sleep(0)
            second = await flow.refresh("home-1")
            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert first is None
        assert second.success is True
        assert flow.latest("home-1") is second
        assert flow.version("home-1") == 2
        assert AuditEventType.STALE_RESULT_DISCARDED in event_types(events)


class TestChangeNotifications:
    """Tests for debounced recomputation."""

    def test_burst_is_coalesced(self):
        store = seeded_store()
        flow, events = make_flow(store)

        async def scenario():
            for _ in range(3):
                flow.notify_change("home-1")
            assert flow.is_dirty("home-1") is True
            return await flow.wait_idle("home-1")

        result = asyncio.run(scenario())

        assert result.success is True
        assert store.fetch_count == 1
        assert flow.is_dirty("home-1") is False
        assert event_types(events).count(AuditEventType.RECOMPUTE_COALESCED) == 2

    def test_approval_changes_balances(self):
        store = seeded_store()
        store.add_payment(payment("p1", "B", "A", minute=2, status=PaymentStatus.PENDING))
        flow, _ = make_flow(store)

        async def scenario():
            before = await flow.refresh("home-1")
            store.set_payment_status("p1", PaymentStatus.APPROVED)
            flow.notify_change("home-1")
            after = await flow.wait_idle("home-1")
            return before, after

        before, after = asyncio.run(scenario())

        assert before.balance_for("B") is not None
        assert after.balance_for("B") is None
        assert flow.version("home-1") == 2

    def test_notification_keeps_month_scope(self):
        store = seeded_store(RecordingStore())
        flow, _ = make_flow(store)

        async def scenario():
            await flow.refresh("home-1", 2024, 12)
            flow.notify_change("home-1")
            await flow.wait_idle("home-1")

        asyncio.run(scenario())

        assert len(store.ranges) == 2
        assert store.ranges[0] == store.ranges[1]
        assert store.ranges[1][0] is not None

    def test_unexpected_error_is_logged_and_published(self):
        flow, events = make_flow(FailingStore(RuntimeError("bug")))

        async def scenario():
            flow.notify_change("home-1")
            return await flow.wait_idle("home-1")

        result = asyncio.run(scenario())

        assert result.success is False
        assert result.error_message == GENERIC_FAILURE_MESSAGE
        assert AuditEventType.SYSTEM_ERROR in event_types(events)

    def test_wait_idle_waits_for_running_refresh(self):
        store = seeded_store(GatedStore())
        flow, _ = make_flow(store)

        async def scenario():
            gate = asyncio.Event()
            store.gate = gate
            flow.notify_change("home-1")
            # past the debounce window; the refresh is now held inside the fetch
            await asyncio.sleep(0.05)
            waiter = asyncio.create_task(flow.wait_idle("home-1"))
            await asyncio.sleep(0)
            finished_early = waiter.done()
            gate.set()
            return finished_early, await waiter

        finished_early, result = asyncio.run(scenario())

        assert finished_early is False
        assert result is not None
        assert result.success is True
        assert flow.latest("home-1") is result

    def test_notification_during_running_refresh_is_not_coalesced(self):
        store = seeded_store(GatedStore())
        flow, events = make_flow(store)

        async def scenario():
            gate = asyncio.Event()
            store.gate = gate
            first = flow.notify_change("home-1")
            await asyncio.sleep(0.05)
            flow.notify_change("home-1")
            gate.set()
            result = await flow.wait_idle("home-1")
            return first, result

        first, result = asyncio.run(scenario())

        assert first.cancelled() is False
        assert first.done() is True
        assert result.success is True
        assert flow.version("home-1") == 2
        assert AuditEventType.RECOMPUTE_COALESCED not in event_types(events)

    def test_stale_failure_does_not_replace_newer_result(self):
        store = seeded_store(BrokenOnceStore())
        flow, events = make_flow(store)

        async def scenario():
            gate = asyncio.Event()
            store.gate = gate
            flow.notify_change("home-1")
            await asyncio.sleep(0.05)
            newer = await flow.refresh("home-1")
            gate.set()
            await flow.wait_idle("home-1")
            return newer

        newer = asyncio.run(scenario())

        assert newer.success is True
        assert flow.latest("home-1") is newer
        assert AuditEventType.SYSTEM_ERROR in event_types(events)
        assert AuditEventType.STALE_RESULT_DISCARDED in event_types(events)

    def test_wait_idle_without_pending_refresh(self):
        flow, _ = make_flow(seeded_store())
        assert asyncio.run(flow.wait_idle("home-1")) is None


class TestSummary:
    """Tests for display rows of the published result."""

    def test_summary_uses_configured_currency(self):
        flow, _ = make_flow(seeded_store(), currency_symbol="Tk ", display_decimals=0)
        asyncio.run(flow.refresh("home-1"))

        rows = {row.user_id: row for row in flow.summary("home-1")}
        assert rows["A"].net == "+Tk 200"
        assert rows["B"].owes[0].amount == "Tk 100"

    def test_summary_empty_before_refresh_or_on_failure(self):
        flow, _ = make_flow(FailingStore(StorageError("db down")))
        assert flow.summary("home-1") == []
        asyncio.run(flow.refresh("home-1"))
        assert flow.summary("home-1") == []
