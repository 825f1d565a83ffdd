"""
Balance Computation Engine

Given a home's expenses and approved settlement payments, derive who
owes whom how much.

DESIGN DECISION: Balances are never updated incrementally. Every call
replays the full event history in chronological order:

    split event   (expense)  -> each non-payer participant owes the payer
                                an equal share of the amount
    settle event  (approved) -> the whole debt from payer to receiver is
                                wiped, whatever amount was settled

CRITICAL: a settlement is a full cancellation, not a decrement. Partial
payments are not supported by this model, and changing that would change
every balance users have already seen.

The engine is a pure function: no I/O, no clock, no logging, no state
kept between calls. Filtering to a home or a month happens before the
records get here.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from homeledger.models.ledger import (
    Balance,
    BalanceResult,
    Expense,
    PaymentRequest,
    RecordType,
)
from homeledger.validation.validator import (
    UNKNOWN_RECORD_ID,
    LedgerValidator,
    refused_ids,
)


DEFAULT_UNKNOWN_USER_LABEL = "Unknown User"


class EventKind(str, Enum):
    """
    Kind of timeline event.

    The declaration order is the tie-break at equal timestamps:
    splits are replayed before settlements.
    """
    SPLIT = "split"
    SETTLE = "settle"


_TIE_BREAK = {EventKind.SPLIT: 0, EventKind.SETTLE: 1}


class LedgerEvent(BaseModel):
    """One entry of the replay timeline."""
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    created_at: datetime
    record: Union[Expense, PaymentRequest]


def build_timeline(
    expenses: Iterable[Expense],
    approved_payments: Iterable[PaymentRequest],
) -> list[LedgerEvent]:
    """
    Merge expenses and approved payments into one chronological timeline.

    Sorted by created_at; at equal timestamps splits come before
    settlements, and records of the same kind keep their input order.
    Payments that are not approved are left out.
    """
    events = [
        LedgerEvent(kind=EventKind.SPLIT, created_at=e.created_at, record=e)
        for e in expenses
    ]
    events.extend(
        LedgerEvent(kind=EventKind.SETTLE, created_at=p.created_at, record=p)
        for p in approved_payments
        if p.is_approved
    )
    # sort is stable, so input order survives within (timestamp, kind)
    events.sort(key=lambda ev: (ev.created_at, _TIE_BREAK[ev.kind]))
    return events


class _Ledger:
    """Mutable owes / is-owed maps used during one replay."""

    def __init__(self) -> None:
        self.owes: dict[str, dict[str, float]] = {}
        self.is_owed: dict[str, dict[str, float]] = {}

    def register(self, user_id: str) -> None:
        if user_id not in self.owes:
            self.owes[user_id] = {}
            self.is_owed[user_id] = {}

    def split(self, expense: Expense) -> None:
        per_head = expense.amount / len(expense.participants)
        payer = expense.payer_id
        for participant in expense.participants:
            if participant == payer:
                continue
            debts = self.owes[participant]
            debts[payer] = debts.get(payer, 0.0) + per_head
            credits = self.is_owed[payer]
            credits[participant] = credits.get(participant, 0.0) + per_head

    def settle(self, payment: PaymentRequest) -> None:
        # users only seen in settlements have no maps and nothing to cancel
        self.owes.get(payment.from_user_id, {}).pop(payment.to_user_id, None)
        self.is_owed.get(payment.to_user_id, {}).pop(payment.from_user_id, None)


def _users_in_order(timeline: list[LedgerEvent]) -> list[str]:
    seen: dict[str, None] = {}
    for event in timeline:
        if event.kind is EventKind.SPLIT:
            expense = event.record
            seen.setdefault(expense.payer_id, None)
            for participant in expense.participants:
                seen.setdefault(participant, None)
    return list(seen)


def replay(
    timeline: list[LedgerEvent],
    profile_names: Optional[Mapping[str, str]] = None,
    unknown_user_label: str = DEFAULT_UNKNOWN_USER_LABEL,
) -> list[Balance]:
    """
    Replay an already-validated timeline into balances.

    Users appear in the order they were first seen on the timeline.
    Users left with no relation at all are dropped.
    """
    names = profile_names or {}
    ledger = _Ledger()
    users = _users_in_order(timeline)
    for user_id in users:
        ledger.register(user_id)

    for event in timeline:
        if event.kind is EventKind.SPLIT:
            ledger.split(event.record)
        else:
            ledger.settle(event.record)

    balances = []
    for user_id in users:
        owes = ledger.owes[user_id]
        is_owed = ledger.is_owed[user_id]
        net = sum(is_owed.values()) - sum(owes.values())
        if not owes and not is_owed and net == 0:
            continue
        balances.append(Balance(
            user_id=user_id,
            user_name=names.get(user_id) or unknown_user_label,
            owes=dict(owes),
            is_owed=dict(is_owed),
            net_balance=net,
        ))
    return balances


def compute_balances(
    expenses: Iterable[Expense],
    approved_payments: Iterable[PaymentRequest],
    profile_names: Optional[Mapping[str, str]] = None,
    *,
    unknown_user_label: str = DEFAULT_UNKNOWN_USER_LABEL,
    skip_invalid: bool = False,
    currency_code: Optional[str] = None,
) -> BalanceResult:
    """
    Compute every member's balance for one home.

    Args:
        expenses: The home's expenses, in any order
        approved_payments: Settlement requests; anything not approved is ignored
        profile_names: user id -> display name, best effort
        unknown_user_label: Name used for ids missing from profile_names
        skip_invalid: Leave malformed records out and still compute,
                      instead of failing the whole computation
        currency_code: If set, records in another currency are refused

    Returns:
        BalanceResult.ok(balances) or, when records were refused and
        skip_invalid is False, BalanceResult.failed(errors). With
        skip_invalid the refused records are listed in result.errors.
    """
    expenses = list(expenses)
    payments = [p for p in approved_payments if p.is_approved]

    errors = LedgerValidator(currency_code).validate(expenses, payments)
    if errors:
        if not skip_invalid:
            return BalanceResult.failed(errors)
        bad_expenses = refused_ids(errors, RecordType.EXPENSE)
        bad_payments = refused_ids(errors, RecordType.PAYMENT)
        expenses = [
            e for e in expenses if (e.id or UNKNOWN_RECORD_ID) not in bad_expenses
        ]
        payments = [
            p for p in payments if (p.id or UNKNOWN_RECORD_ID) not in bad_payments
        ]

    timeline = build_timeline(expenses, payments)
    balances = replay(timeline, profile_names, unknown_user_label)
    return BalanceResult.ok(balances, skipped=errors)
