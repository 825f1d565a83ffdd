"""Balance computation engine."""

from homeledger.engine.balance import (
    DEFAULT_UNKNOWN_USER_LABEL,
    EventKind,
    LedgerEvent,
    build_timeline,
    compute_balances,
    replay,
)

__all__ = [
    "DEFAULT_UNKNOWN_USER_LABEL",
    "EventKind",
    "LedgerEvent",
    "build_timeline",
    "compute_balances",
    "replay",
]
