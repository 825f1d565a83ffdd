"""Scope and presentation helpers."""

from homeledger.queries.scope import LedgerScope, ScopeError, make_scope
from homeledger.queries.summary import (
    BalanceSummary,
    CounterpartyLine,
    format_amount,
    format_net,
    summarize,
)

__all__ = [
    "BalanceSummary",
    "CounterpartyLine",
    "LedgerScope",
    "ScopeError",
    "format_amount",
    "format_net",
    "make_scope",
    "summarize",
]
