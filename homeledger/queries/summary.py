"""
Balance Summaries for Display

DESIGN DECISION: Rounding exists only here. The engine keeps full float
precision; these helpers turn a computed Balance into the strings a
screen shows ("+৳200.00", "৳33.33") and never feed anything back.
"""

from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, Field

from homeledger.models.ledger import Balance


DEFAULT_SYMBOL = "৳"


def format_amount(value: float, symbol: str = DEFAULT_SYMBOL, decimals: int = 2) -> str:
    """Unsigned amount, e.g. '৳100.00'."""
    return f"{symbol}{abs(value):.{decimals}f}"


def format_net(value: float, symbol: str = DEFAULT_SYMBOL, decimals: int = 2) -> str:
    """Signed net balance: '+৳200.00' when owed (or even), '-৳100.00' when owing."""
    sign = "+" if value >= 0 else "-"
    return f"{sign}{format_amount(value, symbol, decimals)}"


class CounterpartyLine(BaseModel):
    """One row under a member's 'Owes' or 'Is owed' heading."""

    user_id: str
    name: str
    amount: str


class BalanceSummary(BaseModel):
    """Display-ready view of one Balance."""

    user_id: str
    user_name: str
    net: str
    is_creditor: bool = Field(
        ...,
        description="True when the member is owed money (or is even)"
    )
    owes: list[CounterpartyLine] = Field(default_factory=list)
    is_owed: list[CounterpartyLine] = Field(default_factory=list)

    @property
    def has_outstanding(self) -> bool:
        return bool(self.owes or self.is_owed)


def summarize(
    balances: Iterable[Balance],
    names: Optional[Mapping[str, str]] = None,
    symbol: str = DEFAULT_SYMBOL,
    decimals: int = 2,
    unknown_user_label: str = "Unknown User",
) -> list[BalanceSummary]:
    """
    Turn balances into display rows.

    Counterparty names come from `names` first, then from the balances
    themselves (every counterparty also has a Balance of its own).
    """
    balances = list(balances)
    lookup = {b.user_id: b.user_name for b in balances}
    lookup.update(names or {})

    def lines(amounts: Mapping[str, float]) -> list[CounterpartyLine]:
        return [
            CounterpartyLine(
                user_id=uid,
                name=lookup.get(uid) or unknown_user_label,
                amount=format_amount(amount, symbol, decimals),
            )
            for uid, amount in amounts.items()
        ]

    return [
        BalanceSummary(
            user_id=b.user_id,
            user_name=b.user_name,
            net=format_net(b.net_balance, symbol, decimals),
            is_creditor=b.net_balance >= 0,
            owes=lines(b.owes),
            is_owed=lines(b.is_owed),
        )
        for b in balances
    ]
