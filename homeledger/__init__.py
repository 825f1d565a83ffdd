"""
Home Ledger - Source Package

Shared-expense balances for households: members log expenses split among
participants, settle up with approved payments, and see who owes whom.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Replay the full history, in chronological order, every time
3. Malformed records are reported, never silently fixed
4. The computation is pure; I/O lives around it
5. Storage layer is swappable
"""

from homeledger.engine import compute_balances
from homeledger.models import Balance, BalanceResult, Expense, PaymentRequest, PaymentStatus

__version__ = "1.0.0"
__author__ = "Home Ledger Team"

__all__ = [
    "Balance",
    "BalanceResult",
    "Expense",
    "PaymentRequest",
    "PaymentStatus",
    "compute_balances",
]
