"""
Data Models Package

All records flowing into the balance engine and every result coming out
of it conform to these schemas.
"""

from homeledger.models.ledger import (
    Balance,
    BalanceResult,
    Expense,
    PaymentRequest,
    PaymentStatus,
    RecordType,
    ValidationError,
    ValidationReason,
)
from homeledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Balance",
    "BalanceResult",
    "Expense",
    "PaymentRequest",
    "PaymentStatus",
    "RecordType",
    "ValidationError",
    "ValidationReason",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
