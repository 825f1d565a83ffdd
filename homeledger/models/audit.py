"""
Audit Models for Home Ledger

Every recomputation of a home's balances leaves a trail:
when it was requested, what was refused, what was published
and what was thrown away because a newer request overtook it.

DESIGN DECISION: Audit events are append-only and carry a correlation
id, so all events of one recomputation can be grouped together.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Recompute lifecycle
    RECOMPUTE_REQUESTED = "recompute_requested"
    RECOMPUTE_COALESCED = "recompute_coalesced"
    BALANCES_COMPUTED = "balances_computed"
    STALE_RESULT_DISCARDED = "stale_result_discarded"

    # Validation
    RECORDS_REJECTED = "records_rejected"
    RECORDS_SKIPPED = "records_skipped"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant step of a recomputation creates one of these.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
    )

    home_id: Optional[str] = Field(
        default=None,
        description="Home whose balances this event is about"
    )
    sequence: Optional[int] = Field(
        default=None,
        description="Recompute request number within the home"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Groups all events of one recomputation"
    )

    description: str = Field(
        ...,
        max_length=500,
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "home_id": self.home_id,
            "sequence": self.sequence,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.recompute_requested(home_id, 3, correlation_id)
        event = AuditEventBuilder.balances_computed(home_id, 3, 4, correlation_id)
    """

    @staticmethod
    def recompute_requested(
        home_id: str,
        sequence: int,
        correlation_id: UUID,
        scope: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECOMPUTE_REQUESTED,
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            description=f"Balance recompute #{sequence} requested",
            details={"scope": scope or "all"},
        )

    @staticmethod
    def recompute_coalesced(home_id: str, pending_triggers: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECOMPUTE_COALESCED,
            severity=AuditSeverity.DEBUG,
            home_id=home_id,
            description=f"{pending_triggers} change notifications coalesced",
            details={"pending_triggers": pending_triggers},
        )

    @staticmethod
    def balances_computed(
        home_id: str,
        sequence: int,
        balance_count: int,
        correlation_id: UUID,
        expense_count: int = 0,
        payment_count: int = 0,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_COMPUTED,
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            description=f"Balances computed for {balance_count} members",
            details={
                "balance_count": balance_count,
                "expense_count": expense_count,
                "payment_count": payment_count,
            },
        )

    @staticmethod
    def records_refused(
        home_id: str,
        sequence: int,
        errors: list[dict],
        correlation_id: UUID,
        skipped: bool,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.RECORDS_SKIPPED
            if skipped
            else AuditEventType.RECORDS_REJECTED
        )
        verb = "skipped" if skipped else "rejected"
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            description=f"{len(errors)} ledger records {verb}",
            details={"errors": errors},
        )

    @staticmethod
    def stale_result_discarded(
        home_id: str,
        sequence: int,
        latest_sequence: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_RESULT_DISCARDED,
            severity=AuditSeverity.DEBUG,
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            description=f"Result #{sequence} superseded by #{latest_sequence}",
            details={"latest_sequence": latest_sequence},
        )

    @staticmethod
    def storage_error(
        home_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        sequence: Optional[int] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            description="Could not load ledger records",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
