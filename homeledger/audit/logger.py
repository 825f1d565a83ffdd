"""
Audit Logger

Every recomputation of a home's balances is logged:
requested, computed, records refused, stale results discarded,
storage failures.

The audit logger:
- Always writes a structured local log line
- Optionally forwards each event to a sink (tests, an external audit trail)
- Never crashes the caller if the sink fails
"""

import logging
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from homeledger.config import get_settings
from homeledger.models.audit import AuditEvent, AuditEventBuilder


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route structlog output through stdlib logging.

    Uses LOG_LEVEL from the app settings unless a level is given.
    """
    level = level or get_settings().app.log_level
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


AuditSink = Callable[[AuditEvent], None]


class AuditLogger:
    """Central audit logging service."""

    def __init__(self, sink: Optional[AuditSink] = None):
        """
        Initialize audit logger.

        Args:
            sink: Called with every event after it is logged locally.
                  If None, events are only logged locally.
        """
        self._sink = sink
        self._logger = structlog.get_logger("homeledger.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the sink accepted it (or no sink is configured).
        """
        log_dict = event.to_log_dict()
        severity = event.severity.value

        if severity == "error":
            self._logger.error("audit_event", **log_dict)
        elif severity == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif severity == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._sink:
            try:
                self._sink(event)
            except Exception as e:
                self._logger.error(
                    "audit_sink_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_recompute_requested(
        self,
        home_id: str,
        sequence: int,
        correlation_id: UUID,
        scope: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.recompute_requested(
            home_id=home_id,
            sequence=sequence,
            correlation_id=correlation_id,
            scope=scope,
        ))

    def log_recompute_coalesced(self, home_id: str, pending_triggers: int) -> None:
        self.log(AuditEventBuilder.recompute_coalesced(home_id, pending_triggers))

    def log_balances_computed(
        self,
        home_id: str,
        sequence: int,
        balance_count: int,
        correlation_id: UUID,
        expense_count: int = 0,
        payment_count: int = 0,
    ) -> None:
        self.log(AuditEventBuilder.balances_computed(
            home_id=home_id,
            sequence=sequence,
            balance_count=balance_count,
            correlation_id=correlation_id,
            expense_count=expense_count,
            payment_count=payment_count,
        ))

    def log_records_refused(
        self,
        home_id: str,
        sequence: int,
        errors: list[dict],
        correlation_id: UUID,
        skipped: bool,
    ) -> None:
        """Log records that failed validation, whether skipped or fatal."""
        self.log(AuditEventBuilder.records_refused(
            home_id=home_id,
            sequence=sequence,
            errors=errors,
            correlation_id=correlation_id,
            skipped=skipped,
        ))

    def log_stale_result(
        self,
        home_id: str,
        sequence: int,
        latest_sequence: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.stale_result_discarded(
            home_id=home_id,
            sequence=sequence,
            latest_sequence=latest_sequence,
            correlation_id=correlation_id,
        ))

    def log_storage_error(
        self,
        home_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        sequence: Optional[int] = None,
    ) -> None:
        self.log(AuditEventBuilder.storage_error(
            home_id=home_id,
            error_message=error_message,
            correlation_id=correlation_id,
            sequence=sequence,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use one per recomputation and pass it through every step.
    """
    return uuid4()
