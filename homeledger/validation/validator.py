"""
Two-Stage Ledger Validation

STAGE 1 - SCHEMA VALIDATION:
- Raw rows from the store are parsed into Expense / PaymentRequest models
- Missing fields, wrong types, unparseable timestamps
- A row that fails never reaches the engine

STAGE 2 - SEMANTIC VALIDATION:
- Empty or repeated participants
- Non-positive, NaN or infinite amounts
- Settlements paid to oneself
- Duplicate record ids
- Currency other than the home's currency

Stage 2 runs on models, so it also catches records that were built
without going through stage 1 (model_construct, hand-made test fixtures).

IMPORTANT: Validation NEVER fixes records. It reports them, with the
record id and the reason, and the caller decides what to do.
"""

import math
from collections import Counter
from typing import Any, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from homeledger.models.ledger import (
    Expense,
    PaymentRequest,
    RecordType,
    ValidationError,
    ValidationReason,
)


UNKNOWN_RECORD_ID = "<unknown>"

ModelT = TypeVar("ModelT", bound=BaseModel)


class LedgerValidator:
    """
    Validates ledger records before they are replayed.

    Stage 1: parse_expenses / parse_payments (raw rows -> models)
    Stage 2: check_expenses / check_payments (models -> errors)
    """

    def __init__(self, currency_code: Optional[str] = None):
        """
        Initialize validator.

        Args:
            currency_code: Only currency accepted on records that carry one.
                          If None, currencies are not checked.
        """
        self._currency = currency_code.upper() if currency_code else None

    # -------------------------------------------------------------------------
    # Stage 1
    # -------------------------------------------------------------------------

    def _parse_rows(
        self,
        rows: Iterable[dict[str, Any]],
        model: Type[ModelT],
        record_type: RecordType,
    ) -> tuple[list[ModelT], list[ValidationError]]:
        records: list[ModelT] = []
        errors: list[ValidationError] = []

        for row in rows:
            try:
                records.append(model.model_validate(row))
            except SchemaError as e:
                problems = "; ".join(
                    f"{'.'.join(str(part) for part in err['loc']) or 'record'}: {err['msg']}"
                    for err in e.errors()
                )
                errors.append(ValidationError(
                    record_id=_row_id(row),
                    record_type=record_type,
                    reason=ValidationReason.SCHEMA_INVALID,
                    message=problems,
                ))

        return records, errors

    def parse_expenses(
        self,
        rows: Iterable[dict[str, Any]],
    ) -> tuple[list[Expense], list[ValidationError]]:
        """Parse raw expense rows. Returns (expenses, errors)."""
        return self._parse_rows(rows, Expense, RecordType.EXPENSE)

    def parse_payments(
        self,
        rows: Iterable[dict[str, Any]],
    ) -> tuple[list[PaymentRequest], list[ValidationError]]:
        """Parse raw payment request rows. Returns (payments, errors)."""
        return self._parse_rows(rows, PaymentRequest, RecordType.PAYMENT)

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    def _check_amount(
        self,
        record_id: str,
        record_type: RecordType,
        amount: Any,
    ) -> Optional[ValidationError]:
        if not isinstance(amount, (int, float)) or isinstance(amount, bool):
            return ValidationError(
                record_id=record_id,
                record_type=record_type,
                reason=ValidationReason.NON_FINITE_AMOUNT,
                message=f"Amount is not a number: {amount!r}",
            )
        if not math.isfinite(amount):
            return ValidationError(
                record_id=record_id,
                record_type=record_type,
                reason=ValidationReason.NON_FINITE_AMOUNT,
                message=f"Amount is not finite: {amount}",
            )
        if amount <= 0:
            return ValidationError(
                record_id=record_id,
                record_type=record_type,
                reason=ValidationReason.NON_POSITIVE_AMOUNT,
                message=f"Amount must be greater than zero (got {amount})",
            )
        return None

    def _check_currency(
        self,
        record_id: str,
        record_type: RecordType,
        currency: Optional[str],
    ) -> Optional[ValidationError]:
        if self._currency is None or not currency:
            return None
        if currency.upper() != self._currency:
            return ValidationError(
                record_id=record_id,
                record_type=record_type,
                reason=ValidationReason.UNKNOWN_CURRENCY,
                message=f"Currency {currency} is not {self._currency}",
            )
        return None

    def _check_duplicate_ids(
        self,
        ids: list[str],
        record_type: RecordType,
    ) -> list[ValidationError]:
        counts = Counter(ids)
        return [
            ValidationError(
                record_id=record_id,
                record_type=record_type,
                reason=ValidationReason.DUPLICATE_ID,
                message=f"Id appears {count} times",
            )
            for record_id, count in counts.items()
            if count > 1
        ]

    def check_expenses(self, expenses: Iterable[Expense]) -> list[ValidationError]:
        """Semantic checks on expenses."""
        expenses = list(expenses)
        issues = self._check_duplicate_ids(
            [e.id for e in expenses], RecordType.EXPENSE
        )

        for expense in expenses:
            rid = expense.id or UNKNOWN_RECORD_ID

            if not expense.payer_id:
                issues.append(ValidationError(
                    record_id=rid,
                    record_type=RecordType.EXPENSE,
                    reason=ValidationReason.MISSING_PAYER,
                    message="Expense has no payer",
                ))

            participants = list(expense.participants or [])
            if not participants:
                issues.append(ValidationError(
                    record_id=rid,
                    record_type=RecordType.EXPENSE,
                    reason=ValidationReason.EMPTY_PARTICIPANTS,
                    message="Expense has no participants to split between",
                ))
            else:
                repeated = sorted(p for p, n in Counter(participants).items() if n > 1)
                if repeated:
                    issues.append(ValidationError(
                        record_id=rid,
                        record_type=RecordType.EXPENSE,
                        reason=ValidationReason.DUPLICATE_PARTICIPANT,
                        message=f"Participants listed more than once: {', '.join(repeated)}",
                    ))

            for issue in (
                self._check_amount(rid, RecordType.EXPENSE, expense.amount),
                self._check_currency(rid, RecordType.EXPENSE, expense.currency),
            ):
                if issue:
                    issues.append(issue)

        return issues

    def check_payments(self, payments: Iterable[PaymentRequest]) -> list[ValidationError]:
        """Semantic checks on settlement payments."""
        payments = list(payments)
        issues = self._check_duplicate_ids(
            [p.id for p in payments], RecordType.PAYMENT
        )

        for payment in payments:
            rid = payment.id or UNKNOWN_RECORD_ID

            if not payment.from_user_id or not payment.to_user_id:
                issues.append(ValidationError(
                    record_id=rid,
                    record_type=RecordType.PAYMENT,
                    reason=ValidationReason.MISSING_PAYER,
                    message="Settlement is missing its payer or receiver",
                ))
            elif payment.from_user_id == payment.to_user_id:
                issues.append(ValidationError(
                    record_id=rid,
                    record_type=RecordType.PAYMENT,
                    reason=ValidationReason.SELF_SETTLEMENT,
                    message=f"User {payment.from_user_id} cannot settle with themselves",
                ))

            for issue in (
                self._check_amount(rid, RecordType.PAYMENT, payment.amount),
                self._check_currency(rid, RecordType.PAYMENT, payment.currency),
            ):
                if issue:
                    issues.append(issue)

        return issues

    def validate(
        self,
        expenses: Iterable[Expense],
        payments: Iterable[PaymentRequest],
    ) -> list[ValidationError]:
        """Run stage 2 on both record kinds."""
        return self.check_expenses(expenses) + self.check_payments(payments)


def _row_id(row: Any) -> str:
    if isinstance(row, dict) and row.get("id"):
        return str(row["id"])
    return UNKNOWN_RECORD_ID


def refused_ids(
    errors: Iterable[ValidationError],
    record_type: RecordType,
) -> set[str]:
    """Ids of the records of one type that have at least one error."""
    return {e.record_id for e in errors if e.record_type == record_type}
