"""
Core Ledger Models for Home Ledger

These models define the records a home's balance computation consumes
and the balance summaries it produces.

DESIGN DECISION: Records coming back from the store are loosely typed
(fields may be absent, amounts are arbitrary numbers). Every record is
parsed into one of these models at the boundary, and anything that fails
is reported as a ValidationError instead of flowing into the arithmetic.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class PaymentStatus(str, Enum):
    """
    Settlement request status.

    Requests are created PENDING and transition exactly once.
    Only APPROVED requests affect balances.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecordType(str, Enum):
    """Kind of ledger record a validation error refers to."""
    EXPENSE = "expense"
    PAYMENT = "payment"


class ValidationReason(str, Enum):
    """
    Why a record was refused.

    Every refused record carries exactly one reason per problem found.
    """
    SCHEMA_INVALID = "schema_invalid"
    EMPTY_PARTICIPANTS = "empty_participants"
    DUPLICATE_PARTICIPANT = "duplicate_participant"
    NON_POSITIVE_AMOUNT = "non_positive_amount"
    NON_FINITE_AMOUNT = "non_finite_amount"
    MISSING_PAYER = "missing_payer"
    SELF_SETTLEMENT = "self_settlement"
    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_CURRENCY = "unknown_currency"


def _as_utc(value: datetime) -> datetime:
    # naive timestamps from the store are UTC; mixing naive and aware breaks sorting
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Expense(BaseModel):
    """
    An expense fronted by one member and split among participants.

    The payer may or may not be one of the participants. Amounts are
    kept as floats; no rounding happens before display.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique expense identifier"
    )
    home_id: Optional[str] = Field(
        default=None,
        description="Home this expense belongs to"
    )
    amount: float = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Total amount paid"
    )
    payer_id: str = Field(
        ...,
        min_length=1,
        description="User who fronted the money"
    )
    participants: list[str] = Field(
        ...,
        min_length=1,
        description="Users sharing the cost"
    )
    created_at: datetime = Field(
        ...,
        description="When the expense was logged; defines replay order"
    )
    title: Optional[str] = None
    description: Optional[str] = None
    split_type: str = Field(
        default="custom",
        description="How members were picked ('custom' = split with all)"
    )
    currency: Optional[str] = Field(
        default=None,
        max_length=3,
        description="ISO currency code, if the store records one"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator('created_at')
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @property
    def per_head(self) -> float:
        """Equal share of the amount for each participant."""
        return self.amount / len(self.participants)


class PaymentRequest(BaseModel):
    """
    A settlement payment from one member to another.

    CRITICAL: an approved request clears the whole debt between the two
    users, whatever its amount. Partial payments are not modelled.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique payment request identifier"
    )
    home_id: Optional[str] = None
    amount: float = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Amount the payer says they settled"
    )
    from_user_id: str = Field(
        ...,
        min_length=1,
        description="User paying the settlement"
    )
    to_user_id: str = Field(
        ...,
        min_length=1,
        description="User receiving the settlement"
    )
    status: PaymentStatus = Field(
        default=PaymentStatus.PENDING,
    )
    created_at: datetime
    updated_at: Optional[datetime] = None
    currency: Optional[str] = Field(
        default=None,
        max_length=3,
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator('created_at', 'updated_at')
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v else v

    @property
    def is_approved(self) -> bool:
        return self.status == PaymentStatus.APPROVED

    def can_transition_to(self, status: PaymentStatus) -> bool:
        """Pending requests move once, to approved or rejected. Nothing else moves."""
        return (
            self.status == PaymentStatus.PENDING
            and status in (PaymentStatus.APPROVED, PaymentStatus.REJECTED)
        )


# =============================================================================
# DERIVED BALANCES
# =============================================================================

class Balance(BaseModel):
    """
    One user's position within a home.

    Derived fresh on every computation. Never persisted.
    """

    user_id: str
    user_name: str = Field(
        default="",
        description="Display name; never used in arithmetic"
    )
    owes: dict[str, float] = Field(
        default_factory=dict,
        description="Counterparty id -> amount this user owes them"
    )
    is_owed: dict[str, float] = Field(
        default_factory=dict,
        description="Counterparty id -> amount they owe this user"
    )
    net_balance: float = Field(
        default=0.0,
        description="Total owed to this user minus total this user owes"
    )

    @property
    def total_owes(self) -> float:
        return sum(self.owes.values())

    @property
    def total_is_owed(self) -> float:
        return sum(self.is_owed.values())

    @property
    def is_settled(self) -> bool:
        """True when the user has no open relation with anybody."""
        return not self.owes and not self.is_owed and self.net_balance == 0


# =============================================================================
# VALIDATION & RESULTS
# =============================================================================

class ValidationError(BaseModel):
    """
    A record that cannot take part in a balance computation.

    Not to be confused with pydantic.ValidationError: this is data handed
    back to the caller, not an exception.
    """

    record_id: str = Field(
        ...,
        description="Id of the offending record ('<unknown>' if it had none)"
    )
    record_type: RecordType
    reason: ValidationReason
    message: str = Field(
        ...,
        description="Human-readable description of the problem"
    )


class BalanceResult(BaseModel):
    """
    Outcome of a balance computation.

    Either success with balances, or failure with the validation errors
    (and a generic message the UI can show as-is).
    """

    success: bool
    balances: list[Balance] = Field(default_factory=list)
    errors: list[ValidationError] = Field(
        default_factory=list,
        description="Refused records; on success these were skipped"
    )
    error_message: Optional[str] = None

    @classmethod
    def ok(
        cls,
        balances: list[Balance],
        skipped: Optional[list[ValidationError]] = None,
    ) -> "BalanceResult":
        return cls(success=True, balances=balances, errors=skipped or [])

    @classmethod
    def failed(
        cls,
        errors: Optional[list[ValidationError]] = None,
        error_message: str = "Failed to calculate balances",
    ) -> "BalanceResult":
        return cls(success=False, errors=errors or [], error_message=error_message)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def balance_for(self, user_id: str) -> Optional[Balance]:
        """Look up a single user's balance, None if they dropped out."""
        for balance in self.balances:
            if balance.user_id == user_id:
                return balance
        return None
