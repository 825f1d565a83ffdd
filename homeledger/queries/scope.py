"""
Computation Scope

A balance is always computed for one home, optionally restricted to a
calendar month. Restricting is the caller's job: the scope turns a
(year, month) pair into the half-open instant range the store filters on.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScopeError(ValueError):
    """Invalid computation scope."""
    pass


class LedgerScope(BaseModel):
    """Home plus optional calendar month (UTC)."""
    model_config = ConfigDict(frozen=True)

    home_id: str = Field(..., min_length=1)
    year: Optional[int] = Field(default=None, ge=1970, le=9999)
    month: Optional[int] = Field(default=None, ge=1, le=12)

    @model_validator(mode='after')
    def year_and_month_together(self) -> 'LedgerScope':
        if (self.year is None) != (self.month is None):
            raise ValueError("Year and month must be given together")
        return self

    @classmethod
    def for_month(cls, home_id: str, year: int, month: int) -> "LedgerScope":
        return cls(home_id=home_id, year=year, month=month)

    @property
    def is_monthly(self) -> bool:
        return self.month is not None

    @property
    def date_from(self) -> Optional[datetime]:
        """First instant of the month, inclusive."""
        if not self.is_monthly:
            return None
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    @property
    def date_to(self) -> Optional[datetime]:
        """First instant of the following month, exclusive."""
        if not self.is_monthly:
            return None
        if self.month == 12:
            return datetime(self.year + 1, 1, 1, tzinfo=timezone.utc)
        return datetime(self.year, self.month + 1, 1, tzinfo=timezone.utc)

    def label(self) -> str:
        if not self.is_monthly:
            return "all"
        return f"{self.year:04d}-{self.month:02d}"


def make_scope(
    home_id: str,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> LedgerScope:
    """Build a scope, raising ScopeError instead of a pydantic error."""
    try:
        return LedgerScope(home_id=home_id, year=year, month=month)
    except ValueError as e:
        raise ScopeError(f"Invalid scope for home {home_id!r}: {e}") from e
