"""Ledger record validation package."""

from homeledger.validation.validator import (
    UNKNOWN_RECORD_ID,
    LedgerValidator,
    refused_ids,
)

__all__ = ["UNKNOWN_RECORD_ID", "LedgerValidator", "refused_ids"]
