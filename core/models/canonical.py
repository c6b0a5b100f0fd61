"""Canonical record shapes consumed by the matching engine.

These models are storage-agnostic: whatever column names the storage layer
uses (invoice_num, amount, currency_code, ...) are absorbed by the
canonicalizer in reconciliation/canonicalize.py before a record gets here.
The matching rules only ever read these fixed fields.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# Amounts at or above this magnitude are rejected; every comparison quantizes
# to at most 3 decimals within the default 28-digit decimal context
MAX_AMOUNT_MAGNITUDE = Decimal("1e15")


# =============================================================================
# Value Parsers (handle the formats storage adapters hand us)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from various formats (string with $ or commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("$", "").replace(",", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            result = Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value!r}")
    else:
        raise ValueError(f"Unsupported amount type: {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    if abs(result) >= MAX_AMOUNT_MAGNITUDE:
        raise ValueError(f"Amount out of range: {value!r}")
    return result


def _parse_date(value):
    """Parse date from various string formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        # ISO timestamps from the storage layer carry a time part we ignore
        if "T" in s:
            s = s.split("T", 1)[0]
        for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%d/%m/%Y", "%d.%m.%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    raise ValueError(f"Unsupported date type: {type(value).__name__}")


def _parse_text(value):
    """Coerce identifiers and document numbers to stripped strings."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not text")
    if isinstance(value, (str, int)):
        return str(value).strip()
    # UUID and similar opaque id types
    if hasattr(value, "hex"):
        return str(value)
    raise ValueError(f"Unsupported text type: {type(value).__name__}")


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]
TextValue = Annotated[str, BeforeValidator(_parse_text)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical records (immutable, no stray fields)."""
    model_config = ConfigDict(frozen=True, extra="forbid")


def _normalize_currency(value: str) -> str:
    code = value.strip().upper()
    if not code:
        raise ValueError("currency must not be empty")
    return code


# =============================================================================
# Canonical Records
# =============================================================================

class CanonicalInvoice(CanonicalBase):
    """An invoice candidate in the only shape the engine may read."""
    id: TextValue = Field(..., min_length=1)
    doc_number: TextValue = ""
    total_amount: DecimalValue = Field(..., ge=0)
    currency: TextValue
    invoice_date: Optional[DateValue] = None
    vendor_id: Optional[TextValue] = None
    company_id: Optional[TextValue] = None

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        return _normalize_currency(value)


class CanonicalStatementLine(CanonicalBase):
    """One line item of a statement of account."""
    id: TextValue = Field(..., min_length=1)
    doc_number: TextValue = ""
    amount: DecimalValue
    currency: TextValue
    date: Optional[DateValue] = None

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        return _normalize_currency(value)
