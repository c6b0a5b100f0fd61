"""Normalization and tolerance utilities for statement matching.

Pure functions only. Document numbers are compared after normalization:
1. Lower-case
2. Drop every character that is not a letter or digit
3. Strip leading zeros from each digit run

Examples:
    "INV-001"    → "inv1"
    "inv 0001"   → "inv1"
    "PO#000123"  → "po123"
    "ABC"        → "abc"

Amounts are Decimals throughout; no float intermediates.
"""

import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


DEFAULT_AMOUNT_TOLERANCE_ABS = Decimal("1.00")
DEFAULT_AMOUNT_TOLERANCE_PCT = Decimal("0.005")
DEFAULT_DATE_TOLERANCE_DAYS = 7

# Longest trailing segment treated as a split/instalment suffix ("-A", "/2")
MAX_SUFFIX_LENGTH = 2

# ISO 4217 minor units for currencies that don't use 2 decimals
CURRENCY_MINOR_UNITS = {
    # Zero-decimal currencies
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "UYI": 0, "VND": 0, "VUV": 0,
    "XAF": 0, "XOF": 0, "XPF": 0,

    # Three-decimal currencies
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}
DEFAULT_MINOR_UNITS = 2

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)
_LEADING_ZEROS = re.compile(r"(?<!\d)0+(?=\d)")


# =============================================================================
# Document Numbers
# =============================================================================

def normalize_doc_number(doc_number: Optional[str]) -> str:
    """Normalize a document number for comparison.

    Args:
        doc_number: Document number as printed (may be None)

    Returns:
        Normalized string; "" for absent or separator-only input

    Examples:
        >>> normalize_doc_number("INV-001")
        'inv1'
        >>> normalize_doc_number("inv001")
        'inv1'
        >>> normalize_doc_number("000")
        '0'
    """
    if doc_number is None:
        return ""

    text = str(doc_number).lower()
    text = _NON_ALNUM.sub("", text)

    # A run of only zeros keeps a single "0"
    return _LEADING_ZEROS.sub("", text)


def doc_number_family(doc_number: Optional[str]) -> str:
    """Family key shared by a document and its split/instalment variants.

    A short trailing segment after the last separator is dropped when the
    remainder carries a digit and either the segment is alphabetic or the
    remainder is not purely numeric. So "INV-100-A", "INV-100/2" and
    "INV-100" all belong to family "inv100", while year-sequence numbers
    such as "2024-01" and "2024-02" stay distinct. "INV-1" stays "inv1"
    because "INV" alone has no digit.
    """
    if doc_number is None:
        return ""

    segments = [s for s in _NON_ALNUM.split(str(doc_number).strip()) if s]
    if len(segments) > 1 and len(segments[-1]) <= MAX_SUFFIX_LENGTH:
        suffix = segments[-1]
        head = "".join(segments[:-1])
        if any(ch.isdigit() for ch in head) and (suffix.isalpha() or not head.isdigit()):
            return normalize_doc_number(head)

    return normalize_doc_number(doc_number)


# =============================================================================
# Amounts
# =============================================================================

def to_decimal(value) -> Optional[Decimal]:
    """Convert value to Decimal."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def minor_units(currency: Optional[str]) -> int:
    """Number of decimals the currency is settled in (default 2)."""
    if not currency:
        return DEFAULT_MINOR_UNITS
    return CURRENCY_MINOR_UNITS.get(currency.strip().upper(), DEFAULT_MINOR_UNITS)


def round_amount(amount: Decimal, places: int) -> Decimal:
    """Round half-up to the given number of decimal places."""
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def amounts_exact(
    a: Optional[Decimal],
    b: Optional[Decimal],
    currency_a: Optional[str] = None,
    currency_b: Optional[str] = None,
) -> bool:
    """Check two amounts are equal at the coarser of the two currencies' precision."""
    if a is None or b is None:
        return False
    places = min(minor_units(currency_a), minor_units(currency_b))
    return round_amount(to_decimal(a), places) == round_amount(to_decimal(b), places)


def amounts_within_tolerance(
    a: Optional[Decimal],
    b: Optional[Decimal],
    abs_tol: Decimal = DEFAULT_AMOUNT_TOLERANCE_ABS,
    pct_tol: Decimal = DEFAULT_AMOUNT_TOLERANCE_PCT,
) -> bool:
    """Check two amounts are within an absolute OR a relative tolerance.

    The absolute bound is inclusive. The relative bound is measured against
    the smaller magnitude and is exclusive, so a 5.00 gap on 1000.00 vs
    1005.00 is not within 0.5%.

    Examples:
        >>> amounts_within_tolerance(Decimal("1000.00"), Decimal("1000.80"))
        True
        >>> amounts_within_tolerance(Decimal("1000.00"), Decimal("1005.00"))
        False
        >>> amounts_within_tolerance(Decimal("10000.00"), Decimal("10040.00"))
        True
    """
    if a is None or b is None:
        return False
    a = to_decimal(a)
    b = to_decimal(b)
    delta = abs(a - b)

    if delta <= to_decimal(abs_tol):
        return True

    return delta < to_decimal(pct_tol) * min(abs(a), abs(b))


def amount_difference_pct(reference: Decimal, other: Decimal) -> Optional[Decimal]:
    """Absolute difference as a percentage of the reference amount."""
    if reference is None or other is None or reference == 0:
        return None
    pct = abs(other - reference) / abs(reference) * 100
    return round_amount(pct, 2)


# =============================================================================
# Dates
# =============================================================================

def dates_within(d1: Optional[date], d2: Optional[date], days: int) -> bool:
    """Check two dates are at most `days` apart; False if either is absent."""
    if d1 is None or d2 is None:
        return False
    return abs((d1 - d2).days) <= days


def date_difference_days(line_date: Optional[date], invoice_date: Optional[date]) -> Optional[int]:
    """Signed invoice_date - line_date in days, None if either is absent."""
    if line_date is None or invoice_date is None:
        return None
    return (invoice_date - line_date).days
