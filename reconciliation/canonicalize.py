"""Canonicalizer: raw storage records -> canonical shapes.

This is the single seam that absorbs upstream schema drift. Storage adapters
hand us dicts (or Pydantic models) keyed by whatever their columns are
called; we pick the canonical fields out by alias, drop everything else and
let the canonical models parse values.

Aliases are tried in order and the first present, non-null key wins.
"""

from typing import Any, Dict, Iterable, List, Mapping, Tuple

from pydantic import BaseModel, ValidationError

from core.models import CanonicalInvoice, CanonicalStatementLine
from reconciliation.errors import ShapeError


# =============================================================================
# Field Aliases
# =============================================================================

INVOICE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "doc_number": ("doc_number", "invoice_number", "invoice_num", "document_number", "doc_no"),
    "total_amount": ("total_amount", "amount"),
    "currency": ("currency", "currency_code"),
    "invoice_date": ("invoice_date", "date"),
    "vendor_id": ("vendor_id",),
    "company_id": ("company_id",),
}

STATEMENT_LINE_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "doc_number": (
        "doc_number", "doc", "invoice_number", "invoice_num",
        "document_number", "doc_no", "reference",
    ),
    "amount": ("amount",),
    "currency": ("currency", "currency_code"),
    "date": ("date", "invoice_date", "doc_date"),
}

INVOICE_REQUIRED = ("id", "total_amount", "currency")
STATEMENT_LINE_REQUIRED = ("id", "amount", "currency")


# =============================================================================
# Helpers
# =============================================================================

def _as_mapping(raw: Any, record_kind: str) -> Mapping[str, Any]:
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, Mapping):
        return raw
    raise ShapeError(
        f"Expected a mapping, got {type(raw).__name__}",
        record_kind=record_kind,
    )


def _pick_fields(
    raw: Mapping[str, Any],
    aliases: Dict[str, Tuple[str, ...]],
) -> Dict[str, Any]:
    picked = {}
    for field, keys in aliases.items():
        for key in keys:
            if raw.get(key) is not None:
                picked[field] = raw[key]
                break
    return picked


def _build(model, raw: Any, record_kind: str, aliases, required):
    data = _pick_fields(_as_mapping(raw, record_kind), aliases)

    for field in required:
        if field not in data:
            raise ShapeError(
                f"Missing required field '{field}'",
                record_kind=record_kind,
                field=field,
            )

    # Absent doc numbers are carried as "" so every pass can compare them
    data.setdefault("doc_number", "")

    try:
        return model(**data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise ShapeError(
            f"Invalid value for '{field}': {first['msg']}",
            record_kind=record_kind,
            field=field,
        ) from exc


# =============================================================================
# Public API
# =============================================================================

def canonicalize_invoice(raw: Any) -> CanonicalInvoice:
    """Convert one raw invoice record into a CanonicalInvoice.

    Args:
        raw: Mapping or Pydantic model as returned by the storage layer

    Returns:
        CanonicalInvoice

    Raises:
        ShapeError: If id, total amount or currency is missing or malformed
    """
    return _build(CanonicalInvoice, raw, "invoice", INVOICE_ALIASES, INVOICE_REQUIRED)


def canonicalize_statement_line(raw: Any) -> CanonicalStatementLine:
    """Convert one raw SOA line into a CanonicalStatementLine.

    Raises:
        ShapeError: If id, amount or currency is missing or malformed
    """
    return _build(
        CanonicalStatementLine, raw, "statement_line",
        STATEMENT_LINE_ALIASES, STATEMENT_LINE_REQUIRED,
    )


def _canonicalize_batch(raws: Iterable[Any], convert) -> List:
    if raws is None or isinstance(raws, (str, bytes, Mapping)):
        raise ShapeError(f"Expected a sequence of records, got {type(raws).__name__}")

    records = []
    seen_ids = set()
    for index, raw in enumerate(raws):
        try:
            record = convert(raw)
        except ShapeError as exc:
            raise exc.with_index(index) from exc

        if record.id in seen_ids:
            kind = "invoice" if isinstance(record, CanonicalInvoice) else "statement_line"
            raise ShapeError(
                f"{kind}[{index}]: duplicate id {record.id!r}",
                record_kind=kind,
                record_index=index,
                field="id",
            )
        seen_ids.add(record.id)
        records.append(record)
    return records


def canonicalize_invoices(raws: Iterable[Any]) -> List[CanonicalInvoice]:
    """Canonicalize a batch of invoices, failing on the first bad record."""
    return _canonicalize_batch(raws, canonicalize_invoice)


def canonicalize_statement_lines(raws: Iterable[Any]) -> List[CanonicalStatementLine]:
    """Canonicalize a batch of statement lines, failing on the first bad record."""
    return _canonicalize_batch(raws, canonicalize_statement_line)
