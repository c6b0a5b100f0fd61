"""Reconciliation output models.

Match pairs and discrepancies are what callers persist (as match audit rows
and discrepancy rows), so the type/severity fields only accept the fixed
enum values.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models.canonical import CanonicalInvoice, CanonicalStatementLine


# =============================================================================
# Enums
# =============================================================================

class MatchType(str, Enum):
    """How a pair was matched."""
    DETERMINISTIC = "deterministic"    # Pass 1: every field identical
    PROBABILISTIC = "probabilistic"    # Passes 2-5: some tolerance applied


class DiscrepancyType(str, Enum):
    """Why a statement line or invoice could not be matched."""
    AMOUNT_MISMATCH = "amount_mismatch"
    DATE_MISMATCH = "date_mismatch"
    INVOICE_NOT_FOUND = "invoice_not_found"
    DUPLICATE_INVOICE = "duplicate_invoice"
    MISSING_SOA_ITEM = "missing_soa_item"
    CURRENCY_MISMATCH = "currency_mismatch"
    OTHER = "other"


class Severity(str, Enum):
    """Discrepancy severity, lowest first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RunStatus(str, Enum):
    """Overall outcome of a reconciliation run."""
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


# =============================================================================
# Result Records
# =============================================================================

class ResultBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=False)


class MatchPair(ResultBase):
    """A statement line paired with an invoice by one of the matching passes.

    Attributes:
        statement_line_id: Matched statement line
        invoice_id: Matched invoice
        pass_number: Pass that produced the match (1-5)
        rule_description: Human-readable rule, e.g. "exact doc+amount+date"
        group_id: Shared by every pair of one Pass 5 group match
        match_type: deterministic (Pass 1) or probabilistic
        is_exact_match: True only for Pass 1
        confidence: Fixed confidence of the pass (0-1)
        match_score: Fixed score of the pass (0-100)
        match_criteria: Which fields matched and the tolerances applied
        statement_amount: Amount on the statement line
        invoice_amount: Invoice total
        amount_difference: invoice - statement (group total for group pairs)
        date_difference_days: invoice date - line date, None if either is absent
    """
    statement_line_id: str
    invoice_id: str
    pass_number: int = Field(..., ge=1, le=5)
    rule_description: str
    group_id: Optional[str] = None
    match_type: MatchType = MatchType.PROBABILISTIC
    is_exact_match: bool = False
    confidence: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    match_score: int = Field(default=0, ge=0, le=100)
    match_criteria: Dict[str, Any] = Field(default_factory=dict)
    statement_amount: Optional[Decimal] = None
    invoice_amount: Optional[Decimal] = None
    amount_difference: Optional[Decimal] = None
    date_difference_days: Optional[int] = None


class Discrepancy(ResultBase):
    """A typed, severity-ranked explanation for a leftover record."""
    id: str
    type: DiscrepancyType
    severity: Severity
    description: str = Field(..., min_length=1)
    related_statement_line_id: Optional[str] = None
    related_invoice_id: Optional[str] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None
    difference_amount: Optional[Decimal] = None
    difference_percentage: Optional[Decimal] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ReconciliationResult(ResultBase):
    """Everything a run produces.

    matched lines + unmatched_lines covers every input line exactly once;
    the same holds for invoices.
    """
    matches: List[MatchPair] = Field(default_factory=list)
    unmatched_lines: List[CanonicalStatementLine] = Field(default_factory=list)
    unmatched_invoices: List[CanonicalInvoice] = Field(default_factory=list)
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)

    @property
    def status(self) -> RunStatus:
        return RunStatus(self.summary.get("status", RunStatus.PASS.value))

    def matches_for_pass(self, pass_number: int) -> List[MatchPair]:
        return [m for m in self.matches if m.pass_number == pass_number]

    def discrepancies_of(self, discrepancy_type: DiscrepancyType) -> List[Discrepancy]:
        return [d for d in self.discrepancies if d.type == discrepancy_type]
