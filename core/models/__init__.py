"""Core data models - storage-agnostic canonical and result types.

Canonical records are what the matching engine reads; result records are
what callers persist.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    DateValue,
    TextValue,
    
    # Records
    CanonicalInvoice,
    CanonicalStatementLine,
)

from core.models.results import (
    MatchType,
    DiscrepancyType,
    Severity,
    RunStatus,
    MatchPair,
    Discrepancy,
    ReconciliationResult,
)

from core.models.refs import DataReference

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "DateValue",
    "TextValue",
    
    # Records
    "CanonicalInvoice",
    "CanonicalStatementLine",
    
    # Results
    "MatchType",
    "DiscrepancyType",
    "Severity",
    "RunStatus",
    "MatchPair",
    "Discrepancy",
    "ReconciliationResult",
    
    # References
    "DataReference",
]
