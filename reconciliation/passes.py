"""Matching passes, strictest first.

Each pass walks the open statement lines in input order, scans the open
invoices in input order and claims the first invoice its predicate accepts.
Claims are irrevocable, so an invoice taken by Pass 1 can never be taken
by a looser pass later on.

| # | Pass                | Predicate                                             |
|---|---------------------|-------------------------------------------------------|
| 1 | StrictExactPass     | doc + exact amount + same date (both present)         |
| 2 | DateTolerancePass   | doc + exact amount + date within tolerance            |
| 3 | FuzzyDocPass        | doc + exact amount, date ignored                      |
| 4 | AmountTolerancePass | doc + amount within abs/pct tolerance                 |
| 5 | GroupPass (opt-in)  | one side equals the sum of a small same-family group  |

Every predicate requires the same currency and a non-empty normalized doc
number on both sides. A currency difference is never matched; it is left
for the discrepancy classifier.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence

from core.models import (
    CanonicalInvoice,
    CanonicalStatementLine,
    MatchPair,
    MatchType,
)
from reconciliation.config import MatchConfig
from reconciliation.ids import stable_id
from reconciliation.normalize import (
    amounts_exact,
    amounts_within_tolerance,
    date_difference_days,
    dates_within,
    doc_number_family,
    normalize_doc_number,
)
from reconciliation.pool import MatchPool


# Pass 5 search bounds
MAX_GROUP_SIZE = 4
MAX_GROUP_CANDIDATES = 12


def same_document(line: CanonicalStatementLine, invoice: CanonicalInvoice) -> bool:
    """Same currency and equal, non-empty normalized doc numbers."""
    if line.currency != invoice.currency:
        return False
    line_doc = normalize_doc_number(line.doc_number)
    return bool(line_doc) and line_doc == normalize_doc_number(invoice.doc_number)


# =============================================================================
# Base Pass
# =============================================================================

class MatchPass(ABC):
    """One rule of the matching cascade.

    Subclasses set the class attributes and implement predicate(); the
    default run() does the first-match-wins scan over the pool.
    """

    number: int = 0
    name: str = ""
    rule_description: str = ""
    confidence: Decimal = Decimal("0")
    match_score: int = 0

    @property
    def match_type(self) -> MatchType:
        return MatchType.DETERMINISTIC if self.number == 1 else MatchType.PROBABILISTIC

    @abstractmethod
    def predicate(
        self,
        line: CanonicalStatementLine,
        invoice: CanonicalInvoice,
        config: MatchConfig,
    ) -> bool:
        """Return True if the line and invoice match under this pass."""
        pass

    def criteria(self, config: MatchConfig) -> Dict[str, Any]:
        """Which fields this pass compared and how."""
        return {"doc_number": "normalized_equal", "currency": "equal"}

    def run(self, pool: MatchPool, config: MatchConfig) -> List[MatchPair]:
        """Claim pairs from the pool and return them in claim order."""
        pairs = []
        for line_idx in pool.open_line_indices():
            line = pool.statement_lines[line_idx]
            for invoice_idx in pool.open_invoice_indices():
                invoice = pool.invoices[invoice_idx]
                if self.predicate(line, invoice, config):
                    pool.claim(line_idx, invoice_idx)
                    pairs.append(self.make_pair(line, invoice, config))
                    break
        return pairs

    def make_pair(
        self,
        line: CanonicalStatementLine,
        invoice: CanonicalInvoice,
        config: MatchConfig,
        group_id: Optional[str] = None,
        amount_difference: Optional[Decimal] = None,
        extra_criteria: Optional[Dict[str, Any]] = None,
    ) -> MatchPair:
        criteria = self.criteria(config)
        if extra_criteria:
            criteria.update(extra_criteria)

        if amount_difference is None:
            amount_difference = invoice.total_amount - line.amount

        return MatchPair(
            statement_line_id=line.id,
            invoice_id=invoice.id,
            pass_number=self.number,
            rule_description=self.rule_description,
            group_id=group_id,
            match_type=self.match_type,
            is_exact_match=self.number == 1,
            confidence=self.confidence,
            match_score=self.match_score,
            match_criteria=criteria,
            statement_amount=line.amount,
            invoice_amount=invoice.total_amount,
            amount_difference=amount_difference,
            date_difference_days=date_difference_days(line.date, invoice.invoice_date),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(number={self.number})"


# =============================================================================
# Passes 1-4
# =============================================================================

class StrictExactPass(MatchPass):
    number = 1
    name = "strict_exact"
    rule_description = "exact doc+amount+date"
    confidence = Decimal("1.00")
    match_score = 100

    def predicate(self, line, invoice, config):
        if line.date is None or invoice.invoice_date is None:
            return False
        return (
            same_document(line, invoice)
            and amounts_exact(line.amount, invoice.total_amount, line.currency, invoice.currency)
            and line.date == invoice.invoice_date
        )

    def criteria(self, config):
        return {
            "doc_number": "normalized_equal",
            "currency": "equal",
            "amount": "exact",
            "date": "exact",
        }


class DateTolerancePass(MatchPass):
    number = 2
    name = "date_tolerance"
    rule_description = "exact doc+amount, date within tolerance"
    confidence = Decimal("0.95")
    match_score = 95

    def predicate(self, line, invoice, config):
        return (
            same_document(line, invoice)
            and amounts_exact(line.amount, invoice.total_amount, line.currency, invoice.currency)
            and dates_within(line.date, invoice.invoice_date, config.date_tolerance_days)
        )

    def criteria(self, config):
        return {
            "doc_number": "normalized_equal",
            "currency": "equal",
            "amount": "exact",
            "date": "within_tolerance",
            "date_tolerance_days": config.date_tolerance_days,
        }


class FuzzyDocPass(MatchPass):
    """Normalization absorbs case, separator and leading-zero differences."""
    number = 3
    name = "fuzzy_doc"
    rule_description = "normalized doc+exact amount, date ignored"
    confidence = Decimal("0.90")
    match_score = 90

    def predicate(self, line, invoice, config):
        return (
            same_document(line, invoice)
            and amounts_exact(line.amount, invoice.total_amount, line.currency, invoice.currency)
        )

    def criteria(self, config):
        return {
            "doc_number": "normalized_equal",
            "currency": "equal",
            "amount": "exact",
            "date": "ignored",
        }


class AmountTolerancePass(MatchPass):
    number = 4
    name = "amount_tolerance"
    rule_description = "doc match, amount within tolerance"
    confidence = Decimal("0.85")
    match_score = 85

    def predicate(self, line, invoice, config):
        return (
            same_document(line, invoice)
            and amounts_within_tolerance(
                line.amount,
                invoice.total_amount,
                config.amount_tolerance_abs,
                config.amount_tolerance_pct,
            )
        )

    def criteria(self, config):
        return {
            "doc_number": "normalized_equal",
            "currency": "equal",
            "amount": "within_tolerance",
            "amount_tolerance_abs": str(config.amount_tolerance_abs),
            "amount_tolerance_pct": str(config.amount_tolerance_pct),
            "date": "ignored",
        }


# =============================================================================
# Pass 5: Group Matching (opt-in)
# =============================================================================

def find_group(
    target: Decimal,
    candidates: Sequence[int],
    amounts: Dict[int, Decimal],
    config: MatchConfig,
) -> Optional[tuple]:
    """Smallest combination of candidates whose total is within tolerance of target.

    Sizes 2..MAX_GROUP_SIZE are tried in turn; within a size, combinations
    come in lexicographic input order and the first hit wins. Only the first
    MAX_GROUP_CANDIDATES candidates are searched, which caps the work at
    sum(C(12, k) for k in 2..4) = 781 sums per anchor record.
    """
    bounded = list(candidates)[:MAX_GROUP_CANDIDATES]
    for size in range(2, min(MAX_GROUP_SIZE, len(bounded)) + 1):
        for combo in combinations(bounded, size):
            total = sum((amounts[idx] for idx in combo), Decimal("0"))
            if amounts_within_tolerance(
                target, total, config.amount_tolerance_abs, config.amount_tolerance_pct
            ):
                return combo
    return None


class GroupPass(MatchPass):
    """One record on one side equals the sum of several on the other.

    First every open line is tried against groups of open invoices, then
    every open invoice against groups of open lines. Candidates must share
    the anchor's doc-number family and currency.
    """
    number = 5
    name = "group"
    rule_description = "group sum within tolerance (partial)"
    confidence = Decimal("0.75")
    match_score = 75

    def predicate(self, line, invoice, config):
        # Pairwise eligibility of a group member
        if line.currency != invoice.currency:
            return False
        family = doc_number_family(line.doc_number)
        return bool(family) and family == doc_number_family(invoice.doc_number)

    def criteria(self, config):
        return {
            "doc_number": "family_equal",
            "currency": "equal",
            "amount": "group_sum_within_tolerance",
            "amount_tolerance_abs": str(config.amount_tolerance_abs),
            "amount_tolerance_pct": str(config.amount_tolerance_pct),
        }

    def run(self, pool: MatchPool, config: MatchConfig) -> List[MatchPair]:
        if not config.allow_partial:
            return []

        pairs = []
        pairs.extend(self._line_to_invoices(pool, config))
        pairs.extend(self._invoice_to_lines(pool, config))
        return pairs

    def _line_to_invoices(self, pool: MatchPool, config: MatchConfig) -> List[MatchPair]:
        pairs = []
        for line_idx in pool.open_line_indices():
            line = pool.statement_lines[line_idx]
            candidates = [
                idx for idx in pool.open_invoice_indices()
                if self.predicate(line, pool.invoices[idx], config)
            ]
            amounts = {idx: pool.invoices[idx].total_amount for idx in candidates}
            combo = find_group(line.amount, candidates, amounts, config)
            if combo is None:
                continue

            pool.claim_group([line_idx], combo)
            members = [pool.invoices[idx] for idx in combo]
            group_total = sum((inv.total_amount for inv in members), Decimal("0"))
            group_id = stable_id("group", line.id, *[inv.id for inv in members])
            extra = {
                "group_side": "invoices",
                "group_size": len(members),
                "group_total": str(group_total),
                "doc_family": doc_number_family(line.doc_number),
            }
            for invoice in members:
                pairs.append(self.make_pair(
                    line, invoice, config,
                    group_id=group_id,
                    amount_difference=group_total - line.amount,
                    extra_criteria=extra,
                ))
        return pairs

    def _invoice_to_lines(self, pool: MatchPool, config: MatchConfig) -> List[MatchPair]:
        pairs = []
        for invoice_idx in pool.open_invoice_indices():
            invoice = pool.invoices[invoice_idx]
            candidates = [
                idx for idx in pool.open_line_indices()
                if self.predicate(pool.statement_lines[idx], invoice, config)
            ]
            amounts = {idx: pool.statement_lines[idx].amount for idx in candidates}
            combo = find_group(invoice.total_amount, candidates, amounts, config)
            if combo is None:
                continue

            pool.claim_group(combo, [invoice_idx])
            members = [pool.statement_lines[idx] for idx in combo]
            group_total = sum((line.amount for line in members), Decimal("0"))
            group_id = stable_id("group", *[line.id for line in members], invoice.id)
            extra = {
                "group_side": "lines",
                "group_size": len(members),
                "group_total": str(group_total),
                "doc_family": doc_number_family(invoice.doc_number),
            }
            for line in members:
                pairs.append(self.make_pair(
                    line, invoice, config,
                    group_id=group_id,
                    amount_difference=invoice.total_amount - group_total,
                    extra_criteria=extra,
                ))
        return pairs


# =============================================================================
# Pass Pipeline
# =============================================================================

def default_passes(config: MatchConfig) -> List[MatchPass]:
    """The ordered pass list for a config; Pass 5 only with allow_partial."""
    passes: List[MatchPass] = [
        StrictExactPass(),
        DateTolerancePass(),
        FuzzyDocPass(),
        AmountTolerancePass(),
    ]
    if config.allow_partial:
        passes.append(GroupPass())
    return passes
