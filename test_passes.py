"""
Match pool and pass predicate tests.

Each pass is exercised in isolation against a hand-built pool; the engine
level cascade is covered in test_engine.py.
"""

from datetime import date
from decimal import Decimal

import pytest

from core.models import CanonicalInvoice, CanonicalStatementLine, MatchType
from reconciliation.config import MatchConfig
from reconciliation.errors import ReconciliationError
from reconciliation.passes import (
    AmountTolerancePass,
    DateTolerancePass,
    FuzzyDocPass,
    GroupPass,
    StrictExactPass,
    default_passes,
    same_document,
)
from reconciliation.pool import MatchPool


def make_line(id, doc="INV-001", amount="1000.00", currency="USD", on=None):
    return CanonicalStatementLine(id=id, doc_number=doc, amount=Decimal(amount), currency=currency, date=on)


def make_invoice(id, doc="INV-001", amount="1000.00", currency="USD", on=None):
    return CanonicalInvoice(id=id, doc_number=doc, total_amount=Decimal(amount), currency=currency, invoice_date=on)


JAN_1 = date(2025, 1, 1)
JAN_5 = date(2025, 1, 5)
JAN_10 = date(2025, 1, 10)

DEFAULTS = MatchConfig()


# =============================================================================
# MatchPool
# =============================================================================

class TestMatchPool:

    def test_claim_removes_both_sides(self):
        pool = MatchPool([make_line("L1"), make_line("L2")], [make_invoice("I1")])
        pool.claim(1, 0)

        assert pool.open_line_indices() == [0]
        assert pool.open_invoice_indices() == []
        assert pool.claimed_line_indices == [1]
        assert [l.id for l in pool.remaining_lines] == ["L1"]

    def test_double_claim_rejected(self):
        pool = MatchPool([make_line("L1"), make_line("L2")], [make_invoice("I1"), make_invoice("I2")])
        pool.claim(0, 0)

        with pytest.raises(ReconciliationError):
            pool.claim(0, 1)
        with pytest.raises(ReconciliationError):
            pool.claim(1, 0)

    def test_failed_group_claim_changes_nothing(self):
        pool = MatchPool([make_line("L1")], [make_invoice("I1"), make_invoice("I2")])
        pool.claim(0, 0)

        with pytest.raises(ReconciliationError):
            pool.claim_group([0], [1])
        assert pool.open_invoice_indices() == [1]

    def test_unknown_index_rejected(self):
        pool = MatchPool([make_line("L1")], [make_invoice("I1")])
        with pytest.raises(ReconciliationError):
            pool.claim(5, 0)

    def test_inputs_are_immutable_tuples(self):
        lines = [make_line("L1")]
        pool = MatchPool(lines, [make_invoice("I1")])
        pool.claim(0, 0)

        assert isinstance(pool.statement_lines, tuple)
        assert len(lines) == 1
        assert pool.statement_lines[0].id == "L1"


# =============================================================================
# Pass Predicates
# =============================================================================

class TestSameDocument:

    def test_requires_same_currency(self):
        assert same_document(make_line("L1"), make_invoice("I1"))
        assert not same_document(make_line("L1"), make_invoice("I1", currency="EUR"))

    def test_empty_doc_never_matches(self):
        assert not same_document(make_line("L1", doc=""), make_invoice("I1", doc=""))
        assert not same_document(make_line("L1", doc="--"), make_invoice("I1", doc=""))


class TestStrictExactPass:

    def test_all_fields_equal(self):
        p = StrictExactPass()
        assert p.predicate(make_line("L1", on=JAN_1), make_invoice("I1", on=JAN_1), DEFAULTS)

    def test_requires_both_dates(self):
        p = StrictExactPass()
        assert not p.predicate(make_line("L1"), make_invoice("I1", on=JAN_1), DEFAULTS)
        assert not p.predicate(make_line("L1", on=JAN_1), make_invoice("I1"), DEFAULTS)

    def test_zero_day_tolerance(self):
        p = StrictExactPass()
        assert not p.predicate(make_line("L1", on=JAN_5), make_invoice("I1", on=JAN_1), DEFAULTS)

    def test_pair_is_deterministic_and_exact(self):
        pool = MatchPool([make_line("L1", on=JAN_1)], [make_invoice("I1", on=JAN_1)])
        pairs = StrictExactPass().run(pool, DEFAULTS)

        assert len(pairs) == 1
        pair = pairs[0]
        assert pair.pass_number == 1
        assert pair.match_type == MatchType.DETERMINISTIC
        assert pair.is_exact_match is True
        assert pair.confidence == Decimal("1.00")
        assert pair.match_score == 100
        assert pair.amount_difference == Decimal("0")
        assert pair.date_difference_days == 0
        assert pair.rule_description == "exact doc+amount+date"


class TestDateTolerancePass:

    def test_within_window(self):
        p = DateTolerancePass()
        assert p.predicate(make_line("L1", on=JAN_5), make_invoice("I1", on=JAN_1), DEFAULTS)

    def test_outside_window(self):
        p = DateTolerancePass()
        assert not p.predicate(make_line("L1", on=JAN_10), make_invoice("I1", on=JAN_1), DEFAULTS)

    def test_window_follows_config(self):
        p = DateTolerancePass()
        wide = MatchConfig(date_tolerance_days=9)
        assert p.predicate(make_line("L1", on=JAN_10), make_invoice("I1", on=JAN_1), wide)

    def test_absent_date_never_matches(self):
        p = DateTolerancePass()
        assert not p.predicate(make_line("L1"), make_invoice("I1", on=JAN_1), DEFAULTS)

    def test_records_tolerance_in_criteria(self):
        pool = MatchPool([make_line("L1", on=JAN_5)], [make_invoice("I1", on=JAN_1)])
        pair = DateTolerancePass().run(pool, DEFAULTS)[0]
        assert pair.match_criteria["date_tolerance_days"] == 7
        assert pair.date_difference_days == -4
        assert pair.match_type == MatchType.PROBABILISTIC


class TestFuzzyDocPass:

    def test_normalization_absorbs_formatting(self):
        p = FuzzyDocPass()
        assert p.predicate(make_line("L1", doc="inv001"), make_invoice("I1", doc="INV-001"), DEFAULTS)
        assert p.predicate(make_line("L1", doc="INV 0001"), make_invoice("I1", doc="inv-1"), DEFAULTS)

    def test_date_ignored(self):
        p = FuzzyDocPass()
        assert p.predicate(make_line("L1", on=JAN_10), make_invoice("I1", on=JAN_1), DEFAULTS)

    def test_amount_must_be_exact(self):
        p = FuzzyDocPass()
        assert not p.predicate(make_line("L1", amount="1000.50"), make_invoice("I1"), DEFAULTS)


class TestAmountTolerancePass:

    def test_within_absolute(self):
        p = AmountTolerancePass()
        assert p.predicate(make_line("L1", amount="1000.80"), make_invoice("I1"), DEFAULTS)

    def test_outside_tolerance(self):
        p = AmountTolerancePass()
        assert not p.predicate(make_line("L1", amount="1005.00"), make_invoice("I1"), DEFAULTS)

    def test_currency_never_tolerated(self):
        p = AmountTolerancePass()
        assert not p.predicate(make_line("L1"), make_invoice("I1", currency="EUR"), DEFAULTS)

    def test_amount_difference_is_invoice_minus_line(self):
        pool = MatchPool([make_line("L1", amount="1000.80")], [make_invoice("I1")])
        pair = AmountTolerancePass().run(pool, DEFAULTS)[0]
        assert pair.amount_difference == Decimal("-0.80")
        assert pair.confidence == Decimal("0.85")
        assert pair.match_score == 85


class TestFirstMatchWins:

    def test_lines_and_invoices_scanned_in_input_order(self):
        lines = [make_line("L1"), make_line("L2")]
        invoices = [make_invoice("I1"), make_invoice("I2")]
        pool = MatchPool(lines, invoices)

        pairs = FuzzyDocPass().run(pool, DEFAULTS)

        assert [(p.statement_line_id, p.invoice_id) for p in pairs] == [("L1", "I1"), ("L2", "I2")]

    def test_claimed_invoice_not_reconsidered(self):
        pool = MatchPool([make_line("L1"), make_line("L2")], [make_invoice("I1")])
        pairs = FuzzyDocPass().run(pool, DEFAULTS)

        assert len(pairs) == 1
        assert AmountTolerancePass().run(pool, DEFAULTS) == []
        assert pool.open_line_indices() == [1]


# =============================================================================
# Pipeline
# =============================================================================

class TestDefaultPasses:

    def test_group_pass_is_opt_in(self):
        assert [p.number for p in default_passes(MatchConfig())] == [1, 2, 3, 4]
        assert [p.number for p in default_passes(MatchConfig(allow_partial=True))] == [1, 2, 3, 4, 5]

    def test_group_pass_inert_without_opt_in(self):
        pool = MatchPool(
            [make_line("L1", doc="INV-100", amount="1500")],
            [make_invoice("I1", doc="INV-100-A", amount="1000"), make_invoice("I2", doc="INV-100-B", amount="500")],
        )
        assert GroupPass().run(pool, MatchConfig()) == []
        assert pool.open_line_indices() == [0]

    def test_fixed_confidences(self):
        passes = default_passes(MatchConfig(allow_partial=True))
        assert [p.confidence for p in passes] == [
            Decimal("1.00"), Decimal("0.95"), Decimal("0.90"), Decimal("0.85"), Decimal("0.75"),
        ]
        assert [p.match_score for p in passes] == [100, 95, 90, 85, 75]
