"""
Canonicalizer tests.

Raw storage records (any column naming) must come out as the fixed canonical
shapes or fail with a ShapeError naming the field and record.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from pydantic import BaseModel, ValidationError

from core.models import CanonicalInvoice, CanonicalStatementLine
from reconciliation.canonicalize import (
    canonicalize_invoice,
    canonicalize_invoices,
    canonicalize_statement_line,
    canonicalize_statement_lines,
)
from reconciliation.errors import ReconciliationError, ShapeError


class TestInvoiceAliases:
    """Storage column names are absorbed into canonical fields."""

    def test_storage_column_names(self):
        raw = {
            "id": 42,
            "invoice_num": "INV-001",
            "amount": "$1,000.00",
            "currency_code": "usd",
            "date": "2025-01-01",
            "vendor_id": "V-1",
            "company_id": "C-1",
            "status": "open",
            "created_at": "2025-01-02T10:00:00",
        }
        inv = canonicalize_invoice(raw)

        assert isinstance(inv, CanonicalInvoice)
        assert inv.id == "42"
        assert inv.doc_number == "INV-001"
        assert inv.total_amount == Decimal("1000.00")
        assert inv.currency == "USD"
        assert inv.invoice_date == date(2025, 1, 1)
        assert inv.vendor_id == "V-1"
        assert not hasattr(inv, "invoice_num")
        assert not hasattr(inv, "status")

    def test_canonical_names_win_over_aliases(self):
        raw = {
            "id": "I1",
            "doc_number": "INV-002",
            "invoice_number": "OTHER",
            "total_amount": 10,
            "amount": 99,
            "currency": "EUR",
        }
        inv = canonicalize_invoice(raw)
        assert inv.doc_number == "INV-002"
        assert inv.total_amount == Decimal("10")

    def test_null_alias_falls_through(self):
        raw = {"id": "I1", "doc_number": None, "invoice_num": "INV-9", "total_amount": 1, "currency": "USD"}
        assert canonicalize_invoice(raw).doc_number == "INV-9"

    def test_missing_doc_number_is_empty(self):
        inv = canonicalize_invoice({"id": "I1", "total_amount": 1, "currency": "USD"})
        assert inv.doc_number == ""
        assert inv.invoice_date is None

    def test_uuid_id(self):
        inv_id = uuid.uuid4()
        inv = canonicalize_invoice({"id": inv_id, "total_amount": 1, "currency": "USD"})
        assert inv.id == str(inv_id)

    def test_pydantic_model_input(self):
        class InvoiceRow(BaseModel):
            id: str
            invoice_num: str
            amount: Decimal
            currency_code: str

        row = InvoiceRow(id="I1", invoice_num="INV-5", amount=Decimal("12.50"), currency_code="GBP")
        inv = canonicalize_invoice(row)
        assert inv.doc_number == "INV-5"
        assert inv.total_amount == Decimal("12.50")
        assert inv.currency == "GBP"

    def test_raw_record_not_mutated(self):
        raw = {"id": "I1", "invoice_num": "INV-1", "amount": "5", "currency_code": "usd"}
        before = dict(raw)
        canonicalize_invoice(raw)
        assert raw == before

    def test_canonical_record_is_frozen(self):
        inv = canonicalize_invoice({"id": "I1", "total_amount": 1, "currency": "USD"})
        with pytest.raises(ValidationError):
            inv.total_amount = Decimal("2")


class TestStatementLineAliases:

    def test_doc_and_reference_aliases(self):
        line = canonicalize_statement_line(
            {"id": "L1", "doc": "inv001", "amount": 1000, "currency": "USD"}
        )
        assert line.doc_number == "inv001"
        assert line.date is None

        line = canonicalize_statement_line(
            {"id": "L2", "reference": "INV-7", "amount": -50, "currency": "USD", "doc_date": "01/31/2025"}
        )
        assert isinstance(line, CanonicalStatementLine)
        assert line.doc_number == "INV-7"
        assert line.amount == Decimal("-50")
        assert line.date == date(2025, 1, 31)

    def test_accounting_parentheses(self):
        line = canonicalize_statement_line({"id": "L1", "amount": "(250.00)", "currency": "USD"})
        assert line.amount == Decimal("-250.00")

    def test_iso_timestamp_date(self):
        line = canonicalize_statement_line(
            {"id": "L1", "amount": 1, "currency": "USD", "date": "2025-03-04T12:30:00Z"}
        )
        assert line.date == date(2025, 3, 4)


class TestShapeErrors:
    """Missing or malformed required fields fail with ShapeError."""

    @pytest.mark.parametrize("missing", ["id", "total_amount", "currency"])
    def test_invoice_missing_required(self, missing):
        raw = {"id": "I1", "total_amount": 1, "currency": "USD"}
        del raw[missing]
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_invoice(raw)
        assert exc_info.value.field == missing
        assert exc_info.value.record_kind == "invoice"

    @pytest.mark.parametrize("missing", ["id", "amount", "currency"])
    def test_line_missing_required(self, missing):
        raw = {"id": "L1", "amount": 1, "currency": "USD"}
        del raw[missing]
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_statement_line(raw)
        assert exc_info.value.field == missing

    def test_boolean_amount_rejected(self):
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_statement_line({"id": "L1", "amount": True, "currency": "USD"})
        assert exc_info.value.field == "amount"

    def test_non_numeric_amount_rejected(self):
        with pytest.raises(ShapeError):
            canonicalize_invoice({"id": "I1", "total_amount": "ten", "currency": "USD"})

    def test_non_finite_amount_rejected(self):
        with pytest.raises(ShapeError):
            canonicalize_invoice({"id": "I1", "total_amount": "NaN", "currency": "USD"})

    def test_out_of_range_amount_rejected(self):
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_invoice({"id": "I1", "total_amount": "1e30", "currency": "USD"})
        assert exc_info.value.field == "total_amount"
        assert canonicalize_invoice(
            {"id": "I2", "total_amount": "999999999999999.99", "currency": "USD"}
        ).total_amount == Decimal("999999999999999.99")

    def test_negative_invoice_total_rejected(self):
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_invoice({"id": "I1", "total_amount": -1, "currency": "USD"})
        assert exc_info.value.field == "total_amount"

    def test_blank_currency_rejected(self):
        with pytest.raises(ShapeError):
            canonicalize_invoice({"id": "I1", "total_amount": 1, "currency": "  "})

    def test_blank_id_rejected(self):
        with pytest.raises(ShapeError):
            canonicalize_invoice({"id": "", "total_amount": 1, "currency": "USD"})

    def test_bad_date_rejected(self):
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_invoice(
                {"id": "I1", "total_amount": 1, "currency": "USD", "invoice_date": "2025-13-45"}
            )
        assert exc_info.value.field == "invoice_date"

    def test_non_mapping_rejected(self):
        with pytest.raises(ShapeError):
            canonicalize_invoice(["I1", 1, "USD"])

    def test_shape_error_is_value_error(self):
        with pytest.raises(ValueError):
            canonicalize_invoice({})
        with pytest.raises(ReconciliationError):
            canonicalize_invoice({})


class TestBatches:
    """Batch helpers fail on the first bad record and name its index."""

    def test_valid_batch(self):
        lines = canonicalize_statement_lines([
            {"id": "L1", "amount": 1, "currency": "USD"},
            {"id": "L2", "amount": 2, "currency": "USD"},
        ])
        assert [l.id for l in lines] == ["L1", "L2"]

    def test_error_names_index(self):
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_invoices([
                {"id": "I1", "total_amount": 1, "currency": "USD"},
                {"id": "I2", "total_amount": 1},
            ])
        assert exc_info.value.record_index == 1
        assert exc_info.value.field == "currency"
        assert "invoice[1]" in str(exc_info.value)

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ShapeError) as exc_info:
            canonicalize_statement_lines([
                {"id": "L1", "amount": 1, "currency": "USD"},
                {"id": "L1", "amount": 2, "currency": "USD"},
            ])
        assert exc_info.value.field == "id"
        assert exc_info.value.record_index == 1

    def test_non_sequence_rejected(self):
        with pytest.raises(ShapeError):
            canonicalize_invoices({"id": "I1", "total_amount": 1, "currency": "USD"})

    def test_empty_batch(self):
        assert canonicalize_invoices([]) == []
