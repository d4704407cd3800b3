from __future__ import annotations

from decimal import Decimal

import pytest

from garageledger.domain import InvoiceStatus
from garageledger.errors import ValidationError
from garageledger.pricing import (
    derive_invoice_status,
    invoice_totals,
    line_total,
    sum_money,
    tax_for_rate,
    to_decimal,
    to_money,
)
from garageledger.services.invoice_service import next_invoice_number

D = Decimal


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        assert to_money("2.345") == D("2.35")
        assert to_money(D("2.344")) == D("2.34")
        assert to_money(10) == D("10.00")

    @pytest.mark.parametrize("bad", ["abc", "", "NaN", "Infinity"])
    def test_rejects_non_amounts(self, bad):
        with pytest.raises(ValidationError):
            to_money(bad)

    @pytest.mark.parametrize("bad", ["NaN", "-Infinity", "sNaN", "1.2.3"])
    def test_decimal_inputs_must_be_finite_numbers(self, bad):
        with pytest.raises(ValidationError):
            to_decimal(bad, "tax rate")
        assert to_decimal(" 7.5 ") == D("7.5")

    def test_rounding_happens_on_the_total(self):
        # three lines of 0.333 sum to 1.00, not 0.99
        assert sum_money([line_total(1, D("0.333"))] * 3) == D("1.00")

    def test_tax_for_rate(self):
        assert tax_for_rate(D("200.00"), D("10")) == D("20.00")
        assert tax_for_rate(D("19.99"), D("7.5")) == D("1.50")


class TestInvoiceStatus:
    @pytest.mark.parametrize("paid,total,expected", [
        ("0.00", "220.00", InvoiceStatus.UNPAID),
        ("0.01", "220.00", InvoiceStatus.PARTIALLY_PAID),
        ("219.99", "220.00", InvoiceStatus.PARTIALLY_PAID),
        ("220.00", "220.00", InvoiceStatus.PAID),
        ("0.00", "0.00", InvoiceStatus.PAID),
    ])
    def test_derive(self, paid, total, expected):
        assert derive_invoice_status(D(paid), D(total)) is expected

    def test_totals_recomputed_from_inputs(self):
        totals = invoice_totals(D("200.00"), D("30.00"), D("10.00"), D("100.00"))
        assert totals.total_amount == D("220.00")
        assert totals.balance_due == D("120.00")
        assert totals.status is InvoiceStatus.PARTIALLY_PAID


class TestInvoiceNumbers:
    def test_first_of_year(self):
        assert next_invoice_number(None, 2026) == "INV-2026-00001"

    def test_increments(self):
        assert next_invoice_number("INV-2026-00041", 2026) == "INV-2026-00042"

    def test_restarts_on_new_year(self):
        assert next_invoice_number("INV-2025-00420", 2026) == "INV-2026-00001"
