"""Money arithmetic for line items, work-order rollups and invoices.

Amounts are ``Decimal``. Rounding to cents happens once, where a total is
produced, never on each addend.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from .domain import InvoiceStatus
from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"Not a valid amount: {value!r}") from None
    if not value.is_finite():
        raise ValidationError(f"Not a valid amount: {value!r}")
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, what: str = "value") -> Decimal:
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"Not a valid {what}: {value!r}") from None
    if not value.is_finite():
        raise ValidationError(f"Not a valid {what}: {value!r}")
    return value


def line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return Decimal(quantity) * unit_price


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    return to_money(sum(amounts, Decimal("0")))


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    status: InvoiceStatus


def tax_for_rate(subtotal: Decimal, tax_rate: Decimal) -> Decimal:
    return to_money(subtotal * tax_rate / Decimal(100))


def derive_invoice_status(amount_paid: Decimal, total_amount: Decimal) -> InvoiceStatus:
    if amount_paid >= total_amount:
        return InvoiceStatus.PAID
    if amount_paid > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.UNPAID


def invoice_totals(
    subtotal: Decimal,
    tax_amount: Decimal,
    discount_amount: Decimal,
    amount_paid: Decimal = ZERO,
) -> InvoiceTotals:
    """Recompute every derived invoice field from its stored inputs."""
    total_amount = to_money(subtotal + tax_amount - discount_amount)
    amount_paid = to_money(amount_paid)
    return InvoiceTotals(
        subtotal=to_money(subtotal),
        tax_amount=to_money(tax_amount),
        discount_amount=to_money(discount_amount),
        total_amount=total_amount,
        amount_paid=amount_paid,
        balance_due=to_money(total_amount - amount_paid),
        status=derive_invoice_status(amount_paid, total_amount),
    )
