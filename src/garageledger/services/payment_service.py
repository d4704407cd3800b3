from __future__ import annotations

import logging
from datetime import datetime

from ..db import Db
from ..domain import Invoice, InvoiceStatus, Payment, PaymentMethod
from ..errors import BadRequestError, NotFoundError, ValidationError
from ..pricing import invoice_totals, to_money
from ..repositories.invoice_repo import InvoiceRepository
from ..repositories.payment_repo import PaymentRepository

log = logging.getLogger(__name__)


def parse_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Unknown payment method {value!r}. Expected one of: {allowed}") from None


class PaymentService:
    """Payments are the only writer of ``amount_paid``, ``balance_due`` and
    ``status`` on an invoice; each write re-derives all three from the
    payment rows inside the same transaction as the payment insert/delete."""

    def __init__(self, db: Db, *, invoice_repo: InvoiceRepository, payment_repo: PaymentRepository) -> None:
        self.db = db
        self.invoice_repo = invoice_repo
        self.payment_repo = payment_repo

    def get(self, payment_id: int) -> Payment:
        with self.db.session() as conn:
            payment = self.payment_repo.get(conn, payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    def list_for_invoice(self, invoice_id: int) -> list[Payment]:
        with self.db.session() as conn:
            if self.invoice_repo.get(conn, invoice_id) is None:
                raise NotFoundError("Invoice", invoice_id)
            return self.payment_repo.list_for_invoice(conn, invoice_id)

    def record(
        self,
        invoice_id: int,
        *,
        amount,
        method: PaymentMethod | str,
        payment_date: datetime | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be > 0.")
        method = parse_method(method)

        with self.db.transaction() as conn:
            invoice = self.invoice_repo.get(conn, invoice_id, lock=True)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)
            if invoice.status is InvoiceStatus.PAID:
                raise BadRequestError("This invoice is already fully paid")
            if amount > invoice.balance_due:
                raise BadRequestError(f"Payment amount (${amount}) exceeds balance due (${invoice.balance_due})")

            payment = self.payment_repo.create(
                conn,
                invoice_id=invoice_id,
                amount=amount,
                method=method,
                payment_date=payment_date or datetime.now(),
                reference_number=reference_number,
                notes=notes,
            )
            totals = invoice_totals(
                invoice.subtotal,
                invoice.tax_amount,
                invoice.discount_amount,
                self.invoice_repo.sum_payments(conn, invoice_id),
            )
            updated = self.invoice_repo.write_totals(conn, invoice_id, totals)

        log.info(
            "Payment %s of %s recorded on invoice %s: balance %s, %s",
            payment.id,
            amount,
            invoice_id,
            updated.balance_due,
            updated.status.value,
        )
        return payment

    def void(self, payment_id: int) -> Invoice:
        with self.db.transaction() as conn:
            payment = self.payment_repo.get(conn, payment_id)
            if payment is None:
                raise NotFoundError("Payment", payment_id)
            invoice = self.invoice_repo.get(conn, payment.invoice_id, lock=True)
            # re-read under the invoice lock; a concurrent void may have won
            if self.payment_repo.get(conn, payment_id) is None:
                raise NotFoundError("Payment", payment_id)

            self.payment_repo.delete(conn, payment_id)
            totals = invoice_totals(
                invoice.subtotal,
                invoice.tax_amount,
                invoice.discount_amount,
                self.invoice_repo.sum_payments(conn, invoice.id),
            )
            updated = self.invoice_repo.write_totals(conn, invoice.id, totals)

        log.info(
            "Payment %s voided on invoice %s: balance %s, %s",
            payment_id,
            invoice.id,
            updated.balance_due,
            updated.status.value,
        )
        return updated
