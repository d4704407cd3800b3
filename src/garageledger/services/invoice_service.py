from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal

from psycopg import Connection

from ..db import Db
from ..domain import Invoice, InvoiceStatus, WorkOrderStatus
from ..errors import BadRequestError, ConflictError, NotFoundError, ValidationError
from ..pricing import invoice_totals, tax_for_rate, to_decimal, to_money
from ..repositories.invoice_repo import InvoiceRepository
from ..repositories.work_order_repo import WorkOrderRepository

log = logging.getLogger(__name__)

_UNSET = object()


def next_invoice_number(last_number: str | None, year: int) -> str:
    """INV-<year>-<5 digit sequence>, restarting at 00001 every year."""
    prefix = f"INV-{year}-"
    sequence = 1
    if last_number and last_number.startswith(prefix):
        tail = last_number[len(prefix):]
        if tail.isdigit():
            sequence = int(tail) + 1
    return f"{prefix}{sequence:05d}"


def _non_negative(value, what: str) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise ValidationError(f"{what} cannot be negative.")
    return amount


class InvoiceService:
    def __init__(
        self,
        db: Db,
        *,
        invoice_repo: InvoiceRepository,
        work_order_repo: WorkOrderRepository,
        default_tax_rate: Decimal = Decimal("0"),
    ) -> None:
        self.db = db
        self.invoice_repo = invoice_repo
        self.work_order_repo = work_order_repo
        self.default_tax_rate = default_tax_rate

    def get(self, invoice_id: int) -> Invoice:
        with self.db.session() as conn:
            return self._get(conn, invoice_id)

    def list_outstanding(self) -> list[Invoice]:
        with self.db.session() as conn:
            return self.invoice_repo.list_outstanding(conn)

    def create(
        self,
        work_order_id: int,
        *,
        tax_rate=None,
        discount_amount=0,
        due_date: date | None = None,
        notes: str | None = None,
    ) -> Invoice:
        rate = to_decimal(tax_rate, "tax rate") if tax_rate is not None else self.default_tax_rate
        if rate < 0:
            raise ValidationError("Tax rate cannot be negative.")
        discount = _non_negative(discount_amount, "Discount")

        with self.db.transaction() as conn:
            order = self.work_order_repo.get(conn, work_order_id, lock=True)
            if order is None:
                raise NotFoundError("Work Order", work_order_id)
            if order.status is not WorkOrderStatus.COMPLETED:
                raise BadRequestError("Can only create invoices for completed work orders")
            if self.invoice_repo.get_by_work_order(conn, work_order_id) is not None:
                raise ConflictError("An invoice already exists for this work order")

            subtotal = order.total_cost
            totals = invoice_totals(subtotal, tax_for_rate(subtotal, rate), discount)
            if totals.total_amount < 0:
                raise ValidationError("Discount cannot exceed subtotal plus tax.")

            now = datetime.now()
            prefix = f"INV-{now.year}-"
            self.invoice_repo.lock_numbering(conn, prefix)
            number = next_invoice_number(self.invoice_repo.last_number_with_prefix(conn, prefix), now.year)
            invoice = self.invoice_repo.create(
                conn,
                invoice_number=number,
                work_order_id=work_order_id,
                customer_id=order.customer_id,
                invoice_date=now,
                due_date=due_date,
                totals=totals,
                notes=notes,
            )

        log.info("Invoice %s (%s) issued for work order %s: total %s", invoice.id, number, work_order_id, invoice.total_amount)
        return invoice

    def update(
        self,
        invoice_id: int,
        *,
        tax_amount=None,
        discount_amount=None,
        due_date=_UNSET,
        notes=_UNSET,
    ) -> Invoice:
        with self.db.transaction() as conn:
            invoice = self._get(conn, invoice_id, lock=True)
            if invoice.status is InvoiceStatus.PAID:
                raise BadRequestError("Cannot modify a fully paid invoice")

            tax = _non_negative(tax_amount, "Tax") if tax_amount is not None else invoice.tax_amount
            discount = (
                _non_negative(discount_amount, "Discount") if discount_amount is not None else invoice.discount_amount
            )
            paid = self.invoice_repo.sum_payments(conn, invoice.id)
            totals = invoice_totals(invoice.subtotal, tax, discount, paid)
            if totals.total_amount < 0:
                raise ValidationError("Discount cannot exceed subtotal plus tax.")

            extra: dict = {}
            if due_date is not _UNSET:
                extra["due_date"] = due_date
            if notes is not _UNSET:
                extra["notes"] = notes
            updated = self.invoice_repo.write_totals(conn, invoice.id, totals, **extra)

        log.info("Invoice %s updated: total %s, balance %s, %s", invoice_id, updated.total_amount, updated.balance_due, updated.status.value)
        return updated

    def _get(self, conn: Connection, invoice_id: int, *, lock: bool = False) -> Invoice:
        invoice = self.invoice_repo.get(conn, invoice_id, lock=lock)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice
