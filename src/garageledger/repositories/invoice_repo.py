from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from psycopg import Connection

from ..domain import Invoice, InvoiceStatus
from ..pricing import InvoiceTotals
from ._rows import many, one

_COLUMNS = """id, invoice_number, work_order_id, customer_id, invoice_date, due_date, subtotal,
    tax_amount, discount_amount, total_amount, amount_paid, balance_due, status, notes"""


def _to_invoice(row: dict) -> Invoice:
    return Invoice(**{**row, "status": InvoiceStatus(row["status"])})


class InvoiceRepository:
    def create(
        self,
        conn: Connection,
        *,
        invoice_number: str,
        work_order_id: int,
        customer_id: int,
        invoice_date: datetime,
        due_date: date | None,
        totals: InvoiceTotals,
        notes: str | None,
    ) -> Invoice:
        cur = conn.execute(
            f"""
            INSERT INTO invoice(invoice_number, work_order_id, customer_id, invoice_date, due_date, subtotal,
                                tax_amount, discount_amount, total_amount, amount_paid, balance_due, status, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS};
            """,
            (
                invoice_number,
                work_order_id,
                customer_id,
                invoice_date,
                due_date,
                totals.subtotal,
                totals.tax_amount,
                totals.discount_amount,
                totals.total_amount,
                totals.amount_paid,
                totals.balance_due,
                totals.status.value,
                notes,
            ),
        )
        return _to_invoice(one(cur))

    def get(self, conn: Connection, invoice_id: int, *, lock: bool = False) -> Invoice | None:
        sql = f"SELECT {_COLUMNS} FROM invoice WHERE id = %s"
        sql += " FOR UPDATE;" if lock else ";"
        row = one(conn.execute(sql, (invoice_id,)))
        return _to_invoice(row) if row else None

    def get_by_work_order(self, conn: Connection, work_order_id: int) -> Invoice | None:
        row = one(conn.execute(f"SELECT {_COLUMNS} FROM invoice WHERE work_order_id = %s;", (work_order_id,)))
        return _to_invoice(row) if row else None

    def lock_numbering(self, conn: Connection, prefix: str) -> None:
        """Serialize number allocation for ``prefix`` until the transaction ends."""
        conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s));", (prefix,))

    def last_number_with_prefix(self, conn: Connection, prefix: str) -> str | None:
        cur = conn.execute(
            """
            SELECT invoice_number FROM invoice
            WHERE invoice_number LIKE %s
            ORDER BY invoice_number DESC
            LIMIT 1;
            """,
            (prefix + "%",),
        )
        row = cur.fetchone()
        return row[0] if row else None

    def write_totals(
        self,
        conn: Connection,
        invoice_id: int,
        totals: InvoiceTotals,
        **extra,
    ) -> Invoice:
        """Store a freshly derived set of totals plus any plain columns in ``extra``."""
        fields: dict = {
            "tax_amount": totals.tax_amount,
            "discount_amount": totals.discount_amount,
            "total_amount": totals.total_amount,
            "amount_paid": totals.amount_paid,
            "balance_due": totals.balance_due,
            "status": totals.status.value,
            **extra,
        }
        assignments = ", ".join(f"{name} = %s" for name in fields)
        cur = conn.execute(
            f"UPDATE invoice SET {assignments} WHERE id = %s RETURNING {_COLUMNS};",
            (*fields.values(), invoice_id),
        )
        return _to_invoice(one(cur))

    def list_outstanding(self, conn: Connection, limit: int = 200) -> list[Invoice]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM invoice
            WHERE status = ANY(%s)
            ORDER BY invoice_date ASC
            LIMIT %s;
            """,
            (
                [InvoiceStatus.UNPAID.value, InvoiceStatus.PARTIALLY_PAID.value, InvoiceStatus.OVERDUE.value],
                limit,
            ),
        )
        return [_to_invoice(r) for r in many(cur)]

    def sum_payments(self, conn: Connection, invoice_id: int) -> Decimal:
        cur = conn.execute(
            "SELECT COALESCE(SUM(amount), 0) FROM payment WHERE invoice_id = %s;",
            (invoice_id,),
        )
        return Decimal(cur.fetchone()[0])
