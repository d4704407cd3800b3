from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from psycopg import Connection

from ..domain import Payment, PaymentMethod
from ._rows import many, one

_COLUMNS = "id, invoice_id, amount, payment_method, payment_date, reference_number, notes"


def _to_payment(row: dict) -> Payment:
    return Payment(**{**row, "payment_method": PaymentMethod(row["payment_method"])})


class PaymentRepository:
    def create(
        self,
        conn: Connection,
        *,
        invoice_id: int,
        amount: Decimal,
        method: PaymentMethod,
        payment_date: datetime,
        reference_number: str | None,
        notes: str | None,
    ) -> Payment:
        cur = conn.execute(
            f"""
            INSERT INTO payment(invoice_id, amount, payment_method, payment_date, reference_number, notes)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS};
            """,
            (invoice_id, amount, method.value, payment_date, reference_number, notes),
        )
        return _to_payment(one(cur))

    def get(self, conn: Connection, payment_id: int) -> Payment | None:
        row = one(conn.execute(f"SELECT {_COLUMNS} FROM payment WHERE id = %s;", (payment_id,)))
        return _to_payment(row) if row else None

    def delete(self, conn: Connection, payment_id: int) -> None:
        conn.execute("DELETE FROM payment WHERE id = %s;", (payment_id,))

    def list_for_invoice(self, conn: Connection, invoice_id: int) -> list[Payment]:
        cur = conn.execute(
            f"SELECT {_COLUMNS} FROM payment WHERE invoice_id = %s ORDER BY payment_date DESC, id DESC;",
            (invoice_id,),
        )
        return [_to_payment(r) for r in many(cur)]
