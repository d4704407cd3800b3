from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..domain import Part
from ._rows import many, one

_COLUMNS = "id, part_number, part_name, quantity_in_stock, reorder_level, unit_cost, selling_price, is_active"


class PartRepository:
    def create(
        self,
        conn: Connection,
        *,
        part_number: str,
        part_name: str,
        quantity_in_stock: int,
        reorder_level: int,
        unit_cost: Decimal,
        selling_price: Decimal,
        is_active: bool = True,
    ) -> Part:
        cur = conn.execute(
            f"""
            INSERT INTO part(part_number, part_name, quantity_in_stock, reorder_level, unit_cost, selling_price, is_active)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS};
            """,
            (part_number, part_name, quantity_in_stock, reorder_level, unit_cost, selling_price, is_active),
        )
        return Part(**one(cur))

    def upsert_by_part_number(
        self,
        conn: Connection,
        *,
        part_number: str,
        part_name: str,
        quantity_in_stock: int,
        reorder_level: int,
        unit_cost: Decimal,
        selling_price: Decimal,
        is_active: bool = True,
    ) -> Part:
        cur = conn.execute(
            f"""
            INSERT INTO part(part_number, part_name, quantity_in_stock, reorder_level, unit_cost, selling_price, is_active)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (part_number) DO UPDATE SET
              part_name = EXCLUDED.part_name,
              quantity_in_stock = EXCLUDED.quantity_in_stock,
              reorder_level = EXCLUDED.reorder_level,
              unit_cost = EXCLUDED.unit_cost,
              selling_price = EXCLUDED.selling_price,
              is_active = EXCLUDED.is_active
            RETURNING {_COLUMNS};
            """,
            (part_number, part_name, quantity_in_stock, reorder_level, unit_cost, selling_price, is_active),
        )
        return Part(**one(cur))

    def get(self, conn: Connection, part_id: int) -> Part | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM part WHERE id = %s;", (part_id,))
        row = one(cur)
        return Part(**row) if row else None

    def get_by_part_number(self, conn: Connection, part_number: str) -> Part | None:
        cur = conn.execute(f"SELECT {_COLUMNS} FROM part WHERE part_number = %s;", (part_number,))
        row = one(cur)
        return Part(**row) if row else None

    def list_low_stock(self, conn: Connection) -> list[Part]:
        cur = conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM part
            WHERE is_active = true AND quantity_in_stock <= reorder_level
            ORDER BY quantity_in_stock ASC, id ASC;
            """
        )
        return [Part(**r) for r in many(cur)]

    def decrease_stock(self, conn: Connection, *, part_id: int, qty: int) -> int | None:
        """Conditional decrement. Returns the new stock, or None when the row
        is missing or holds fewer than ``qty`` units."""
        cur = conn.execute(
            """
            UPDATE part
            SET quantity_in_stock = quantity_in_stock - %s
            WHERE id = %s AND quantity_in_stock >= %s
            RETURNING quantity_in_stock;
            """,
            (qty, part_id, qty),
        )
        row = cur.fetchone()
        return int(row[0]) if row else None

    def increase_stock(self, conn: Connection, *, part_id: int, qty: int) -> int | None:
        cur = conn.execute(
            """
            UPDATE part
            SET quantity_in_stock = quantity_in_stock + %s
            WHERE id = %s
            RETURNING quantity_in_stock;
            """,
            (qty, part_id),
        )
        row = cur.fetchone()
        return int(row[0]) if row else None
