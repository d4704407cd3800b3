from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..domain import OpenWorkOrder, WorkOrderPartLine, WorkOrderServiceLine
from ._rows import many, one

_SERVICE_COLUMNS = (
    "id, work_order_id, service_id, mechanic_id, quantity, unit_price, labor_hours, total_price, notes"
)
_PART_COLUMNS = "id, work_order_id, part_id, quantity, unit_price, total_price, notes"


class ServiceLineRepository:
    def create(
        self,
        conn: Connection,
        order: OpenWorkOrder,
        *,
        service_id: int,
        mechanic_id: int | None,
        quantity: int,
        unit_price: Decimal,
        labor_hours: Decimal | None,
        total_price: Decimal,
        notes: str | None,
    ) -> WorkOrderServiceLine:
        cur = conn.execute(
            f"""
            INSERT INTO work_order_service(work_order_id, service_id, mechanic_id, quantity, unit_price,
                                           labor_hours, total_price, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_SERVICE_COLUMNS};
            """,
            (order.id, service_id, mechanic_id, quantity, unit_price, labor_hours, total_price, notes),
        )
        return WorkOrderServiceLine(**one(cur))

    def get(self, conn: Connection, order_id: int, line_id: int) -> WorkOrderServiceLine | None:
        row = one(
            conn.execute(
                f"SELECT {_SERVICE_COLUMNS} FROM work_order_service WHERE id = %s AND work_order_id = %s;",
                (line_id, order_id),
            )
        )
        return WorkOrderServiceLine(**row) if row else None

    def update(self, conn: Connection, order: OpenWorkOrder, line_id: int, **fields) -> WorkOrderServiceLine:
        assignments = ", ".join(f"{name} = %s" for name in fields)
        cur = conn.execute(
            f"""
            UPDATE work_order_service SET {assignments}
            WHERE id = %s AND work_order_id = %s
            RETURNING {_SERVICE_COLUMNS};
            """,
            (*fields.values(), line_id, order.id),
        )
        return WorkOrderServiceLine(**one(cur))

    def delete(self, conn: Connection, order: OpenWorkOrder, line_id: int) -> None:
        conn.execute(
            "DELETE FROM work_order_service WHERE id = %s AND work_order_id = %s;",
            (line_id, order.id),
        )

    def list_for_order(self, conn: Connection, order_id: int) -> list[WorkOrderServiceLine]:
        cur = conn.execute(
            f"""
            SELECT {_SERVICE_COLUMNS}
            FROM work_order_service
            WHERE work_order_id = %s
            ORDER BY created_at, id;
            """,
            (order_id,),
        )
        return [WorkOrderServiceLine(**r) for r in many(cur)]


class PartLineRepository:
    def create(
        self,
        conn: Connection,
        order: OpenWorkOrder,
        *,
        part_id: int,
        quantity: int,
        unit_price: Decimal,
        total_price: Decimal,
        notes: str | None,
    ) -> WorkOrderPartLine:
        cur = conn.execute(
            f"""
            INSERT INTO work_order_part(work_order_id, part_id, quantity, unit_price, total_price, notes)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_PART_COLUMNS};
            """,
            (order.id, part_id, quantity, unit_price, total_price, notes),
        )
        return WorkOrderPartLine(**one(cur))

    def get(self, conn: Connection, order_id: int, line_id: int) -> WorkOrderPartLine | None:
        row = one(
            conn.execute(
                f"SELECT {_PART_COLUMNS} FROM work_order_part WHERE id = %s AND work_order_id = %s;",
                (line_id, order_id),
            )
        )
        return WorkOrderPartLine(**row) if row else None

    def update(self, conn: Connection, order: OpenWorkOrder, line_id: int, **fields) -> WorkOrderPartLine:
        assignments = ", ".join(f"{name} = %s" for name in fields)
        cur = conn.execute(
            f"""
            UPDATE work_order_part SET {assignments}
            WHERE id = %s AND work_order_id = %s
            RETURNING {_PART_COLUMNS};
            """,
            (*fields.values(), line_id, order.id),
        )
        return WorkOrderPartLine(**one(cur))

    def delete(self, conn: Connection, order: OpenWorkOrder, line_id: int) -> None:
        conn.execute(
            "DELETE FROM work_order_part WHERE id = %s AND work_order_id = %s;",
            (line_id, order.id),
        )

    def list_for_order(self, conn: Connection, order_id: int) -> list[WorkOrderPartLine]:
        cur = conn.execute(
            f"""
            SELECT {_PART_COLUMNS}
            FROM work_order_part
            WHERE work_order_id = %s
            ORDER BY created_at, id;
            """,
            (order_id,),
        )
        return [WorkOrderPartLine(**r) for r in many(cur)]
