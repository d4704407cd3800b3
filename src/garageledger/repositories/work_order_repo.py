from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from psycopg import Connection

from ..domain import OpenWorkOrder, WorkOrder, WorkOrderPriority, WorkOrderStatus
from ._rows import one

_COLUMNS = """id, vehicle_id, customer_id, assigned_mechanic_id, status, priority, order_date,
    scheduled_date, completion_date, customer_complaint, diagnosis, mileage_in,
    total_labor_cost, total_parts_cost, total_cost"""


def _to_work_order(row: dict) -> WorkOrder:
    return WorkOrder(
        **{
            **row,
            "status": WorkOrderStatus(row["status"]),
            "priority": WorkOrderPriority(row["priority"]),
        }
    )


class WorkOrderRepository:
    def create(
        self,
        conn: Connection,
        *,
        vehicle_id: int,
        customer_id: int,
        assigned_mechanic_id: int | None,
        scheduled_date: datetime | None,
        priority: WorkOrderPriority,
        customer_complaint: str | None,
        diagnosis: str | None,
        mileage_in: int | None,
    ) -> WorkOrder:
        cur = conn.execute(
            f"""
            INSERT INTO work_order(vehicle_id, customer_id, assigned_mechanic_id, scheduled_date, priority,
                                   customer_complaint, diagnosis, mileage_in)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS};
            """,
            (
                vehicle_id,
                customer_id,
                assigned_mechanic_id,
                scheduled_date,
                priority.value,
                customer_complaint,
                diagnosis,
                mileage_in,
            ),
        )
        return _to_work_order(one(cur))

    def get(self, conn: Connection, order_id: int, *, lock: bool = False) -> WorkOrder | None:
        sql = f"SELECT {_COLUMNS} FROM work_order WHERE id = %s"
        sql += " FOR UPDATE;" if lock else ";"
        row = one(conn.execute(sql, (order_id,)))
        return _to_work_order(row) if row else None

    def update(self, conn: Connection, order: OpenWorkOrder, **fields) -> WorkOrder:
        if not fields:
            return self.get(conn, order.id)
        assignments = ", ".join(f"{name} = %s" for name in fields)
        values = [v.value if isinstance(v, Enum) else v for v in fields.values()]
        cur = conn.execute(
            f"UPDATE work_order SET {assignments} WHERE id = %s RETURNING {_COLUMNS};",
            (*values, order.id),
        )
        return _to_work_order(one(cur))

    def set_status(self, conn: Connection, order: OpenWorkOrder, status: WorkOrderStatus) -> WorkOrder:
        return self.update(conn, order, status=status)

    def complete(
        self,
        conn: Connection,
        order: OpenWorkOrder,
        *,
        total_labor_cost: Decimal,
        total_parts_cost: Decimal,
        total_cost: Decimal,
        completed_at: datetime,
    ) -> WorkOrder:
        cur = conn.execute(
            f"""
            UPDATE work_order
            SET status = %s, completion_date = %s,
                total_labor_cost = %s, total_parts_cost = %s, total_cost = %s
            WHERE id = %s
            RETURNING {_COLUMNS};
            """,
            (
                WorkOrderStatus.COMPLETED.value,
                completed_at,
                total_labor_cost,
                total_parts_cost,
                total_cost,
                order.id,
            ),
        )
        return _to_work_order(one(cur))
