from __future__ import annotations

from psycopg import Connection

from ..domain import Customer, Employee, ServiceItem, Vehicle
from ._rows import one


class LookupRepository:
    """Read-only access to the profile tables the ledger references."""

    def get_customer(self, conn: Connection, customer_id: int) -> Customer | None:
        row = one(conn.execute("SELECT id FROM customer WHERE id = %s;", (customer_id,)))
        return Customer(**row) if row else None

    def get_vehicle(self, conn: Connection, vehicle_id: int) -> Vehicle | None:
        row = one(
            conn.execute(
                "SELECT id, customer_id, is_active FROM vehicle WHERE id = %s;",
                (vehicle_id,),
            )
        )
        return Vehicle(**row) if row else None

    def get_employee(self, conn: Connection, employee_id: int, *, lock: bool = False) -> Employee | None:
        # lock=True serialises bookings for one mechanic until the transaction ends
        sql = "SELECT id, is_active FROM employee WHERE id = %s"
        sql += " FOR UPDATE;" if lock else ";"
        row = one(conn.execute(sql, (employee_id,)))
        return Employee(**row) if row else None

    def get_service(self, conn: Connection, service_id: int) -> ServiceItem | None:
        row = one(
            conn.execute(
                "SELECT id, service_name, is_active FROM service WHERE id = %s;",
                (service_id,),
            )
        )
        return ServiceItem(**row) if row else None
