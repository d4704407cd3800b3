from __future__ import annotations

from datetime import datetime

from psycopg import Connection

from ..domain import ACTIVE_APPOINTMENT_STATUSES, Appointment, AppointmentStatus
from ._rows import many, one

_COLUMNS = (
    "id, customer_id, vehicle_id, assigned_mechanic_id, appointment_date, duration, service_type, notes, status"
)

_ACTIVE = [s.value for s in ACTIVE_APPOINTMENT_STATUSES]


def _to_appointment(row: dict) -> Appointment:
    return Appointment(**{**row, "status": AppointmentStatus(row["status"])})


class AppointmentRepository:
    def create(
        self,
        conn: Connection,
        *,
        customer_id: int,
        vehicle_id: int,
        assigned_mechanic_id: int | None,
        appointment_date: datetime,
        duration: int,
        service_type: str | None,
        notes: str | None,
    ) -> Appointment:
        cur = conn.execute(
            f"""
            INSERT INTO appointment(customer_id, vehicle_id, assigned_mechanic_id, appointment_date, duration, service_type, notes)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS};
            """,
            (customer_id, vehicle_id, assigned_mechanic_id, appointment_date, duration, service_type, notes),
        )
        return _to_appointment(one(cur))

    def get(self, conn: Connection, appointment_id: int, *, lock: bool = False) -> Appointment | None:
        sql = f"SELECT {_COLUMNS} FROM appointment WHERE id = %s"
        sql += " FOR UPDATE;" if lock else ";"
        row = one(conn.execute(sql, (appointment_id,)))
        return _to_appointment(row) if row else None

    def update(self, conn: Connection, appointment_id: int, **fields) -> Appointment:
        """Write the given columns. Callers pass only the fields that change."""
        if not fields:
            return self.get(conn, appointment_id)
        assignments = ", ".join(f"{name} = %s" for name in fields)
        values = [v.value if isinstance(v, AppointmentStatus) else v for v in fields.values()]
        cur = conn.execute(
            f"UPDATE appointment SET {assignments} WHERE id = %s RETURNING {_COLUMNS};",
            (*values, appointment_id),
        )
        return _to_appointment(one(cur))

    def set_status(self, conn: Connection, *, appointment_id: int, status: AppointmentStatus) -> Appointment:
        return self.update(conn, appointment_id, status=status)

    def list_active_before(
        self,
        conn: Connection,
        *,
        end: datetime,
        mechanic_id: int | None = None,
        exclude_id: int | None = None,
        busy_after: datetime | None = None,
        buffer_minutes: int = 0,
    ) -> list[Appointment]:
        """SCHEDULED/CONFIRMED appointments starting before ``end``.

        With ``busy_after``, only appointments whose end plus ``buffer_minutes``
        is later than that moment are returned.
        """
        sql = f"""
            SELECT {_COLUMNS}
            FROM appointment
            WHERE appointment_date < %s
              AND status = ANY(%s)
        """
        params: list = [end, _ACTIVE]
        if mechanic_id is not None:
            sql += " AND assigned_mechanic_id = %s"
            params.append(mechanic_id)
        if exclude_id is not None:
            sql += " AND id <> %s"
            params.append(exclude_id)
        if busy_after is not None:
            sql += " AND appointment_date + make_interval(mins => duration + %s::int) > %s"
            params.extend([buffer_minutes, busy_after])
        sql += " ORDER BY appointment_date ASC;"
        return [_to_appointment(r) for r in many(conn.execute(sql, params))]
