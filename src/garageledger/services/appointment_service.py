from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from psycopg import Connection

from ..config import SchedulingConfig
from ..db import Db
from ..domain import (
    ACTIVE_APPOINTMENT_STATUSES,
    APPOINTMENT_TRANSITIONS,
    Appointment,
    AppointmentStatus,
    WorkOrder,
    WorkOrderPriority,
)
from ..errors import BadRequestError, NotFoundError, SchedulingConflictError, ValidationError
from ..repositories.appointment_repo import AppointmentRepository
from ..repositories.lookup_repo import LookupRepository
from ..repositories.work_order_repo import WorkOrderRepository
from ..scheduling import BusyInterval, SlotSequence, overlaps

log = logging.getLogger(__name__)

_UNSET = object()


def _allowed(status: AppointmentStatus) -> str:
    return ", ".join(sorted(s.value for s in APPOINTMENT_TRANSITIONS[status])) or "none"


def _priority(value) -> WorkOrderPriority:
    if value is None:
        return WorkOrderPriority.NORMAL
    try:
        return WorkOrderPriority(value)
    except ValueError:
        raise ValidationError(f"Unknown priority {value!r}") from None


def _local(value: datetime) -> datetime:
    # appointment columns are TIMESTAMP without time zone, in shop-local time
    if value.tzinfo is not None:
        raise ValidationError("Appointment times must be shop-local, without a UTC offset.")
    return value


def parse_status(value) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in AppointmentStatus)
        raise ValidationError(f"Unknown appointment status {value!r}. Expected one of: {allowed}") from None


class AppointmentService:
    def __init__(
        self,
        db: Db,
        *,
        scheduling: SchedulingConfig,
        appointment_repo: AppointmentRepository,
        work_order_repo: WorkOrderRepository,
        lookup_repo: LookupRepository,
    ) -> None:
        self.db = db
        self.scheduling = scheduling
        self.appointment_repo = appointment_repo
        self.work_order_repo = work_order_repo
        self.lookup_repo = lookup_repo

    # -- queries ---------------------------------------------------------

    def get(self, appointment_id: int) -> Appointment:
        with self.db.session() as conn:
            return self._get(conn, appointment_id)

    def available_slots(self, day: date, mechanic_id: int | None = None, duration: int | None = None) -> SlotSequence:
        """Free slots of ``day``. Without ``mechanic_id`` every active
        appointment of the day blocks the slot."""
        duration = self._duration(duration)
        day_start = datetime.combine(day, time())
        with self.db.session() as conn:
            # a late booking from the day before can still run into opening time
            booked = self.appointment_repo.list_active_before(
                conn,
                end=day_start + timedelta(days=1),
                mechanic_id=mechanic_id,
                busy_after=datetime.combine(day, time(self.scheduling.open_hour)),
                buffer_minutes=self.scheduling.buffer_minutes,
            )
        return SlotSequence(
            day,
            [BusyInterval(a.appointment_date, a.duration) for a in booked],
            duration=duration,
            open_hour=self.scheduling.open_hour,
            close_hour=self.scheduling.close_hour,
            step_minutes=self.scheduling.slot_minutes,
            buffer_minutes=self.scheduling.buffer_minutes,
        )

    def check_conflict(
        self,
        mechanic_id: int,
        start: datetime,
        duration: int,
        exclude_id: int | None = None,
    ) -> bool:
        with self.db.session() as conn:
            return self._has_conflict(conn, mechanic_id, _local(start), duration, exclude_id)

    # -- mutations -------------------------------------------------------

    def create(
        self,
        *,
        customer_id: int,
        vehicle_id: int,
        appointment_date: datetime,
        duration: int | None = None,
        assigned_mechanic_id: int | None = None,
        service_type: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        duration = self._duration(duration)
        appointment_date = _local(appointment_date)

        with self.db.transaction() as conn:
            if self.lookup_repo.get_customer(conn, customer_id) is None:
                raise NotFoundError("Customer", customer_id)
            if self.lookup_repo.get_vehicle(conn, vehicle_id) is None:
                raise NotFoundError("Vehicle", vehicle_id)
            if assigned_mechanic_id is not None:
                self._lock_mechanic(conn, assigned_mechanic_id)
                if self._has_conflict(conn, assigned_mechanic_id, appointment_date, duration):
                    raise SchedulingConflictError("Mechanic is already booked at this time")

            appt = self.appointment_repo.create(
                conn,
                customer_id=customer_id,
                vehicle_id=vehicle_id,
                assigned_mechanic_id=assigned_mechanic_id,
                appointment_date=appointment_date,
                duration=duration,
                service_type=service_type,
                notes=notes,
            )

        log.info("Appointment %s booked at %s (mechanic=%s)", appt.id, appt.appointment_date, assigned_mechanic_id)
        return appt

    def update(
        self,
        appointment_id: int,
        *,
        appointment_date: datetime | None = None,
        duration: int | None = None,
        assigned_mechanic_id=_UNSET,
        service_type=_UNSET,
        notes=_UNSET,
    ) -> Appointment:
        with self.db.transaction() as conn:
            appt = self._get(conn, appointment_id, lock=True)
            if appt.status not in ACTIVE_APPOINTMENT_STATUSES:
                raise BadRequestError(f'Cannot modify appointment with status "{appt.status.value}"')

            fields: dict = {}
            if appointment_date is not None:
                fields["appointment_date"] = _local(appointment_date)
            if duration is not None:
                fields["duration"] = self._duration(duration)
            if assigned_mechanic_id is not _UNSET:
                fields["assigned_mechanic_id"] = assigned_mechanic_id
            if service_type is not _UNSET:
                fields["service_type"] = service_type
            if notes is not _UNSET:
                fields["notes"] = notes

            mechanic_id = fields.get("assigned_mechanic_id", appt.assigned_mechanic_id)
            reschedules = {"appointment_date", "duration", "assigned_mechanic_id"} & fields.keys()
            if mechanic_id is not None and reschedules:
                self._lock_mechanic(conn, mechanic_id)
                start = fields.get("appointment_date", appt.appointment_date)
                length = fields.get("duration", appt.duration)
                if self._has_conflict(conn, mechanic_id, start, length, exclude_id=appt.id):
                    raise SchedulingConflictError("Mechanic is already booked at this time")

            updated = self.appointment_repo.update(conn, appt.id, **fields)

        log.info("Appointment %s updated: %s", appointment_id, ", ".join(sorted(fields)) or "no changes")
        return updated

    def transition(self, appointment_id: int, new_status: AppointmentStatus | str) -> Appointment:
        new_status = parse_status(new_status)
        with self.db.transaction() as conn:
            appt = self._get(conn, appointment_id, lock=True)
            if new_status not in APPOINTMENT_TRANSITIONS[appt.status]:
                raise BadRequestError(
                    f"Cannot transition from {appt.status.value} to {new_status.value}. "
                    f"Allowed: {_allowed(appt.status)}"
                )
            updated = self.appointment_repo.set_status(conn, appointment_id=appt.id, status=new_status)

        log.info("Appointment %s: %s -> %s", appointment_id, appt.status.value, new_status.value)
        return updated

    def convert_to_work_order(
        self,
        appointment_id: int,
        *,
        priority: WorkOrderPriority | None = None,
        customer_complaint: str | None = None,
        mileage_in: int | None = None,
    ) -> WorkOrder:
        with self.db.transaction() as conn:
            appt = self._get(conn, appointment_id, lock=True)
            if appt.status not in ACTIVE_APPOINTMENT_STATUSES:
                raise BadRequestError("Can only convert scheduled or confirmed appointments")

            work_order = self.work_order_repo.create(
                conn,
                vehicle_id=appt.vehicle_id,
                customer_id=appt.customer_id,
                assigned_mechanic_id=appt.assigned_mechanic_id,
                scheduled_date=appt.appointment_date,
                priority=_priority(priority),
                customer_complaint=customer_complaint if customer_complaint is not None else appt.notes,
                diagnosis=None,
                mileage_in=mileage_in,
            )
            self.appointment_repo.set_status(conn, appointment_id=appt.id, status=AppointmentStatus.COMPLETED)

        log.info("Appointment %s converted to work order %s", appointment_id, work_order.id)
        return work_order

    # -- helpers ---------------------------------------------------------

    def _get(self, conn: Connection, appointment_id: int, *, lock: bool = False) -> Appointment:
        appt = self.appointment_repo.get(conn, appointment_id, lock=lock)
        if appt is None:
            raise NotFoundError("Appointment", appointment_id)
        return appt

    def _lock_mechanic(self, conn: Connection, mechanic_id: int) -> None:
        if self.lookup_repo.get_employee(conn, mechanic_id, lock=True) is None:
            raise NotFoundError("Employee", mechanic_id)

    def _duration(self, duration: int | None) -> int:
        if duration is None:
            return self.scheduling.default_duration
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes.")
        return duration

    def _has_conflict(
        self,
        conn: Connection,
        mechanic_id: int,
        start: datetime,
        duration: int,
        exclude_id: int | None = None,
    ) -> bool:
        end = start + timedelta(minutes=duration)
        buffer_minutes = self.scheduling.buffer_minutes
        candidates = self.appointment_repo.list_active_before(
            conn,
            end=end,
            mechanic_id=mechanic_id,
            exclude_id=exclude_id,
            busy_after=start,
            buffer_minutes=buffer_minutes,
        )
        return any(
            overlaps(start, end, BusyInterval(a.appointment_date, a.duration), buffer_minutes)
            for a in candidates
        )
