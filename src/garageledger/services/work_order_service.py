from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from psycopg import Connection

from ..db import Db
from ..domain import (
    TERMINAL_WORK_ORDER_STATUSES,
    WORK_ORDER_TRANSITIONS,
    OpenWorkOrder,
    WorkOrder,
    WorkOrderDetail,
    WorkOrderPartLine,
    WorkOrderPriority,
    WorkOrderServiceLine,
    WorkOrderStatus,
)
from ..errors import BadRequestError, NotFoundError, ValidationError
from ..pricing import line_total, sum_money, to_decimal, to_money
from ..repositories.line_repo import PartLineRepository, ServiceLineRepository
from ..repositories.lookup_repo import LookupRepository
from ..repositories.part_repo import PartRepository
from ..repositories.work_order_repo import WorkOrderRepository
from .inventory_service import InventoryLedger

log = logging.getLogger(__name__)

_UNSET = object()


def _price(value, what: str = "Unit price") -> Decimal:
    price = to_money(value)
    if price < 0:
        raise ValidationError(f"{what} cannot be negative.")
    return price


def _quantity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("Quantity must be a positive integer.")
    return value


def parse_status(value) -> WorkOrderStatus:
    try:
        return WorkOrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in WorkOrderStatus)
        raise ValidationError(f"Unknown work order status {value!r}. Expected one of: {allowed}") from None


class WorkOrderService:
    """Work order lifecycle plus its service and part lines.

    Every mutation locks the order row and turns it into an ``OpenWorkOrder``
    first; the line repositories only accept that token, so a line can never
    be written to a COMPLETED or CANCELLED order.
    """

    def __init__(
        self,
        db: Db,
        *,
        work_order_repo: WorkOrderRepository,
        service_line_repo: ServiceLineRepository,
        part_line_repo: PartLineRepository,
        part_repo: PartRepository,
        lookup_repo: LookupRepository,
        inventory: InventoryLedger,
    ) -> None:
        self.db = db
        self.work_order_repo = work_order_repo
        self.service_line_repo = service_line_repo
        self.part_line_repo = part_line_repo
        self.part_repo = part_repo
        self.lookup_repo = lookup_repo
        self.inventory = inventory

    # -- work order --------------------------------------------------------

    def get(self, order_id: int) -> WorkOrderDetail:
        with self.db.session() as conn:
            order = self._get(conn, order_id)
            return WorkOrderDetail(
                order=order,
                services=self.service_line_repo.list_for_order(conn, order_id),
                parts=self.part_line_repo.list_for_order(conn, order_id),
            )

    def create(
        self,
        *,
        vehicle_id: int,
        customer_id: int,
        assigned_mechanic_id: int | None = None,
        scheduled_date: datetime | None = None,
        priority: WorkOrderPriority | str = WorkOrderPriority.NORMAL,
        customer_complaint: str | None = None,
        diagnosis: str | None = None,
        mileage_in: int | None = None,
    ) -> WorkOrder:
        priority = self._priority(priority)
        with self.db.transaction() as conn:
            vehicle = self.lookup_repo.get_vehicle(conn, vehicle_id)
            if vehicle is None:
                raise NotFoundError("Vehicle", vehicle_id)
            if not vehicle.is_active:
                raise BadRequestError("Cannot create work order for inactive vehicle")
            if self.lookup_repo.get_customer(conn, customer_id) is None:
                raise NotFoundError("Customer", customer_id)
            if assigned_mechanic_id is not None:
                self._check_mechanic(conn, assigned_mechanic_id)

            order = self.work_order_repo.create(
                conn,
                vehicle_id=vehicle_id,
                customer_id=customer_id,
                assigned_mechanic_id=assigned_mechanic_id,
                scheduled_date=scheduled_date,
                priority=priority,
                customer_complaint=customer_complaint,
                diagnosis=diagnosis,
                mileage_in=mileage_in,
            )

        log.info("Work order %s created for vehicle %s", order.id, vehicle_id)
        return order

    def update(
        self,
        order_id: int,
        *,
        assigned_mechanic_id=_UNSET,
        scheduled_date=_UNSET,
        priority=_UNSET,
        customer_complaint=_UNSET,
        diagnosis=_UNSET,
        mileage_in=_UNSET,
    ) -> WorkOrder:
        fields = {
            name: value
            for name, value in (
                ("assigned_mechanic_id", assigned_mechanic_id),
                ("scheduled_date", scheduled_date),
                ("priority", priority),
                ("customer_complaint", customer_complaint),
                ("diagnosis", diagnosis),
                ("mileage_in", mileage_in),
            )
            if value is not _UNSET
        }
        if "priority" in fields:
            fields["priority"] = self._priority(fields["priority"])

        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            if fields.get("assigned_mechanic_id") is not None:
                self._check_mechanic(conn, fields["assigned_mechanic_id"])
            return self.work_order_repo.update(conn, order, **fields)

    def transition(self, order_id: int, new_status: WorkOrderStatus | str) -> WorkOrder:
        new_status = parse_status(new_status)
        with self.db.transaction() as conn:
            current = self._get(conn, order_id, lock=True)
            allowed = WORK_ORDER_TRANSITIONS[current.status]
            if new_status not in allowed:
                names = ", ".join(sorted(s.value for s in allowed)) or "none"
                raise BadRequestError(
                    f"Cannot transition from {current.status.value} to {new_status.value}. Allowed: {names}"
                )
            order = OpenWorkOrder(id=current.id, status=current.status)

            if new_status is WorkOrderStatus.COMPLETED:
                updated = self._complete(conn, order)
            else:
                updated = self.work_order_repo.set_status(conn, order, new_status)

        log.info("Work order %s: %s -> %s", order_id, current.status.value, new_status.value)
        return updated

    # -- service lines -----------------------------------------------------

    def add_service(
        self,
        order_id: int,
        *,
        service_id: int,
        unit_price,
        quantity: int = 1,
        mechanic_id: int | None = None,
        labor_hours=None,
        notes: str | None = None,
    ) -> WorkOrderServiceLine:
        quantity = _quantity(quantity)
        unit_price = _price(unit_price)
        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            if self.lookup_repo.get_service(conn, service_id) is None:
                raise NotFoundError("Service", service_id)
            if mechanic_id is not None and self.lookup_repo.get_employee(conn, mechanic_id) is None:
                raise NotFoundError("Employee", mechanic_id)

            line = self.service_line_repo.create(
                conn,
                order,
                service_id=service_id,
                mechanic_id=mechanic_id,
                quantity=quantity,
                unit_price=unit_price,
                labor_hours=to_decimal(labor_hours, "labor hours") if labor_hours is not None else None,
                total_price=line_total(quantity, unit_price),
                notes=notes,
            )

        log.info("Work order %s: service line %s added (%s x %s)", order_id, line.id, quantity, unit_price)
        return line

    def update_service(
        self,
        order_id: int,
        line_id: int,
        *,
        quantity: int | None = None,
        unit_price=None,
        mechanic_id=_UNSET,
        labor_hours=_UNSET,
        notes=_UNSET,
    ) -> WorkOrderServiceLine:
        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            existing = self.service_line_repo.get(conn, order.id, line_id)
            if existing is None:
                raise NotFoundError("WorkOrderService", line_id)

            new_quantity = _quantity(quantity) if quantity is not None else existing.quantity
            new_price = _price(unit_price) if unit_price is not None else existing.unit_price
            fields: dict = {
                "quantity": new_quantity,
                "unit_price": new_price,
                "total_price": line_total(new_quantity, new_price),
            }
            if mechanic_id is not _UNSET:
                if mechanic_id is not None and self.lookup_repo.get_employee(conn, mechanic_id) is None:
                    raise NotFoundError("Employee", mechanic_id)
                fields["mechanic_id"] = mechanic_id
            if labor_hours is not _UNSET:
                fields["labor_hours"] = to_decimal(labor_hours, "labor hours") if labor_hours is not None else None
            if notes is not _UNSET:
                fields["notes"] = notes

            return self.service_line_repo.update(conn, order, line_id, **fields)

    def remove_service(self, order_id: int, line_id: int) -> None:
        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            if self.service_line_repo.get(conn, order.id, line_id) is None:
                raise NotFoundError("WorkOrderService", line_id)
            self.service_line_repo.delete(conn, order, line_id)
        log.info("Work order %s: service line %s removed", order_id, line_id)

    # -- part lines --------------------------------------------------------

    def add_part(
        self,
        order_id: int,
        *,
        part_id: int,
        quantity: int,
        unit_price=None,
        notes: str | None = None,
    ) -> WorkOrderPartLine:
        """Add a part line and take its quantity out of stock.

        ``unit_price`` defaults to the part's selling price.
        """
        quantity = _quantity(quantity)
        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            part = self.part_repo.get(conn, part_id)
            if part is None:
                raise NotFoundError("Part", part_id)
            if not part.is_active:
                raise BadRequestError("Cannot add inactive part to work order")

            price = _price(unit_price) if unit_price is not None else part.selling_price
            # conditional decrement; raises InsufficientStockError with the live count
            self.inventory.reserve(conn, part_id, quantity)
            line = self.part_line_repo.create(
                conn,
                order,
                part_id=part_id,
                quantity=quantity,
                unit_price=price,
                total_price=line_total(quantity, price),
                notes=notes,
            )

        log.info("Work order %s: part line %s added (part %s x %s)", order_id, line.id, part_id, quantity)
        return line

    def update_part(
        self,
        order_id: int,
        line_id: int,
        *,
        quantity: int | None = None,
        unit_price=None,
        notes=_UNSET,
    ) -> WorkOrderPartLine:
        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            existing = self.part_line_repo.get(conn, order.id, line_id)
            if existing is None:
                raise NotFoundError("WorkOrderPart", line_id)

            new_quantity = _quantity(quantity) if quantity is not None else existing.quantity
            new_price = _price(unit_price) if unit_price is not None else existing.unit_price
            diff = new_quantity - existing.quantity
            if diff > 0:
                self.inventory.reserve(conn, existing.part_id, diff)
            elif diff < 0:
                self.inventory.release(conn, existing.part_id, -diff)

            fields: dict = {
                "quantity": new_quantity,
                "unit_price": new_price,
                "total_price": line_total(new_quantity, new_price),
            }
            if notes is not _UNSET:
                fields["notes"] = notes
            line = self.part_line_repo.update(conn, order, line_id, **fields)

        if diff:
            log.info("Work order %s: part line %s quantity %+d", order_id, line_id, diff)
        return line

    def remove_part(self, order_id: int, line_id: int) -> None:
        with self.db.transaction() as conn:
            order = self._open(conn, order_id)
            existing = self.part_line_repo.get(conn, order.id, line_id)
            if existing is None:
                raise NotFoundError("WorkOrderPart", line_id)
            self.part_line_repo.delete(conn, order, line_id)
            self.inventory.release(conn, existing.part_id, existing.quantity)
        log.info(
            "Work order %s: part line %s removed, %s x part %s restocked",
            order_id,
            line_id,
            existing.quantity,
            existing.part_id,
        )

    # -- helpers -----------------------------------------------------------

    def _get(self, conn: Connection, order_id: int, *, lock: bool = False) -> WorkOrder:
        order = self.work_order_repo.get(conn, order_id, lock=lock)
        if order is None:
            raise NotFoundError("Work Order", order_id)
        return order

    def _open(self, conn: Connection, order_id: int) -> OpenWorkOrder:
        order = self._get(conn, order_id, lock=True)
        if order.status in TERMINAL_WORK_ORDER_STATUSES:
            raise BadRequestError(f'Cannot modify a work order with status "{order.status.value}"')
        return OpenWorkOrder(id=order.id, status=order.status)

    def _complete(self, conn: Connection, order: OpenWorkOrder) -> WorkOrder:
        # recomputed from the lines every time; running totals are never trusted
        labor = sum_money(line.total_price for line in self.service_line_repo.list_for_order(conn, order.id))
        parts = sum_money(line.total_price for line in self.part_line_repo.list_for_order(conn, order.id))
        return self.work_order_repo.complete(
            conn,
            order,
            total_labor_cost=labor,
            total_parts_cost=parts,
            total_cost=to_money(labor + parts),
            completed_at=datetime.now(),
        )

    def _check_mechanic(self, conn: Connection, mechanic_id: int) -> None:
        mechanic = self.lookup_repo.get_employee(conn, mechanic_id)
        if mechanic is None:
            raise NotFoundError("Employee", mechanic_id)
        if not mechanic.is_active:
            raise BadRequestError("Cannot assign work order to inactive mechanic")

    @staticmethod
    def _priority(value) -> WorkOrderPriority:
        try:
            return WorkOrderPriority(value)
        except ValueError:
            raise ValidationError(f"Unknown priority {value!r}") from None
