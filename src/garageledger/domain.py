from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class WorkOrderStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WorkOrderPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class InvoiceStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"


APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

WORK_ORDER_TRANSITIONS: dict[WorkOrderStatus, frozenset[WorkOrderStatus]] = {
    WorkOrderStatus.PENDING: frozenset({WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.CANCELLED}),
    WorkOrderStatus.IN_PROGRESS: frozenset({WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED}),
    WorkOrderStatus.COMPLETED: frozenset(),
    WorkOrderStatus.CANCELLED: frozenset(),
}

# Appointments that still hold a mechanic's time.
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)
TERMINAL_WORK_ORDER_STATUSES = (WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED)


@dataclass(frozen=True)
class Customer:
    id: int


@dataclass(frozen=True)
class Vehicle:
    id: int
    customer_id: int
    is_active: bool


@dataclass(frozen=True)
class Employee:
    id: int
    is_active: bool


@dataclass(frozen=True)
class ServiceItem:
    id: int
    service_name: str
    is_active: bool


@dataclass(frozen=True)
class Part:
    id: int
    part_number: str
    part_name: str
    quantity_in_stock: int
    reorder_level: int
    unit_cost: Decimal
    selling_price: Decimal
    is_active: bool

    @property
    def is_low_stock(self) -> bool:
        return self.is_active and self.quantity_in_stock <= self.reorder_level


@dataclass(frozen=True)
class Appointment:
    id: int
    customer_id: int
    vehicle_id: int
    assigned_mechanic_id: Optional[int]
    appointment_date: datetime
    duration: int
    service_type: Optional[str]
    notes: Optional[str]
    status: AppointmentStatus


@dataclass(frozen=True)
class WorkOrder:
    id: int
    vehicle_id: int
    customer_id: int
    assigned_mechanic_id: Optional[int]
    status: WorkOrderStatus
    priority: WorkOrderPriority
    order_date: datetime
    scheduled_date: Optional[datetime]
    completion_date: Optional[datetime]
    customer_complaint: Optional[str]
    diagnosis: Optional[str]
    mileage_in: Optional[int]
    total_labor_cost: Decimal
    total_parts_cost: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class OpenWorkOrder:
    """A work order row locked inside the current transaction and known to be
    PENDING or IN_PROGRESS. Line writes and the completion rollup require one."""

    id: int
    status: WorkOrderStatus


@dataclass(frozen=True)
class WorkOrderServiceLine:
    id: int
    work_order_id: int
    service_id: int
    mechanic_id: Optional[int]
    quantity: int
    unit_price: Decimal
    labor_hours: Optional[Decimal]
    total_price: Decimal
    notes: Optional[str]


@dataclass(frozen=True)
class WorkOrderPartLine:
    id: int
    work_order_id: int
    part_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str]


@dataclass(frozen=True)
class WorkOrderDetail:
    order: WorkOrder
    services: list[WorkOrderServiceLine] = field(default_factory=list)
    parts: list[WorkOrderPartLine] = field(default_factory=list)


@dataclass(frozen=True)
class Invoice:
    id: int
    invoice_number: str
    work_order_id: int
    customer_id: int
    invoice_date: datetime
    due_date: Optional[date]
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    status: InvoiceStatus
    notes: Optional[str]


@dataclass(frozen=True)
class Payment:
    id: int
    invoice_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: datetime
    reference_number: Optional[str]
    notes: Optional[str]


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
