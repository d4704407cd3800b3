"""In-memory stand-ins for the psycopg repositories.

``FakeDb.transaction()`` snapshots every table and restores it when the block
raises, which gives the services the same all-or-nothing behaviour a
PostgreSQL transaction does. Row locks are no-ops: tests are single-threaded.
"""
from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal

from garageledger.config import AppConfig, BusinessConfig, DbConfig, SchedulingConfig
from garageledger.domain import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentStatus,
    Customer,
    Employee,
    Invoice,
    InvoiceStatus,
    OpenWorkOrder,
    Part,
    Payment,
    ServiceItem,
    Vehicle,
    WorkOrder,
    WorkOrderPartLine,
    WorkOrderServiceLine,
    WorkOrderStatus,
)
from garageledger.ledger import Ledger
from garageledger.pricing import ZERO
from garageledger.services.appointment_service import AppointmentService
from garageledger.services.inventory_service import InventoryLedger
from garageledger.services.invoice_service import InvoiceService
from garageledger.services.payment_service import PaymentService
from garageledger.services.work_order_service import WorkOrderService

TABLES = (
    "customers",
    "vehicles",
    "employees",
    "services",
    "parts",
    "appointments",
    "work_orders",
    "service_lines",
    "part_lines",
    "invoices",
    "payments",
)


class Store:
    def __init__(self) -> None:
        self.tables: dict[str, dict[int, object]] = {name: {} for name in TABLES}
        self.next_id = 1
        self.commits = 0
        self.rollbacks = 0

    def new_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value

    def insert(self, table: str, row):
        self.tables[table][row.id] = row
        return row

    def replace(self, table: str, row_id: int, **changes):
        row = dataclasses.replace(self.tables[table][row_id], **changes)
        self.tables[table][row_id] = row
        return row


class FakeDb:
    def __init__(self, store: Store) -> None:
        self.store = store

    @contextmanager
    def session(self):
        yield self.store

    @contextmanager
    def transaction(self):
        snapshot = {name: dict(rows) for name, rows in self.store.tables.items()}
        try:
            yield self.store
        except Exception:
            self.store.tables = snapshot
            self.store.rollbacks += 1
            raise
        self.store.commits += 1


class FakeLookupRepository:
    def get_customer(self, conn: Store, customer_id: int):
        return conn.tables["customers"].get(customer_id)

    def get_vehicle(self, conn: Store, vehicle_id: int):
        return conn.tables["vehicles"].get(vehicle_id)

    def get_employee(self, conn: Store, employee_id: int, *, lock: bool = False):
        return conn.tables["employees"].get(employee_id)

    def get_service(self, conn: Store, service_id: int):
        return conn.tables["services"].get(service_id)


class FakePartRepository:
    def create(self, conn: Store, **fields) -> Part:
        return conn.insert("parts", Part(id=conn.new_id(), **fields))

    def upsert_by_part_number(self, conn: Store, **fields) -> Part:
        existing = self.get_by_part_number(conn, fields["part_number"])
        if existing is None:
            return self.create(conn, **fields)
        return conn.replace("parts", existing.id, **fields)

    def get(self, conn: Store, part_id: int):
        return conn.tables["parts"].get(part_id)

    def get_by_part_number(self, conn: Store, part_number: str):
        return next((p for p in conn.tables["parts"].values() if p.part_number == part_number), None)

    def list_low_stock(self, conn: Store) -> list[Part]:
        low = [p for p in conn.tables["parts"].values() if p.is_active and p.quantity_in_stock <= p.reorder_level]
        return sorted(low, key=lambda p: (p.quantity_in_stock, p.id))

    def decrease_stock(self, conn: Store, *, part_id: int, qty: int):
        part = conn.tables["parts"].get(part_id)
        if part is None or part.quantity_in_stock < qty:
            return None
        return conn.replace("parts", part_id, quantity_in_stock=part.quantity_in_stock - qty).quantity_in_stock

    def increase_stock(self, conn: Store, *, part_id: int, qty: int):
        part = conn.tables["parts"].get(part_id)
        if part is None:
            return None
        return conn.replace("parts", part_id, quantity_in_stock=part.quantity_in_stock + qty).quantity_in_stock


class FakeAppointmentRepository:
    def create(self, conn: Store, **fields) -> Appointment:
        return conn.insert(
            "appointments",
            Appointment(id=conn.new_id(), status=AppointmentStatus.SCHEDULED, **fields),
        )

    def get(self, conn: Store, appointment_id: int, *, lock: bool = False):
        return conn.tables["appointments"].get(appointment_id)

    def update(self, conn: Store, appointment_id: int, **fields) -> Appointment:
        return conn.replace("appointments", appointment_id, **fields)

    def set_status(self, conn: Store, *, appointment_id: int, status: AppointmentStatus) -> Appointment:
        return conn.replace("appointments", appointment_id, status=status)

    def list_active_before(
        self, conn: Store, *, end, mechanic_id=None, exclude_id=None, busy_after=None, buffer_minutes=0
    ):
        rows = [
            a
            for a in conn.tables["appointments"].values()
            if a.status in ACTIVE_APPOINTMENT_STATUSES
            and a.appointment_date < end
            and (
                busy_after is None
                or a.appointment_date + timedelta(minutes=a.duration + buffer_minutes) > busy_after
            )
            and (mechanic_id is None or a.assigned_mechanic_id == mechanic_id)
            and (exclude_id is None or a.id != exclude_id)
        ]
        return sorted(rows, key=lambda a: a.appointment_date)


class FakeWorkOrderRepository:
    def create(self, conn: Store, **fields) -> WorkOrder:
        order = WorkOrder(
            id=conn.new_id(),
            status=WorkOrderStatus.PENDING,
            order_date=datetime.now(),
            completion_date=None,
            total_labor_cost=ZERO,
            total_parts_cost=ZERO,
            total_cost=ZERO,
            **fields,
        )
        return conn.insert("work_orders", order)

    def get(self, conn: Store, order_id: int, *, lock: bool = False):
        return conn.tables["work_orders"].get(order_id)

    def update(self, conn: Store, order: OpenWorkOrder, **fields) -> WorkOrder:
        assert isinstance(order, OpenWorkOrder)
        return conn.replace("work_orders", order.id, **fields)

    def set_status(self, conn: Store, order: OpenWorkOrder, status: WorkOrderStatus) -> WorkOrder:
        return self.update(conn, order, status=status)

    def complete(self, conn: Store, order: OpenWorkOrder, *, completed_at, **totals) -> WorkOrder:
        return self.update(conn, order, status=WorkOrderStatus.COMPLETED, completion_date=completed_at, **totals)


class _FakeLineRepository:
    table = ""
    row_type = None

    def __init__(self) -> None:
        self.fail_next_write = False

    def _maybe_fail(self) -> None:
        if self.fail_next_write:
            self.fail_next_write = False
            raise RuntimeError("simulated write failure")

    def create(self, conn: Store, order: OpenWorkOrder, **fields):
        assert isinstance(order, OpenWorkOrder)
        self._maybe_fail()
        return conn.insert(self.table, self.row_type(id=conn.new_id(), work_order_id=order.id, **fields))

    def get(self, conn: Store, order_id: int, line_id: int):
        line = conn.tables[self.table].get(line_id)
        return line if line is not None and line.work_order_id == order_id else None

    def update(self, conn: Store, order: OpenWorkOrder, line_id: int, **fields):
        assert isinstance(order, OpenWorkOrder)
        self._maybe_fail()
        return conn.replace(self.table, line_id, **fields)

    def delete(self, conn: Store, order: OpenWorkOrder, line_id: int) -> None:
        assert isinstance(order, OpenWorkOrder)
        self._maybe_fail()
        del conn.tables[self.table][line_id]

    def list_for_order(self, conn: Store, order_id: int):
        return sorted(
            (line for line in conn.tables[self.table].values() if line.work_order_id == order_id),
            key=lambda line: line.id,
        )


class FakeServiceLineRepository(_FakeLineRepository):
    table = "service_lines"
    row_type = WorkOrderServiceLine


class FakePartLineRepository(_FakeLineRepository):
    table = "part_lines"
    row_type = WorkOrderPartLine


class FakeInvoiceRepository:
    def __init__(self) -> None:
        self.numbering_locks: list[str] = []

    def create(self, conn: Store, *, totals, **fields) -> Invoice:
        invoice = Invoice(
            id=conn.new_id(),
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            amount_paid=totals.amount_paid,
            balance_due=totals.balance_due,
            status=totals.status,
            **fields,
        )
        return conn.insert("invoices", invoice)

    def get(self, conn: Store, invoice_id: int, *, lock: bool = False):
        return conn.tables["invoices"].get(invoice_id)

    def get_by_work_order(self, conn: Store, work_order_id: int):
        return next((i for i in conn.tables["invoices"].values() if i.work_order_id == work_order_id), None)

    def lock_numbering(self, conn: Store, prefix: str) -> None:
        self.numbering_locks.append(prefix)

    def last_number_with_prefix(self, conn: Store, prefix: str):
        assert self.numbering_locks[-1:] == [prefix], "number read without holding the numbering lock"
        numbers = sorted(i.invoice_number for i in conn.tables["invoices"].values() if i.invoice_number.startswith(prefix))
        return numbers[-1] if numbers else None

    def write_totals(self, conn: Store, invoice_id: int, totals, **extra) -> Invoice:
        return conn.replace(
            "invoices",
            invoice_id,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            amount_paid=totals.amount_paid,
            balance_due=totals.balance_due,
            status=totals.status,
            **extra,
        )

    def list_outstanding(self, conn: Store, limit: int = 200):
        open_statuses = (InvoiceStatus.UNPAID, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.OVERDUE)
        rows = [i for i in conn.tables["invoices"].values() if i.status in open_statuses]
        return sorted(rows, key=lambda i: i.invoice_date)[:limit]

    def sum_payments(self, conn: Store, invoice_id: int) -> Decimal:
        return sum(
            (p.amount for p in conn.tables["payments"].values() if p.invoice_id == invoice_id),
            Decimal("0"),
        )


class FakePaymentRepository:
    def __init__(self) -> None:
        self.fail_next_write = False

    def create(self, conn: Store, *, method, **fields) -> Payment:
        if self.fail_next_write:
            self.fail_next_write = False
            raise RuntimeError("simulated write failure")
        return conn.insert("payments", Payment(id=conn.new_id(), payment_method=method, **fields))

    def get(self, conn: Store, payment_id: int):
        return conn.tables["payments"].get(payment_id)

    def delete(self, conn: Store, payment_id: int) -> None:
        del conn.tables["payments"][payment_id]

    def list_for_invoice(self, conn: Store, invoice_id: int):
        rows = [p for p in conn.tables["payments"].values() if p.invoice_id == invoice_id]
        return sorted(rows, key=lambda p: (p.payment_date, p.id), reverse=True)


def fake_config() -> AppConfig:
    return AppConfig(
        name="Garage Ledger (test)",
        log_level="DEBUG",
        db=DbConfig(host="localhost", port=5432, name="test", user="test", password="test"),
        business=BusinessConfig(default_tax_rate=Decimal("10")),
        scheduling=SchedulingConfig(),
    )


def build_fake_ledger(store: Store, cfg: AppConfig | None = None) -> Ledger:
    cfg = cfg or fake_config()
    db = FakeDb(store)
    lookup_repo = FakeLookupRepository()
    part_repo = FakePartRepository()
    work_order_repo = FakeWorkOrderRepository()
    invoice_repo = FakeInvoiceRepository()
    inventory = InventoryLedger(db, part_repo=part_repo)
    return Ledger(
        db=db,
        part_repo=part_repo,
        inventory=inventory,
        appointments=AppointmentService(
            db,
            scheduling=cfg.scheduling,
            appointment_repo=FakeAppointmentRepository(),
            work_order_repo=work_order_repo,
            lookup_repo=lookup_repo,
        ),
        work_orders=WorkOrderService(
            db,
            work_order_repo=work_order_repo,
            service_line_repo=FakeServiceLineRepository(),
            part_line_repo=FakePartLineRepository(),
            part_repo=part_repo,
            lookup_repo=lookup_repo,
            inventory=inventory,
        ),
        invoices=InvoiceService(
            db,
            invoice_repo=invoice_repo,
            work_order_repo=work_order_repo,
            default_tax_rate=cfg.business.default_tax_rate,
        ),
        payments=PaymentService(db, invoice_repo=invoice_repo, payment_repo=FakePaymentRepository()),
    )


def seed_profiles(store: Store) -> dict[str, int]:
    """One customer, an active and an inactive vehicle, two mechanics (one
    inactive) and one catalog service."""
    ids = {}
    ids["customer"] = store.insert("customers", Customer(id=store.new_id())).id
    ids["vehicle"] = store.insert("vehicles", Vehicle(id=store.new_id(), customer_id=ids["customer"], is_active=True)).id
    ids["old_vehicle"] = store.insert(
        "vehicles", Vehicle(id=store.new_id(), customer_id=ids["customer"], is_active=False)
    ).id
    ids["mechanic"] = store.insert("employees", Employee(id=store.new_id(), is_active=True)).id
    ids["other_mechanic"] = store.insert("employees", Employee(id=store.new_id(), is_active=True)).id
    ids["retired_mechanic"] = store.insert("employees", Employee(id=store.new_id(), is_active=False)).id
    ids["service"] = store.insert(
        "services", ServiceItem(id=store.new_id(), service_name="Oil change", is_active=True)
    ).id
    return ids


def make_part(store: Store, *, stock: int, reorder_level: int = 0, price: str = "10.00", active: bool = True) -> Part:
    part_id = store.new_id()
    return store.insert(
        "parts",
        Part(
            id=part_id,
            part_number=f"PN-{part_id}",
            part_name=f"Part {part_id}",
            quantity_in_stock=stock,
            reorder_level=reorder_level,
            unit_cost=Decimal("5.00"),
            selling_price=Decimal(price),
            is_active=active,
        ),
    )
