from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig
from .db import Db
from .repositories.appointment_repo import AppointmentRepository
from .repositories.invoice_repo import InvoiceRepository
from .repositories.line_repo import PartLineRepository, ServiceLineRepository
from .repositories.lookup_repo import LookupRepository
from .repositories.part_repo import PartRepository
from .repositories.payment_repo import PaymentRepository
from .repositories.work_order_repo import WorkOrderRepository
from .services.appointment_service import AppointmentService
from .services.inventory_service import InventoryLedger
from .services.invoice_service import InvoiceService
from .services.payment_service import PaymentService
from .services.work_order_service import WorkOrderService


@dataclass(frozen=True)
class Ledger:
    db: Db
    part_repo: PartRepository
    inventory: InventoryLedger
    appointments: AppointmentService
    work_orders: WorkOrderService
    invoices: InvoiceService
    payments: PaymentService


def build_ledger(db: Db, cfg: AppConfig) -> Ledger:
    lookup_repo = LookupRepository()
    part_repo = PartRepository()
    appointment_repo = AppointmentRepository()
    work_order_repo = WorkOrderRepository()
    invoice_repo = InvoiceRepository()
    payment_repo = PaymentRepository()

    inventory = InventoryLedger(db, part_repo=part_repo)
    return Ledger(
        db=db,
        part_repo=part_repo,
        inventory=inventory,
        appointments=AppointmentService(
            db,
            scheduling=cfg.scheduling,
            appointment_repo=appointment_repo,
            work_order_repo=work_order_repo,
            lookup_repo=lookup_repo,
        ),
        work_orders=WorkOrderService(
            db,
            work_order_repo=work_order_repo,
            service_line_repo=ServiceLineRepository(),
            part_line_repo=PartLineRepository(),
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
        payments=PaymentService(db, invoice_repo=invoice_repo, payment_repo=payment_repo),
    )
