from __future__ import annotations

import logging
from datetime import date, datetime

from .errors import AppError
from .importers import ImportFileError, import_parts_json
from .ledger import Ledger

log = logging.getLogger(__name__)


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _prompt_int(msg: str, default: int | None = None) -> int | None:
    raw = _prompt(msg)
    if not raw:
        return default
    return int(raw)


def run_cli(ledger: Ledger) -> None:
    while True:
        print("\n=== Garage Ledger ===")
        print("1) Low-stock parts")
        print("2) Adjust part stock")
        print("3) Available slots for a day")
        print("4) Book appointment")
        print("5) Change appointment status")
        print("6) Convert appointment to work order")
        print("7) Show work order")
        print("8) Add part to work order")
        print("9) Add service to work order")
        print("10) Change work order status")
        print("11) Create invoice for work order")
        print("12) Record payment")
        print("13) Void payment")
        print("14) Outstanding invoices")
        print("15) Import parts JSON")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                for p in ledger.inventory.low_stock():
                    print(f"#{p.id} {p.part_number} {p.part_name} stock={p.quantity_in_stock} reorder={p.reorder_level}")

            elif choice == "2":
                part_id = int(_prompt("part_id: "))
                adjustment = int(_prompt("adjustment (+/-): "))
                reason = _prompt("reason (optional): ") or None
                part = ledger.inventory.adjust_stock(part_id, adjustment, reason)
                print(f"Stock of {part.part_number} is now {part.quantity_in_stock}")

            elif choice == "3":
                day = date.fromisoformat(_prompt("date (YYYY-MM-DD): "))
                mechanic_id = _prompt_int("mechanic_id (optional): ")
                duration = _prompt_int("duration minutes (optional): ")
                for slot in ledger.appointments.available_slots(day, mechanic_id, duration):
                    print(f"  {slot.start:%H:%M} - {slot.end:%H:%M}")

            elif choice == "4":
                appt = ledger.appointments.create(
                    customer_id=int(_prompt("customer_id: ")),
                    vehicle_id=int(_prompt("vehicle_id: ")),
                    appointment_date=datetime.fromisoformat(_prompt("date-time (YYYY-MM-DDTHH:MM): ")),
                    duration=_prompt_int("duration minutes (optional): "),
                    assigned_mechanic_id=_prompt_int("mechanic_id (optional): "),
                    service_type=_prompt("service type (optional): ") or None,
                    notes=_prompt("notes (optional): ") or None,
                )
                print(f"Booked appointment_id={appt.id} at {appt.appointment_date}")

            elif choice == "5":
                appt_id = int(_prompt("appointment_id: "))
                status = _prompt("new status (CONFIRMED/COMPLETED/CANCELLED/NO_SHOW): ").upper()
                appt = ledger.appointments.transition(appt_id, status)
                print(f"Appointment {appt.id} is {appt.status.value}")

            elif choice == "6":
                appt_id = int(_prompt("appointment_id: "))
                complaint = _prompt("customer complaint (optional): ") or None
                mileage = _prompt_int("mileage in (optional): ")
                wo = ledger.appointments.convert_to_work_order(
                    appt_id, customer_complaint=complaint, mileage_in=mileage
                )
                print(f"Created work_order_id={wo.id}")

            elif choice == "7":
                detail = ledger.work_orders.get(int(_prompt("work_order_id: ")))
                wo = detail.order
                print(f"work order #{wo.id} status={wo.status.value} priority={wo.priority.value}")
                for s in detail.services:
                    print(f"  service#{s.id} service={s.service_id} {s.quantity} x {s.unit_price} = {s.total_price}")
                for p in detail.parts:
                    print(f"  part#{p.id} part={p.part_id} {p.quantity} x {p.unit_price} = {p.total_price}")
                print(f"  labor={wo.total_labor_cost} parts={wo.total_parts_cost} total={wo.total_cost}")

            elif choice == "8":
                wo_id = int(_prompt("work_order_id: "))
                line = ledger.work_orders.add_part(
                    wo_id,
                    part_id=int(_prompt("part_id: ")),
                    quantity=int(_prompt("quantity: ")),
                    unit_price=_prompt("unit price (blank = selling price): ") or None,
                )
                print(f"Added part line #{line.id} total={line.total_price}")

            elif choice == "9":
                wo_id = int(_prompt("work_order_id: "))
                line = ledger.work_orders.add_service(
                    wo_id,
                    service_id=int(_prompt("service_id: ")),
                    unit_price=_prompt("unit price: "),
                    quantity=_prompt_int("quantity (default 1): ", 1),
                    mechanic_id=_prompt_int("mechanic_id (optional): "),
                )
                print(f"Added service line #{line.id} total={line.total_price}")

            elif choice == "10":
                wo_id = int(_prompt("work_order_id: "))
                status = _prompt("new status (IN_PROGRESS/COMPLETED/CANCELLED): ").upper()
                wo = ledger.work_orders.transition(wo_id, status)
                print(f"Work order {wo.id} is {wo.status.value} total={wo.total_cost}")

            elif choice == "11":
                wo_id = int(_prompt("work_order_id: "))
                rate = _prompt("tax rate % (blank = default): ") or None
                discount = _prompt("discount amount (default 0): ") or "0"
                inv = ledger.invoices.create(wo_id, tax_rate=rate, discount_amount=discount)
                print(f"Invoice {inv.invoice_number} total={inv.total_amount} balance={inv.balance_due}")

            elif choice == "12":
                invoice_id = int(_prompt("invoice_id: "))
                amount = _prompt("amount: ")
                method = _prompt("method (CASH/CARD/BANK_TRANSFER/CHECK): ") or "CASH"
                payment = ledger.payments.record(invoice_id, amount=amount, method=method)
                inv = ledger.invoices.get(invoice_id)
                print(f"payment_id={payment.id}; invoice balance={inv.balance_due} status={inv.status.value}")

            elif choice == "13":
                inv = ledger.payments.void(int(_prompt("payment_id: ")))
                print(f"Voided. Invoice {inv.invoice_number} balance={inv.balance_due} status={inv.status.value}")

            elif choice == "14":
                for inv in ledger.invoices.list_outstanding():
                    print(
                        f"{inv.invoice_number} work_order={inv.work_order_id} total={inv.total_amount} "
                        f"paid={inv.amount_paid} balance={inv.balance_due} {inv.status.value}"
                    )

            elif choice == "15":
                path = _prompt("path to parts.json: ")
                with ledger.db.transaction() as conn:
                    n = import_parts_json(conn, path, ledger.part_repo)
                print(f"Imported/updated parts: {n}")

            else:
                print("Unknown choice.")

        except AppError as e:
            print(f"[{e.code}] {e.message}")
        except ImportFileError as e:
            print(f"[IMPORT ERROR] {e}")
        except ValueError as e:
            print(f"[INPUT ERROR] {e}")
