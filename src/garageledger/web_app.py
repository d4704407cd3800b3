from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from flask import Blueprint, Flask, current_app, jsonify, request

from .errors import AppError, ValidationError
from .ledger import Ledger

log = logging.getLogger(__name__)

api = Blueprint("api", __name__)


def _plain(value):
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _ok(value, status: int = 200):
    return jsonify(_plain(value)), status


def _ledger() -> Ledger:
    return current_app.config["LEDGER"]


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int(data: dict, key: str, *, required: bool = True) -> int | None:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"'{key}' is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer")
    return value


def _datetime(data: dict, key: str, *, required: bool = True) -> datetime | None:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"'{key}' is required")
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"'{key}' must be an ISO-8601 timestamp") from None
    if parsed.tzinfo is not None:
        raise ValidationError(f"'{key}' must be a shop-local timestamp without a UTC offset")
    return parsed


def _date(value, key: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"'{key}' must be an ISO-8601 date") from None


def _optional(data: dict, *keys: str) -> dict:
    return {k: data[k] for k in keys if k in data}


@api.errorhandler(AppError)
def _app_error(e: AppError):
    log.warning("%s %s -> %s: %s", request.method, request.path, e.code, e.message)
    return jsonify({"error": e.code, "message": e.message}), e.status_code


# -- inventory ---------------------------------------------------------------


@api.get("/parts/<int:part_id>")
def part_detail(part_id: int):
    return _ok(_ledger().inventory.get_part(part_id))


@api.get("/parts/low-stock")
def parts_low_stock():
    return _ok(_ledger().inventory.low_stock())


@api.post("/parts/<int:part_id>/adjust")
def parts_adjust(part_id: int):
    data = _body()
    return _ok(_ledger().inventory.adjust_stock(part_id, _int(data, "adjustment"), data.get("reason")))


# -- appointments ------------------------------------------------------------


@api.post("/appointments")
def appointments_create():
    data = _body()
    appt = _ledger().appointments.create(
        customer_id=_int(data, "customer_id"),
        vehicle_id=_int(data, "vehicle_id"),
        appointment_date=_datetime(data, "appointment_date"),
        duration=_int(data, "duration", required=False),
        assigned_mechanic_id=_int(data, "assigned_mechanic_id", required=False),
        service_type=data.get("service_type"),
        notes=data.get("notes"),
    )
    return _ok(appt, 201)


@api.get("/appointments/<int:appointment_id>")
def appointments_detail(appointment_id: int):
    return _ok(_ledger().appointments.get(appointment_id))


@api.patch("/appointments/<int:appointment_id>")
def appointments_update(appointment_id: int):
    data = _body()
    fields = _optional(data, "assigned_mechanic_id", "service_type", "notes")
    appt = _ledger().appointments.update(
        appointment_id,
        appointment_date=_datetime(data, "appointment_date", required=False),
        duration=_int(data, "duration", required=False),
        **fields,
    )
    return _ok(appt)


@api.post("/appointments/<int:appointment_id>/status")
def appointments_status(appointment_id: int):
    data = _body()
    return _ok(_ledger().appointments.transition(appointment_id, data.get("status")))


@api.post("/appointments/<int:appointment_id>/convert")
def appointments_convert(appointment_id: int):
    data = request.get_json(silent=True) or {}
    work_order = _ledger().appointments.convert_to_work_order(
        appointment_id,
        priority=data.get("priority"),
        customer_complaint=data.get("customer_complaint"),
        mileage_in=_int(data, "mileage_in", required=False),
    )
    return _ok(work_order, 201)


@api.get("/appointments/available-slots")
def appointments_slots():
    day = _date(request.args.get("date"), "date")
    if day is None:
        raise ValidationError("'date' is required")
    try:
        mechanic_id = request.args.get("mechanic_id", type=int)
        duration = request.args.get("duration", type=int)
    except ValueError:
        raise ValidationError("'mechanic_id' and 'duration' must be integers") from None
    slots = _ledger().appointments.available_slots(day, mechanic_id=mechanic_id, duration=duration)
    return _ok(list(slots))


# -- work orders ---------------------------------------------------------------


@api.post("/work-orders")
def work_orders_create():
    data = _body()
    order = _ledger().work_orders.create(
        vehicle_id=_int(data, "vehicle_id"),
        customer_id=_int(data, "customer_id"),
        assigned_mechanic_id=_int(data, "assigned_mechanic_id", required=False),
        scheduled_date=_datetime(data, "scheduled_date", required=False),
        priority=data.get("priority", "NORMAL"),
        customer_complaint=data.get("customer_complaint"),
        diagnosis=data.get("diagnosis"),
        mileage_in=_int(data, "mileage_in", required=False),
    )
    return _ok(order, 201)


@api.get("/work-orders/<int:order_id>")
def work_orders_detail(order_id: int):
    return _ok(_ledger().work_orders.get(order_id))


@api.patch("/work-orders/<int:order_id>")
def work_orders_update(order_id: int):
    data = _body()
    fields = _optional(data, "assigned_mechanic_id", "priority", "customer_complaint", "diagnosis", "mileage_in")
    if "scheduled_date" in data:
        fields["scheduled_date"] = _datetime(data, "scheduled_date", required=False)
    return _ok(_ledger().work_orders.update(order_id, **fields))


@api.post("/work-orders/<int:order_id>/status")
def work_orders_status(order_id: int):
    data = _body()
    return _ok(_ledger().work_orders.transition(order_id, data.get("status")))


@api.post("/work-orders/<int:order_id>/services")
def work_orders_add_service(order_id: int):
    data = _body()
    if "unit_price" not in data:
        raise ValidationError("'unit_price' is required")
    quantity = _int(data, "quantity", required=False)
    line = _ledger().work_orders.add_service(
        order_id,
        service_id=_int(data, "service_id"),
        unit_price=data["unit_price"],
        quantity=1 if quantity is None else quantity,
        mechanic_id=_int(data, "mechanic_id", required=False),
        labor_hours=data.get("labor_hours"),
        notes=data.get("notes"),
    )
    return _ok(line, 201)


@api.patch("/work-orders/<int:order_id>/services/<int:line_id>")
def work_orders_update_service(order_id: int, line_id: int):
    data = _body()
    line = _ledger().work_orders.update_service(
        order_id,
        line_id,
        quantity=_int(data, "quantity", required=False),
        unit_price=data.get("unit_price"),
        **_optional(data, "mechanic_id", "labor_hours", "notes"),
    )
    return _ok(line)


@api.delete("/work-orders/<int:order_id>/services/<int:line_id>")
def work_orders_remove_service(order_id: int, line_id: int):
    _ledger().work_orders.remove_service(order_id, line_id)
    return "", 204


@api.post("/work-orders/<int:order_id>/parts")
def work_orders_add_part(order_id: int):
    data = _body()
    line = _ledger().work_orders.add_part(
        order_id,
        part_id=_int(data, "part_id"),
        quantity=_int(data, "quantity"),
        unit_price=data.get("unit_price"),
        notes=data.get("notes"),
    )
    return _ok(line, 201)


@api.patch("/work-orders/<int:order_id>/parts/<int:line_id>")
def work_orders_update_part(order_id: int, line_id: int):
    data = _body()
    line = _ledger().work_orders.update_part(
        order_id,
        line_id,
        quantity=_int(data, "quantity", required=False),
        unit_price=data.get("unit_price"),
        **_optional(data, "notes"),
    )
    return _ok(line)


@api.delete("/work-orders/<int:order_id>/parts/<int:line_id>")
def work_orders_remove_part(order_id: int, line_id: int):
    _ledger().work_orders.remove_part(order_id, line_id)
    return "", 204


# -- invoices & payments -------------------------------------------------------


@api.post("/invoices")
def invoices_create():
    data = _body()
    invoice = _ledger().invoices.create(
        _int(data, "work_order_id"),
        tax_rate=data.get("tax_rate"),
        discount_amount=data.get("discount_amount", 0),
        due_date=_date(data.get("due_date"), "due_date"),
        notes=data.get("notes"),
    )
    return _ok(invoice, 201)


@api.get("/invoices/outstanding")
def invoices_outstanding():
    return _ok(_ledger().invoices.list_outstanding())


@api.get("/invoices/<int:invoice_id>")
def invoices_detail(invoice_id: int):
    ledger = _ledger()
    invoice = ledger.invoices.get(invoice_id)
    return _ok({"invoice": invoice, "payments": ledger.payments.list_for_invoice(invoice_id)})


@api.patch("/invoices/<int:invoice_id>")
def invoices_update(invoice_id: int):
    data = _body()
    fields = _optional(data, "notes")
    if "due_date" in data:
        fields["due_date"] = _date(data["due_date"], "due_date")
    invoice = _ledger().invoices.update(
        invoice_id,
        tax_amount=data.get("tax_amount"),
        discount_amount=data.get("discount_amount"),
        **fields,
    )
    return _ok(invoice)


@api.post("/invoices/<int:invoice_id>/payments")
def payments_record(invoice_id: int):
    data = _body()
    if "amount" not in data:
        raise ValidationError("'amount' is required")
    payment = _ledger().payments.record(
        invoice_id,
        amount=data["amount"],
        method=data.get("payment_method", "CASH"),
        payment_date=_datetime(data, "payment_date", required=False),
        reference_number=data.get("reference_number"),
        notes=data.get("notes"),
    )
    return _ok(payment, 201)


@api.delete("/payments/<int:payment_id>")
def payments_void(payment_id: int):
    return _ok(_ledger().payments.void(payment_id))


def create_app(ledger: Ledger) -> Flask:
    app = Flask(__name__)
    app.config["LEDGER"] = ledger
    app.register_blueprint(api, url_prefix="/api")
    return app
