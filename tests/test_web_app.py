from __future__ import annotations

import pytest

from fakes import make_part
from garageledger.web_app import create_app


@pytest.fixture
def client(ledger):
    app = create_app(ledger)
    app.testing = True
    return app.test_client()


def post(client, url, body=None):
    return client.post(url, json=body if body is not None else {})


class TestParts:
    def test_low_stock_and_adjust(self, client, store):
        part = make_part(store, stock=2, reorder_level=5)
        res = client.get("/api/parts/low-stock")
        assert res.status_code == 200
        assert [p["id"] for p in res.get_json()] == [part.id]

        res = post(client, f"/api/parts/{part.id}/adjust", {"adjustment": 10, "reason": "delivery"})
        assert res.get_json()["quantity_in_stock"] == 12

    def test_negative_adjustment_is_400(self, client, store):
        part = make_part(store, stock=2)
        res = post(client, f"/api/parts/{part.id}/adjust", {"adjustment": -3})
        assert res.status_code == 400
        assert res.get_json()["error"] == "BAD_REQUEST"

    def test_missing_part_is_404(self, client):
        res = client.get("/api/parts/999")
        assert res.status_code == 404
        assert res.get_json() == {"error": "NOT_FOUND", "message": "Part with ID '999' not found"}


class TestAppointments:
    def _book(self, client, ids, when):
        return post(client, "/api/appointments", {
            "customer_id": ids["customer"],
            "vehicle_id": ids["vehicle"],
            "appointment_date": when,
            "assigned_mechanic_id": ids["mechanic"],
        })

    def test_conflict_is_409(self, client, ids):
        assert self._book(client, ids, "2026-03-02T10:00").status_code == 201
        res = self._book(client, ids, "2026-03-02T10:30")
        assert res.status_code == 409
        assert res.get_json()["error"] == "SCHEDULING_CONFLICT"
        assert self._book(client, ids, "2026-03-02T11:15").status_code == 201

    def test_available_slots(self, client, ids):
        self._book(client, ids, "2026-03-02T10:00")
        res = client.get(f"/api/appointments/available-slots?date=2026-03-02&mechanic_id={ids['mechanic']}")
        starts = [s["start"] for s in res.get_json()]
        assert "2026-03-02T09:00:00" in starts
        assert "2026-03-02T10:00:00" not in starts

    def test_slots_require_date(self, client):
        assert client.get("/api/appointments/available-slots").status_code == 400

    def test_status_and_convert(self, client, ids):
        appt = self._book(client, ids, "2026-03-02T10:00").get_json()
        res = post(client, f"/api/appointments/{appt['id']}/status", {"status": "CONFIRMED"})
        assert res.get_json()["status"] == "CONFIRMED"

        res = post(client, f"/api/appointments/{appt['id']}/convert", {"priority": "HIGH"})
        assert res.status_code == 201
        assert res.get_json()["status"] == "PENDING"

        res = post(client, f"/api/appointments/{appt['id']}/status", {"status": "CANCELLED"})
        assert res.status_code == 400
        assert "Cannot transition from COMPLETED to CANCELLED" in res.get_json()["message"]

    @pytest.mark.parametrize("when", ["2026-03-02T14:00:00Z", "2026-03-02T14:00:00+02:00"])
    def test_timestamp_with_offset_is_400(self, client, ids, when):
        assert self._book(client, ids, "2026-03-02T10:00").status_code == 201
        res = self._book(client, ids, when)
        assert res.status_code == 400
        assert res.get_json()["error"] == "VALIDATION_ERROR"

    def test_bad_body(self, client):
        res = client.post("/api/appointments", data="nope", content_type="text/plain")
        assert res.status_code == 400
        assert res.get_json()["error"] == "VALIDATION_ERROR"


class TestWorkOrderToPayment:
    def test_full_flow(self, client, ids, store):
        part = make_part(store, stock=5, price="10.00")
        order = post(client, "/api/work-orders", {"vehicle_id": ids["vehicle"], "customer_id": ids["customer"]}).get_json()
        base = f"/api/work-orders/{order['id']}"

        assert post(client, f"{base}/services", {"service_id": ids["service"], "unit_price": "50"}).status_code == 201
        line = post(client, f"{base}/parts", {"part_id": part.id, "quantity": 2}).get_json()
        assert line["total_price"] == "20.00"

        res = post(client, f"{base}/parts", {"part_id": part.id, "quantity": 9})
        assert res.status_code == 400
        assert res.get_json()["error"] == "INSUFFICIENT_STOCK"

        post(client, f"{base}/status", {"status": "IN_PROGRESS"})
        done = post(client, f"{base}/status", {"status": "COMPLETED"}).get_json()
        assert done["total_cost"] == "70.00"

        res = post(client, f"{base}/parts", {"part_id": part.id, "quantity": 1})
        assert res.status_code == 400
        assert client.get(f"/api/parts/{part.id}").get_json()["quantity_in_stock"] == 3

        invoice = post(client, "/api/invoices", {"work_order_id": order["id"], "tax_rate": "0"}).get_json()
        assert invoice["total_amount"] == "70.00"
        assert post(client, "/api/invoices", {"work_order_id": order["id"]}).status_code == 409

        payment = post(client, f"/api/invoices/{invoice['id']}/payments", {"amount": "70", "payment_method": "CARD"})
        assert payment.status_code == 201

        detail = client.get(f"/api/invoices/{invoice['id']}").get_json()
        assert detail["invoice"]["status"] == "PAID"
        assert len(detail["payments"]) == 1

        voided = client.delete(f"/api/payments/{payment.get_json()['id']}").get_json()
        assert voided["status"] == "UNPAID"
        assert [i["id"] for i in client.get("/api/invoices/outstanding").get_json()] == [invoice["id"]]

    def test_zero_quantity_service_line_is_400(self, client, ids, store):
        order = post(client, "/api/work-orders", {"vehicle_id": ids["vehicle"], "customer_id": ids["customer"]}).get_json()
        res = post(client, f"/api/work-orders/{order['id']}/services", {
            "service_id": ids["service"], "unit_price": "10", "quantity": 0,
        })
        assert res.status_code == 400
        assert res.get_json()["error"] == "VALIDATION_ERROR"
        assert store.tables["service_lines"] == {}

    @pytest.mark.parametrize("rate", ["NaN", "Infinity"])
    def test_non_finite_tax_rate_is_400(self, client, ids, store, rate):
        order = post(client, "/api/work-orders", {"vehicle_id": ids["vehicle"], "customer_id": ids["customer"]}).get_json()
        base = f"/api/work-orders/{order['id']}"
        post(client, f"{base}/services", {"service_id": ids["service"], "unit_price": "50"})
        post(client, f"{base}/status", {"status": "IN_PROGRESS"})
        post(client, f"{base}/status", {"status": "COMPLETED"})

        res = post(client, "/api/invoices", {"work_order_id": order["id"], "tax_rate": rate})
        assert res.status_code == 400
        assert res.get_json()["error"] == "VALIDATION_ERROR"
        assert store.tables["invoices"] == {}

    def test_remove_part_line_restocks(self, client, ids, store):
        part = make_part(store, stock=5)
        order = post(client, "/api/work-orders", {"vehicle_id": ids["vehicle"], "customer_id": ids["customer"]}).get_json()
        line = post(client, f"/api/work-orders/{order['id']}/parts", {"part_id": part.id, "quantity": 4}).get_json()

        res = client.delete(f"/api/work-orders/{order['id']}/parts/{line['id']}")
        assert res.status_code == 204
        assert client.get(f"/api/parts/{part.id}").get_json()["quantity_in_stock"] == 5
