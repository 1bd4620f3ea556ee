# Overview: Pytest coverage for the JSON API (status codes, payload validation, sync actions).

"""
API Route Tests

Exercise the blueprints through the Flask test client:
- sync actions (POST and GET) including the productId alias
- error mapping: 400 validation / insufficient stock, 404 unknown records,
  409 lifecycle conflicts
- end-to-end flows: PO receive, sale + void, assignment issue/receive/return,
  employee sale
"""

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.extensions import db
from stockledger.models import Product
from stockledger.models.ledger import EVENT_SALE
from stockledger.services import ledger_service
from stockledger.services.ledger_service import append_stock_event

from conftest import receive_stock


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"


class TestStockSync:

    def test_sync_all_get_default(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 9)

        response = client.get("/api/stock/sync")

        assert response.status_code == 200
        body = response.json
        assert body["success"] is True
        assert body["action"] == "sync-all"
        assert body["total_products"] == 1
        assert body["successful"] == 1
        assert body["drifted"] == 1
        assert body["results"][0]["product_id"] == gas_product.id
        assert "summary" not in body

    def test_sync_product_scenario(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 100)
        append_stock_event(product_id=gas_product.id, kind=EVENT_SALE, quantity=30)
        db_session.get(Product, gas_product.id).current_stock = 999
        db_session.commit()

        response = client.post("/api/stock/sync", json={"action": "sync-product", "productId": gas_product.id})

        assert response.status_code == 200
        result = response.json["result"]
        assert result["previous"] == 999
        assert result["recalculated"] == 70
        assert result["delta"] == -929
        assert result["drift_detected"] is True

    def test_validate_stock(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 10)

        response = client.post("/api/stock/sync", json={
            "action": "validate-stock",
            "product_id": gas_product.id,
            "quantity": 50,
            "operation": "sale",
        })

        assert response.status_code == 200
        validation = response.json["validation"]
        assert validation["allowed"] is False
        assert validation["reason"] == "InsufficientStock"
        assert validation["shortfall"] == 40

    def test_validate_stock_get_uses_check(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 3)
        response = client.get(f"/api/stock/sync?action=validate-stock&product_id={gas_product.id}&quantity=2")
        assert response.status_code == 200
        assert response.json["validation"]["operation"] == "check"
        assert response.json["validation"]["allowed"] is True

    def test_breakdown_and_calculate(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 4)

        breakdown = client.post("/api/stock/sync", json={"action": "get-breakdown", "product_id": gas_product.id})
        calculated = client.post("/api/stock/sync", json={"action": "calculate-stock", "product_id": gas_product.id})

        assert breakdown.json["breakdown"]["received_from_purchases"] == 4
        assert calculated.json["calculated_stock"] == 4
        assert calculated.json["cached_stock"] == 0

    def test_find_drift(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 2)
        response = client.post("/api/stock/sync", json={"action": "find-drift"})
        assert response.json["count"] == 1

    def test_invalid_action(self, client, db_session):
        response = client.post("/api/stock/sync", json={"action": "explode"})
        assert response.status_code == 400
        assert response.json["success"] is False

    def test_missing_product_id(self, client, db_session):
        response = client.post("/api/stock/sync", json={"action": "sync-product"})
        assert response.status_code == 400

    def test_unknown_product(self, client, db_session):
        response = client.post("/api/stock/sync", json={"action": "sync-product", "product_id": 4040})
        assert response.status_code == 404
        assert response.json["details"]["product_id"] == 4040

    def test_events_endpoint(self, client, db_session, gas_product):
        receive_stock(gas_product.id, 1)
        receive_stock(gas_product.id, 2)

        response = client.get(f"/api/stock/{gas_product.id}/events")

        assert response.status_code == 200
        assert [ev["quantity"] for ev in response.json["events"]] == [1, 2]

    def test_adjust_endpoint(self, client, db_session, gas_product):
        response = client.post(f"/api/stock/{gas_product.id}/adjust", json={"quantity_delta": 5, "note": "found"})
        assert response.status_code == 201
        assert response.json["event"]["kind"] == "ADJUSTMENT"

        response = client.post(f"/api/stock/{gas_product.id}/adjust", json={"quantity_delta": -50})
        assert response.status_code == 400

    def test_store_failure_is_json_500(self, client, db_session, gas_product, monkeypatch):
        def failing_events_for(*args, **kwargs):
            raise OperationalError("SELECT stock_events", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger_service, "events_for", failing_events_for)

        response = client.get(f"/api/stock/{gas_product.id}/events")

        assert response.status_code == 500
        assert response.is_json
        assert response.json["success"] is False
        assert response.json["error"] == "Internal server error"
        assert "disk I/O error" in response.json["details"]


class TestCatalogRoutes:

    def test_create_and_get_product(self, client, db_session):
        response = client.post("/api/products", json={
            "name": "Small Cylinder",
            "category": "cylinder",
            "cylinder_type": "small",
            "cost_price_cents": 12000,
            "least_price_cents": 15000,
        })
        assert response.status_code == 201
        product_id = response.json["id"]

        response = client.get(f"/api/products/{product_id}")
        assert response.status_code == 200
        assert response.json["calculated_stock"] == 0

    def test_current_stock_not_writable(self, client, db_session):
        response = client.post("/api/products", json={"name": "Gas", "category": "gas", "current_stock": 50})
        assert response.status_code == 400

    def test_cylinder_requires_type(self, client, db_session):
        response = client.post("/api/products", json={"name": "Cyl", "category": "cylinder"})
        assert response.status_code == 400

    def test_duplicate_employee_email_conflicts(self, client, db_session):
        payload = {"name": "A", "email": "same@example.com"}
        assert client.post("/api/employees", json=payload).status_code == 201
        assert client.post("/api/employees", json=payload).status_code == 409

    def test_unknown_customer(self, client, db_session):
        assert client.get("/api/customers/123").status_code == 404

    @pytest.mark.parametrize("path,payload,field", [
        ("/api/customers", {"name": "Harbor Restaurant"}, "name"),
        ("/api/suppliers", {"company_name": "Coastal Gas Co"}, "company_name"),
        ("/api/employees", {"name": "Ravi"}, "name"),
    ])
    def test_update_directory_record(self, client, db_session, path, payload, field):
        record_id = client.post(path, json=payload).json["id"]

        response = client.put(f"{path}/{record_id}", json={field: "Renamed", "is_active": False})

        assert response.status_code == 200
        assert response.json[field] == "Renamed"
        assert response.json["is_active"] is False
        assert client.get(f"{path}/{record_id}").json[field] == "Renamed"

    def test_update_rejects_unknown_field(self, client, db_session, customer):
        response = client.put(f"/api/customers/{customer.id}", json={"credit_limit": 5})
        assert response.status_code == 400

    def test_update_unknown_supplier(self, client, db_session):
        response = client.put("/api/suppliers/4040", json={"company_name": "Nobody"})
        assert response.status_code == 404

    def test_update_duplicate_employee_email_conflicts(self, client, db_session):
        client.post("/api/employees", json={"name": "A", "email": "a@example.com"})
        other_id = client.post("/api/employees", json={"name": "B", "email": "b@example.com"}).json["id"]

        response = client.put(f"/api/employees/{other_id}", json={"email": "a@example.com"})

        assert response.status_code == 409
        assert client.get(f"/api/employees/{other_id}").json["email"] == "b@example.com"

    @pytest.mark.parametrize("path", [
        "/api/employee-sales?employee_id=abc",
        "/api/stock-assignments?product_id=abc",
        "/api/stock-assignments?employee_id=1.5",
    ])
    def test_malformed_id_filter_is_rejected(self, client, db_session, path):
        response = client.get(path)
        assert response.status_code == 400
        assert response.json["success"] is False


class TestDocumentFlows:

    def test_purchase_order_flow(self, client, db_session, supplier, gas_product):
        response = client.post("/api/purchase-orders", json={
            "supplier_id": supplier.id,
            "product_id": gas_product.id,
            "quantity": 25,
            "unit_price_cents": 9000,
        })
        assert response.status_code == 201
        po_id = response.json["id"]

        assert client.post(f"/api/purchase-orders/{po_id}/receive").status_code == 200
        assert client.post(f"/api/purchase-orders/{po_id}/receive").status_code == 409

        db.session.expire_all()
        assert db.session.get(Product, gas_product.id).current_stock == 25

    def test_sale_insufficient_stock(self, client, db_session, customer, gas_product):
        receive_stock(gas_product.id, 10)
        response = client.post("/api/sales", json={
            "customer_id": customer.id,
            "items": [{"product_id": gas_product.id, "quantity": 50}],
        })
        assert response.status_code == 400
        assert response.json["details"]["shortfall"] == 40

    def test_sale_and_void(self, client, db_session, customer, gas_product):
        receive_stock(gas_product.id, 10)
        response = client.post("/api/sales", json={
            "customer_id": customer.id,
            "items": [{"product_id": gas_product.id, "quantity": 4}],
        })
        assert response.status_code == 201
        sale_id = response.json["sale"]["id"]

        response = client.post(f"/api/sales/{sale_id}/void", json={"reason": "returned"})
        assert response.status_code == 200
        assert response.json["sale"]["status"] == "voided"
        assert client.post(f"/api/sales/{sale_id}/void").status_code == 409

    def test_sale_requires_items(self, client, db_session, customer):
        response = client.post("/api/sales", json={"customer_id": customer.id, "items": []})
        assert response.status_code == 400

    def test_cheque_requires_check_number(self, client, db_session, customer, cylinder_product):
        receive_stock(cylinder_product.id, 5)
        response = client.post("/api/cylinders/deposit", json={
            "customer_id": customer.id,
            "product_id": cylinder_product.id,
            "quantity": 1,
            "payment_method": "cheque",
        })
        assert response.status_code == 400

    def test_cylinder_refill(self, client, db_session, supplier, cylinder_product):
        receive_stock(cylinder_product.id, 5)
        response = client.post("/api/cylinders/refill", json={
            "supplier_id": supplier.id,
            "product_id": cylinder_product.id,
            "quantity": 2,
        })
        assert response.status_code == 201
        assert response.json["transaction"]["type"] == "refill"

    def test_assignment_and_employee_sale_flow(self, client, db_session, employee, customer, gas_product):
        receive_stock(gas_product.id, 30)

        response = client.post("/api/stock-assignments", json={
            "employee_id": employee.id,
            "product_id": gas_product.id,
            "quantity": 10,
        })
        assert response.status_code == 201
        assignment_id = response.json["assignment"]["id"]

        assert client.put(f"/api/stock-assignments/{assignment_id}/receive").status_code == 200
        assert client.put(f"/api/stock-assignments/{assignment_id}/receive").status_code == 409

        response = client.post("/api/employee-sales", json={
            "employee_id": employee.id,
            "customer_id": customer.id,
            "items": [{"product_id": gas_product.id, "quantity": 4}],
        })
        assert response.status_code == 201
        assert response.json["sale"]["lines"][0]["deducted_quantity"] == 4

        detail = client.get(f"/api/stock-assignments/{assignment_id}")
        assert detail.json["assignment"]["remaining_quantity"] == 6
        assert len(detail.json["deductions"]) == 1

        held = client.get(f"/api/employees/{employee.id}/stock")
        assert held.json["items"][0]["received_remaining"] == 6

        response = client.put(f"/api/stock-assignments/{assignment_id}/return")
        assert response.status_code == 200
        assert response.json["assignment"]["status"] == "returned"

        calculated = client.get(f"/api/stock/sync?action=calculate-stock&product_id={gas_product.id}")
        assert calculated.json["calculated_stock"] == 26

        listing = client.get(f"/api/employee-sales?employee_id={employee.id}")
        assert listing.json["count"] == 1

    def test_assignment_exceeding_stock(self, client, db_session, employee, gas_product):
        receive_stock(gas_product.id, 2)
        response = client.post("/api/stock-assignments", json={
            "employee_id": employee.id,
            "product_id": gas_product.id,
            "quantity": 3,
        })
        assert response.status_code == 400

    def test_unknown_assignment(self, client, db_session):
        assert client.put("/api/stock-assignments/999/return").status_code == 404
