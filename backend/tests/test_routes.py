"""
API tests: access control, response shapes, and error mapping.

Route handlers commit through the same scoped session as the test, so
results are re-read after expire_all().
"""

from datetime import date

from orderledger.models import Order, ProcessedGood
from orderledger.services import inventory_service


# =============================================================================
# ACCESS CONTROL
# =============================================================================

class TestAccessControl:
    """X-User-Id resolution and module access levels."""

    def test_missing_user_header(self, client, db_session):
        response = client.get("/api/orders/")
        assert response.status_code == 401

    def test_malformed_user_header(self, client, db_session):
        response = client.get("/api/orders/", headers={"X-User-Id": "abc"})
        assert response.status_code == 401

    def test_unknown_user(self, client, db_session):
        response = client.get("/api/orders/", headers={"X-User-Id": "999"})
        assert response.status_code == 401

    def test_inactive_user(self, client, db_session, clerk_user, clerk_headers):
        clerk_user.is_active = False
        db_session.commit()

        response = client.get("/api/orders/", headers=clerk_headers)
        assert response.status_code == 401

    def test_read_only_cannot_create(self, client, db_session, viewer_headers):
        response = client.post("/api/orders/", json={"customer_name": "X"}, headers=viewer_headers)

        assert response.status_code == 403
        body = response.get_json()
        assert body["error"] == "Permission denied"
        assert body["module"] == "sales"
        assert body["required_access"] == "read-write"

    def test_read_only_can_list(self, client, db_session, viewer_headers):
        response = client.get("/api/orders/", headers=viewer_headers)
        assert response.status_code == 200
        assert response.get_json()["orders"] == []

    def test_no_module_grant(self, client, db_session, viewer_headers, stock_item):
        response = client.get(f"/api/inventory/items/{stock_item.id}/balance", headers=viewer_headers)
        assert response.status_code == 403

    def test_unlock_requires_admin(self, client, db_session, clerk_headers, completed_order):
        response = client.post(
            f"/api/orders/{completed_order.id}/unlock",
            json={"reason": "fix"},
            headers=clerk_headers,
        )
        assert response.status_code == 403
        assert response.get_json()["required_access"] == "admin"


# =============================================================================
# SYSTEM
# =============================================================================

class TestHealth:
    def test_health(self, client, db_session):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["lock_window"]["details"]["permanently_locked_orders"] == 0


# =============================================================================
# ORDERS
# =============================================================================

class TestOrderRoutes:
    """Order lifecycle over HTTP."""

    def test_create_add_pay_lock(self, client, db_session, clerk_headers, make_lot):
        good = make_lot("10")
        headers = clerk_headers

        response = client.post("/api/orders/", json={"customer_name": "Corner Cafe"}, headers=headers)
        assert response.status_code == 201
        order_id = response.get_json()["order"]["id"]
        assert response.get_json()["order"]["status"] == "ORDER_CREATED"

        response = client.post(
            f"/api/orders/{order_id}/items",
            json={"processed_good_id": good.id, "quantity": "4", "unit_price_cents": 250},
            headers=headers,
        )
        assert response.status_code == 201
        body = response.get_json()
        assert body["item"]["quantity"] == "4.000"
        assert body["order"]["total_cents"] == 1000
        assert body["order"]["status"] == "READY_FOR_PAYMENT"

        response = client.post(
            f"/api/orders/{order_id}/payments",
            json={"amount_cents": 1000, "payment_mode": "UPI"},
            headers=headers,
        )
        assert response.status_code == 201
        body = response.get_json()
        assert body["order"]["status"] == "ORDER_COMPLETED"
        assert body["order"]["balance_due_cents"] == 0

        response = client.post(f"/api/orders/{order_id}/lock", headers=headers)
        assert response.status_code == 200
        assert response.get_json()["order"]["lock_state"] == "LOCKED"

        db_session.expire_all()
        assert db_session.get(Order, order_id).is_locked is True
        assert db_session.get(ProcessedGood, good.id).quantity_available == 6

    def test_insufficient_inventory_error_shape(self, client, db_session, clerk_headers, lot, order):
        response = client.post(
            f"/api/orders/{order.id}/items",
            json={"processed_good_id": lot.id, "quantity": 50, "unit_price_cents": 100},
            headers=clerk_headers,
        )

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "INSUFFICIENT_INVENTORY"
        assert body["details"]["available"] == "30.000"

        db_session.expire_all()
        assert db_session.get(ProcessedGood, lot.id).quantity_available == 30

    def test_oversized_item_quantity(self, client, db_session, clerk_headers, lot, order):
        response = client.post(
            f"/api/orders/{order.id}/items",
            json={"processed_good_id": lot.id, "quantity": "1e30", "unit_price_cents": 100},
            headers=clerk_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_overlong_hold_reason(self, client, db_session, clerk_headers, order):
        response = client.post(
            f"/api/orders/{order.id}/hold", json={"reason": "x" * 400}, headers=clerk_headers
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_missing_fields(self, client, db_session, clerk_headers, order):
        response = client.post(f"/api/orders/{order.id}/items", json={}, headers=clerk_headers)

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"

    def test_unknown_order(self, client, db_session, clerk_headers):
        response = client.get("/api/orders/424242", headers=clerk_headers)

        assert response.status_code == 404
        assert response.get_json()["code"] == "ORDER_NOT_FOUND"

    def test_locked_order_mutation_conflict(self, client, db_session, clerk_headers, completed_order):
        client.post(f"/api/orders/{completed_order.id}/lock", headers=clerk_headers)

        response = client.put(
            f"/api/orders/{completed_order.id}/discount",
            json={"discount_cents": 10},
            headers=clerk_headers,
        )

        assert response.status_code == 409
        assert response.get_json()["code"] == "ORDER_LOCKED"

    def test_admin_unlock_and_lock_history(self, client, db_session, admin_headers, completed_order):
        headers = admin_headers
        client.post(f"/api/orders/{completed_order.id}/lock", headers=headers)

        response = client.post(f"/api/orders/{completed_order.id}/unlock", json={}, headers=headers)
        assert response.status_code == 400
        assert response.get_json()["code"] == "REASON_REQUIRED"

        response = client.post(
            f"/api/orders/{completed_order.id}/unlock", json={"reason": "Price correction"}, headers=headers
        )
        assert response.status_code == 200
        assert response.get_json()["order"]["lock_state"] == "UNLOCKED"

        response = client.get(f"/api/orders/{completed_order.id}/lock-history", headers=headers)
        actions = [e["action"] for e in response.get_json()["events"]]
        assert actions == ["UNLOCK", "LOCK"]

    def test_audit_trail(self, client, db_session, clerk_headers, completed_order):
        response = client.get(f"/api/orders/{completed_order.id}/audit", headers=clerk_headers)

        assert response.status_code == 200
        types = [e["event_type"] for e in response.get_json()["events"]]
        assert types[-1] == "ORDER_CREATED"
        assert "ORDER_COMPLETED" in types


# =============================================================================
# INVENTORY
# =============================================================================

class TestInventoryRoutes:
    """Stock ledger and finished-good endpoints."""

    def test_movement_and_balance(self, client, db_session, admin_headers, stock_item):
        headers = admin_headers

        response = client.post(
            "/api/inventory/movements",
            json={
                "stock_item_id": stock_item.id,
                "movement_kind": "IN",
                "quantity": "12.5",
                "effective_date": "2026-04-01",
                "reference_id": "GRN-1",
                "reference_type": "initial_intake",
            },
            headers=headers,
        )
        assert response.status_code == 201
        assert response.get_json()["movement"]["quantity"] == "12.500"

        response = client.get(
            f"/api/inventory/items/{stock_item.id}/balance?as_of=2026-04-01", headers=headers
        )
        assert response.status_code == 200
        body = response.get_json()
        assert body["balance"] == "12.500"
        assert body["as_of"] == date(2026, 4, 1).isoformat()

    def test_invalid_quantity(self, client, db_session, admin_headers, stock_item):
        response = client.post(
            "/api/inventory/movements",
            json={"stock_item_id": stock_item.id, "movement_kind": "IN", "quantity": -3},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_MOVEMENT_QUANTITY"

    def test_read_only_operations_user_cannot_write(self, client, db_session, clerk_headers, stock_item):
        response = client.post(
            "/api/inventory/movements",
            json={"stock_item_id": stock_item.id, "movement_kind": "IN", "quantity": 1},
            headers=clerk_headers,
        )
        assert response.status_code == 403

    def test_processed_good_waste(self, client, db_session, admin_headers, lot):
        response = client.post(
            f"/api/inventory/processed-goods/{lot.id}/waste",
            json={"quantity_wasted": "3", "reason": "Expired"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.get_json()["summary"]["quantity_available"] == "27.000"

    def test_oversized_quantity_is_a_validation_error(self, client, db_session, admin_headers, stock_item):
        response = client.post(
            "/api/inventory/movements",
            json={"stock_item_id": stock_item.id, "movement_kind": "IN", "quantity": "1e30"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_MOVEMENT_QUANTITY"

    def test_read_route_unexpected_failure(self, client, db_session, admin_headers, lot, monkeypatch):
        def _boom(processed_good_id):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(inventory_service, "get_processed_good_summary", _boom)

        response = client.get(f"/api/inventory/processed-goods/{lot.id}", headers=admin_headers)

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error"}
