# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""Order API routes with module-access enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import OrderLedgerError, ValidationError
from ..decorators import require_module_access, require_user
from ..models import AccessLevel
from ..services import audit_service, lock_service, order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

MODULE = "sales"


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _required(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _order_response(order, status: int = 200):
    return jsonify({"order": order_service.order_to_dict(order)}), status


@orders_bp.post("/")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def create_order_route():
    """Open a new order."""
    try:
        data = _json_body()
        _required(data, "customer_name")
        order = order_service.create_order(
            customer_name=data["customer_name"],
            order_date=data.get("order_date"),
            customer_id=data.get("customer_id"),
            sold_by_user_id=data.get("sold_by_user_id"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
        return _order_response(order, 201)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def list_orders_route():
    try:
        limit = request.args.get("limit", 100, type=int)
        offset = request.args.get("offset", 0, type=int)
        orders = order_service.list_orders(status=request.args.get("status"), limit=limit, offset=offset)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/permanently-locked")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def permanently_locked_route():
    try:
        orders = lock_service.list_permanently_locked()
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except Exception:
        current_app.logger.exception("Failed to list permanently locked orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def get_order_route(order_id: int):
    try:
        return _order_response(order_service.get_order(order_id))

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/items")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def add_item_route(order_id: int):
    """
    Add a line item; deducts the quantity from the lot.

    409 INSUFFICIENT_INVENTORY when the lot cannot cover it.
    """
    try:
        data = _json_body()
        _required(data, "processed_good_id", "quantity", "unit_price_cents")
        item = order_service.add_item(
            order_id=order_id,
            processed_good_id=data["processed_good_id"],
            quantity=data["quantity"],
            unit_price_cents=data["unit_price_cents"],
            user_id=g.current_user.id,
        )
        return jsonify({"item": item.to_dict(), "order": order_service.order_to_dict(item.order)}), 201

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/items/<int:item_id>")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def update_item_route(item_id: int):
    try:
        data = _json_body()
        item = order_service.update_item(
            item_id=item_id,
            quantity=data.get("quantity"),
            processed_good_id=data.get("processed_good_id"),
            unit_price_cents=data.get("unit_price_cents"),
            user_id=g.current_user.id,
        )
        return jsonify({"item": item.to_dict(), "order": order_service.order_to_dict(item.order)}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/items/<int:item_id>")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def delete_item_route(item_id: int):
    try:
        order = order_service.delete_item(item_id=item_id, user_id=g.current_user.id)
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def cancel_order_route(order_id: int):
    try:
        data = _json_body()
        order = order_service.cancel_order(order_id=order_id, user_id=g.current_user.id, reason=data.get("reason"))
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/discount")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def set_discount_route(order_id: int):
    try:
        data = _json_body()
        _required(data, "discount_cents")
        order = order_service.set_discount(
            order_id=order_id, discount_cents=data["discount_cents"], user_id=g.current_user.id
        )
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set discount")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# Payments
# =============================================================================

@orders_bp.post("/<int:order_id>/payments")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def add_payment_route(order_id: int):
    try:
        data = _json_body()
        _required(data, "amount_cents", "payment_mode")
        payment = order_service.add_payment(
            order_id=order_id,
            amount_cents=data["amount_cents"],
            payment_mode=data["payment_mode"],
            payment_to=data.get("payment_to"),
            paid_to_user=data.get("paid_to_user"),
            reference_number=data.get("reference_number"),
            paid_at=data.get("paid_at"),
            user_id=g.current_user.id,
        )
        return jsonify({"payment": payment.to_dict(), "order": order_service.order_to_dict(payment.order)}), 201

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/payments/<int:payment_id>")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def update_payment_route(payment_id: int):
    try:
        data = _json_body()
        payment = order_service.update_payment(
            payment_id=payment_id,
            amount_cents=data.get("amount_cents"),
            payment_mode=data.get("payment_mode"),
            payment_to=data.get("payment_to"),
            paid_to_user=data.get("paid_to_user"),
            reference_number=data.get("reference_number"),
            paid_at=data.get("paid_at"),
            user_id=g.current_user.id,
        )
        return jsonify({"payment": payment.to_dict(), "order": order_service.order_to_dict(payment.order)}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/payments/<int:payment_id>")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def delete_payment_route(payment_id: int):
    try:
        order = order_service.delete_payment(payment_id=payment_id, user_id=g.current_user.id)
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# Hold / Lock
# =============================================================================

@orders_bp.post("/<int:order_id>/hold")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def place_hold_route(order_id: int):
    try:
        data = _json_body()
        order = lock_service.place_hold(order_id=order_id, user_id=g.current_user.id, reason=data.get("reason"))
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to place hold")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>/hold")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def remove_hold_route(order_id: int):
    try:
        order = lock_service.remove_hold(order_id=order_id, user_id=g.current_user.id)
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove hold")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/lock")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def lock_order_route(order_id: int):
    try:
        order = lock_service.lock_order(order_id=order_id, user_id=g.current_user.id)
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to lock order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/unlock")
@require_user
@require_module_access(MODULE, AccessLevel.ADMIN)
def unlock_order_route(order_id: int):
    """
    Unlock within the unlock window.

    Requires: admin on the sales module, and a reason.
    """
    try:
        data = _json_body()
        order = lock_service.unlock_order(order_id=order_id, user_id=g.current_user.id, reason=data.get("reason"))
        return _order_response(order)

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to unlock order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/audit")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def order_audit_route(order_id: int):
    try:
        return jsonify({"events": audit_service.get_order_audit_log(order_id)}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order audit log")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/lock-history")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def lock_history_route(order_id: int):
    try:
        return jsonify({"events": lock_service.get_lock_history(order_id)}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get lock history")
        return jsonify({"error": "Internal server error"}), 500
