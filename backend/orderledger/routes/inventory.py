# Overview: Flask API routes for inventory ledger and finished-good balances.

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import OrderLedgerError, ValidationError
from ..decorators import require_module_access, require_user
from ..models import AccessLevel
from ..services import inventory_service, ledger_service
from ..validation import parse_date


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

MODULE = "operations"


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


@inventory_bp.post("/movements")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def record_movement_route():
    """
    Append one stock movement.

    Body: stock_item_id, movement_kind, quantity, optional item_type,
    effective_date, unit, lot_reference, reference_id, reference_type, notes.
    """
    try:
        data = _json_body()
        missing = [f for f in ("stock_item_id", "movement_kind", "quantity") if data.get(f) in (None, "")]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        mv = ledger_service.record_movement(
            stock_item_id=data["stock_item_id"],
            movement_kind=data["movement_kind"],
            quantity=data["quantity"],
            item_type=data.get("item_type"),
            effective_date=parse_date(data.get("effective_date"), "effective_date"),
            unit=data.get("unit"),
            lot_reference=data.get("lot_reference"),
            reference_id=data.get("reference_id"),
            reference_type=data.get("reference_type"),
            created_by_user_id=g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({"movement": mv.to_dict()}), 201

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/transfers")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def record_transfer_route():
    try:
        data = _json_body()
        missing = [f for f in ("from_stock_item_id", "to_stock_item_id", "quantity") if data.get(f) in (None, "")]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

        out_mv, in_mv = ledger_service.record_transfer(
            from_stock_item_id=data["from_stock_item_id"],
            to_stock_item_id=data["to_stock_item_id"],
            quantity=data["quantity"],
            transfer_record_id=data.get("transfer_record_id"),
            effective_date=parse_date(data.get("effective_date"), "effective_date"),
            created_by_user_id=g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({"movements": [out_mv.to_dict(), in_mv.to_dict()]}), 201

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items/<int:stock_item_id>/balance")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def stock_balance_route(stock_item_id: int):
    try:
        as_of = parse_date(request.args.get("as_of"), "as_of")
        item = inventory_service.get_stock_item(stock_item_id)
        return jsonify({
            "stock_item_id": item.id,
            "as_of": as_of.isoformat() if as_of else None,
            "balance": inventory_service.get_stock_balance(item.id, as_of=as_of),
            "unit": item.unit,
        }), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get stock balance")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items/<int:stock_item_id>/movements")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def movement_history_route(stock_item_id: int):
    try:
        start = parse_date(request.args.get("start_date"), "start_date")
        end = parse_date(request.args.get("end_date"), "end_date")
        return jsonify(inventory_service.get_movement_history(stock_item_id, start_date=start, end_date=end)), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get movement history")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/processed-goods/<int:processed_good_id>")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def processed_good_summary_route(processed_good_id: int):
    try:
        return jsonify({"summary": inventory_service.get_processed_good_summary(processed_good_id)}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get processed good summary")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/processed-goods/<int:processed_good_id>/changes")
@require_user
@require_module_access(MODULE, AccessLevel.READ_ONLY)
def processed_good_changes_route(processed_good_id: int):
    try:
        inventory_service.get_processed_good(processed_good_id)
        changes = inventory_service.list_inventory_changes(processed_good_id=processed_good_id)
        return jsonify({"changes": [c.to_dict() for c in changes]}), 200

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory changes")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/processed-goods/<int:processed_good_id>/waste")
@require_user
@require_module_access(MODULE, AccessLevel.READ_WRITE)
def processed_good_waste_route(processed_good_id: int):
    try:
        data = _json_body()
        rec = inventory_service.record_processed_good_waste(
            processed_good_id=processed_good_id,
            quantity=data.get("quantity_wasted"),
            reason=data.get("reason"),
            waste_type=data.get("waste_type") or "full_waste",
            waste_date=parse_date(data.get("waste_date"), "waste_date"),
            notes=data.get("notes"),
            created_by_user_id=g.current_user.id,
        )
        return jsonify({
            "waste": rec.to_dict(),
            "summary": inventory_service.get_processed_good_summary(processed_good_id),
        }), 201

    except OrderLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record waste")
        return jsonify({"error": "Internal server error"}), 500
