# Overview: Service-layer operations for inventory balances; ledger projection for stock items
# and counter accounting for finished goods.

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from sqlalchemy import case, func

from ..extensions import db
from ..errors import EntityNotFound, InsufficientInventory, InvalidMovementQuantity, ValidationError
from ..models import (
    INBOUND_KINDS,
    InventoryChange,
    InventoryOperation,
    MovementKind,
    ProcessedGood,
    ProcessedGoodWaste,
    StockItem,
    StockMovement,
    WasteType,
)
from ..validation import parse_quantity
from ..time_utils import today
from .concurrency import lock_for_update, run_in_transaction
"""
Inventory Invariants (authoritative)

Two accounting models coexist and must never be conflated.

Ledger-based (raw materials, recurring products):
- Balance is derived from StockMovement rows; no stored quantity field.
- balance(item, as_of) = SUM(signed quantity) over movements with
  effective_date <= as_of (inclusive; default today).
- History is ordered by (effective_date, created_at, id); the running balance
  of a window includes every movement before the window start.
- Replaying the full ledger equals the balance computed after each insert.

Counter-based (finished goods / ProcessedGood lots):
- quantity_available is a mutable running total. Order items deduct from it
  and restore to it; every such change is appended to InventoryChange.
- Waste is a separate sub-ledger (ProcessedGoodWaste). The sellable balance is
    quantity_available - SUM(quantity_wasted)
- Deductions are checked against the sellable balance BEFORE any mutation;
  a refused deduction leaves the counter untouched.
- Callers lock the ProcessedGood row first; its version_id_col turns a lost
  race into StaleDataError, which run_with_retry re-runs from the top.
"""

QUANTITY_QUANT = Decimal("0.001")


def _q(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(QUANTITY_QUANT)


def signed_quantity(movement_kind: MovementKind, quantity) -> Decimal:
    qty = _q(quantity)
    return qty if MovementKind(movement_kind) in INBOUND_KINDS else -qty


def replay_balance(movements: Iterable) -> Decimal:
    """Pure fold over movements (anything with movement_kind and quantity)."""
    balance = Decimal("0.000")
    for mv in movements:
        balance += signed_quantity(mv.movement_kind, mv.quantity)
    return balance


# =============================================================================
# Ledger projection (stock items)
# =============================================================================

def get_stock_item(stock_item_id: int) -> StockItem:
    item = db.session.get(StockItem, stock_item_id)
    if item is None:
        raise EntityNotFound(f"Stock item {stock_item_id} not found", details={"stock_item_id": stock_item_id})
    return item


def get_stock_balance(stock_item_id: int, as_of: date | None = None) -> Decimal:
    """Signed sum of movements with effective_date <= as_of (default today)."""
    as_of = as_of or today()
    signed = case(
        (StockMovement.movement_kind.in_(list(INBOUND_KINDS)), StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(
            StockMovement.stock_item_id == stock_item_id,
            StockMovement.effective_date <= as_of,
        )
        .scalar()
    )
    return _q(total)


def get_movement_history(
    stock_item_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """
    Movements in [start_date, end_date] with a running balance.

    The opening balance is everything before start_date, so the first row's
    running balance matches get_stock_balance as of that row's date.
    """
    item = get_stock_item(stock_item_id)
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")

    opening = get_stock_balance(stock_item_id, as_of=start_date - timedelta(days=1)) if start_date else _q(0)

    q = db.session.query(StockMovement).filter(StockMovement.stock_item_id == stock_item_id)
    if start_date:
        q = q.filter(StockMovement.effective_date >= start_date)
    if end_date:
        q = q.filter(StockMovement.effective_date <= end_date)
    rows = q.order_by(
        StockMovement.effective_date.asc(),
        StockMovement.created_at.asc(),
        StockMovement.id.asc(),
    ).all()

    running = opening
    movements = []
    for mv in rows:
        delta = signed_quantity(mv.movement_kind, mv.quantity)
        running += delta
        entry = mv.to_dict()
        entry["signed_quantity"] = delta
        entry["running_balance"] = running
        movements.append(entry)

    return {
        "stock_item": item.to_dict(),
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
        "opening_balance": opening,
        "closing_balance": running,
        "movements": movements,
    }


# =============================================================================
# Counter accounting (finished goods)
# =============================================================================

def get_processed_good(processed_good_id: int, *, lock: bool = False) -> ProcessedGood:
    query = db.session.query(ProcessedGood).filter_by(id=processed_good_id)
    if lock:
        query = lock_for_update(query)
    good = query.first()
    if good is None:
        raise EntityNotFound(
            f"Processed good {processed_good_id} not found",
            details={"processed_good_id": processed_good_id},
        )
    return good


def get_total_wasted(processed_good_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(ProcessedGoodWaste.quantity_wasted), 0))
        .filter(ProcessedGoodWaste.processed_good_id == processed_good_id)
        .scalar()
    )
    return _q(total)


def get_processed_good_available(processed_good_id: int) -> Decimal:
    """Sellable balance: counter minus recorded waste."""
    good = get_processed_good(processed_good_id)
    return _q(good.quantity_available) - get_total_wasted(processed_good_id)


def get_processed_good_summary(processed_good_id: int) -> dict:
    good = get_processed_good(processed_good_id)
    created = _q(good.quantity_created)
    counter = _q(good.quantity_available)
    wasted = get_total_wasted(processed_good_id)
    return {
        "processed_good_id": good.id,
        "lot_id": good.lot_id,
        "product_type": good.product_type,
        "unit": good.unit,
        "quantity_created": created,
        "quantity_delivered": created - counter,
        "quantity_wasted": wasted,
        "quantity_available": counter - wasted,
    }


def record_processed_good_waste(
    *,
    processed_good_id: int,
    quantity,
    reason: str,
    waste_type: WasteType | str = WasteType.FULL_WASTE,
    waste_date: date | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> ProcessedGoodWaste:
    """Append a waste record; refused when it exceeds the sellable balance."""
    try:
        qty = parse_quantity(quantity, "quantity_wasted")
    except ValidationError as exc:
        raise InvalidMovementQuantity(exc.message, details={"quantity": str(quantity)})
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    try:
        wtype = WasteType(waste_type)
    except ValueError as exc:
        raise ValidationError(str(exc))

    def _op() -> ProcessedGoodWaste:
        good = get_processed_good(processed_good_id, lock=True)
        available = get_processed_good_available(good.id)
        if qty > available:
            raise InsufficientInventory(
                f"Waste quantity exceeds available quantity for lot {good.lot_id}",
                details={"processed_good_id": good.id, "requested": str(qty), "available": str(available)},
            )
        rec = ProcessedGoodWaste(
            processed_good_id=good.id,
            quantity_wasted=qty,
            unit=good.unit,
            reason=reason.strip(),
            waste_type=wtype,
            waste_date=waste_date or today(),
            notes=notes,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(rec)
        db.session.flush()
        return rec

    return run_in_transaction(_op)


def _log_change(
    good: ProcessedGood,
    quantity_change: Decimal,
    operation: InventoryOperation,
    *,
    order_id: int | None,
    order_item_id: int | None,
    user_id: int | None,
) -> InventoryChange:
    change = InventoryChange(
        processed_good_id=good.id,
        quantity_change=quantity_change,
        operation_type=operation,
        order_id=order_id,
        order_item_id=order_item_id,
        created_by_user_id=user_id,
    )
    db.session.add(change)
    return change


def ensure_available(good: ProcessedGood, quantity) -> Decimal:
    """Raise InsufficientInventory unless the lot can cover quantity; returns the sellable balance."""
    qty = _q(quantity)
    if good.is_archived:
        raise ValidationError(f"Lot {good.lot_id} is archived", details={"processed_good_id": good.id})
    available = _q(good.quantity_available) - get_total_wasted(good.id)
    if available < qty:
        raise InsufficientInventory(
            f"Insufficient quantity for lot {good.lot_id}. Available: {available}, Requested: {qty}",
            details={"processed_good_id": good.id, "lot_id": good.lot_id,
                     "requested": str(qty), "available": str(available)},
        )
    return available


def deduct_processed_good(
    good: ProcessedGood,
    quantity: Decimal,
    operation: InventoryOperation,
    *,
    order_id: int | None = None,
    order_item_id: int | None = None,
    user_id: int | None = None,
) -> InventoryChange:
    """
    Take quantity out of a locked lot's counter.

    No commit. Raises InsufficientInventory before touching anything.
    """
    qty = _q(quantity)
    ensure_available(good, qty)
    good.quantity_available = _q(good.quantity_available) - qty
    change = _log_change(good, -qty, operation, order_id=order_id, order_item_id=order_item_id, user_id=user_id)
    db.session.flush()
    return change


def restore_processed_good(
    good: ProcessedGood,
    quantity: Decimal,
    operation: InventoryOperation,
    *,
    order_id: int | None = None,
    order_item_id: int | None = None,
    user_id: int | None = None,
) -> InventoryChange:
    """Put quantity back on a locked lot's counter. No commit."""
    qty = _q(quantity)
    good.quantity_available = _q(good.quantity_available) + qty
    change = _log_change(good, qty, operation, order_id=order_id, order_item_id=order_item_id, user_id=user_id)
    db.session.flush()
    return change


def list_inventory_changes(*, processed_good_id: int | None = None, order_id: int | None = None) -> list[InventoryChange]:
    q = db.session.query(InventoryChange)
    if processed_good_id is not None:
        q = q.filter(InventoryChange.processed_good_id == processed_good_id)
    if order_id is not None:
        q = q.filter(InventoryChange.order_id == order_id)
    return q.order_by(InventoryChange.created_at.asc(), InventoryChange.id.asc()).all()
