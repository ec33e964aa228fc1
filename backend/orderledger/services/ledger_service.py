# Overview: Service-layer operations for the raw material / recurring product stock ledger.

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal, InvalidOperation

from ..extensions import db
from ..errors import EntityNotFound, InsufficientInventory, InvalidMovementQuantity, ValidationError
from ..models import ItemType, MovementKind, ReferenceType, StockItem, StockMovement
from ..models.types import decimal_or_none
from ..time_utils import today
from ..validation import MAX_QUANTITY, QUANTITY_QUANT
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import get_stock_balance
"""
Stock Ledger Invariants (authoritative)

- StockMovement rows are append-only: created once per business event, never
  updated or deleted (db/immutability.py rejects both at flush time).
- quantity is always > 0; direction comes from movement_kind:
    IN, TRANSFER_IN                      -> +quantity
    CONSUMPTION, WASTE, TRANSFER_OUT     -> -quantity
- Balance is never stored; it is the signed sum of movements up to a date
  (see inventory_service.get_stock_balance).
- An outbound movement may not take the balance below zero as of its
  effective_date. The check runs before the append.
- A transfer is one atomic pair (TRANSFER_OUT + TRANSFER_IN) sharing a single
  transfer_record reference id.
"""


def _ensure_stock_item(stock_item_id: int, item_type: ItemType | None = None, *, lock: bool = False) -> StockItem:
    query = db.session.query(StockItem).filter_by(id=stock_item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise EntityNotFound(f"Stock item {stock_item_id} not found", details={"stock_item_id": stock_item_id})
    if item_type is not None and item.item_type is not item_type:
        raise ValidationError(
            "item_type does not match the stock item",
            details={"stock_item_id": stock_item_id, "expected": item.item_type.value, "got": item_type.value},
        )
    return item


def _coerce_quantity(quantity) -> Decimal:
    try:
        qty = decimal_or_none(quantity)
    except ArithmeticError:
        raise InvalidMovementQuantity("quantity must be a number", details={"quantity": str(quantity)})
    if qty is None or not qty.is_finite() or qty <= 0:
        raise InvalidMovementQuantity("quantity must be greater than 0", details={"quantity": str(quantity)})
    if qty > MAX_QUANTITY:
        raise InvalidMovementQuantity(f"quantity must be <= {MAX_QUANTITY}", details={"quantity": str(quantity)})
    try:
        qty = qty.quantize(QUANTITY_QUANT)
    except InvalidOperation:
        raise InvalidMovementQuantity("quantity must be a number", details={"quantity": str(quantity)})
    if qty <= 0:
        raise InvalidMovementQuantity("quantity must be greater than 0", details={"quantity": str(quantity)})
    return qty


def _record_movement_inner(
    *,
    stock_item: StockItem,
    movement_kind: MovementKind,
    quantity: Decimal,
    effective_date: date,
    unit: str | None = None,
    lot_reference: str | None = None,
    reference_id: str | None = None,
    reference_type: ReferenceType | None = None,
    created_by_user_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Core append without retry or commit. Caller holds the item row lock."""
    if (reference_id is None) != (reference_type is None):
        raise ValidationError("reference_id and reference_type must be given together")

    if not movement_kind.is_inbound:
        balance = get_stock_balance(stock_item.id, as_of=effective_date)
        if balance - quantity < 0:
            raise InsufficientInventory(
                f"Insufficient stock for {stock_item.name}",
                details={
                    "stock_item_id": stock_item.id,
                    "requested": str(quantity),
                    "available": str(balance),
                    "as_of": effective_date.isoformat(),
                },
            )

    mv = StockMovement(
        item_type=stock_item.item_type,
        stock_item_id=stock_item.id,
        lot_reference=lot_reference or stock_item.lot_id,
        movement_kind=movement_kind,
        quantity=quantity,
        unit=unit or stock_item.unit,
        effective_date=effective_date,
        created_by_user_id=created_by_user_id,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=notes,
    )
    db.session.add(mv)
    db.session.flush()
    return mv


def record_movement(
    *,
    stock_item_id: int,
    movement_kind: MovementKind | str,
    quantity,
    item_type: ItemType | str | None = None,
    effective_date: date | None = None,
    unit: str | None = None,
    lot_reference: str | None = None,
    reference_id: str | None = None,
    reference_type: ReferenceType | str | None = None,
    created_by_user_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Validate and append one StockMovement.

    Raises InvalidMovementQuantity for quantity <= 0, ValidationError for an
    unknown kind/type or a mismatched item type, EntityNotFound for an unknown
    item, and InsufficientInventory when an outbound movement would overdraw.
    """
    qty = _coerce_quantity(quantity)
    try:
        kind = MovementKind(movement_kind)
        itype = ItemType(item_type) if item_type is not None else None
        ref_type = ReferenceType(reference_type) if reference_type is not None else None
    except ValueError as exc:
        raise ValidationError(str(exc))

    def _op() -> StockMovement:
        item = _ensure_stock_item(stock_item_id, itype, lock=True)
        return _record_movement_inner(
            stock_item=item,
            movement_kind=kind,
            quantity=qty,
            effective_date=effective_date or today(),
            unit=unit,
            lot_reference=lot_reference,
            reference_id=reference_id,
            reference_type=ref_type,
            created_by_user_id=created_by_user_id,
            notes=notes,
        )

    return run_in_transaction(_op)


def record_intake(*, stock_item_id: int, quantity, effective_date: date | None = None,
                  created_by_user_id: int | None = None, notes: str | None = None) -> StockMovement:
    """Opening stock / receipt for a lot."""
    return record_movement(
        stock_item_id=stock_item_id,
        movement_kind=MovementKind.IN,
        quantity=quantity,
        effective_date=effective_date,
        reference_id=f"intake-{stock_item_id}-{uuid.uuid4().hex[:12]}",
        reference_type=ReferenceType.INITIAL_INTAKE,
        created_by_user_id=created_by_user_id,
        notes=notes,
    )


def record_waste(*, stock_item_id: int, quantity, waste_record_id: str, effective_date: date | None = None,
                 created_by_user_id: int | None = None, notes: str | None = None) -> StockMovement:
    return record_movement(
        stock_item_id=stock_item_id,
        movement_kind=MovementKind.WASTE,
        quantity=quantity,
        effective_date=effective_date,
        reference_id=str(waste_record_id),
        reference_type=ReferenceType.WASTE_RECORD,
        created_by_user_id=created_by_user_id,
        notes=notes,
    )


def record_consumption(*, stock_item_id: int, quantity, production_batch_id: str,
                       effective_date: date | None = None, created_by_user_id: int | None = None,
                       notes: str | None = None) -> StockMovement:
    return record_movement(
        stock_item_id=stock_item_id,
        movement_kind=MovementKind.CONSUMPTION,
        quantity=quantity,
        effective_date=effective_date,
        reference_id=str(production_batch_id),
        reference_type=ReferenceType.PRODUCTION_BATCH,
        created_by_user_id=created_by_user_id,
        notes=notes,
    )


def record_transfer(
    *,
    from_stock_item_id: int,
    to_stock_item_id: int,
    quantity,
    transfer_record_id: str | None = None,
    effective_date: date | None = None,
    created_by_user_id: int | None = None,
    notes: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move quantity from one lot to another as a single atomic pair.

    Both items must share item_type and unit.
    """
    qty = _coerce_quantity(quantity)
    if from_stock_item_id == to_stock_item_id:
        raise ValidationError("cannot transfer a lot to itself", details={"stock_item_id": from_stock_item_id})
    ref_id = str(transfer_record_id) if transfer_record_id else f"transfer-{uuid.uuid4().hex[:12]}"

    def _op():
        # Lock in id order to avoid lock-order inversions between concurrent transfers
        first, second = sorted((from_stock_item_id, to_stock_item_id))
        locked = {first: _ensure_stock_item(first, lock=True), second: _ensure_stock_item(second, lock=True)}
        source, target = locked[from_stock_item_id], locked[to_stock_item_id]

        if source.item_type is not target.item_type or source.unit != target.unit:
            raise ValidationError(
                "transfer requires matching item type and unit",
                details={"from_stock_item_id": source.id, "to_stock_item_id": target.id},
            )

        eff = effective_date or today()
        out_mv = _record_movement_inner(
            stock_item=source,
            movement_kind=MovementKind.TRANSFER_OUT,
            quantity=qty,
            effective_date=eff,
            reference_id=ref_id,
            reference_type=ReferenceType.TRANSFER_RECORD,
            created_by_user_id=created_by_user_id,
            notes=notes,
        )
        in_mv = _record_movement_inner(
            stock_item=target,
            movement_kind=MovementKind.TRANSFER_IN,
            quantity=qty,
            effective_date=eff,
            reference_id=ref_id,
            reference_type=ReferenceType.TRANSFER_RECORD,
            created_by_user_id=created_by_user_id,
            notes=notes,
        )
        return out_mv, in_mv

    return run_in_transaction(_op)
