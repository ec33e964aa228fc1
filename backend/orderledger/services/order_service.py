# Overview: Service-layer operations for orders; every item, discount, and payment mutation
# entry point lives here.

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from ..extensions import db
from ..errors import EntityNotFound, OrderLocked, OrderNotFound, ValidationError
from ..models import (
    AuditEventType,
    InventoryOperation,
    Order,
    OrderItem,
    OrderPayment,
    OrderStatus,
    PaymentMode,
    PaymentStatus,
    PaymentTo,
)
from ..time_utils import today, utcnow
from ..validation import (
    optional_text,
    parse_cents,
    parse_date,
    parse_datetime,
    parse_enum,
    parse_quantity,
    require_text,
)
from .audit_service import log_order_event
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_order_number
from .finance_service import create_income_for_payment, detach_income_for_payment, sync_income_for_payment
from .inventory_service import deduct_processed_good, ensure_available, get_processed_good, restore_processed_good
from .lock_service import lock_state
from .status_service import get_total_paid_cents, refresh_order_status
"""
Order Aggregate Invariants (authoritative)

Unit of work:
- Each public function is one transaction (run_in_transaction): inventory,
  totals, status, audit, and finance rows either all commit or all roll back.
- The order row is locked first, then the affected lot rows (in id order when
  there are two). Orders and lots carry version_id_col, so a lost race
  becomes StaleDataError and the whole operation is re-run.

Inventory (finished goods, counter-based):
- add_item deducts the item quantity from its lot.
- update_item deducts/restores only the difference; a lot change is
  restore-old-then-deduct-new (two audited sub-events).
- delete_item restores the item quantity.
- cancel_order restores every item; its items stay for the record.
- Availability is checked before anything is written; a refused mutation
  leaves the lot untouched.
- Net effect: lot.quantity_available = initial - SUM(quantity of live items).

Totals:
- total_cents = SUM(line_total_cents); line_total = quantity x unit price,
  rounded half-up to the cent.
- 0 <= discount_cents <= total_cents is enforced by set_discount. Removing
  items later does not move the discount; the status calculator's
  net_total > 0 guard covers that case.

Locking and status:
- Every mutation on a locked order raises OrderLocked. Cancelled orders are
  terminal and refuse further changes.
- refresh_order_status runs after every mutation, inside the transaction.
"""

logger = logging.getLogger(__name__)

CENT = Decimal("1")


def _line_total_cents(quantity: Decimal, unit_price_cents: int) -> int:
    return int((quantity * unit_price_cents).quantize(CENT, rounding=ROUND_HALF_UP))


def _get_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def _ensure_mutable(order: Order) -> None:
    if order.is_locked:
        raise OrderLocked(
            f"Order {order.order_number} is locked and cannot be modified",
            details={"order_id": order.id},
        )
    if order.status is OrderStatus.CANCELLED:
        raise ValidationError(
            f"Order {order.order_number} is cancelled and cannot be modified",
            details={"order_id": order.id},
        )


def _get_item(item_id: int) -> OrderItem:
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise EntityNotFound(f"Order item {item_id} not found", details={"order_item_id": item_id})
    return item


def _get_payment(payment_id: int) -> OrderPayment:
    payment = db.session.get(OrderPayment, payment_id)
    if payment is None:
        raise EntityNotFound(f"Payment {payment_id} not found", details={"payment_id": payment_id})
    return payment


def _recompute_total(order: Order) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(OrderItem.line_total_cents), 0))
        .filter(OrderItem.order_id == order.id)
        .scalar()
    )
    order.total_cents = int(total or 0)
    return order.total_cents


def _item_snapshot(item: OrderItem) -> dict:
    return {
        "item_id": item.id,
        "processed_good_id": item.processed_good_id,
        "product_type": item.product_type,
        "quantity": item.quantity,
        "unit": item.unit,
        "unit_price_cents": item.unit_price_cents,
        "line_total_cents": item.line_total_cents,
    }


# =============================================================================
# Orders
# =============================================================================

def create_order(
    *,
    customer_name: str,
    order_date: date | str | None = None,
    user_id: int | None = None,
    sold_by_user_id: int | None = None,
    customer_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """Open an empty order (ORDER_CREATED / READY_FOR_PAYMENT)."""
    name = require_text(customer_name, "customer_name")
    odate = parse_date(order_date, "order_date") or today()
    note_text = optional_text(notes, "notes", max_length=2000)

    def _op() -> Order:
        order = Order(
            order_number=next_order_number(),
            customer_id=customer_id,
            customer_name=name,
            order_date=odate,
            notes=note_text,
            sold_by_user_id=sold_by_user_id,
            total_cents=0,
            discount_cents=0,
            status=OrderStatus.ORDER_CREATED,
            payment_status=PaymentStatus.READY_FOR_PAYMENT,
            created_by_user_id=user_id,
        )
        db.session.add(order)
        db.session.flush()

        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.ORDER_CREATED,
            performed_by=user_id,
            payload={"order_number": order.order_number, "customer_name": name, "order_date": odate},
            description=f"Order {order.order_number} created",
        )
        return order

    return run_in_transaction(_op)


def get_order(order_id: int) -> Order:
    return _get_order(order_id)


def list_orders(*, status: OrderStatus | str | None = None, limit: int = 100, offset: int = 0) -> list[Order]:
    q = db.session.query(Order)
    if status is not None:
        q = q.filter(Order.status == parse_enum(OrderStatus, status, "status"))
    limit = max(1, min(limit, 500))
    return q.order_by(Order.created_at.desc(), Order.id.desc()).offset(max(offset, 0)).limit(limit).all()


def order_to_dict(order: Order, *, now: datetime | None = None) -> dict:
    data = order.to_dict()
    paid = get_total_paid_cents(order.id)
    data["items"] = [item.to_dict() for item in order.items]
    data["payments"] = [p.to_dict() for p in order.payments]
    data["total_paid_cents"] = paid
    data["balance_due_cents"] = max(order.net_total_cents - paid, 0)
    data["lock_state"] = lock_state(order, now).value
    return data


def set_discount(*, order_id: int, discount_cents, user_id: int | None = None) -> Order:
    """Set the order discount; must stay within 0..total_cents."""
    discount = parse_cents(discount_cents, "discount_cents")

    def _op() -> Order:
        order = _get_order(order_id, lock=True)
        _ensure_mutable(order)

        if discount > order.total_cents:
            raise ValidationError(
                "Discount cannot exceed the order total",
                details={"discount_cents": discount, "total_cents": order.total_cents},
            )

        old = order.discount_cents
        if old == discount:
            return order

        order.discount_cents = discount
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.DISCOUNT_APPLIED,
            performed_by=user_id,
            payload={
                "old_discount_cents": old,
                "new_discount_cents": discount,
                "total_cents": order.total_cents,
                "net_total_cents": order.net_total_cents,
            },
            description=f"Discount changed from {old} to {discount}",
        )
        refresh_order_status(order, actor_user_id=user_id)
        return order

    return run_in_transaction(_op)


def cancel_order(*, order_id: int, user_id: int | None = None, reason: str | None = None) -> Order:
    """
    Cancel an order and restore every item's quantity to its lot.

    Refused for locked orders and for orders that already carry payments
    (delete those first so the finance side stays consistent).
    """
    reason_text = optional_text(reason, "reason")

    def _op() -> Order:
        order = _get_order(order_id, lock=True)
        _ensure_mutable(order)

        paid = get_total_paid_cents(order.id)
        if paid > 0:
            raise ValidationError(
                "Cannot cancel an order with recorded payments",
                details={"order_id": order.id, "total_paid_cents": paid},
            )

        items = (
            db.session.query(OrderItem)
            .filter(OrderItem.order_id == order.id)
            .order_by(OrderItem.processed_good_id.asc(), OrderItem.id.asc())
            .all()
        )
        restored = []
        for item in items:
            good = get_processed_good(item.processed_good_id, lock=True)
            restore_processed_good(
                good, item.quantity, InventoryOperation.ORDER_CANCELLED,
                order_id=order.id, order_item_id=item.id, user_id=user_id,
            )
            restored.append({"item_id": item.id, "processed_good_id": good.id, "quantity": item.quantity})

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.ORDER_CANCELLED,
            performed_by=user_id,
            payload={"old_status": old_status, "reason": reason_text, "restored_items": restored},
            description=f"Order {order.order_number} cancelled" + (f". Reason: {reason_text}" if reason_text else ""),
        )
        logger.info("Order %s cancelled; %s item(s) restored", order.order_number, len(restored))
        return order

    return run_in_transaction(_op)


# =============================================================================
# Items
# =============================================================================

def add_item(
    *,
    order_id: int,
    processed_good_id: int,
    quantity,
    unit_price_cents,
    user_id: int | None = None,
) -> OrderItem:
    """Add a line item and deduct its quantity from the lot."""
    qty = parse_quantity(quantity)
    price = parse_cents(unit_price_cents, "unit_price_cents")

    def _op() -> OrderItem:
        order = _get_order(order_id, lock=True)
        _ensure_mutable(order)

        good = get_processed_good(processed_good_id, lock=True)
        ensure_available(good, qty)

        item = OrderItem(
            order_id=order.id,
            processed_good_id=good.id,
            product_type=good.product_type,
            unit=good.unit,
            quantity=qty,
            unit_price_cents=price,
            line_total_cents=_line_total_cents(qty, price),
        )
        db.session.add(item)
        db.session.flush()

        deduct_processed_good(
            good, qty, InventoryOperation.ORDER_ITEM_ADDED,
            order_id=order.id, order_item_id=item.id, user_id=user_id,
        )
        payload = _item_snapshot(item)
        payload["lot_id"] = good.lot_id
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.ITEM_ADDED,
            performed_by=user_id,
            payload=payload,
            description=f"Added {qty} {good.unit} of {good.product_type} (lot {good.lot_id})",
        )

        _recompute_total(order)
        refresh_order_status(order, actor_user_id=user_id)
        return item

    return run_in_transaction(_op)


def update_item(
    *,
    item_id: int,
    quantity=None,
    processed_good_id: int | None = None,
    unit_price_cents=None,
    user_id: int | None = None,
) -> OrderItem:
    """
    Change an item's quantity, lot, and/or unit price.

    Quantity changes move only the difference. Changing the lot restores the
    full old quantity to the old lot, then deducts the new quantity from the
    new lot; both halves are audited.
    """
    new_qty = parse_quantity(quantity) if quantity is not None else None
    new_price = parse_cents(unit_price_cents, "unit_price_cents") if unit_price_cents is not None else None

    def _op() -> OrderItem:
        order_ref = _get_item(item_id).order_id
        order = _get_order(order_ref, lock=True)
        _ensure_mutable(order)
        item = lock_for_update(db.session.query(OrderItem).filter_by(id=item_id)).first()
        if item is None:
            raise EntityNotFound(f"Order item {item_id} not found", details={"order_item_id": item_id})

        old = _item_snapshot(item)
        old_qty = item.quantity
        target_qty = new_qty if new_qty is not None else old_qty
        target_price = new_price if new_price is not None else item.unit_price_cents
        target_good_id = processed_good_id if processed_good_id is not None else item.processed_good_id

        if target_good_id != item.processed_good_id:
            # Lock both lots in id order
            ids = sorted((item.processed_good_id, target_good_id))
            goods = {gid: get_processed_good(gid, lock=True) for gid in ids}
            old_good, new_good = goods[item.processed_good_id], goods[target_good_id]
            ensure_available(new_good, target_qty)

            restore_processed_good(
                old_good, old_qty, InventoryOperation.ORDER_ITEM_PRODUCT_CHANGED_RESTORE,
                order_id=order.id, order_item_id=item.id, user_id=user_id,
            )
            log_order_event(
                order_id=order.id,
                event_type=AuditEventType.ITEM_UPDATED,
                performed_by=user_id,
                payload={"change": "lot_restore", "item_id": item.id,
                         "processed_good_id": old_good.id, "lot_id": old_good.lot_id, "quantity": old_qty},
                description=f"Restored {old_qty} {old_good.unit} to lot {old_good.lot_id}",
            )

            deduct_processed_good(
                new_good, target_qty, InventoryOperation.ORDER_ITEM_PRODUCT_CHANGED_DEDUCT,
                order_id=order.id, order_item_id=item.id, user_id=user_id,
            )
            item.processed_good_id = new_good.id
            item.product_type = new_good.product_type
            item.unit = new_good.unit
            item.quantity = target_qty
            item.unit_price_cents = target_price
            item.line_total_cents = _line_total_cents(target_qty, target_price)
            db.session.flush()

            log_order_event(
                order_id=order.id,
                event_type=AuditEventType.ITEM_UPDATED,
                performed_by=user_id,
                payload={"change": "lot_deduct", "old": old, "new": _item_snapshot(item), "lot_id": new_good.lot_id},
                description=f"Deducted {target_qty} {new_good.unit} from lot {new_good.lot_id}",
            )
        else:
            if target_qty == old_qty and target_price == item.unit_price_cents:
                return item

            diff = target_qty - old_qty
            if diff != 0:
                good = get_processed_good(item.processed_good_id, lock=True)
                if diff > 0:
                    deduct_processed_good(
                        good, diff, InventoryOperation.ORDER_ITEM_QUANTITY_INCREASED,
                        order_id=order.id, order_item_id=item.id, user_id=user_id,
                    )
                else:
                    restore_processed_good(
                        good, -diff, InventoryOperation.ORDER_ITEM_QUANTITY_DECREASED,
                        order_id=order.id, order_item_id=item.id, user_id=user_id,
                    )

            item.quantity = target_qty
            item.unit_price_cents = target_price
            item.line_total_cents = _line_total_cents(target_qty, target_price)
            db.session.flush()

            log_order_event(
                order_id=order.id,
                event_type=AuditEventType.ITEM_UPDATED,
                performed_by=user_id,
                payload={"change": "item", "old": old, "new": _item_snapshot(item), "quantity_diff": diff},
                description=f"Item {item.id} updated: quantity {old_qty} -> {target_qty}, "
                            f"unit price {old['unit_price_cents']} -> {target_price}",
            )

        _recompute_total(order)
        refresh_order_status(order, actor_user_id=user_id)
        return item

    return run_in_transaction(_op)


def delete_item(*, item_id: int, user_id: int | None = None) -> Order:
    """Remove a line item and restore its quantity to the lot."""
    def _op() -> Order:
        order = _get_order(_get_item(item_id).order_id, lock=True)
        _ensure_mutable(order)
        item = _get_item(item_id)

        good = get_processed_good(item.processed_good_id, lock=True)
        restore_processed_good(
            good, item.quantity, InventoryOperation.ORDER_ITEM_DELETED,
            order_id=order.id, order_item_id=item.id, user_id=user_id,
        )
        payload = _item_snapshot(item)
        payload["lot_id"] = good.lot_id
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.ITEM_DELETED,
            performed_by=user_id,
            payload=payload,
            description=f"Removed {item.quantity} {item.unit} of {item.product_type} (lot {good.lot_id})",
        )

        db.session.delete(item)
        db.session.flush()

        _recompute_total(order)
        refresh_order_status(order, actor_user_id=user_id)
        return order

    return run_in_transaction(_op)


# =============================================================================
# Payments
# =============================================================================

def add_payment(
    *,
    order_id: int,
    amount_cents,
    payment_mode: PaymentMode | str,
    payment_to: PaymentTo | str = PaymentTo.ORGANIZATION_BANK,
    paid_to_user: str | None = None,
    reference_number: str | None = None,
    paid_at: datetime | str | None = None,
    user_id: int | None = None,
) -> OrderPayment:
    """
    Record money received and fan out the matching Income row.

    Accepted on completed orders too; the status stays ORDER_COMPLETED.
    """
    amount = parse_cents(amount_cents, "amount_cents", allow_zero=False)
    mode = parse_enum(PaymentMode, payment_mode, "payment_mode")
    to = parse_enum(PaymentTo, payment_to or PaymentTo.ORGANIZATION_BANK, "payment_to")
    paid_dt = parse_datetime(paid_at, "paid_at")
    ref = optional_text(reference_number, "reference_number", max_length=128)
    paid_to = optional_text(paid_to_user, "paid_to_user", max_length=128)

    def _op() -> OrderPayment:
        order = _get_order(order_id, lock=True)
        _ensure_mutable(order)

        payment = OrderPayment(
            order_id=order.id,
            amount_cents=amount,
            payment_mode=mode,
            payment_to=to,
            paid_to_user=paid_to,
            reference_number=ref,
            paid_at=paid_dt or utcnow(),
            created_by_user_id=user_id,
        )
        db.session.add(payment)
        db.session.flush()

        create_income_for_payment(order, payment)
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.PAYMENT_RECEIVED,
            performed_by=user_id,
            payload={
                "payment_id": payment.id,
                "amount_cents": amount,
                "payment_mode": mode,
                "payment_to": to,
                "reference_number": ref,
                "total_paid_cents": get_total_paid_cents(order.id),
            },
            description=f"Payment of {amount} received via {mode.value}",
        )
        refresh_order_status(order, actor_user_id=user_id)
        return payment

    return run_in_transaction(_op)


def update_payment(
    *,
    payment_id: int,
    amount_cents=None,
    payment_mode: PaymentMode | str | None = None,
    payment_to: PaymentTo | str | None = None,
    paid_to_user: str | None = None,
    reference_number: str | None = None,
    paid_at: datetime | str | None = None,
    user_id: int | None = None,
) -> OrderPayment:
    changes_in = {}
    if amount_cents is not None:
        changes_in["amount_cents"] = parse_cents(amount_cents, "amount_cents", allow_zero=False)
    if payment_mode is not None:
        changes_in["payment_mode"] = parse_enum(PaymentMode, payment_mode, "payment_mode")
    if payment_to is not None:
        changes_in["payment_to"] = parse_enum(PaymentTo, payment_to, "payment_to")
    if paid_to_user is not None:
        changes_in["paid_to_user"] = optional_text(paid_to_user, "paid_to_user", max_length=128)
    if reference_number is not None:
        changes_in["reference_number"] = optional_text(reference_number, "reference_number", max_length=128)
    if paid_at is not None:
        changes_in["paid_at"] = parse_datetime(paid_at, "paid_at")

    def _op() -> OrderPayment:
        order = _get_order(_get_payment(payment_id).order_id, lock=True)
        _ensure_mutable(order)
        payment = _get_payment(payment_id)

        changes = {}
        for field, value in changes_in.items():
            old = getattr(payment, field)
            if old != value:
                changes[field] = {"old": old, "new": value}
                setattr(payment, field, value)
        if not changes:
            return payment

        db.session.flush()
        sync_income_for_payment(order, payment)
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.PAYMENT_UPDATED,
            performed_by=user_id,
            payload={"payment_id": payment.id, "changes": changes},
            description=f"Payment {payment.id} updated ({', '.join(sorted(changes))})",
        )
        refresh_order_status(order, actor_user_id=user_id)
        return payment

    return run_in_transaction(_op)


def delete_payment(*, payment_id: int, user_id: int | None = None) -> Order:
    """Delete a payment; its Income row is kept and detached."""
    def _op() -> Order:
        order = _get_order(_get_payment(payment_id).order_id, lock=True)
        _ensure_mutable(order)
        payment = _get_payment(payment_id)

        detach_income_for_payment(payment.id)
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.PAYMENT_DELETED,
            performed_by=user_id,
            payload={
                "payment_id": payment.id,
                "amount_cents": payment.amount_cents,
                "payment_mode": payment.payment_mode,
                "reference_number": payment.reference_number,
            },
            description=f"Payment of {payment.amount_cents} via {payment.payment_mode.value} deleted",
        )
        db.session.delete(payment)
        db.session.flush()

        refresh_order_status(order, actor_user_id=user_id)
        return order

    return run_in_transaction(_op)
