# Overview: Order status calculation and the explicit post-mutation refresh step.

"""
Order Status Rules (authoritative)

net_total = total - discount

Payment status:
    FULL_PAYMENT       paid >= net_total - tolerance AND net_total > 0
    PARTIAL_PAYMENT    0 < paid < net_total
    READY_FOR_PAYMENT  otherwise

Order status, strict priority:
    HOLD               order is on hold (wins over everything)
    ORDER_COMPLETED    payment status is FULL_PAYMENT
    READY_FOR_PAYMENT  order has items
    ORDER_CREATED      no items yet

CANCELLED is terminal and set only by order_service.cancel_order; the
refresh step leaves cancelled orders alone.

completed_at is stamped the first time an order reaches ORDER_COMPLETED and
is never overwritten.

refresh_order_status is the single place status is written. It runs after
every item, payment, discount, and hold mutation inside the same
transaction, and audits STATUS_CHANGED / ORDER_COMPLETED transitions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import AuditEventType, Order, OrderItem, OrderPayment, OrderStatus, PaymentStatus
from ..time_utils import utcnow
from .audit_service import log_order_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusResult:
    status: OrderStatus
    payment_status: PaymentStatus


def calculate_payment_status(net_total_cents: int, paid_cents: int, tolerance_cents: int = 1) -> PaymentStatus:
    if net_total_cents > 0 and paid_cents >= net_total_cents - tolerance_cents:
        return PaymentStatus.FULL_PAYMENT
    if 0 < paid_cents < net_total_cents:
        return PaymentStatus.PARTIAL_PAYMENT
    return PaymentStatus.READY_FOR_PAYMENT


def calculate_status(
    *,
    has_items: bool,
    is_on_hold: bool,
    total_cents: int,
    discount_cents: int,
    paid_cents: int,
    tolerance_cents: int = 1,
) -> StatusResult:
    """Pure mapping of order facts to (status, payment_status). No I/O."""
    payment_status = calculate_payment_status(total_cents - discount_cents, paid_cents, tolerance_cents)

    if is_on_hold:
        status = OrderStatus.HOLD
    elif payment_status is PaymentStatus.FULL_PAYMENT:
        status = OrderStatus.ORDER_COMPLETED
    elif has_items:
        status = OrderStatus.READY_FOR_PAYMENT
    else:
        status = OrderStatus.ORDER_CREATED

    return StatusResult(status=status, payment_status=payment_status)


def get_total_paid_cents(order_id: int) -> int:
    paid = (
        db.session.query(func.coalesce(func.sum(OrderPayment.amount_cents), 0))
        .filter(OrderPayment.order_id == order_id)
        .scalar()
    )
    return int(paid or 0)


def _has_items(order_id: int) -> bool:
    return db.session.query(OrderItem.id).filter(OrderItem.order_id == order_id).first() is not None


def compute_order_status(order: Order) -> StatusResult:
    """Recalculate from current rows, ignoring the stored status column."""
    return calculate_status(
        has_items=_has_items(order.id),
        is_on_hold=bool(order.is_on_hold),
        total_cents=order.total_cents or 0,
        discount_cents=order.discount_cents or 0,
        paid_cents=get_total_paid_cents(order.id),
        tolerance_cents=current_app.config.get("PAYMENT_TOLERANCE_CENTS", 1),
    )


def refresh_order_status(
    order: Order,
    *,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> StatusResult:
    """
    Recompute and store status/payment_status; audit transitions.

    No commit: callers run this inside their own transaction.
    """
    if order.status is OrderStatus.CANCELLED:
        return StatusResult(status=order.status, payment_status=order.payment_status)

    now = now or utcnow()
    result = compute_order_status(order)
    old_status = order.status

    order.payment_status = result.payment_status

    if result.status is not old_status:
        order.status = result.status
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.STATUS_CHANGED,
            performed_by=actor_user_id,
            payload={"old_status": old_status, "new_status": result.status},
            description=f"Order status changed from {old_status.value} to {result.status.value}",
            performed_at=now,
        )
        logger.info("Order %s status %s -> %s", order.order_number, old_status.value, result.status.value)

        if result.status is OrderStatus.ORDER_COMPLETED and order.completed_at is None:
            order.completed_at = now
            log_order_event(
                order_id=order.id,
                event_type=AuditEventType.ORDER_COMPLETED,
                performed_by=actor_user_id,
                payload={"completed_at": now},
                description="Order completed (full payment received)",
                performed_at=now,
            )

    db.session.flush()
    return result
