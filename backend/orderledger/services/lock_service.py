# Overview: Service-layer operations for the manual order lock window and hold override.

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..errors import (
    AlreadyLocked,
    NotLocked,
    OrderNotCompleted,
    OrderNotFound,
    ReasonRequired,
    UnlockWindowExpired,
    ValidationError,
)
from ..models import AuditEventType, LockAction, Order, OrderLockEvent, OrderStatus
from ..time_utils import to_utc_z, utcnow
from ..validation import require_text
from .audit_service import log_order_event, resolve_user_name
from .concurrency import lock_for_update, run_in_transaction
from .status_service import compute_order_status, refresh_order_status
"""
Order Lock Invariants (authoritative)

States:
    UNLOCKED            is_locked = False
    LOCKED              is_locked = True and now <= can_unlock_until
    PERMANENTLY_LOCKED  is_locked = True and now >  can_unlock_until

Transitions:
- lock:   UNLOCKED -> LOCKED, only when the RECOMPUTED status is
          ORDER_COMPLETED (the stored column may lag; it is synced first).
          Sets locked_at = now, can_unlock_until = now + unlock window.
- unlock: LOCKED -> UNLOCKED, only while now <= can_unlock_until and with a
          non-empty reason. Clears every lock field.
- PERMANENTLY_LOCKED is reached through time, never by an action, and has no
  outgoing transition. Expiry is evaluated lazily on the next attempt.

Checks run in a fixed order so the reported error is deterministic:
    lock:   not found -> already locked -> not completed
    unlock: not found -> not locked -> window expired -> reason required

Every transition appends an OrderLockEvent and an audit event in the same
transaction.

Hold is independent of the lock state. While active it wins the status
priority (HOLD over ORDER_COMPLETED); placing and removing it are audited and
followed by a status refresh.
"""

logger = logging.getLogger(__name__)

# Matches OrderLockEvent.unlock_reason and Order.hold_reason
REASON_MAX_LENGTH = 255


class LockState(str, enum.Enum):
    UNLOCKED = "UNLOCKED"
    LOCKED = "LOCKED"
    PERMANENTLY_LOCKED = "PERMANENTLY_LOCKED"


def unlock_window() -> timedelta:
    return timedelta(days=current_app.config.get("ORDER_UNLOCK_WINDOW_DAYS", 7))


def lock_state(order: Order, now: datetime | None = None) -> LockState:
    if not order.is_locked:
        return LockState.UNLOCKED
    now = now or utcnow()
    if order.can_unlock_until is not None and now > order.can_unlock_until:
        return LockState.PERMANENTLY_LOCKED
    return LockState.LOCKED


def _get_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def lock_order(*, order_id: int, user_id: int, now: datetime | None = None) -> Order:
    def _op() -> Order:
        ts = now or utcnow()
        order = _get_order(order_id, lock=True)

        if order.is_locked:
            raise AlreadyLocked(
                f"Order {order.order_number} is already locked",
                details={"order_id": order.id, "can_unlock_until": to_utc_z(order.can_unlock_until)},
            )

        current = compute_order_status(order)
        if order.status is OrderStatus.CANCELLED or current.status is not OrderStatus.ORDER_COMPLETED:
            shown = OrderStatus.CANCELLED if order.status is OrderStatus.CANCELLED else current.status
            raise OrderNotCompleted(
                f"Only completed orders can be locked. Current status: {shown.value}",
                details={"order_id": order.id, "status": shown.value},
            )
        if order.status is not OrderStatus.ORDER_COMPLETED:
            refresh_order_status(order, actor_user_id=user_id, now=ts)

        order.is_locked = True
        order.locked_at = ts
        order.locked_by_user_id = user_id
        order.can_unlock_until = ts + unlock_window()

        db.session.add(OrderLockEvent(
            order_id=order.id,
            action=LockAction.LOCK,
            performed_by_user_id=user_id,
            performed_at=ts,
        ))
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.ORDER_LOCKED,
            performed_by=user_id,
            payload={"locked_at": ts, "can_unlock_until": order.can_unlock_until},
            description=f"Order locked; can be unlocked until {to_utc_z(order.can_unlock_until)}",
            performed_at=ts,
        )
        logger.info("Order %s locked by user %s", order.order_number, user_id)
        return order

    return run_in_transaction(_op)


def unlock_order(*, order_id: int, user_id: int, reason: str | None, now: datetime | None = None) -> Order:
    def _op() -> Order:
        ts = now or utcnow()
        order = _get_order(order_id, lock=True)

        if not order.is_locked:
            raise NotLocked(f"Order {order.order_number} is not locked", details={"order_id": order.id})

        if order.can_unlock_until is not None and ts > order.can_unlock_until:
            raise UnlockWindowExpired(
                "Unlock window has expired. Order is permanently locked.",
                details={"order_id": order.id, "can_unlock_until": to_utc_z(order.can_unlock_until)},
            )

        if reason is None or not reason.strip():
            raise ReasonRequired("Unlock reason is required", details={"order_id": order.id})
        reason_text = require_text(reason, "reason", max_length=REASON_MAX_LENGTH)

        previous = {"locked_at": order.locked_at, "can_unlock_until": order.can_unlock_until}
        order.is_locked = False
        order.locked_at = None
        order.locked_by_user_id = None
        order.can_unlock_until = None

        db.session.add(OrderLockEvent(
            order_id=order.id,
            action=LockAction.UNLOCK,
            performed_by_user_id=user_id,
            performed_at=ts,
            unlock_reason=reason_text,
        ))
        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.ORDER_UNLOCKED,
            performed_by=user_id,
            payload={"reason": reason_text, **previous},
            description=f"Order unlocked. Reason: {reason_text}",
            performed_at=ts,
        )
        logger.info("Order %s unlocked by user %s", order.order_number, user_id)
        return order

    return run_in_transaction(_op)


def place_hold(*, order_id: int, user_id: int | None, reason: str | None, now: datetime | None = None) -> Order:
    def _op() -> Order:
        ts = now or utcnow()
        order = _get_order(order_id, lock=True)

        if reason is None or not reason.strip():
            raise ReasonRequired("Hold reason is required", details={"order_id": order.id})
        reason_text = require_text(reason, "reason", max_length=REASON_MAX_LENGTH)
        if order.status is OrderStatus.CANCELLED:
            raise ValidationError("Cannot hold a cancelled order", details={"order_id": order.id})
        if order.is_on_hold:
            raise ValidationError(f"Order {order.order_number} is already on hold", details={"order_id": order.id})

        order.is_on_hold = True
        order.hold_reason = reason_text
        order.held_at = ts
        order.held_by_user_id = user_id

        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.HOLD_PLACED,
            performed_by=user_id,
            payload={"reason": order.hold_reason, "held_at": ts},
            description=f"Order placed on hold. Reason: {order.hold_reason}",
            performed_at=ts,
        )
        refresh_order_status(order, actor_user_id=user_id, now=ts)
        return order

    return run_in_transaction(_op)


def remove_hold(*, order_id: int, user_id: int | None, now: datetime | None = None) -> Order:
    def _op() -> Order:
        ts = now or utcnow()
        order = _get_order(order_id, lock=True)

        if order.status is OrderStatus.CANCELLED:
            raise ValidationError("Cannot change the hold on a cancelled order", details={"order_id": order.id})
        if not order.is_on_hold:
            raise ValidationError(f"Order {order.order_number} is not on hold", details={"order_id": order.id})

        previous_reason = order.hold_reason
        order.is_on_hold = False
        order.hold_reason = None
        order.held_at = None
        order.held_by_user_id = None

        log_order_event(
            order_id=order.id,
            event_type=AuditEventType.HOLD_REMOVED,
            performed_by=user_id,
            payload={"previous_reason": previous_reason},
            description="Hold removed from order",
            performed_at=ts,
        )
        refresh_order_status(order, actor_user_id=user_id, now=ts)
        return order

    return run_in_transaction(_op)


def get_lock_history(order_id: int) -> list[dict]:
    """Lock/unlock events, newest first, with performer names."""
    _get_order(order_id)
    rows = (
        db.session.query(OrderLockEvent)
        .filter(OrderLockEvent.order_id == order_id)
        .order_by(OrderLockEvent.performed_at.desc(), OrderLockEvent.id.desc())
        .all()
    )
    result = []
    for ev in rows:
        item = ev.to_dict()
        item["performed_by_name"] = resolve_user_name(ev.performed_by_user_id)
        result.append(item)
    return result


def list_permanently_locked(now: datetime | None = None) -> list[Order]:
    """Orders whose unlock window has passed. Read-only; nothing is written."""
    now = now or utcnow()
    return (
        db.session.query(Order)
        .filter(
            Order.is_locked.is_(True),
            Order.can_unlock_until.isnot(None),
            Order.can_unlock_until < now,
        )
        .order_by(Order.can_unlock_until.asc(), Order.id.asc())
        .all()
    )
