# Overview: Service-layer operations for the order audit log; append and read only.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from ..extensions import db
from ..models import AuditEventType, Order, OrderAuditEvent, User
from ..errors import OrderNotFound
from ..time_utils import to_utc_z, utcnow
"""
Order Audit Log Invariants (authoritative)

- Append-only: one event per significant mutation, never updated or deleted
  (enforced by db/immutability.py).
- Events are written inside the same DB transaction as the mutation they
  record; if the mutation rolls back, so does the event.
- payload is self-contained: it records what changed, so the read path never
  re-derives history from the current state of other tables.
- Read path is newest-first and resolves the performer to a display name,
  falling back to "System".
"""

SYSTEM_PERFORMER_NAME = "System"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def log_order_event(
    *,
    order_id: int,
    event_type: AuditEventType | str,
    performed_by: int | None = None,
    payload: Optional[dict] = None,
    description: Optional[str] = None,
    performed_at: Optional[datetime] = None,
) -> OrderAuditEvent:
    """
    Append-only audit event.

    - No domain logic here.
    - No commit: the caller owns the transaction.
    """
    ev = OrderAuditEvent(
        order_id=order_id,
        event_type=AuditEventType(event_type),
        performed_by_user_id=performed_by,
        performed_at=performed_at or utcnow(),
        payload=_jsonable(payload) if payload is not None else None,
        description=description,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def resolve_user_name(user_id: int | None) -> str:
    """Display name for a performer: full name, email, username, else System."""
    if user_id is None:
        return SYSTEM_PERFORMER_NAME
    user = db.session.get(User, user_id)
    if user is None:
        return SYSTEM_PERFORMER_NAME
    return user.display_name or SYSTEM_PERFORMER_NAME


def get_order_audit_log(order_id: int) -> list[dict]:
    """All events for an order, newest first, with performer names resolved."""
    if db.session.get(Order, order_id) is None:
        raise OrderNotFound(order_id)

    rows = (
        db.session.query(OrderAuditEvent)
        .filter(OrderAuditEvent.order_id == order_id)
        .order_by(OrderAuditEvent.performed_at.desc(), OrderAuditEvent.id.desc())
        .all()
    )

    names: dict[int | None, str] = {}
    result = []
    for ev in rows:
        if ev.performed_by_user_id not in names:
            names[ev.performed_by_user_id] = resolve_user_name(ev.performed_by_user_id)
        item = ev.to_dict()
        item["performed_by_name"] = names[ev.performed_by_user_id]
        result.append(item)
    return result
