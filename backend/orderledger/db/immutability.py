"""
ORM-level append-only enforcement.

Ledger and audit tables are written once per business event and never
changed afterwards. SQLAlchemy fires before_update / before_delete before
any SQL reaches the database; the listeners here turn such attempts into
ImmutableRecordError so the surrounding transaction aborts.

Protected entities:

Entity            | Why
------------------|-----------------------------------------------
StockMovement     | Stock balance is the replay of these rows
InventoryChange   | Trail of finished-good counter changes
OrderAuditEvent   | Order history
OrderLockEvent    | Lock/unlock history

Bulk Core statements (table.delete()) bypass the ORM and therefore these
listeners; they are used only by maintenance commands and test fixtures.
"""

from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..errors import ImmutableRecordError

logger = logging.getLogger(__name__)


def _protected_models():
    from ..models import StockMovement, InventoryChange, OrderAuditEvent, OrderLockEvent

    return (StockMovement, InventoryChange, OrderAuditEvent, OrderLockEvent)


def _block_update(mapper, connection, target):
    session = object_session(target)
    # before_update also fires for rows that are merely flagged dirty
    if session is not None and not session.is_modified(target, include_collections=False):
        return

    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": entity_type, "entity_id": target.id, "operation": "UPDATE"},
    )
    raise ImmutableRecordError(entity_type, target.id, "UPDATE")


def _block_delete(mapper, connection, target):
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={"entity_type": entity_type, "entity_id": target.id, "operation": "DELETE"},
    )
    raise ImmutableRecordError(entity_type, target.id, "DELETE")


def register_immutability_listeners() -> None:
    """
    Register append-only listeners on every protected model.

    Idempotent: create_app may run more than once per process (tests).
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _block_update):
            event.listen(model, "before_update", _block_update)
        if not event.contains(model, "before_delete", _block_delete):
            event.listen(model, "before_delete", _block_delete)

