"""
Tests for the manual order lock and the hold override.

Lock state is time-dependent; every test pins "now" explicitly instead of
relying on the wall clock.
"""

from datetime import datetime, timedelta

import pytest

from orderledger.errors import (
    AlreadyLocked,
    NotLocked,
    OrderNotCompleted,
    ReasonRequired,
    UnlockWindowExpired,
    ValidationError,
)
from orderledger.models import AuditEventType, LockAction, Order, OrderAuditEvent, OrderStatus
from orderledger.services import lock_service, order_service
from orderledger.services.lock_service import LockState


T0 = datetime(2026, 5, 1, 9, 30, 0)
WINDOW = timedelta(days=7)


def _reload(db_session, order_id):
    db_session.expire_all()
    return db_session.get(Order, order_id)


def _event_types(db_session, order_id):
    rows = db_session.query(OrderAuditEvent).filter_by(order_id=order_id).order_by(OrderAuditEvent.id).all()
    return [r.event_type for r in rows]


# =============================================================================
# LOCK / UNLOCK
# =============================================================================

class TestLockTransitions:
    """UNLOCKED -> LOCKED -> UNLOCKED, and the permanent state."""

    def test_lock_sets_window(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        order = _reload(db_session, completed_order.id)
        assert order.is_locked is True
        assert order.locked_at == T0
        assert order.locked_by_user_id == admin_user.id
        assert order.can_unlock_until == T0 + WINDOW
        assert lock_service.lock_state(order, now=T0) is LockState.LOCKED
        assert AuditEventType.ORDER_LOCKED in _event_types(db_session, order.id)

    def test_lock_then_unlock_restores_unlocked(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)
        lock_service.unlock_order(
            order_id=completed_order.id, user_id=admin_user.id, reason="Wrong discount",
            now=T0 + timedelta(days=2),
        )

        order = _reload(db_session, completed_order.id)
        assert lock_service.lock_state(order) is LockState.UNLOCKED
        assert order.locked_at is None
        assert order.locked_by_user_id is None
        assert order.can_unlock_until is None
        assert AuditEventType.ORDER_UNLOCKED in _event_types(db_session, order.id)

    def test_unlock_at_window_end_is_allowed(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        lock_service.unlock_order(
            order_id=completed_order.id, user_id=admin_user.id, reason="Late fix", now=T0 + WINDOW
        )

        assert _reload(db_session, completed_order.id).is_locked is False

    def test_unlock_after_window_raises(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)
        late = T0 + WINDOW + timedelta(seconds=1)

        with pytest.raises(UnlockWindowExpired):
            lock_service.unlock_order(order_id=completed_order.id, user_id=admin_user.id, reason="Too late", now=late)

        order = _reload(db_session, completed_order.id)
        assert order.is_locked is True
        assert lock_service.lock_state(order, now=late) is LockState.PERMANENTLY_LOCKED

    def test_expired_window_wins_over_missing_reason(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        with pytest.raises(UnlockWindowExpired):
            lock_service.unlock_order(
                order_id=completed_order.id, user_id=admin_user.id, reason="", now=T0 + timedelta(days=30)
            )

    def test_lock_twice_raises(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        with pytest.raises(AlreadyLocked):
            lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

    def test_lock_incomplete_order_raises(self, db_session, admin_user, lot, order):
        order_service.add_item(
            order_id=order.id, processed_good_id=lot.id, quantity=1, unit_price_cents=100, user_id=admin_user.id
        )

        with pytest.raises(OrderNotCompleted) as exc_info:
            lock_service.lock_order(order_id=order.id, user_id=admin_user.id)

        assert exc_info.value.details["status"] == OrderStatus.READY_FOR_PAYMENT.value
        assert _reload(db_session, order.id).is_locked is False

    def test_lock_cancelled_order_raises(self, db_session, admin_user, order):
        order_service.cancel_order(order_id=order.id, user_id=admin_user.id)

        with pytest.raises(OrderNotCompleted):
            lock_service.lock_order(order_id=order.id, user_id=admin_user.id)

    def test_unlock_requires_lock(self, db_session, admin_user, completed_order):
        with pytest.raises(NotLocked):
            lock_service.unlock_order(order_id=completed_order.id, user_id=admin_user.id, reason="x")

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_unlock_requires_reason(self, db_session, admin_user, completed_order, reason):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        with pytest.raises(ReasonRequired):
            lock_service.unlock_order(
                order_id=completed_order.id, user_id=admin_user.id, reason=reason, now=T0 + timedelta(hours=1)
            )

        assert _reload(db_session, completed_order.id).is_locked is True

    def test_overlong_unlock_reason_rejected(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        with pytest.raises(ValidationError):
            lock_service.unlock_order(
                order_id=completed_order.id, user_id=admin_user.id, reason="x" * 400, now=T0 + timedelta(hours=1)
            )

        assert _reload(db_session, completed_order.id).is_locked is True
        assert AuditEventType.ORDER_UNLOCKED not in _event_types(db_session, completed_order.id)

    def test_long_unlock_reason_kept_whole_in_audit(self, db_session, admin_user, completed_order):
        reason = "r" * lock_service.REASON_MAX_LENGTH
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        lock_service.unlock_order(
            order_id=completed_order.id, user_id=admin_user.id, reason=reason, now=T0 + timedelta(hours=1)
        )

        event = (
            db_session.query(OrderAuditEvent)
            .filter_by(order_id=completed_order.id, event_type=AuditEventType.ORDER_UNLOCKED)
            .one()
        )
        assert event.description.endswith(reason)


class TestLockHistory:
    """Lock events are appended and listed newest first."""

    def test_history_newest_first(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)
        lock_service.unlock_order(
            order_id=completed_order.id, user_id=admin_user.id, reason="Typo in name", now=T0 + timedelta(hours=1)
        )
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0 + timedelta(hours=2))

        history = lock_service.get_lock_history(completed_order.id)

        assert [h["action"] for h in history] == [LockAction.LOCK.value, LockAction.UNLOCK.value, LockAction.LOCK.value]
        assert history[1]["unlock_reason"] == "Typo in name"
        assert history[0]["performed_by_name"] == "Asha Admin"

    def test_permanently_locked_listing(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id, now=T0)

        assert lock_service.list_permanently_locked(now=T0 + timedelta(days=1)) == []
        expired = lock_service.list_permanently_locked(now=T0 + WINDOW + timedelta(minutes=1))
        assert [o.id for o in expired] == [completed_order.id]


# =============================================================================
# HOLD
# =============================================================================

class TestHold:
    """Hold overrides the computed status while active."""

    def test_hold_on_fully_paid_order(self, db_session, admin_user, completed_order):
        completed_at = completed_order.completed_at

        lock_service.place_hold(order_id=completed_order.id, user_id=admin_user.id, reason="Quality check")
        order = _reload(db_session, completed_order.id)
        assert order.status is OrderStatus.HOLD
        assert order.hold_reason == "Quality check"

        lock_service.remove_hold(order_id=completed_order.id, user_id=admin_user.id)
        order = _reload(db_session, completed_order.id)
        assert order.status is OrderStatus.ORDER_COMPLETED
        assert order.hold_reason is None
        assert order.completed_at == completed_at

        types = _event_types(db_session, order.id)
        assert AuditEventType.HOLD_PLACED in types
        assert AuditEventType.HOLD_REMOVED in types

    def test_hold_requires_reason(self, db_session, admin_user, order):
        with pytest.raises(ReasonRequired):
            lock_service.place_hold(order_id=order.id, user_id=admin_user.id, reason=" ")

    def test_hold_twice_rejected(self, db_session, admin_user, order):
        lock_service.place_hold(order_id=order.id, user_id=admin_user.id, reason="Awaiting address")

        with pytest.raises(ValidationError):
            lock_service.place_hold(order_id=order.id, user_id=admin_user.id, reason="Again")

    def test_remove_hold_when_not_held(self, db_session, admin_user, order):
        with pytest.raises(ValidationError):
            lock_service.remove_hold(order_id=order.id, user_id=admin_user.id)

    def test_hold_is_independent_of_lock(self, db_session, admin_user, completed_order):
        lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id)

        lock_service.place_hold(order_id=completed_order.id, user_id=admin_user.id, reason="Dispute")

        order = _reload(db_session, completed_order.id)
        assert order.is_locked is True
        assert order.status is OrderStatus.HOLD

    def test_held_order_cannot_be_locked(self, db_session, admin_user, completed_order):
        lock_service.place_hold(order_id=completed_order.id, user_id=admin_user.id, reason="Dispute")

        with pytest.raises(OrderNotCompleted):
            lock_service.lock_order(order_id=completed_order.id, user_id=admin_user.id)

    def test_overlong_hold_reason_rejected(self, db_session, admin_user, order):
        with pytest.raises(ValidationError):
            lock_service.place_hold(order_id=order.id, user_id=admin_user.id, reason="h" * 256)

        assert _reload(db_session, order.id).is_on_hold is False

    def test_cancelled_order_hold_cannot_be_removed(self, db_session, admin_user, order):
        lock_service.place_hold(order_id=order.id, user_id=admin_user.id, reason="Customer unreachable")
        order_service.cancel_order(order_id=order.id, user_id=admin_user.id)

        with pytest.raises(ValidationError):
            lock_service.remove_hold(order_id=order.id, user_id=admin_user.id)

        refreshed = _reload(db_session, order.id)
        assert refreshed.status is OrderStatus.CANCELLED
        assert refreshed.is_on_hold is True
        assert AuditEventType.HOLD_REMOVED not in _event_types(db_session, order.id)
