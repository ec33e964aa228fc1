"""
Tests for the retry/transaction helpers and for lost-update handling on lots.

A competing writer is simulated by committing an UPDATE on a second
connection after add_item has loaded the lot but before it flushes. The
lot's version_id_col turns the stale write into StaleDataError, and the
retry re-reads the lot and re-runs the availability check.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from orderledger.errors import InsufficientInventory, ValidationError
from orderledger.extensions import db
from orderledger.models import InventoryChange, ItemType, OrderItem, ProcessedGood, StockItem
from orderledger.services import concurrency, inventory_service, order_service


def _competing_deduction(good_id, quantity):
    """Commit a deduction from another connection, bumping the row version."""
    table = ProcessedGood.__table__
    with db.engine.begin() as conn:
        conn.execute(
            update(table)
            .where(table.c.id == good_id)
            .values(
                quantity_available=table.c.quantity_available - quantity,
                version_id=table.c.version_id + 1,
            )
        )


@pytest.fixture
def race_on_first_check(monkeypatch):
    """
    Patch the availability check add_item runs first so that, on its first
    call only, another writer takes stock from the lot.
    """
    calls = []

    def _install(competing_quantity):
        real = order_service.ensure_available

        def _racing(good, quantity):
            calls.append(good.quantity_available)
            if len(calls) == 1:
                _competing_deduction(good.id, competing_quantity)
            return real(good, quantity)

        monkeypatch.setattr(order_service, "ensure_available", _racing)
        monkeypatch.setattr(concurrency.time, "sleep", lambda _: None)
        return calls

    return _install


# =============================================================================
# RETRY HELPERS
# =============================================================================

class TestRunWithRetry:
    """run_with_retry / run_in_transaction behaviour on conflicts."""

    def test_stale_data_is_retried(self, db_session, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda _: None)
        attempts = []

        def _op():
            attempts.append(1)
            if len(attempts) == 1:
                raise StaleDataError("UPDATE statement on table 'processed_goods' expected to update 1 row(s)")
            return "ok"

        assert concurrency.run_with_retry(_op) == "ok"
        assert len(attempts) == 2

    def test_operational_error_exhausts_attempts(self, db_session, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda _: None)
        attempts = []

        def _op():
            attempts.append(1)
            raise OperationalError("UPDATE processed_goods", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            concurrency.run_with_retry(_op, attempts=3)
        assert len(attempts) == 3

    def test_domain_errors_are_not_retried(self, db_session):
        attempts = []

        def _op():
            attempts.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            concurrency.run_in_transaction(_op)
        assert len(attempts) == 1

    def test_failed_unit_of_work_is_rolled_back(self, db_session):
        def _op():
            db.session.add(StockItem(name="Sugar", item_type=ItemType.RAW_MATERIAL, lot_id="RM-LOT-900", unit="kg"))
            db.session.flush()
            raise ValidationError("abort after write")

        with pytest.raises(ValidationError):
            concurrency.run_in_transaction(_op)
        assert db_session.query(StockItem).count() == 0


# =============================================================================
# LOST UPDATES ON LOTS
# =============================================================================

class TestConcurrentDeduction:
    """A lost version race re-runs the availability check against fresh stock."""

    def test_retry_refuses_when_fresh_stock_is_short(self, db_session, make_lot, order, race_on_first_check):
        good = make_lot("10")
        calls = race_on_first_check(competing_quantity=8)

        with pytest.raises(InsufficientInventory) as exc:
            order_service.add_item(order_id=order.id, processed_good_id=good.id, quantity=5, unit_price_cents=100)

        # First check saw the stale counter, the retried one saw the other writer's result
        assert calls == [Decimal("10.000"), Decimal("2.000")]
        assert exc.value.details["available"] == "2.000"

        db_session.expire_all()
        assert db_session.get(ProcessedGood, good.id).quantity_available == Decimal("2.000")
        assert db_session.query(OrderItem).filter_by(order_id=order.id).count() == 0
        assert db_session.query(InventoryChange).filter_by(processed_good_id=good.id).count() == 0

    def test_retry_succeeds_against_fresh_stock(self, db_session, make_lot, order, race_on_first_check):
        good = make_lot("10")
        calls = race_on_first_check(competing_quantity=3)

        item = order_service.add_item(order_id=order.id, processed_good_id=good.id, quantity=5, unit_price_cents=100)

        assert len(calls) == 2
        db_session.expire_all()
        refreshed = db_session.get(ProcessedGood, good.id)
        assert refreshed.quantity_available == Decimal("2.000")
        assert refreshed.version_id == 3
        assert db_session.query(OrderItem).filter_by(order_id=order.id).count() == 1
        assert db_session.get(OrderItem, item.id).quantity == Decimal("5.000")

    def test_lot_is_never_overdrawn(self, db_session, make_lot, order, race_on_first_check):
        good = make_lot("5")
        race_on_first_check(competing_quantity=5)

        with pytest.raises(InsufficientInventory):
            order_service.add_item(order_id=order.id, processed_good_id=good.id, quantity=1, unit_price_cents=100)

        db_session.expire_all()
        assert inventory_service.get_processed_good_available(good.id) == Decimal("0.000")
