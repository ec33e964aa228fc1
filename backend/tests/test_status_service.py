"""
Tests for order status calculation.

The calculator is a pure function of order facts; the refresh step is
covered through the order service in test_order_service.py.
"""

import pytest

from orderledger.models import OrderStatus, PaymentStatus
from orderledger.services.status_service import calculate_payment_status, calculate_status


def _status(**overrides):
    facts = {
        "has_items": True,
        "is_on_hold": False,
        "total_cents": 1000,
        "discount_cents": 0,
        "paid_cents": 0,
    }
    facts.update(overrides)
    return calculate_status(**facts)


# =============================================================================
# PAYMENT STATUS
# =============================================================================

class TestPaymentStatus:
    """Payment status thresholds against the net total."""

    @pytest.mark.parametrize("net,paid,expected", [
        (1000, 0, PaymentStatus.READY_FOR_PAYMENT),
        (1000, 1, PaymentStatus.PARTIAL_PAYMENT),
        (1000, 998, PaymentStatus.PARTIAL_PAYMENT),
        (1000, 999, PaymentStatus.FULL_PAYMENT),
        (1000, 1000, PaymentStatus.FULL_PAYMENT),
        (1000, 1500, PaymentStatus.FULL_PAYMENT),
    ])
    def test_thresholds(self, net, paid, expected):
        assert calculate_payment_status(net, paid) is expected

    def test_zero_net_total_is_never_fully_paid(self):
        """An empty or fully-discounted order cannot be completed by default."""
        assert calculate_payment_status(0, 0) is PaymentStatus.READY_FOR_PAYMENT

    def test_negative_net_total_is_never_fully_paid(self):
        """Discount left above total after items were removed."""
        assert calculate_payment_status(-200, 0) is PaymentStatus.READY_FOR_PAYMENT
        assert calculate_payment_status(-200, 50) is PaymentStatus.READY_FOR_PAYMENT

    def test_tolerance_is_configurable(self):
        assert calculate_payment_status(1000, 990, tolerance_cents=10) is PaymentStatus.FULL_PAYMENT
        assert calculate_payment_status(1000, 999, tolerance_cents=0) is PaymentStatus.PARTIAL_PAYMENT


# =============================================================================
# ORDER STATUS
# =============================================================================

class TestOrderStatus:
    """Strict priority: HOLD > ORDER_COMPLETED > READY_FOR_PAYMENT > ORDER_CREATED."""

    def test_empty_order_is_created(self):
        result = _status(has_items=False, total_cents=0)
        assert result.status is OrderStatus.ORDER_CREATED
        assert result.payment_status is PaymentStatus.READY_FOR_PAYMENT

    def test_order_with_items_is_ready_for_payment(self):
        assert _status().status is OrderStatus.READY_FOR_PAYMENT

    def test_partial_payment_stays_ready_for_payment(self):
        result = _status(paid_cents=400)
        assert result.status is OrderStatus.READY_FOR_PAYMENT
        assert result.payment_status is PaymentStatus.PARTIAL_PAYMENT

    def test_discounted_full_payment_completes(self):
        result = _status(total_cents=1000, discount_cents=200, paid_cents=800)
        assert result.status is OrderStatus.ORDER_COMPLETED
        assert result.payment_status is PaymentStatus.FULL_PAYMENT

    def test_hold_wins_over_completed(self):
        result = _status(is_on_hold=True, paid_cents=1000)
        assert result.status is OrderStatus.HOLD
        assert result.payment_status is PaymentStatus.FULL_PAYMENT

    def test_hold_on_empty_order(self):
        assert _status(is_on_hold=True, has_items=False, total_cents=0).status is OrderStatus.HOLD

    def test_fully_discounted_order_is_not_completed(self):
        result = _status(total_cents=500, discount_cents=500, paid_cents=0)
        assert result.status is OrderStatus.READY_FOR_PAYMENT
        assert result.payment_status is PaymentStatus.READY_FOR_PAYMENT

    def test_calculator_never_returns_cancelled(self):
        seen = {
            _status(has_items=h, is_on_hold=o, paid_cents=p).status
            for h in (True, False)
            for o in (True, False)
            for p in (0, 500, 1000)
        }
        assert OrderStatus.CANCELLED not in seen
