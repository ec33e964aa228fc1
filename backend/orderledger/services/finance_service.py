# Overview: Service-layer operations for the finance fan-out of order payments.

from __future__ import annotations

from ..extensions import db
from ..models import Income, Order, OrderPayment, PaymentMode

# Finance module vocabulary for payment methods
PAYMENT_METHOD_MAP = {
    PaymentMode.CASH: "cash",
    PaymentMode.UPI: "upi",
    PaymentMode.BANK: "bank_transfer",
}


def _payment_method(mode: PaymentMode) -> str:
    return PAYMENT_METHOD_MAP.get(mode, "bank_transfer")


def _income_reason(order: Order) -> str:
    reason = f"Payment for Order {order.order_number}"
    if order.customer_name:
        reason += f" - Customer: {order.customer_name}"
    return reason


def _income_description(order: Order, payment: OrderPayment) -> str:
    description = f"Auto-generated from Order Payment: {order.order_number}"
    if payment.reference_number:
        description += f" | Transaction: {payment.reference_number}"
    return description


def create_income_for_payment(order: Order, payment: OrderPayment) -> Income:
    """
    One Income row per order payment, tagged from_sales_payment.

    One-way: order logic never reads these rows back. No commit.
    """
    income = Income(
        amount_cents=payment.amount_cents,
        source=order.customer_name or "Sales",
        reason=_income_reason(order),
        description=_income_description(order, payment),
        payment_method=_payment_method(payment.payment_mode),
        payment_to=payment.payment_to.value,
        paid_to_user=payment.paid_to_user,
        payment_reference=payment.reference_number,
        received_at=payment.paid_at,
        from_sales_payment=True,
        order_payment_id=payment.id,
        order_id=order.id,
        order_number=order.order_number,
    )
    db.session.add(income)
    db.session.flush()
    return income


def get_income_for_payment(payment_id: int) -> Income | None:
    return (
        db.session.query(Income)
        .filter(Income.order_payment_id == payment_id, Income.from_sales_payment.is_(True))
        .first()
    )


def sync_income_for_payment(order: Order, payment: OrderPayment) -> Income | None:
    """Mirror an edited payment onto its income row. Never creates one."""
    income = get_income_for_payment(payment.id)
    if income is None:
        return None
    income.amount_cents = payment.amount_cents
    income.payment_method = _payment_method(payment.payment_mode)
    income.payment_to = payment.payment_to.value
    income.paid_to_user = payment.paid_to_user
    income.payment_reference = payment.reference_number
    income.received_at = payment.paid_at
    income.description = _income_description(order, payment)
    db.session.flush()
    return income


def detach_income_for_payment(payment_id: int) -> Income | None:
    """Keep the finance row but clear its link before the payment is deleted."""
    income = get_income_for_payment(payment_id)
    if income is None:
        return None
    income.order_payment_id = None
    db.session.flush()
    return income


def list_sales_income(order_id: int) -> list[Income]:
    return (
        db.session.query(Income)
        .filter(Income.order_id == order_id, Income.from_sales_payment.is_(True))
        .order_by(Income.received_at.asc(), Income.id.asc())
        .all()
    )
