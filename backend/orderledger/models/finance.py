from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Income(db.Model):
    """
    Finance income entry.

    Rows with from_sales_payment=True are generated from order payments and
    are read-only from the finance side; the link back to the payment is
    cleared (not cascaded) when the payment is deleted.
    """
    __tablename__ = "income"
    __table_args__ = (
        db.Index("ix_income_from_sales", "from_sales_payment"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    source = db.Column(db.String(255), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    payment_method = db.Column(db.String(32), nullable=False)
    payment_to = db.Column(db.String(32), nullable=True)
    paid_to_user = db.Column(db.String(128), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    from_sales_payment = db.Column(db.Boolean, nullable=False, default=False)
    order_payment_id = db.Column(db.Integer, db.ForeignKey("order_payments.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    order_number = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "source": self.source,
            "reason": self.reason,
            "description": self.description,
            "payment_method": self.payment_method,
            "payment_to": self.payment_to,
            "paid_to_user": self.paid_to_user,
            "payment_reference": self.payment_reference,
            "received_at": to_utc_z(self.received_at),
            "from_sales_payment": self.from_sales_payment,
            "order_payment_id": self.order_payment_id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
