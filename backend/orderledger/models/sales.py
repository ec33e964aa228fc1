from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date, utcnow
from .types import QUANTITY_TYPE, enum_type


class OrderStatus(str, enum.Enum):
    ORDER_CREATED = "ORDER_CREATED"
    READY_FOR_PAYMENT = "READY_FOR_PAYMENT"
    HOLD = "HOLD"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    # Terminal; set only by an explicit cancellation, never by the calculator
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    READY_FOR_PAYMENT = "READY_FOR_PAYMENT"
    PARTIAL_PAYMENT = "PARTIAL_PAYMENT"
    FULL_PAYMENT = "FULL_PAYMENT"


class PaymentMode(str, enum.Enum):
    CASH = "Cash"
    UPI = "UPI"
    BANK = "Bank"


class PaymentTo(str, enum.Enum):
    ORGANIZATION_BANK = "organization_bank"
    OTHER_BANK_ACCOUNT = "other_bank_account"


class LockAction(str, enum.Enum):
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"


class AuditEventType(str, enum.Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ITEM_ADDED = "ITEM_ADDED"
    ITEM_UPDATED = "ITEM_UPDATED"
    ITEM_DELETED = "ITEM_DELETED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    STATUS_CHANGED = "STATUS_CHANGED"
    HOLD_PLACED = "HOLD_PLACED"
    HOLD_REMOVED = "HOLD_REMOVED"
    ORDER_LOCKED = "ORDER_LOCKED"
    ORDER_UNLOCKED = "ORDER_UNLOCKED"
    DISCOUNT_APPLIED = "DISCOUNT_APPLIED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    ORDER_CANCELLED = "ORDER_CANCELLED"


class Order(db.Model):
    """
    Sales order header.

    status and payment_status are derived by status_service.refresh_order_status
    after every item, payment, discount, and hold mutation; callers never set
    them directly. All amounts are in cents.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint("discount_cents >= 0", name="ck_orders_discount_non_negative"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)

    # Customer directory is external; keep a soft reference plus the name at order time
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    order_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    sold_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(enum_type(OrderStatus), nullable=False, default=OrderStatus.ORDER_CREATED, index=True)
    payment_status = db.Column(
        enum_type(PaymentStatus), nullable=False, default=PaymentStatus.READY_FOR_PAYMENT, index=True
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Manual hold
    is_on_hold = db.Column(db.Boolean, nullable=False, default=False)
    hold_reason = db.Column(db.String(255), nullable=True)
    held_at = db.Column(db.DateTime(timezone=True), nullable=True)
    held_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Manual lock with a finite unlock window
    is_locked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    can_unlock_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.id")
    payments = db.relationship("OrderPayment", back_populates="order", lazy=True, order_by="OrderPayment.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def net_total_cents(self) -> int:
        return self.total_cents - self.discount_cents

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "order_date": to_iso_date(self.order_date),
            "notes": self.notes,
            "sold_by_user_id": self.sold_by_user_id,
            "total_cents": self.total_cents,
            "discount_cents": self.discount_cents,
            "net_total_cents": self.net_total_cents,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "is_on_hold": self.is_on_hold,
            "hold_reason": self.hold_reason,
            "held_at": to_utc_z(self.held_at) if self.held_at else None,
            "held_by_user_id": self.held_by_user_id,
            "is_locked": self.is_locked,
            "locked_at": to_utc_z(self.locked_at) if self.locked_at else None,
            "locked_by_user_id": self.locked_by_user_id,
            "can_unlock_until": to_utc_z(self.can_unlock_until) if self.can_unlock_until else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Line item; inserting, updating, and deleting it moves finished-good inventory."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    processed_good_id = db.Column(db.Integer, db.ForeignKey("processed_goods.id"), nullable=False, index=True)

    # Snapshot of the lot at the time the item was added
    product_type = db.Column(db.String(128), nullable=False)
    unit = db.Column(db.String(16), nullable=False)

    quantity = db.Column(QUANTITY_TYPE, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", back_populates="items")
    processed_good = db.relationship("ProcessedGood")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "processed_good_id": self.processed_good_id,
            "product_type": self.product_type,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class OrderPayment(db.Model):
    """
    Money received against an order.

    Each payment fans out one Income row (finance_service); the income row is
    kept in sync on update and detached on delete, never read back here.
    """
    __tablename__ = "order_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_order_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_mode = db.Column(enum_type(PaymentMode, length=16), nullable=False)
    payment_to = db.Column(enum_type(PaymentTo), nullable=False, default=PaymentTo.ORGANIZATION_BANK)
    paid_to_user = db.Column(db.String(128), nullable=True)
    reference_number = db.Column(db.String(128), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "payment_mode": self.payment_mode.value,
            "payment_to": self.payment_to.value,
            "paid_to_user": self.paid_to_user,
            "reference_number": self.reference_number,
            "paid_at": to_utc_z(self.paid_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLockEvent(db.Model):
    """
    Append-only lock/unlock trail.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "order_lock_events"
    __table_args__ = (
        db.Index("ix_order_lock_events_order_performed", "order_id", "performed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    action = db.Column(enum_type(LockAction, length=8), nullable=False)
    performed_by_user_id = db.Column(db.Integer, nullable=False)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    # Required for UNLOCK only
    unlock_reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "action": self.action.value,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_at": to_utc_z(self.performed_at),
            "unlock_reason": self.unlock_reason,
        }


class OrderAuditEvent(db.Model):
    """
    Append-only order event trail.

    payload holds enough structured data to show what changed without
    re-deriving it from other tables. performed_by_user_id is a soft
    reference so history survives user removal.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "order_audit_events"
    __table_args__ = (
        db.Index("ix_order_audit_events_order_performed", "order_id", "performed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    event_type = db.Column(enum_type(AuditEventType), nullable=False, index=True)
    performed_by_user_id = db.Column(db.Integer, nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    payload = db.Column(db.JSON, nullable=True)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "event_type": self.event_type.value,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_at": to_utc_z(self.performed_at),
            "payload": self.payload,
            "description": self.description,
        }
