from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date, utcnow
from .types import QUANTITY_TYPE, enum_type


class ItemType(str, enum.Enum):
    RAW_MATERIAL = "raw_material"
    RECURRING_PRODUCT = "recurring_product"


class MovementKind(str, enum.Enum):
    IN = "IN"
    CONSUMPTION = "CONSUMPTION"
    WASTE = "WASTE"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"

    @property
    def is_inbound(self) -> bool:
        return self in INBOUND_KINDS


INBOUND_KINDS = frozenset({MovementKind.IN, MovementKind.TRANSFER_IN})
OUTBOUND_KINDS = frozenset({MovementKind.CONSUMPTION, MovementKind.WASTE, MovementKind.TRANSFER_OUT})


class ReferenceType(str, enum.Enum):
    WASTE_RECORD = "waste_record"
    TRANSFER_RECORD = "transfer_record"
    PRODUCTION_BATCH = "production_batch"
    INITIAL_INTAKE = "initial_intake"


class WasteType(str, enum.Enum):
    RECYCLE = "recycle"
    FULL_WASTE = "full_waste"


class InventoryOperation(str, enum.Enum):
    ORDER_ITEM_ADDED = "ORDER_ITEM_ADDED"
    ORDER_ITEM_QUANTITY_INCREASED = "ORDER_ITEM_QUANTITY_INCREASED"
    ORDER_ITEM_QUANTITY_DECREASED = "ORDER_ITEM_QUANTITY_DECREASED"
    ORDER_ITEM_PRODUCT_CHANGED_RESTORE = "ORDER_ITEM_PRODUCT_CHANGED_RESTORE"
    ORDER_ITEM_PRODUCT_CHANGED_DEDUCT = "ORDER_ITEM_PRODUCT_CHANGED_DEDUCT"
    ORDER_ITEM_DELETED = "ORDER_ITEM_DELETED"
    ORDER_CANCELLED = "ORDER_CANCELLED"


class StockItem(db.Model):
    """
    Raw material or recurring product lot (ledger-accounted).

    The catalog itself belongs to the production/procurement side; this
    table only identifies what a StockMovement refers to.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.UniqueConstraint("item_type", "lot_id", name="uq_stock_items_type_lot"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(enum_type(ItemType), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    lot_id = db.Column(db.String(64), nullable=False)
    unit = db.Column(db.String(16), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<StockItem id={self.id} type={self.item_type.value} lot_id={self.lot_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type.value,
            "name": self.name,
            "lot_id": self.lot_id,
            "unit": self.unit,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Immutable ledger entry for a raw material / recurring product.

    Quantity is always positive; direction comes from movement_kind.
    Balance = signed sum of movements with effective_date <= as_of.
    UPDATE and DELETE are rejected by the ORM listeners in db/immutability.py.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_item_effective", "stock_item_id", "effective_date", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_type = db.Column(enum_type(ItemType), nullable=False)
    stock_item_id = db.Column(db.Integer, db.ForeignKey("stock_items.id"), nullable=False, index=True)
    lot_reference = db.Column(db.String(64), nullable=True, index=True)

    movement_kind = db.Column(enum_type(MovementKind, length=16), nullable=False, index=True)
    quantity = db.Column(QUANTITY_TYPE, nullable=False)
    unit = db.Column(db.String(16), nullable=False)

    # Business date vs system time
    effective_date = db.Column(db.Date, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # What caused the movement (waste record, transfer, production batch, intake)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    reference_type = db.Column(enum_type(ReferenceType), nullable=True)

    notes = db.Column(db.String(255), nullable=True)

    stock_item = db.relationship("StockItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type.value,
            "stock_item_id": self.stock_item_id,
            "lot_reference": self.lot_reference,
            "movement_kind": self.movement_kind.value,
            "quantity": self.quantity,
            "unit": self.unit,
            "effective_date": to_iso_date(self.effective_date),
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type.value if self.reference_type else None,
            "notes": self.notes,
        }


class ProcessedGood(db.Model):
    """
    Sellable finished-good lot (counter-accounted).

    quantity_available is a directly mutated running total: order items
    deduct from it and restore to it. Waste is tracked separately in
    ProcessedGoodWaste, so the sellable balance is
    quantity_available - SUM(quantity_wasted).
    """
    __tablename__ = "processed_goods"
    __table_args__ = (
        db.UniqueConstraint("lot_id", name="uq_processed_goods_lot_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    lot_id = db.Column(db.String(64), nullable=False)
    product_type = db.Column(db.String(128), nullable=False)
    batch_reference = db.Column(db.String(64), nullable=True, index=True)
    unit = db.Column(db.String(16), nullable=False)

    quantity_created = db.Column(QUANTITY_TYPE, nullable=False)
    quantity_available = db.Column(QUANTITY_TYPE, nullable=False)

    production_date = db.Column(db.Date, nullable=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProcessedGood id={self.id} lot_id={self.lot_id!r} available={self.quantity_available}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lot_id": self.lot_id,
            "product_type": self.product_type,
            "batch_reference": self.batch_reference,
            "unit": self.unit,
            "quantity_created": self.quantity_created,
            "quantity_available": self.quantity_available,
            "production_date": to_iso_date(self.production_date),
            "is_archived": self.is_archived,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProcessedGoodWaste(db.Model):
    """Waste/damage recorded against a finished-good lot (expired, unsold, damaged)."""
    __tablename__ = "processed_goods_waste"
    __table_args__ = (
        db.CheckConstraint("quantity_wasted > 0", name="ck_processed_goods_waste_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    processed_good_id = db.Column(db.Integer, db.ForeignKey("processed_goods.id"), nullable=False, index=True)
    quantity_wasted = db.Column(QUANTITY_TYPE, nullable=False)
    unit = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    waste_type = db.Column(enum_type(WasteType, length=16), nullable=False)
    waste_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    processed_good = db.relationship("ProcessedGood", backref=db.backref("waste_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processed_good_id": self.processed_good_id,
            "quantity_wasted": self.quantity_wasted,
            "unit": self.unit,
            "reason": self.reason,
            "waste_type": self.waste_type.value,
            "waste_date": to_iso_date(self.waste_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
        }


class InventoryChange(db.Model):
    """
    Append-only trail of finished-good counter changes made by orders.

    quantity_change is signed: negative for deductions, positive for restorations.
    order_item_id is a soft reference; items can be deleted, the trail cannot.
    """
    __tablename__ = "inventory_changes"
    __table_args__ = (
        db.Index("ix_inventory_changes_good_created", "processed_good_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    processed_good_id = db.Column(db.Integer, db.ForeignKey("processed_goods.id"), nullable=False, index=True)
    quantity_change = db.Column(QUANTITY_TYPE, nullable=False)
    operation_type = db.Column(enum_type(InventoryOperation, length=48), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    order_item_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "processed_good_id": self.processed_good_id,
            "quantity_change": self.quantity_change,
            "operation_type": self.operation_type.value,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
        }
