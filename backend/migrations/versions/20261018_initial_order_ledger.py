"""Initial order ledger schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=nullable)


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_username", ["username"], unique=True)

    op.create_table(
        "user_module_access",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("module_name", sa.String(64), nullable=False),
        sa.Column("access_level", sa.String(16), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "module_name", name="uq_user_module_access"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("user_module_access", schema=None) as batch_op:
        batch_op.create_index("ix_user_module_access_user_id", ["user_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )

    # --- Stock ledger -------------------------------------------------------

    op.create_table(
        "stock_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("lot_id", sa.String(64), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_type", "lot_id", name="uq_stock_items_type_lot"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_items", schema=None) as batch_op:
        batch_op.create_index("ix_stock_items_item_type", ["item_type"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(32), nullable=False),
        sa.Column("stock_item_id", sa.Integer(), nullable=False),
        sa.Column("lot_reference", sa.String(64), nullable=True),
        sa.Column("movement_kind", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        _timestamp("created_at"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        sa.ForeignKeyConstraint(["stock_item_id"], ["stock_items.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_stock_item_id", ["stock_item_id"], unique=False)
        batch_op.create_index("ix_stock_movements_lot_reference", ["lot_reference"], unique=False)
        batch_op.create_index("ix_stock_movements_movement_kind", ["movement_kind"], unique=False)
        batch_op.create_index("ix_stock_movements_effective_date", ["effective_date"], unique=False)
        batch_op.create_index("ix_stock_movements_reference_id", ["reference_id"], unique=False)
        batch_op.create_index(
            "ix_stock_movements_item_effective", ["stock_item_id", "effective_date", "created_at"], unique=False
        )

    # --- Finished goods -----------------------------------------------------

    op.create_table(
        "processed_goods",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("lot_id", sa.String(64), nullable=False),
        sa.Column("product_type", sa.String(128), nullable=False),
        sa.Column("batch_reference", sa.String(64), nullable=True),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("quantity_created", sa.Numeric(14, 3), nullable=False),
        sa.Column("quantity_available", sa.Numeric(14, 3), nullable=False),
        sa.Column("production_date", sa.Date(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lot_id", name="uq_processed_goods_lot_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("processed_goods", schema=None) as batch_op:
        batch_op.create_index("ix_processed_goods_batch_reference", ["batch_reference"], unique=False)

    op.create_table(
        "processed_goods_waste",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("processed_good_id", sa.Integer(), nullable=False),
        sa.Column("quantity_wasted", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("waste_type", sa.String(16), nullable=False),
        sa.Column("waste_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.CheckConstraint("quantity_wasted > 0", name="ck_processed_goods_waste_positive"),
        sa.ForeignKeyConstraint(["processed_good_id"], ["processed_goods.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("processed_goods_waste", schema=None) as batch_op:
        batch_op.create_index("ix_processed_goods_waste_processed_good_id", ["processed_good_id"], unique=False)
        batch_op.create_index("ix_processed_goods_waste_waste_date", ["waste_date"], unique=False)

    # --- Orders -------------------------------------------------------------

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sold_by_user_id", sa.Integer(), nullable=True),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(32), nullable=False, server_default="ORDER_CREATED"),
        sa.Column("payment_status", sa.String(32), nullable=False, server_default="READY_FOR_PAYMENT"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_on_hold", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("hold_reason", sa.String(255), nullable=True),
        sa.Column("held_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("held_by_user_id", sa.Integer(), nullable=True),
        sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by_user_id", sa.Integer(), nullable=True),
        sa.Column("can_unlock_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("discount_cents >= 0", name="ck_orders_discount_non_negative"),
        sa.ForeignKeyConstraint(["sold_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["held_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["locked_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_orders_is_locked", ["is_locked"], unique=False)
        batch_op.create_index("ix_orders_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("processed_good_id", sa.Integer(), nullable=False),
        sa.Column("product_type", sa.String(128), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["processed_good_id"], ["processed_goods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_items_processed_good_id", ["processed_good_id"], unique=False)

    op.create_table(
        "order_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_mode", sa.String(16), nullable=False),
        sa.Column("payment_to", sa.String(32), nullable=False, server_default="organization_bank"),
        sa.Column("paid_to_user", sa.String(128), nullable=True),
        sa.Column("reference_number", sa.String(128), nullable=True),
        _timestamp("paid_at"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("amount_cents > 0", name="ck_order_payments_amount_positive"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_payments", schema=None) as batch_op:
        batch_op.create_index("ix_order_payments_order_id", ["order_id"], unique=False)

    op.create_table(
        "order_lock_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(8), nullable=False),
        sa.Column("performed_by_user_id", sa.Integer(), nullable=False),
        _timestamp("performed_at"),
        sa.Column("unlock_reason", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_lock_events", schema=None) as batch_op:
        batch_op.create_index("ix_order_lock_events_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_lock_events_order_performed", ["order_id", "performed_at"], unique=False)

    op.create_table(
        "order_audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("performed_by_user_id", sa.Integer(), nullable=True),
        _timestamp("performed_at"),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_audit_events", schema=None) as batch_op:
        batch_op.create_index("ix_order_audit_events_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_audit_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_order_audit_events_performed_at", ["performed_at"], unique=False)
        batch_op.create_index("ix_order_audit_events_order_performed", ["order_id", "performed_at"], unique=False)

    op.create_table(
        "inventory_changes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("processed_good_id", sa.Integer(), nullable=False),
        sa.Column("quantity_change", sa.Numeric(14, 3), nullable=False),
        sa.Column("operation_type", sa.String(48), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("order_item_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["processed_good_id"], ["processed_goods.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory_changes", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_changes_processed_good_id", ["processed_good_id"], unique=False)
        batch_op.create_index("ix_inventory_changes_operation_type", ["operation_type"], unique=False)
        batch_op.create_index("ix_inventory_changes_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_inventory_changes_good_created", ["processed_good_id", "created_at"], unique=False)

    # --- Finance ------------------------------------------------------------

    op.create_table(
        "income",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("payment_to", sa.String(32), nullable=True),
        sa.Column("paid_to_user", sa.String(128), nullable=True),
        sa.Column("payment_reference", sa.String(128), nullable=True),
        _timestamp("received_at"),
        sa.Column("from_sales_payment", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("order_payment_id", sa.Integer(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("order_number", sa.String(32), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["order_payment_id"], ["order_payments.id"]),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("income", schema=None) as batch_op:
        batch_op.create_index("ix_income_order_payment_id", ["order_payment_id"], unique=False)
        batch_op.create_index("ix_income_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_income_from_sales", ["from_sales_payment"], unique=False)


def downgrade():
    for table in (
        "income",
        "inventory_changes",
        "order_audit_events",
        "order_lock_events",
        "order_payments",
        "order_items",
        "orders",
        "processed_goods_waste",
        "processed_goods",
        "stock_movements",
        "stock_items",
        "document_sequences",
        "user_module_access",
        "users",
    ):
        op.drop_table(table)
