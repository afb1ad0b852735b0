"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-03-01 10:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUS = ("PENDING", "CONFIRMED", "PREPARING", "READY", "OUT_FOR_DELIVERY", "DELIVERED", "CANCELLED")
PAYMENT_STATUS = ("PENDING", "PAID", "FAILED")
PAYOUT_STATUS = ("PENDING", "PROCESSING", "PAID")
ROLES = ("customer", "vendor", "driver", "admin")
ENUMS = {
    "orderstatus": ORDER_STATUS,
    "paymentstatus": PAYMENT_STATUS,
    "payoutstatus": PAYOUT_STATUS,
    "roleenum": ROLES,
}


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("phone", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.Enum(*ROLES, name="roleenum"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("blacklisted", sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_phone", "users", ["phone"], unique=True)

    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["vendor_id"], ["users.id"], name="fk_stores_vendor_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_stores"),
    )
    op.create_index("ix_stores_id", "stores", ["id"])
    op.create_index("ix_stores_vendor_id", "stores", ["vendor_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_products_store_id_stores"),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
    )
    op.create_index("ix_products_id", "products", ["id"])
    op.create_index("ix_products_store_id", "products", ["store_id"])

    op.create_table(
        "vendor_payouts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.DateTime(), nullable=False),
        sa.Column("period_end", sa.DateTime(), nullable=False),
        sa.Column("total_sales", sa.Float(), nullable=False),
        sa.Column("platform_fee", sa.Float(), nullable=False),
        sa.Column("net_amount", sa.Float(), nullable=False),
        sa.Column("order_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum(*PAYOUT_STATUS, name="payoutstatus"), nullable=False),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["vendor_id"], ["users.id"], name="fk_vendor_payouts_vendor_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_vendor_payouts"),
    )
    op.create_index("ix_vendor_payouts_id", "vendor_payouts", ["id"])
    op.create_index("ix_vendor_payouts_vendor_id", "vendor_payouts", ["vendor_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.Enum(*ORDER_STATUS, name="orderstatus"), nullable=False),
        sa.Column("payment_status", sa.Enum(*PAYMENT_STATUS, name="paymentstatus"), nullable=False),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("customer_phone", sa.String(), nullable=False),
        sa.Column("delivery_address", sa.String(), nullable=False),
        sa.Column("delivery_lat", sa.Float(), nullable=True),
        sa.Column("delivery_lng", sa.Float(), nullable=True),
        sa.Column("province", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("subtotal", sa.Float(), nullable=False),
        sa.Column("shipping_fee", sa.Float(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("driver_id", sa.Integer(), nullable=True),
        sa.Column("driver_lat", sa.Float(), nullable=True),
        sa.Column("driver_lng", sa.Float(), nullable=True),
        sa.Column("last_location_at", sa.DateTime(), nullable=True),
        sa.Column("estimated_time", sa.Integer(), nullable=True),
        sa.Column("checkout_id", sa.String(), nullable=True),
        sa.Column("payout_id", sa.Integer(), nullable=True),
        sa.Column("stock_restored", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["customer_id"], ["users.id"], name="fk_orders_customer_id_users"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], name="fk_orders_store_id_stores"),
        sa.ForeignKeyConstraint(["driver_id"], ["users.id"], name="fk_orders_driver_id_users"),
        sa.ForeignKeyConstraint(["payout_id"], ["vendor_payouts.id"], name="fk_orders_payout_id_vendor_payouts"),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
    )
    op.create_index("ix_orders_id", "orders", ["id"])
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_store_id", "orders", ["store_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_driver_id", "orders", ["driver_id"])
    op.create_index("ix_orders_checkout_id", "orders", ["checkout_id"])
    op.create_index("ix_orders_payout_id", "orders", ["payout_id"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_order_items_order_id_orders"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_order_items_product_id_products"),
        sa.PrimaryKeyConstraint("id", name="pk_order_items"),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"])
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "delivery_proofs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("photo_url", sa.String(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_delivery_proofs_order_id_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_delivery_proofs"),
        sa.UniqueConstraint("order_id", name="uq_delivery_proofs_order_id"),
    )
    op.create_index("ix_delivery_proofs_id", "delivery_proofs", ["id"])

    op.create_table(
        "driver_location_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_driver_location_history_order_id_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_driver_location_history"),
    )
    op.create_index("ix_driver_location_history_id", "driver_location_history", ["id"])
    op.create_index("ix_driver_location_history_order_id", "driver_location_history", ["order_id"])
    op.create_index("ix_driver_location_history_created_at", "driver_location_history", ["created_at"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=True),
        sa.Column("checkout_id", sa.String(), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_webhook_events"),
    )

    op.create_table(
        "driver_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("id_number", sa.String(), nullable=False),
        sa.Column("license_number", sa.String(), nullable=False),
        sa.Column("vehicle_type", sa.String(), nullable=False),
        sa.Column("vehicle_reg", sa.String(), nullable=False),
        sa.Column("bank_name", sa.String(), nullable=False),
        sa.Column("account_number", sa.String(), nullable=False),
        sa.Column("branch_code", sa.String(), nullable=False),
        sa.Column("is_approved", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_driver_profiles_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_driver_profiles"),
        sa.UniqueConstraint("user_id", name="uq_driver_profiles_user_id"),
        sa.UniqueConstraint("id_number", name="uq_driver_profiles_id_number"),
    )
    op.create_index("ix_driver_profiles_id", "driver_profiles", ["id"])


def downgrade() -> None:
    op.drop_table("driver_profiles")
    op.drop_table("webhook_events")
    op.drop_table("driver_location_history")
    op.drop_table("delivery_proofs")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("vendor_payouts")
    op.drop_table("products")
    op.drop_table("stores")
    op.drop_table("users")
    # в postgres enum типы живут отдельно от таблиц
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
