"""consign escrow core tables

Revision ID: c0a1e5d2f310
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c0a1e5d2f310"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    return sa.inspect(bind).has_table(table_name)


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="buyer"),
            sa.Column("fee_tier", sa.String(length=32), nullable=False, server_default="NEW_SELLER"),
            sa.Column("payout_recipient_code", sa.String(length=64), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _table_exists(bind, "addresses"):
        op.create_table(
            "addresses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("recipient_name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("phone", sa.String(length=32), nullable=True),
            sa.Column("street_address", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("city", sa.String(length=64), nullable=False, server_default=""),
            sa.Column("state", sa.String(length=64), nullable=True),
            sa.Column("postal_code", sa.String(length=16), nullable=True),
            sa.Column("country", sa.String(length=64), nullable=False, server_default=""),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_addresses_user_id", "addresses", ["user_id"])

    if not _table_exists(bind, "listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("title", sa.String(length=160), nullable=False),
            sa.Column("image_url", sa.String(length=1024), nullable=True),
            sa.Column("condition", sa.String(length=32), nullable=True),
            sa.Column("category", sa.String(length=64), nullable=True),
            sa.Column("price_minor", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="ACTIVE"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_listings_seller_id", "listings", ["seller_id"])
        op.create_index("ix_listings_status", "listings", ["status"])

    if not _table_exists(bind, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("shipping_address_json", sa.Text(), nullable=False),
            sa.Column("payment_method", sa.String(length=16), nullable=False),
            sa.Column("payment_reference", sa.String(length=128), nullable=True),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("items_total_minor", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("shipping_total_minor", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("platform_fee_total_minor", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
        op.create_index("ix_orders_payment_reference", "orders", ["payment_reference"])
        op.create_index("ix_orders_created_at", "orders", ["created_at"])

    if not _table_exists(bind, "order_items"):
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("product_title", sa.String(length=160), nullable=False, server_default=""),
            sa.Column("product_image_url", sa.String(length=1024), nullable=True),
            sa.Column("product_condition", sa.String(length=32), nullable=True),
            sa.Column("product_category", sa.String(length=64), nullable=True),
            sa.Column("price_minor", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("shipping_fee_minor", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=24), nullable=False, server_default="PENDING"),
            sa.Column("notes", sa.String(length=500), nullable=True),
            sa.Column("courier_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
        op.create_index("ix_order_items_seller_id", "order_items", ["seller_id"])
        op.create_index("ix_order_items_product_id", "order_items", ["product_id"])
        op.create_index("ix_order_items_status", "order_items", ["status"])
        op.create_index("ix_order_items_courier_id", "order_items", ["courier_id"])

    if not _table_exists(bind, "escrow_records"):
        op.create_table(
            "escrow_records",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id"), nullable=False),
            sa.Column("held_minor", sa.BigInteger(), nullable=False),
            sa.Column("platform_fee_minor", sa.BigInteger(), nullable=False),
            sa.Column("seller_payout_minor", sa.BigInteger(), nullable=False),
            sa.Column("fee_bps", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="HOLDING"),
            sa.Column("delivered_at", sa.DateTime(), nullable=True),
            sa.Column("released_at", sa.DateTime(), nullable=True),
            sa.Column("released_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("refunded_at", sa.DateTime(), nullable=True),
            sa.Column("refunded_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
            sa.Column("payout_reference", sa.String(length=128), nullable=True),
            sa.Column("refund_reference", sa.String(length=128), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_item_id", name="uq_escrow_records_order_item_id"),
        )
        op.create_index("ix_escrow_records_status", "escrow_records", ["status"])
        op.create_index("ix_escrow_records_delivered_at", "escrow_records", ["delivered_at"])

    if not _table_exists(bind, "delivery_proofs"):
        op.create_table(
            "delivery_proofs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id"), nullable=False),
            sa.Column("kind", sa.String(length=16), nullable=False, server_default="DELIVERY"),
            sa.Column("photo_urls_json", sa.Text(), nullable=False),
            sa.Column("submitted_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("submitted_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_delivery_proofs_order_item_id", "delivery_proofs", ["order_item_id"])

    if not _table_exists(bind, "order_item_transitions"):
        op.create_table(
            "order_item_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id"), nullable=False),
            sa.Column("from_status", sa.String(length=24), nullable=False, server_default=""),
            sa.Column("to_status", sa.String(length=24), nullable=False),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("actor_role", sa.String(length=32), nullable=False, server_default="system"),
            sa.Column("reason", sa.String(length=240), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_order_item_transitions_order_item_id", "order_item_transitions", ["order_item_id"])

    if not _table_exists(bind, "escrow_transitions"):
        op.create_table(
            "escrow_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("escrow_id", sa.Integer(), sa.ForeignKey("escrow_records.id"), nullable=False),
            sa.Column("order_item_id", sa.Integer(), nullable=False),
            sa.Column("from_status", sa.String(length=16), nullable=False, server_default=""),
            sa.Column("to_status", sa.String(length=16), nullable=False),
            sa.Column("actor_type", sa.String(length=32), nullable=False, server_default="system"),
            sa.Column("actor_id", sa.Integer(), nullable=True),
            sa.Column("reason", sa.String(length=240), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_escrow_transitions_escrow_id", "escrow_transitions", ["escrow_id"])
        op.create_index("ix_escrow_transitions_order_item_id", "escrow_transitions", ["order_item_id"])


def downgrade():
    for table in (
        "escrow_transitions",
        "order_item_transitions",
        "delivery_proofs",
        "escrow_records",
        "order_items",
        "orders",
        "listings",
        "addresses",
        "users",
    ):
        op.drop_table(table)
