"""initial schema: users, catalog, recycle bin, shares, telemetry

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True) -> list:
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)
        )
    return cols


def _audit_users(table: str) -> list:
    return [
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name=f"fk_{table}_created_by_users"),
            nullable=True,
        ),
        sa.Column(
            "updated_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name=f"fk_{table}_updated_by_users"),
            nullable=True,
        ),
    ]


def upgrade() -> None:
    # -----------------------------------------------------
    # 1) Users and stores
    # -----------------------------------------------------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("company", sa.String(length=200), nullable=True),
        sa.Column("is_admin", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="ACTIVE", nullable=False),
        sa.Column("avatar", sa.String(length=500), nullable=True),
        sa.Column("wechat_qrcode", sa.String(length=500), nullable=True),
        sa.Column("last_login_time", sa.DateTime(timezone=True), nullable=True),
        *_audit_users("users"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("phone", name="uq_users_phone"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("platform", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("url", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_stores"),
    )

    op.create_table(
        "user_stores",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_user_stores_user_id_users"),
            nullable=False,
        ),
        sa.Column(
            "store_id",
            sa.Integer(),
            sa.ForeignKey("stores.id", ondelete="CASCADE", name="fk_user_stores_store_id_stores"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_user_stores"),
        sa.UniqueConstraint("user_id", "store_id", name="uq_user_stores_user_store"),
    )
    op.create_index("ix_user_stores_user_id", "user_stores", ["user_id"])
    op.create_index("ix_user_stores_store_id", "user_stores", ["store_id"])

    # -----------------------------------------------------
    # 2) Catalog
    # -----------------------------------------------------
    op.create_table(
        "brands",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="ACTIVE", nullable=False),
        *_audit_users("brands"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_brands"),
        sa.UniqueConstraint("name", name="uq_brands_name"),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_type", sa.String(length=16), server_default="COMPANY", nullable=False),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_products_owner_id_users"),
            nullable=True,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "brand_id",
            sa.Integer(),
            sa.ForeignKey("brands.id", name="fk_products_brand_id_brands"),
            nullable=True,
        ),
        sa.Column("product_code", sa.String(length=100), nullable=True),
        sa.Column("specification", sa.String(length=200), nullable=True),
        sa.Column("net_content", sa.String(length=100), nullable=True),
        sa.Column("product_size", sa.String(length=100), nullable=True),
        sa.Column("shipping_method", sa.String(length=100), nullable=True),
        sa.Column("shipping_spec", sa.String(length=100), nullable=True),
        sa.Column("shipping_size", sa.String(length=100), nullable=True),
        sa.Column("product_url", sa.Text(), nullable=True),
        *_audit_users("products"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.CheckConstraint(
            "(owner_type = 'COMPANY' AND owner_id IS NULL) OR (owner_type = 'SELLER' AND owner_id IS NOT NULL)",
            name="ck_products_owner_consistent",
        ),
    )
    op.create_index("ix_products_owner", "products", ["owner_type", "owner_id"])
    op.create_index("ix_products_deleted_at", "products", ["deleted_at"])
    op.create_index("ix_products_brand_id", "products", ["brand_id"])

    op.create_table(
        "price_tiers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("products.id", ondelete="CASCADE", name="fk_price_tiers_product_id_products"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_price_tiers"),
        sa.CheckConstraint("quantity > 0", name="ck_price_tiers_quantity_positive"),
        sa.CheckConstraint("price >= 0", name="ck_price_tiers_price_non_negative"),
    )
    op.create_index("ix_price_tiers_product_id", "price_tiers", ["product_id"])

    op.create_table(
        "attachments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.Integer(), server_default="0", nullable=False),
        sa.Column("file_type", sa.String(length=16), nullable=False),
        sa.Column("slot", sa.String(length=16), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_attachments_created_by_users"),
            nullable=True,
        ),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id", name="pk_attachments"),
        sa.CheckConstraint("entity_id >= 0", name="ck_attachments_entity_id_non_negative"),
    )
    op.create_index("ix_attachments_entity", "attachments", ["entity_type", "entity_id", "file_type"])

    op.create_table(
        "recycle_bin",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("owner_type", sa.String(length=16), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column(
            "deleted_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_recycle_bin_deleted_by_users"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column(
            "restored_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_recycle_bin_restored_by_users"),
            nullable=True,
        ),
        sa.Column("restored_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_recycle_bin"),
    )
    op.create_index("ix_recycle_bin_entity", "recycle_bin", ["entity_type", "entity_id"])

    # -----------------------------------------------------
    # 3) Sharing, sessions, telemetry
    # -----------------------------------------------------
    op.create_table(
        "pallet_shares",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_pallet_shares_user_id_users"),
            nullable=False,
        ),
        sa.Column("share_type", sa.String(length=16), server_default="FULL", nullable=False),
        sa.Column("pallet_type", sa.String(length=16), nullable=False),
        sa.Column("access_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_accessed", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id", name="pk_pallet_shares"),
    )
    op.create_index("ix_pallet_shares_token", "pallet_shares", ["token"], unique=True)
    op.create_index("ix_pallet_shares_user_id", "pallet_shares", ["user_id"])

    op.create_table(
        "customer_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "share_id",
            sa.Integer(),
            sa.ForeignKey("pallet_shares.id", ondelete="CASCADE", name="fk_customer_logs_share_id_pallet_shares"),
            nullable=False,
        ),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("access_time", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_customer_logs"),
    )
    op.create_index("ix_customer_logs_share_id", "customer_logs", ["share_id"])
    op.create_index("ix_customer_logs_access_time", "customer_logs", ["access_time"])

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("token", sa.String(length=128), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user_id_users"),
            nullable=False,
        ),
        sa.Column("use_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
    )
    op.create_index("ix_refresh_tokens_token", "refresh_tokens", ["token"], unique=True)
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])

    op.create_table(
        "access_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_access_logs_user_id_users"),
            nullable=False,
        ),
        sa.Column("page_url", sa.String(length=255), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id", name="pk_access_logs"),
    )
    op.create_index("ix_access_logs_user_id", "access_logs", ["user_id"])

    # -----------------------------------------------------
    # 4) Site content and preferences
    # -----------------------------------------------------
    op.create_table(
        "static_pages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("page_type", sa.String(length=50), nullable=False),
        sa.Column("content", sa.Text(), server_default="", nullable=False),
        sa.Column(
            "updated_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_static_pages_updated_by_users"),
            nullable=True,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_static_pages"),
        sa.UniqueConstraint("page_type", name="uq_static_pages_page_type"),
    )

    op.create_table(
        "user_pagination_settings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_user_pagination_settings_user_id_users"),
            nullable=False,
        ),
        sa.Column("page_size", sa.Integer(), server_default="10", nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_user_pagination_settings"),
        sa.UniqueConstraint("user_id", name="uq_user_pagination_settings_user_id"),
    )


def downgrade() -> None:
    op.drop_table("user_pagination_settings")
    op.drop_table("static_pages")

    op.drop_index("ix_access_logs_user_id", table_name="access_logs")
    op.drop_table("access_logs")

    op.drop_index("ix_refresh_tokens_user_id", table_name="refresh_tokens")
    op.drop_index("ix_refresh_tokens_token", table_name="refresh_tokens")
    op.drop_table("refresh_tokens")

    op.drop_index("ix_customer_logs_access_time", table_name="customer_logs")
    op.drop_index("ix_customer_logs_share_id", table_name="customer_logs")
    op.drop_table("customer_logs")

    op.drop_index("ix_pallet_shares_user_id", table_name="pallet_shares")
    op.drop_index("ix_pallet_shares_token", table_name="pallet_shares")
    op.drop_table("pallet_shares")

    op.drop_index("ix_recycle_bin_entity", table_name="recycle_bin")
    op.drop_table("recycle_bin")

    op.drop_index("ix_attachments_entity", table_name="attachments")
    op.drop_table("attachments")

    op.drop_index("ix_price_tiers_product_id", table_name="price_tiers")
    op.drop_table("price_tiers")

    op.drop_index("ix_products_brand_id", table_name="products")
    op.drop_index("ix_products_deleted_at", table_name="products")
    op.drop_index("ix_products_owner", table_name="products")
    op.drop_table("products")

    op.drop_table("brands")

    op.drop_index("ix_user_stores_store_id", table_name="user_stores")
    op.drop_index("ix_user_stores_user_id", table_name="user_stores")
    op.drop_table("user_stores")
    op.drop_table("stores")

    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
