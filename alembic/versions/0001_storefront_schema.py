from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "0001_storefront_schema"
down_revision = None
branch_labels = None
depends_on = None


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspector.get_indexes(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)

    if "admin_users" not in inspector.get_table_names():
        op.create_table(
            "admin_users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(), nullable=False, unique=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("password_hash", sa.String(), nullable=False),
            sa.Column("role", sa.String(), nullable=False, server_default="staff"),
            sa.Column("active", sa.Boolean(), nullable=True, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=True),
        )

    inspector = inspect(bind)
    if not _has_index(inspector, "admin_users", "ix_admin_users_id"):
        op.create_index("ix_admin_users_id", "admin_users", ["id"], unique=False)

    if "admin_audit_log" not in inspector.get_table_names():
        op.create_table(
            "admin_audit_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("entity_type", sa.String(), nullable=True),
            sa.Column("entity_id", sa.String(), nullable=True),
            sa.Column("meta_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
        )

    inspector = inspect(bind)
    if not _has_index(inspector, "admin_audit_log", "ix_admin_audit_log_id"):
        op.create_index("ix_admin_audit_log_id", "admin_audit_log", ["id"], unique=False)
    if not _has_index(inspector, "admin_audit_log", "ix_admin_audit_log_user_id"):
        op.create_index("ix_admin_audit_log_user_id", "admin_audit_log", ["user_id"], unique=False)

    if "discounts" not in inspector.get_table_names():
        op.create_table(
            "discounts",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("discount_type", sa.String(length=20), nullable=False),
            sa.Column("discount_value", sa.Numeric(10, 2), nullable=False),
            sa.Column("min_purchase_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("max_discount_amount", sa.Numeric(10, 2), nullable=True),
            sa.Column("usage_limit", sa.Integer(), nullable=True),
            sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("applies_to", sa.String(length=20), nullable=False, server_default="all"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("discount_type IN ('percentage', 'fixed_amount')", name="ck_discounts_type"),
            sa.CheckConstraint("discount_value >= 0", name="ck_discounts_value_non_negative"),
            sa.CheckConstraint("usage_count >= 0", name="ck_discounts_usage_count_non_negative"),
        )

    inspector = inspect(bind)
    if not _has_index(inspector, "discounts", "ix_discounts_code"):
        op.create_index("ix_discounts_code", "discounts", ["code"], unique=True)
    if not _has_index(inspector, "discounts", "ix_discounts_is_active"):
        op.create_index("ix_discounts_is_active", "discounts", ["is_active"], unique=False)
    if not _has_index(inspector, "discounts", "ix_discounts_expires_at"):
        op.create_index("ix_discounts_expires_at", "discounts", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_discounts_expires_at", table_name="discounts")
    op.drop_index("ix_discounts_is_active", table_name="discounts")
    op.drop_index("ix_discounts_code", table_name="discounts")
    op.drop_table("discounts")
    op.drop_index("ix_admin_audit_log_user_id", table_name="admin_audit_log")
    op.drop_index("ix_admin_audit_log_id", table_name="admin_audit_log")
    op.drop_table("admin_audit_log")
    op.drop_index("ix_admin_users_id", table_name="admin_users")
    op.drop_table("admin_users")
