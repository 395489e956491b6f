from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "0002_discount_redemptions"
down_revision = "0001_storefront_schema"
branch_labels = None
depends_on = None


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspector.get_indexes(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)

    if "discount_redemptions" not in inspector.get_table_names():
        op.create_table(
            "discount_redemptions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("discount_id", sa.String(length=36), sa.ForeignKey("discounts.id"), nullable=False),
            sa.Column("order_id", sa.String(length=64), nullable=False),
            sa.Column("customer_email", sa.String(length=255), nullable=True),
            sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("discount_id", "order_id", name="uq_discount_redemptions_discount_order"),
        )

    inspector = inspect(bind)
    for column in ("discount_id", "order_id", "customer_email"):
        index_name = f"ix_discount_redemptions_{column}"
        if not _has_index(inspector, "discount_redemptions", index_name):
            op.create_index(index_name, "discount_redemptions", [column], unique=False)


def downgrade() -> None:
    for column in ("customer_email", "order_id", "discount_id"):
        op.drop_index(f"ix_discount_redemptions_{column}", table_name="discount_redemptions")
    op.drop_table("discount_redemptions")
