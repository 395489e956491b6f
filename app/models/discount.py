import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from app.core.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Discount(Base):
    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed_amount')", name="ck_discounts_type"),
        CheckConstraint("discount_value >= 0", name="ck_discounts_value_non_negative"),
        CheckConstraint("usage_count >= 0", name="ck_discounts_usage_count_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    code = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_purchase_amount = Column(Numeric(10, 2), nullable=False, default=0)
    max_discount_amount = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    applies_to = Column(String(20), nullable=False, default="all")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    redemptions = relationship("DiscountRedemption", back_populates="discount")


class DiscountRedemption(Base):
    __tablename__ = "discount_redemptions"
    __table_args__ = (UniqueConstraint("discount_id", "order_id", name="uq_discount_redemptions_discount_order"),)

    id = Column(Integer, primary_key=True)
    discount_id = Column(String(36), ForeignKey("discounts.id"), nullable=False, index=True)
    order_id = Column(String(64), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True, index=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    discount = relationship("Discount", back_populates="redemptions")
