from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.discount import Discount, DiscountRedemption
from app.services.errors import AlreadyRedeemedError, DiscountNotFoundError, UsageLimitReachedError

logger = logging.getLogger(__name__)


def record_redemption(
    db: Session,
    *,
    discount_id: str,
    order_id: str,
    discount_amount: Decimal,
    customer_email: str | None = None,
) -> DiscountRedemption:
    """Count one completed order against a discount.

    The usage increment is a single conditional UPDATE so two concurrent
    completions cannot both slip past the usage limit.
    """
    already = (
        db.query(DiscountRedemption.id)
        .filter(DiscountRedemption.discount_id == discount_id, DiscountRedemption.order_id == order_id)
        .first()
    )
    if already:
        raise AlreadyRedeemedError(f"order {order_id} already redeemed discount {discount_id}")

    statement = (
        update(Discount)
        .where(
            Discount.id == discount_id,
            Discount.is_active.is_(True),
            or_(Discount.usage_limit.is_(None), Discount.usage_count < Discount.usage_limit),
        )
        .values(usage_count=Discount.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(statement)
    if result.rowcount == 0:
        db.rollback()
        discount = db.query(Discount).filter(Discount.id == discount_id).first()
        if discount is None or not discount.is_active:
            raise DiscountNotFoundError(f"discount {discount_id} not found or inactive")
        logger.warning(
            "Redemption refused, usage limit reached discount_id=%s order_id=%s usage_count=%s usage_limit=%s",
            discount_id,
            order_id,
            discount.usage_count,
            discount.usage_limit,
        )
        raise UsageLimitReachedError(f"discount {discount_id} reached its usage limit")

    redemption = DiscountRedemption(
        discount_id=discount_id,
        order_id=order_id,
        customer_email=(customer_email or "").strip().lower() or None,
        discount_amount=discount_amount,
    )
    db.add(redemption)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AlreadyRedeemedError(f"order {order_id} already redeemed discount {discount_id}") from exc

    db.refresh(redemption)
    logger.info(
        "Discount redeemed discount_id=%s order_id=%s amount=%s",
        discount_id,
        order_id,
        discount_amount,
    )
    return redemption
