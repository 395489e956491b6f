from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.metrics import request_metrics
from app.core.request_context import set_request_context
from app.deps import require_permission
from app.models.admin_user import AdminUser
from app.services.coupons import USAGE_LIMIT_MESSAGE, CouponValidator, to_order_total
from app.services.discount_store import SqlAlchemyDiscountStore
from app.services.errors import AlreadyRedeemedError, DiscountNotFoundError, UsageLimitReachedError
from app.services.permissions import Permission
from app.services.redemptions import record_redemption

router = APIRouter(prefix="/api/coupons", tags=["coupons"])
logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Coupon code and order total are required"
INVALID_TOTAL_MESSAGE = "Order total must be a non-negative number"
INTERNAL_ERROR_MESSAGE = "Internal server error"


class CouponValidatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Checked in the handler; bad values answer 400 rather than 422.
    code: Any = None
    order_total: Any = Field(default=None, alias="orderTotal")
    customer_email: str | None = Field(default=None, alias="customerEmail")


class CouponValidationResponse(BaseModel):
    valid: bool
    coupon_id: str | None = None
    discount_amount: float | None = None
    type: str | None = None
    value: float | None = None
    description: str | None = None
    error: str | None = None


class CouponRedeemPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coupon_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    discount_amount: Decimal = Field(..., ge=0)
    customer_email: str | None = Field(default=None, alias="customerEmail")


class CouponRedeemResponse(BaseModel):
    id: int
    coupon_id: str
    order_id: str
    discount_amount: float


def get_coupon_validator(db: Session = Depends(get_db)) -> CouponValidator:
    return CouponValidator(SqlAlchemyDiscountStore(db))


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/validate", response_model=CouponValidationResponse, response_model_exclude_none=True)
def validate_coupon(
    payload: CouponValidatePayload,
    validator: CouponValidator = Depends(get_coupon_validator),
):
    code = payload.code.strip() if isinstance(payload.code, str) else ""
    if not code or payload.order_total is None:
        return _error(status.HTTP_400_BAD_REQUEST, MISSING_FIELDS_MESSAGE)
    set_request_context(coupon_code=code.upper())

    try:
        order_total = to_order_total(payload.order_total)
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, INVALID_TOTAL_MESSAGE)

    try:
        result = validator.validate(code, order_total, payload.customer_email)
    except Exception:
        # Store or computation failure: never report it as an invalid coupon.
        logger.exception("Coupon validation failed")
        request_metrics.observe_coupon_outcome("error")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    return result.to_payload()


@router.post("/redeem", response_model=CouponRedeemResponse)
def redeem_coupon(
    payload: CouponRedeemPayload,
    user: AdminUser = Depends(require_permission(Permission.MANAGE_ORDERS)),
    db: Session = Depends(get_db),
):
    try:
        redemption = record_redemption(
            db,
            discount_id=payload.coupon_id,
            order_id=payload.order_id,
            discount_amount=payload.discount_amount,
            customer_email=payload.customer_email,
        )
    except DiscountNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found") from exc
    except UsageLimitReachedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=USAGE_LIMIT_MESSAGE) from exc
    except AlreadyRedeemedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Coupon already redeemed for this order") from exc

    logger.info(
        "Coupon redemption recorded by user_id=%s coupon_id=%s order_id=%s",
        user.id,
        payload.coupon_id,
        payload.order_id,
    )
    return CouponRedeemResponse(
        id=redemption.id,
        coupon_id=redemption.discount_id,
        order_id=redemption.order_id,
        discount_amount=float(redemption.discount_amount),
    )
