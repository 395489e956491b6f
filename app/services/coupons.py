from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

from app.core.config import CURRENCY_DECIMAL_PLACES
from app.core.metrics import request_metrics
from app.services.discount_store import PERCENTAGE, DiscountRecord, DiscountStore, normalize_code

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid or inactive coupon code"
USAGE_LIMIT_MESSAGE = "Coupon usage limit exceeded"
EXPIRED_MESSAGE = "This coupon has expired"
NOT_STARTED_MESSAGE = "This coupon is not yet active"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_amount(value: Decimal) -> str:
    """Render a stored amount the way it reads on a receipt: 100.00 -> 100, 49.50 -> 49.5."""
    normalized = value.normalize()
    return format(normalized, "f")


def minimum_order_message(minimum: Decimal) -> str:
    return f"Minimum order amount of ${format_amount(minimum)} required"


def quantize_amount(amount: Decimal, places: int = CURRENCY_DECIMAL_PLACES, rounding: str = ROUND_HALF_UP) -> Decimal:
    return amount.quantize(Decimal(1).scaleb(-places), rounding=rounding)


def to_order_total(value: Any) -> Decimal:
    """Coerce a caller-supplied order total, rejecting anything not finite and non-negative."""
    if value is None or isinstance(value, bool):
        raise ValueError("order total is required")
    try:
        total = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"order total is not a number: {value!r}") from exc
    if not total.is_finite() or total < 0:
        raise ValueError(f"order total must be finite and non-negative: {value!r}")
    return total


def compute_discount_amount(
    record: DiscountRecord,
    order_total: Decimal,
    places: int = CURRENCY_DECIMAL_PLACES,
) -> Decimal:
    # Ceiling rounds down so a clamped discount never exceeds the order total.
    ceiling = quantize_amount(order_total, places, ROUND_DOWN)

    if record.discount_type == PERCENTAGE:
        amount = quantize_amount(order_total * record.value / Decimal("100"), places)
        if record.max_discount_amount is not None and amount > record.max_discount_amount:
            amount = quantize_amount(record.max_discount_amount, places, ROUND_DOWN)
    else:
        amount = quantize_amount(record.value, places)

    if amount > ceiling:
        amount = ceiling
    return amount


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    discount_amount: Decimal = Decimal("0")
    coupon_id: str | None = None
    type: str | None = None
    value: Decimal | None = None
    description: str | None = None
    error: str | None = None
    reason: str | None = None

    @classmethod
    def rejected(cls, reason: str, error: str) -> "ValidationResult":
        return cls(valid=False, error=error, reason=reason)

    def to_payload(self) -> dict[str, Any]:
        if not self.valid:
            return {"valid": False, "error": self.error}
        return {
            "valid": True,
            "coupon_id": self.coupon_id,
            "discount_amount": float(self.discount_amount),
            "type": self.type,
            "value": float(self.value) if self.value is not None else None,
            "description": self.description,
        }


class CouponValidator:
    """Decide whether a code names an eligible discount and how much it takes off.

    Business rejections come back as ``ValidationResult(valid=False)``; store
    failures propagate as ``DiscountStoreError`` so callers can tell them apart.
    The validator never mutates the store.
    """

    def __init__(
        self,
        store: DiscountStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        decimal_places: int = CURRENCY_DECIMAL_PLACES,
    ) -> None:
        self._store = store
        self._clock = clock
        self._places = decimal_places

    def validate(self, code: str, order_total: Any, customer_email: str | None = None) -> ValidationResult:
        normalized_code = normalize_code(code)
        if not normalized_code:
            raise ValueError("coupon code is required")
        total = to_order_total(order_total)

        record = self._store.find_active_by_code(normalized_code)
        result = self._evaluate(record, total)

        request_metrics.observe_coupon_outcome("valid" if result.valid else result.reason or "invalid")
        logger.info(
            "coupon validated code=%s order_total=%s customer_email=%s",
            normalized_code,
            total,
            customer_email,
            extra={"coupon_code": normalized_code, "valid": result.valid, "reason": result.reason},
        )
        return result

    def _evaluate(self, record: DiscountRecord | None, total: Decimal) -> ValidationResult:
        if record is None:
            return ValidationResult.rejected("not_found", INVALID_CODE_MESSAGE)
        if not record.is_active:
            return ValidationResult.rejected("inactive", INVALID_CODE_MESSAGE)
        if total < record.min_purchase_amount:
            return ValidationResult.rejected("below_minimum", minimum_order_message(record.min_purchase_amount))
        if record.usage_limit is not None and record.usage_count >= record.usage_limit:
            return ValidationResult.rejected("usage_limit", USAGE_LIMIT_MESSAGE)

        now = self._clock()
        if record.expires_at is not None and record.expires_at < now:
            return ValidationResult.rejected("expired", EXPIRED_MESSAGE)
        if record.starts_at is not None and record.starts_at > now:
            return ValidationResult.rejected("not_started", NOT_STARTED_MESSAGE)

        return ValidationResult(
            valid=True,
            discount_amount=compute_discount_amount(record, total, self._places),
            coupon_id=record.id,
            type=record.discount_type,
            value=record.value,
            description=record.description or f"{record.code} discount",
        )
