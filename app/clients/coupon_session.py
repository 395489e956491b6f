from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

logger = logging.getLogger(__name__)

VALIDATE_PATH = "/api/coupons/validate"
FALLBACK_ERROR_MESSAGE = "Failed to validate coupon"
INVALID_COUPON_MESSAGE = "Invalid coupon code"
NETWORK_ERROR_MESSAGE = "Network error occurred. Please try again."


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    coupon_id: str
    discount_amount: Decimal
    type: str
    value: Decimal
    description: str


class CouponSession:
    """Checkout-side coupon state: the code currently applied and the last error shown.

    The HTTP client is injected so the same session works against a live
    service or an ``httpx.MockTransport``.
    """

    def __init__(self, http_client: httpx.Client, *, validate_path: str = VALIDATE_PATH) -> None:
        self._http = http_client
        self._validate_path = validate_path
        self.applied_coupon: AppliedCoupon | None = None
        self.error: str | None = None
        self.is_system_error = False
        self.loading = False

    def validate_coupon(
        self,
        code: str,
        order_total: Decimal | float,
        customer_email: str | None = None,
    ) -> bool:
        self.loading = True
        self.error = None
        self.is_system_error = False

        payload: dict[str, Any] = {"code": code, "orderTotal": float(order_total)}
        if customer_email:
            payload["customerEmail"] = customer_email

        try:
            response = self._http.post(self._validate_path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("coupon validation request failed: %s", exc)
            return self._fail(NETWORK_ERROR_MESSAGE, system=True)
        finally:
            self.loading = False

        body = _json_body(response)
        if response.is_error:
            return self._fail(body.get("error") or FALLBACK_ERROR_MESSAGE, system=response.status_code >= 500)

        if not body.get("valid"):
            return self._fail(body.get("error") or INVALID_COUPON_MESSAGE, system=False)

        self.applied_coupon = AppliedCoupon(
            code=code.strip().upper(),
            coupon_id=str(body["coupon_id"]),
            discount_amount=Decimal(str(body["discount_amount"])),
            type=body["type"],
            value=Decimal(str(body["value"])),
            description=body.get("description") or "",
        )
        return True

    def remove_coupon(self) -> None:
        self.applied_coupon = None
        self.error = None
        self.is_system_error = False

    def calculate_discounted_total(self, total: Decimal | float) -> Decimal:
        amount = Decimal(str(total))
        if self.applied_coupon is None:
            return amount
        return max(Decimal("0"), amount - self.applied_coupon.discount_amount)

    def _fail(self, message: str, *, system: bool) -> bool:
        self.applied_coupon = None
        self.error = message
        self.is_system_error = system
        return False


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}
