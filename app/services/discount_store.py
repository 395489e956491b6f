from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.discount import Discount
from app.services.errors import DiscountStoreError, MalformedDiscountError

logger = logging.getLogger(__name__)

PERCENTAGE = "percentage"
FIXED_AMOUNT = "fixed_amount"
DISCOUNT_TYPES = frozenset({PERCENTAGE, FIXED_AMOUNT})


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _to_decimal(value: Any, field: str, *, required: bool = True) -> Decimal | None:
    if value is None:
        if required:
            raise MalformedDiscountError(f"discount field '{field}' is missing")
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise MalformedDiscountError(f"discount field '{field}' is not numeric: {value!r}") from exc
    if not number.is_finite():
        raise MalformedDiscountError(f"discount field '{field}' is not finite")
    return number


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class DiscountRecord:
    """Normalized view of one discount row.

    Built once at the store boundary so the validator never deals with
    missing fields, naive timestamps or float money.
    """

    id: str
    code: str
    discount_type: str
    value: Decimal
    min_purchase_amount: Decimal = Decimal("0")
    max_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    usage_count: int = 0
    is_active: bool = True
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    description: str = ""

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "DiscountRecord":
        code = normalize_code(data.get("code"))
        if not code:
            raise MalformedDiscountError("discount code is missing")

        discount_type = (data.get("discount_type") or "").strip().lower()
        if discount_type not in DISCOUNT_TYPES:
            raise MalformedDiscountError(f"unknown discount type {discount_type!r} for {code}")

        value = _to_decimal(data.get("discount_value"), "discount_value")
        if value < 0:
            raise MalformedDiscountError(f"negative discount value for {code}")
        if discount_type == PERCENTAGE and value > 100:
            raise MalformedDiscountError(f"percentage above 100 for {code}")

        min_purchase = _to_decimal(data.get("min_purchase_amount"), "min_purchase_amount", required=False)
        max_discount = _to_decimal(data.get("max_discount_amount"), "max_discount_amount", required=False)
        if max_discount is not None and max_discount < 0:
            raise MalformedDiscountError(f"negative maximum discount for {code}")

        usage_limit = data.get("usage_limit")
        usage_count = data.get("usage_count") or 0
        try:
            usage_limit = int(usage_limit) if usage_limit is not None else None
            usage_count = int(usage_count)
        except (TypeError, ValueError) as exc:
            raise MalformedDiscountError(f"usage counters are not integers for {code}") from exc

        return cls(
            id=str(data.get("id") or ""),
            code=code,
            discount_type=discount_type,
            value=value,
            min_purchase_amount=min_purchase if min_purchase is not None else Decimal("0"),
            max_discount_amount=max_discount if discount_type == PERCENTAGE else None,
            usage_limit=usage_limit,
            usage_count=usage_count,
            is_active=bool(data.get("is_active", True)),
            starts_at=_to_utc(data.get("starts_at")),
            expires_at=_to_utc(data.get("expires_at")),
            description=(data.get("description") or "").strip(),
        )

    @classmethod
    def from_model(cls, discount: Discount) -> "DiscountRecord":
        return cls.from_mapping(
            {
                "id": discount.id,
                "code": discount.code,
                "discount_type": discount.discount_type,
                "discount_value": discount.discount_value,
                "min_purchase_amount": discount.min_purchase_amount,
                "max_discount_amount": discount.max_discount_amount,
                "usage_limit": discount.usage_limit,
                "usage_count": discount.usage_count,
                "is_active": discount.is_active,
                "starts_at": discount.starts_at,
                "expires_at": discount.expires_at,
                "description": discount.description,
            }
        )


class DiscountStore(ABC):
    @abstractmethod
    def find_active_by_code(self, code: str) -> DiscountRecord | None:
        """Return the active discount for ``code`` (case-insensitive), or None."""


class SqlAlchemyDiscountStore(DiscountStore):
    def __init__(self, db: Session) -> None:
        self._db = db

    def find_active_by_code(self, code: str) -> DiscountRecord | None:
        normalized = normalize_code(code)
        try:
            discount = (
                self._db.query(Discount)
                .filter(func.upper(Discount.code) == normalized, Discount.is_active.is_(True))
                .first()
            )
        except SQLAlchemyError as exc:
            raise DiscountStoreError(f"discount lookup failed for {normalized}") from exc

        if discount is None:
            return None
        return DiscountRecord.from_model(discount)


class InMemoryDiscountStore(DiscountStore):
    """Dict-backed store used by tests and local tooling."""

    def __init__(self, records: Iterable[DiscountRecord] = ()) -> None:
        self._records: dict[str, DiscountRecord] = {}
        for record in records:
            self.put(record)

    def put(self, record: DiscountRecord) -> None:
        self._records[normalize_code(record.code)] = record

    def find_active_by_code(self, code: str) -> DiscountRecord | None:
        record = self._records.get(normalize_code(code))
        if record is None or not record.is_active:
            return None
        return record
