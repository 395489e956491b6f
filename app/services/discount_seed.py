from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.discount import Discount
from app.services.discount_store import DiscountRecord, normalize_code

logger = logging.getLogger(__name__)

SAMPLE_DISCOUNTS: tuple[dict[str, Any], ...] = (
    {
        "code": "WELCOME10",
        "description": "10% off your first order",
        "discount_type": "percentage",
        "discount_value": Decimal("10.00"),
        "min_purchase_amount": Decimal("25.00"),
        "max_discount_amount": Decimal("50.00"),
        "usage_limit": None,
    },
    {
        "code": "SAVE5",
        "description": "$5 off any order",
        "discount_type": "fixed_amount",
        "discount_value": Decimal("5.00"),
        "min_purchase_amount": Decimal("20.00"),
        "max_discount_amount": None,
        "usage_limit": None,
    },
    {
        "code": "HOLIDAY20",
        "description": "20% off holiday special",
        "discount_type": "percentage",
        "discount_value": Decimal("20.00"),
        "min_purchase_amount": Decimal("50.00"),
        "max_discount_amount": Decimal("100.00"),
        "usage_limit": 100,
    },
    {
        "code": "FREESHIP",
        "description": "Free shipping on orders over $30",
        "discount_type": "fixed_amount",
        "discount_value": Decimal("10.00"),
        "min_purchase_amount": Decimal("30.00"),
        "max_discount_amount": None,
        "usage_limit": None,
    },
)


def seed_discounts(db: Session, entries: Iterable[Mapping[str, Any]] = SAMPLE_DISCOUNTS) -> list[str]:
    """Insert the discounts whose codes are not present yet; returns the inserted codes."""
    inserted: list[str] = []
    for entry in entries:
        code = normalize_code(entry["code"])
        # Same checks the validator relies on when it reads the row back.
        DiscountRecord.from_mapping({**entry, "id": "seed", "code": code})

        exists = db.query(Discount.id).filter(func.upper(Discount.code) == code).first()
        if exists:
            logger.info("discount seed skipped code=%s (already present)", code)
            continue

        db.add(Discount(**{**entry, "code": code}, usage_count=0, is_active=True))
        inserted.append(code)

    db.commit()
    logger.info("discount seed inserted=%s", inserted)
    return inserted
