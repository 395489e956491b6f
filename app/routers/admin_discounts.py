from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_permission
from app.models.admin_user import AdminUser
from app.models.discount import Discount
from app.services.admin_audit import log_admin_action
from app.services.discount_store import PERCENTAGE, normalize_code
from app.services.permissions import Permission

router = APIRouter(prefix="/api/admin/discounts", tags=["admin-discounts"])
logger = logging.getLogger(__name__)

DISCOUNT_TYPE_PATTERN = "^(percentage|fixed_amount)$"
APPLIES_TO_PATTERN = "^(all|products|collections)$"
STATUS_PATTERN = "^(active|inactive|expired|scheduled|exhausted)$"


class DiscountCreateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: str = Field(..., pattern=DISCOUNT_TYPE_PATTERN)
    discount_value: Decimal = Field(..., gt=0)
    min_purchase_amount: Decimal = Field(Decimal("0"), ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: bool = True
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    applies_to: str = Field("all", pattern=APPLIES_TO_PATTERN)


class DiscountUpdateRequest(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: Optional[str] = Field(None, pattern=DISCOUNT_TYPE_PATTERN)
    discount_value: Optional[Decimal] = Field(None, gt=0)
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    applies_to: Optional[str] = Field(None, pattern=APPLIES_TO_PATTERN)

    @field_validator("code", "discount_type", "discount_value", "min_purchase_amount", "is_active", "applies_to")
    @classmethod
    def reject_null(cls, value):
        # Omit the field to keep the stored value; these columns are NOT NULL
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class DiscountRead(BaseModel):
    id: str
    code: str
    description: str | None
    discount_type: str
    discount_value: float
    min_purchase_amount: float
    max_discount_amount: float | None
    usage_limit: int | None
    usage_count: int
    is_active: bool
    starts_at: datetime | None
    expires_at: datetime | None
    applies_to: str
    status: str


class DiscountListResponse(BaseModel):
    items: list[DiscountRead]
    total: int
    page: int


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def discount_status(discount: Discount, now: datetime) -> str:
    if not discount.is_active:
        return "inactive"
    expires_at = _as_utc(discount.expires_at)
    if expires_at is not None and expires_at < now:
        return "expired"
    if discount.usage_limit is not None and int(discount.usage_count or 0) >= int(discount.usage_limit):
        return "exhausted"
    starts_at = _as_utc(discount.starts_at)
    if starts_at is not None and starts_at > now:
        return "scheduled"
    return "active"


def _serialize(discount: Discount, now: datetime) -> DiscountRead:
    return DiscountRead(
        id=discount.id,
        code=discount.code,
        description=discount.description,
        discount_type=discount.discount_type,
        discount_value=float(discount.discount_value),
        min_purchase_amount=float(discount.min_purchase_amount or 0),
        max_discount_amount=float(discount.max_discount_amount) if discount.max_discount_amount is not None else None,
        usage_limit=discount.usage_limit,
        usage_count=int(discount.usage_count or 0),
        is_active=bool(discount.is_active),
        starts_at=_as_utc(discount.starts_at),
        expires_at=_as_utc(discount.expires_at),
        applies_to=discount.applies_to or "all",
        status=discount_status(discount, now),
    )


def _status_filter(status_name: str, now: datetime):
    not_expired = or_(Discount.expires_at.is_(None), Discount.expires_at >= now)
    exhausted = and_(Discount.usage_limit.isnot(None), Discount.usage_count >= Discount.usage_limit)
    started = or_(Discount.starts_at.is_(None), Discount.starts_at <= now)
    active = Discount.is_active.is_(True)

    if status_name == "inactive":
        return Discount.is_active.is_(False)
    if status_name == "expired":
        return and_(active, Discount.expires_at.isnot(None), Discount.expires_at < now)
    if status_name == "exhausted":
        return and_(active, not_expired, exhausted)
    if status_name == "scheduled":
        return and_(active, not_expired, ~exhausted, ~started)
    return and_(active, not_expired, ~exhausted, started)


def _validate_rules(discount: Discount) -> None:
    value = Decimal(str(discount.discount_value))
    if discount.discount_type == PERCENTAGE and value > 100:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Percentage discounts cannot exceed 100")
    starts_at = _as_utc(discount.starts_at)
    expires_at = _as_utc(discount.expires_at)
    if starts_at is not None and expires_at is not None and expires_at <= starts_at:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Expiry must be after the start date")
    if discount.usage_limit is not None and int(discount.usage_count or 0) > int(discount.usage_limit):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Usage limit cannot be lower than the current usage count",
        )


def _get_discount_or_404(db: Session, discount_id: str) -> Discount:
    discount = db.query(Discount).filter(Discount.id == discount_id).first()
    if not discount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Discount not found")
    return discount


def _ensure_code_available(db: Session, code: str, exclude_id: str | None = None) -> None:
    query = db.query(Discount.id).filter(func.upper(Discount.code) == code)
    if exclude_id is not None:
        query = query.filter(Discount.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Discount code already exists")


@router.get("", response_model=DiscountListResponse)
def list_discounts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status", pattern=STATUS_PATTERN),
    _user: AdminUser = Depends(require_permission(Permission.VIEW_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    now = datetime.now(timezone.utc)
    query = db.query(Discount)

    clean_search = (search or "").strip()
    if clean_search:
        search_like = f"%{clean_search}%"
        query = query.filter(or_(Discount.code.ilike(search_like), Discount.description.ilike(search_like)))
    if status_filter:
        query = query.filter(_status_filter(status_filter, now))

    total = query.count()
    rows = (
        query.order_by(Discount.created_at.desc(), Discount.code.asc())
        .limit(limit)
        .offset((page - 1) * limit)
        .all()
    )
    return DiscountListResponse(items=[_serialize(row, now) for row in rows], total=total, page=page)


@router.get("/{discount_id}", response_model=DiscountRead)
def get_discount(
    discount_id: str,
    _user: AdminUser = Depends(require_permission(Permission.VIEW_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    discount = _get_discount_or_404(db, discount_id)
    return _serialize(discount, datetime.now(timezone.utc))


@router.post("", response_model=DiscountRead, status_code=status.HTTP_201_CREATED)
def create_discount(
    payload: DiscountCreateRequest,
    user: AdminUser = Depends(require_permission(Permission.MANAGE_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    code = normalize_code(payload.code)
    _ensure_code_available(db, code)

    data = payload.model_dump()
    data["code"] = code
    if data["discount_type"] != PERCENTAGE:
        data["max_discount_amount"] = None
    discount = Discount(**data, usage_count=0)
    _validate_rules(discount)

    db.add(discount)
    db.flush()
    log_admin_action(
        db,
        user_id=user.id,
        action="discount_created",
        entity_type="discount",
        entity_id=discount.id,
        meta={"code": code},
    )
    db.commit()
    db.refresh(discount)
    logger.info("Discount created id=%s code=%s by user_id=%s", discount.id, code, user.id)
    return _serialize(discount, datetime.now(timezone.utc))


@router.put("/{discount_id}", response_model=DiscountRead)
def update_discount(
    discount_id: str,
    payload: DiscountUpdateRequest,
    user: AdminUser = Depends(require_permission(Permission.MANAGE_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    discount = _get_discount_or_404(db, discount_id)
    changes = payload.model_dump(exclude_unset=True)

    if "code" in changes:
        changes["code"] = normalize_code(changes["code"])
        _ensure_code_available(db, changes["code"], exclude_id=discount.id)

    for key, value in changes.items():
        setattr(discount, key, value)
    if discount.discount_type != PERCENTAGE:
        discount.max_discount_amount = None
    _validate_rules(discount)

    log_admin_action(
        db,
        user_id=user.id,
        action="discount_updated",
        entity_type="discount",
        entity_id=discount.id,
        meta={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(discount)
    return _serialize(discount, datetime.now(timezone.utc))


@router.delete("/{discount_id}", response_model=DiscountRead)
def deactivate_discount(
    discount_id: str,
    user: AdminUser = Depends(require_permission(Permission.MANAGE_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    # Orders keep pointing at redeemed discounts, so rows are only switched off.
    discount = _get_discount_or_404(db, discount_id)
    discount.is_active = False
    log_admin_action(
        db,
        user_id=user.id,
        action="discount_deactivated",
        entity_type="discount",
        entity_id=discount.id,
        meta={"code": discount.code},
    )
    db.commit()
    db.refresh(discount)
    logger.info("Discount deactivated id=%s code=%s by user_id=%s", discount.id, discount.code, user.id)
    return _serialize(discount, datetime.now(timezone.utc))
