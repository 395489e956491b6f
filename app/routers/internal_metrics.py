from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.metrics import request_metrics
from app.deps import require_permission
from app.models.admin_user import AdminUser
from app.services.permissions import Permission

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("")
def endpoint_metrics(_user: AdminUser = Depends(require_permission(Permission.MANAGE_SETTINGS))):
    return {"endpoints": request_metrics.snapshot()}


@router.get("/coupons")
def coupon_metrics(_user: AdminUser = Depends(require_permission(Permission.VIEW_DISCOUNTS))):
    return {"outcomes": request_metrics.snapshot_coupon_outcomes()}
