from __future__ import annotations

from fastapi import APIRouter, Depends

from app.deps import require_admin_user
from app.models.admin_user import AdminUser
from app.services.permissions import Role, grouped_permissions

router = APIRouter(prefix="/api/admin/permissions", tags=["admin-permissions"])


@router.get("")
def list_permissions(_user: AdminUser = Depends(require_admin_user)):
    return {
        "permissions": grouped_permissions(),
        "roles": {
            role.value: sorted(permission.value for permission in role.permissions)
            for role in Role
        },
    }
