# app/deps.py
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.admin_user import AdminUser
from app.services.admin_auth import ADMIN_SESSION_COOKIE, decode_admin_session
from app.services.permissions import Permission, Role, has_all_permissions

logger = logging.getLogger(__name__)


def _log_access_denied(*, reason: str, user: AdminUser, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s user_role=%s endpoint=%s",
        reason,
        getattr(user, "id", None),
        getattr(user, "role", None),
        endpoint,
    )


def get_current_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    payload = getattr(request.state, "admin_session_payload", None)
    if payload is None:
        token = request.cookies.get(ADMIN_SESSION_COOKIE)
        if not token:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
        payload = decode_admin_session(token)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    user = (
        db.query(AdminUser)
        .filter(AdminUser.id == int(user_id), AdminUser.active.is_(True))
        .first()
    )
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin not found")
    return user


def require_admin_user(
    request: Request,
    db: Session = Depends(get_db),
) -> AdminUser:
    return get_current_admin_user(request, db)


def require_permission(*permissions: Permission):
    required = frozenset(permissions)

    def _dependency(
        request: Request,
        user: AdminUser = Depends(require_admin_user),
    ) -> AdminUser:
        role = Role.parse(user.role)
        if role is None:
            _log_access_denied(reason="unknown_role", user=user, request=request)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        if not has_all_permissions(role, required):
            _log_access_denied(reason="permission_denied", user=user, request=request)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return _dependency
