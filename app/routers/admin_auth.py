from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import get_current_admin_user
from app.models.admin_user import AdminUser
from app.services.admin_audit import log_admin_action
from app.services.admin_auth import (
    clear_admin_session_cookie,
    create_admin_session,
    set_admin_session_cookie,
)
from app.services.passwords import verify_password
from app.services.permissions import Role

router = APIRouter(prefix="/api/admin/auth", tags=["admin-auth"])
logger = logging.getLogger(__name__)


class AdminLoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminUserRead(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: str
    active: bool
    permissions: list[str]


def _serialize_user(user: AdminUser) -> AdminUserRead:
    role = Role.parse(user.role)
    permissions = sorted(permission.value for permission in role.permissions) if role else []
    return AdminUserRead(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        active=user.active,
        permissions=permissions,
    )


@router.post("/login", response_model=AdminUserRead)
def admin_login(
    payload: AdminLoginPayload,
    response: Response,
    db: Session = Depends(get_db),
):
    normalized_email = payload.email.strip().lower()
    user = (
        db.query(AdminUser)
        .filter(func.lower(AdminUser.email) == normalized_email)
        .first()
    )
    if not user or not user.active or not verify_password(payload.password, user.password_hash):
        log_admin_action(
            db,
            user_id=user.id if user else 0,
            action="login_failed",
            entity_type="admin_user",
            entity_id=user.id if user else None,
            meta={"email": normalized_email},
        )
        db.commit()
        logger.warning("Admin login failed email=%s", normalized_email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_admin_session({"user_id": user.id, "role": user.role})
    set_admin_session_cookie(response, token)

    log_admin_action(db, user_id=user.id, action="login_success")
    db.commit()
    logger.info("Admin login user_id=%s role=%s", user.id, user.role)
    return _serialize_user(user)


@router.post("/logout")
def admin_logout(response: Response):
    clear_admin_session_cookie(response)
    return {"ok": True}


@router.get("/me", response_model=AdminUserRead)
def admin_me(user: AdminUser = Depends(get_current_admin_user)):
    return _serialize_user(user)
