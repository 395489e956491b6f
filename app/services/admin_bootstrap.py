from __future__ import annotations

from sqlalchemy import func, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.models.admin_user import AdminUser
from app.services.passwords import hash_password, looks_hashed
from app.services.permissions import Role


def ensure_admin_users_table(engine: Engine) -> None:
    if not inspect(engine).has_table("admin_users"):
        raise RuntimeError("Table admin_users not found. Run `alembic upgrade head` first.")


def upsert_admin_user(
    db: Session,
    *,
    email: str,
    name: str,
    role: str,
    password: str | None,
) -> tuple[AdminUser, bool]:
    """Create the admin, or refresh name/role (and password when given) if the email exists."""
    parsed_role = Role.parse(role)
    if parsed_role is None:
        raise ValueError(f"Unknown role: {role}")

    normalized_email = email.strip().lower()
    password_hash = None
    if password:
        password_hash = password if looks_hashed(password) else hash_password(password)

    existing = (
        db.query(AdminUser)
        .filter(func.lower(AdminUser.email) == normalized_email)
        .first()
    )
    if existing:
        existing.name = name
        existing.role = parsed_role.value
        existing.active = True
        if password_hash:
            existing.password_hash = password_hash
        db.commit()
        db.refresh(existing)
        return existing, False

    if not password_hash:
        raise ValueError("A password is required to create a new admin.")

    admin = AdminUser(
        email=normalized_email,
        name=name,
        password_hash=password_hash,
        role=parsed_role.value,
        active=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin, True
