import json
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.middleware.admin_session import AdminSessionMiddleware
from app.models.admin_audit_log import AdminAuditLog
from app.models.admin_user import AdminUser
from app.routers.admin_auth import router as admin_auth_router
from app.services import admin_auth
from app.services.admin_audit import log_admin_action
from app.services.admin_bootstrap import upsert_admin_user
from app.services.passwords import hash_password, looks_hashed, verify_password


@pytest.fixture(autouse=True)
def _session_secret(monkeypatch):
    monkeypatch.setattr(admin_auth, "ADMIN_SESSION_SECRET", "test-session-secret")


def _build_client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    db.add(
        AdminUser(
            id=7,
            email="owner@example.com",
            name="Owner",
            password_hash=hash_password("correct-horse"),
            role="owner",
            active=True,
        )
    )
    db.add(
        AdminUser(
            id=8,
            email="gone@example.com",
            name="Gone",
            password_hash=hash_password("correct-horse"),
            role="staff",
            active=False,
        )
    )
    db.commit()

    app = FastAPI()
    app.add_middleware(AdminSessionMiddleware)
    app.include_router(admin_auth_router)
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app, base_url="https://testserver"), db


def test_login_sets_session_cookie_and_me_returns_permissions():
    client, db = _build_client()

    login = client.post(
        "/api/admin/auth/login",
        json={"email": "Owner@Example.com", "password": "correct-horse"},
    )

    assert login.status_code == 200
    set_cookie = login.headers.get("set-cookie", "")
    assert "admin_session=" in set_cookie
    assert "HttpOnly" in set_cookie
    assert "Path=/" in set_cookie

    me = client.get("/api/admin/auth/me")

    assert me.status_code == 200
    body = me.json()
    assert body["email"] == "owner@example.com"
    assert body["role"] == "owner"
    assert "manage_staff" in body["permissions"]
    assert db.query(AdminAuditLog).filter(AdminAuditLog.action == "login_success").count() == 1


def test_login_rejects_wrong_password_and_records_failure():
    client, db = _build_client()

    response = client.post(
        "/api/admin/auth/login",
        json={"email": "owner@example.com", "password": "wrong"},
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"
    assert "admin_session=" not in response.headers.get("set-cookie", "")
    assert db.query(AdminAuditLog).filter(AdminAuditLog.action == "login_failed").count() == 1


def test_login_rejects_inactive_admin():
    client, _ = _build_client()

    response = client.post(
        "/api/admin/auth/login",
        json={"email": "gone@example.com", "password": "correct-horse"},
    )

    assert response.status_code == 401


def test_me_without_cookie_is_401():
    client, _ = _build_client()

    response = client.get("/api/admin/auth/me")

    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


def test_me_with_tampered_cookie_is_401():
    client, _ = _build_client()
    client.cookies.set("admin_session", "not-a-real-token")

    response = client.get("/api/admin/auth/me")

    assert response.status_code == 401
    assert response.json()["detail"] == "Session expired"


def test_logout_clears_cookie():
    client, _ = _build_client()

    response = client.post("/api/admin/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    set_cookie = response.headers.get("set-cookie", "")
    assert "admin_session=" in set_cookie
    assert "Max-Age=0" in set_cookie


def test_session_token_round_trip_and_expiry():
    token = admin_auth.create_admin_session({"user_id": 7, "role": "owner"})
    expired = admin_auth.create_admin_session({"user_id": 7, "exp": 1})

    assert admin_auth.decode_admin_session(token)["user_id"] == 7
    assert admin_auth.decode_admin_session(expired) is None
    assert admin_auth.decode_admin_session("garbage") is None


def test_session_requires_secret(monkeypatch):
    monkeypatch.setattr(admin_auth, "ADMIN_SESSION_SECRET", "")

    with pytest.raises(RuntimeError):
        admin_auth.create_admin_session({"user_id": 1})


def test_passwords_hash_and_verify():
    password_hash = hash_password("s3cret")

    assert looks_hashed(password_hash)
    assert not looks_hashed("s3cret")
    assert verify_password("s3cret", password_hash)
    assert not verify_password("other", password_hash)
    assert not verify_password("s3cret", "")
    assert not verify_password("s3cret", "plain-text-value")


def test_upsert_admin_user_creates_then_updates():
    _, db = _build_client()

    admin, created = upsert_admin_user(
        db, email="New@Example.com", name="New", role="viewer", password="pw-123"
    )
    assert created is True
    assert admin.email == "new@example.com"
    assert verify_password("pw-123", admin.password_hash)

    same, created_again = upsert_admin_user(
        db, email="new@example.com", name="Renamed", role="ADMIN", password=None
    )
    assert created_again is False
    assert same.id == admin.id
    assert same.role == "admin"
    assert verify_password("pw-123", same.password_hash)


def test_upsert_admin_user_rejects_unknown_role_and_missing_password():
    _, db = _build_client()

    with pytest.raises(ValueError):
        upsert_admin_user(db, email="x@example.com", name="X", role="cashier", password="pw")
    with pytest.raises(ValueError):
        upsert_admin_user(db, email="x@example.com", name="X", role="staff", password=None)


def test_admin_session_middleware_only_decodes_back_office_paths():
    app = FastAPI()
    app.add_middleware(AdminSessionMiddleware)

    @app.get("/api/admin/ping")
    def admin_ping(request: Request):
        return {"payload": request.state.admin_session_payload}

    @app.get("/api/public/ping")
    def public_ping(request: Request):
        return {"payload": request.state.admin_session_payload}

    @app.get("/internal/ping")
    def internal_ping(request: Request):
        return {"payload": request.state.admin_session_payload}

    token = admin_auth.create_admin_session({"user_id": 9, "role": "staff"})
    client = TestClient(app)
    client.cookies.set("admin_session", token)

    assert client.get("/api/admin/ping").json()["payload"]["user_id"] == 9
    assert client.get("/api/public/ping").json()["payload"] is None
    assert client.get("/internal/ping").json()["payload"]["user_id"] == 9


def test_dependency_accepts_payload_from_middleware():
    from app.deps import get_current_admin_user

    user = SimpleNamespace(id=9, role="staff", active=True)

    class _Query:
        def filter(self, *args, **kwargs):
            return self

        def first(self):
            return user

    class _Db:
        def query(self, model):
            return _Query()

    request = SimpleNamespace(state=SimpleNamespace(admin_session_payload={"user_id": 9}), cookies={})

    assert get_current_admin_user(request, _Db()) is user


def test_audit_entry_is_staged_with_string_meta():
    _, db = _build_client()

    entry = log_admin_action(
        db,
        user_id=7,
        action="discount_updated",
        entity_type="discount",
        entity_id="d-save5",
        meta={"fields": ["discount_value"], "discount_value": Decimal("7.50")},
    )
    db.rollback()

    assert json.loads(entry.meta_json) == {"discount_value": "7.50", "fields": ["discount_value"]}
    assert db.query(AdminAuditLog).count() == 0
