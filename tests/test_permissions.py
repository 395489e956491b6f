from types import SimpleNamespace

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from starlette.requests import Request

from app.deps import require_admin_user, require_permission
from app.routers.admin_permissions import router as admin_permissions_router
from app.services.permissions import (
    Permission,
    Role,
    grouped_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    is_admin,
    is_owner,
)


def _build_request(path: str = "/api/admin/discounts", method: str = "POST") -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [],
        "path_params": {},
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


def test_owner_has_every_permission_and_admin_lacks_staff_management():
    assert Role.OWNER.permissions == frozenset(Permission)
    assert has_permission(Role.ADMIN, Permission.MANAGE_DISCOUNTS)
    assert not has_permission(Role.ADMIN, Permission.MANAGE_STAFF)


def test_viewer_is_read_only():
    assert all(permission.value.startswith("view_") for permission in Role.VIEWER.permissions)
    assert not has_any_permission(Role.VIEWER, [Permission.MANAGE_DISCOUNTS, Permission.MANAGE_ORDERS])


def test_staff_can_manage_orders_but_not_discounts():
    assert has_all_permissions(Role.STAFF, [Permission.VIEW_ORDERS, Permission.MANAGE_ORDERS])
    assert not has_permission(Role.STAFF, Permission.MANAGE_DISCOUNTS)


def test_role_parse_and_helpers():
    assert Role.parse(" Owner ") is Role.OWNER
    assert Role.parse("cashier") is None
    assert Role.parse(None) is None
    assert not has_permission(None, Permission.VIEW_ORDERS)
    assert not has_all_permissions(None, [])
    assert is_owner(Role.OWNER) and not is_owner(Role.ADMIN)
    assert is_admin(Role.ADMIN) and not is_admin(Role.STAFF)


def test_grouped_permissions_cover_every_permission_once():
    grouped = grouped_permissions()

    names = [entry["name"] for entries in grouped.values() for entry in entries]
    assert sorted(names) == sorted(permission.value for permission in Permission)
    assert {entry["name"] for entry in grouped["discounts"]} == {"view_discounts", "manage_discounts"}


def test_require_permission_denies_missing_permission():
    dependency = require_permission(Permission.MANAGE_DISCOUNTS)
    user = SimpleNamespace(id=12, role="viewer")

    with pytest.raises(HTTPException) as exc:
        dependency(request=_build_request(), user=user)

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


def test_require_permission_denies_unknown_role():
    dependency = require_permission(Permission.VIEW_ORDERS)
    user = SimpleNamespace(id=13, role="cashier")

    with pytest.raises(HTTPException) as exc:
        dependency(request=_build_request(method="GET"), user=user)

    assert exc.value.status_code == 403


def test_require_permission_allows_matching_role():
    dependency = require_permission(Permission.MANAGE_DISCOUNTS, Permission.VIEW_DISCOUNTS)
    user = SimpleNamespace(id=14, role="admin")

    assert dependency(request=_build_request(), user=user) is user


def test_permissions_endpoint_lists_groups_and_roles():
    app = FastAPI()
    app.include_router(admin_permissions_router)
    app.dependency_overrides[require_admin_user] = lambda: SimpleNamespace(id=1, role="viewer")
    client = TestClient(app)

    response = client.get("/api/admin/permissions")

    assert response.status_code == 200
    body = response.json()
    assert set(body["permissions"]) == {"orders", "products", "discounts", "customers", "settings", "staff"}
    assert body["roles"]["viewer"] == ["view_customers", "view_discounts", "view_orders", "view_products"]
