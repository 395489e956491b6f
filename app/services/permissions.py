from __future__ import annotations

from enum import Enum
from typing import Iterable


class Permission(str, Enum):
    VIEW_ORDERS = "view_orders"
    MANAGE_ORDERS = "manage_orders"
    VIEW_PRODUCTS = "view_products"
    MANAGE_PRODUCTS = "manage_products"
    VIEW_DISCOUNTS = "view_discounts"
    MANAGE_DISCOUNTS = "manage_discounts"
    VIEW_CUSTOMERS = "view_customers"
    MANAGE_CUSTOMERS = "manage_customers"
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_STAFF = "manage_staff"

    @property
    def category(self) -> str:
        return PERMISSION_CATEGORIES[self]


PERMISSION_CATEGORIES: dict[Permission, str] = {
    Permission.VIEW_ORDERS: "orders",
    Permission.MANAGE_ORDERS: "orders",
    Permission.VIEW_PRODUCTS: "products",
    Permission.MANAGE_PRODUCTS: "products",
    Permission.VIEW_DISCOUNTS: "discounts",
    Permission.MANAGE_DISCOUNTS: "discounts",
    Permission.VIEW_CUSTOMERS: "customers",
    Permission.MANAGE_CUSTOMERS: "customers",
    Permission.MANAGE_SETTINGS: "settings",
    Permission.MANAGE_STAFF: "staff",
}

PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.VIEW_ORDERS: "View orders and their history",
    Permission.MANAGE_ORDERS: "Create, edit, fulfill and complete orders",
    Permission.VIEW_PRODUCTS: "View the product catalog",
    Permission.MANAGE_PRODUCTS: "Create and edit products and collections",
    Permission.VIEW_DISCOUNTS: "View discounts and coupon usage",
    Permission.MANAGE_DISCOUNTS: "Create, edit and deactivate discounts",
    Permission.VIEW_CUSTOMERS: "View customer accounts",
    Permission.MANAGE_CUSTOMERS: "Create and edit customer accounts",
    Permission.MANAGE_SETTINGS: "Change store settings",
    Permission.MANAGE_STAFF: "Invite staff and assign roles",
}


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    STAFF = "staff"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return None

    @property
    def permissions(self) -> frozenset[Permission]:
        return ROLE_PERMISSIONS[self]


ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.OWNER: frozenset(Permission),
    Role.ADMIN: frozenset(Permission) - {Permission.MANAGE_STAFF},
    Role.STAFF: frozenset(
        {
            Permission.VIEW_ORDERS,
            Permission.MANAGE_ORDERS,
            Permission.VIEW_PRODUCTS,
            Permission.VIEW_DISCOUNTS,
            Permission.VIEW_CUSTOMERS,
        }
    ),
    Role.VIEWER: frozenset(
        {
            Permission.VIEW_ORDERS,
            Permission.VIEW_PRODUCTS,
            Permission.VIEW_DISCOUNTS,
            Permission.VIEW_CUSTOMERS,
        }
    ),
}


def has_permission(role: Role | None, permission: Permission) -> bool:
    if role is None:
        return False
    return permission in role.permissions


def has_any_permission(role: Role | None, permissions: Iterable[Permission]) -> bool:
    return any(has_permission(role, permission) for permission in permissions)


def has_all_permissions(role: Role | None, permissions: Iterable[Permission]) -> bool:
    if role is None:
        return False
    return set(permissions) <= role.permissions


def is_owner(role: Role | None) -> bool:
    return role is Role.OWNER


def is_admin(role: Role | None) -> bool:
    return role in {Role.OWNER, Role.ADMIN}


def grouped_permissions() -> dict[str, list[dict[str, str]]]:
    grouped: dict[str, list[dict[str, str]]] = {}
    for permission in sorted(Permission, key=lambda p: (p.category, p.value)):
        grouped.setdefault(permission.category, []).append(
            {
                "name": permission.value,
                "description": PERMISSION_DESCRIPTIONS[permission],
                "category": permission.category,
            }
        )
    return grouped
