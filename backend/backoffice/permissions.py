# Overview: Actor context, roles and permission checks for every core operation.

"""
Role-based access control

The caller's identity is passed explicitly as an ActorContext. Nothing in
the service layer reads request globals; routes build the context once
(see decorators.require_actor) and hand it down.

ROLES:
- SuperAdmin: cross-business, manages tax rules
- Owner / Manager: manage discounts, gift cards, stock, catalog
- Employee: takes orders, payments and reservations

Each permission is defined as: (code, name, description)
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ForbiddenError

ROLE_SUPER_ADMIN = "SuperAdmin"
ROLE_OWNER = "Owner"
ROLE_MANAGER = "Manager"
ROLE_EMPLOYEE = "Employee"

VALID_ROLES = [ROLE_SUPER_ADMIN, ROLE_OWNER, ROLE_MANAGER, ROLE_EMPLOYEE]


PERMISSION_DEFINITIONS = [
    ("MANAGE_TAX_RULES", "Manage Tax Rules", "Create and deactivate tax rules"),
    ("MANAGE_CATALOG", "Manage Catalog", "Create catalog items, options and prices"),
    ("MANAGE_DISCOUNTS", "Manage Discounts", "Create and deactivate discount codes"),
    ("MANAGE_GIFT_CARDS", "Manage Gift Cards", "Issue, block and unblock gift cards"),
    ("MANAGE_INVENTORY", "Manage Inventory", "Create stock items and post manual movements"),
    ("VIEW_INVENTORY", "View Inventory", "View stock levels and movement history"),
    ("TAKE_ORDERS", "Take Orders", "Create orders, edit lines, apply discounts and tips"),
    ("TAKE_PAYMENTS", "Take Payments", "Record payments, close and cancel orders"),
    ("REFUND_ORDERS", "Refund Orders", "Refund closed orders"),
    ("MANAGE_RESERVATIONS", "Manage Reservations", "Book, update and cancel reservations"),
]

_STAFF_PERMISSIONS = {
    "VIEW_INVENTORY",
    "TAKE_ORDERS",
    "TAKE_PAYMENTS",
    "MANAGE_RESERVATIONS",
}

_MANAGER_PERMISSIONS = _STAFF_PERMISSIONS | {
    "MANAGE_CATALOG",
    "MANAGE_DISCOUNTS",
    "MANAGE_GIFT_CARDS",
    "MANAGE_INVENTORY",
    "REFUND_ORDERS",
}

ROLE_PERMISSIONS = {
    ROLE_SUPER_ADMIN: {perm[0] for perm in PERMISSION_DEFINITIONS},
    ROLE_OWNER: set(_MANAGER_PERMISSIONS),
    ROLE_MANAGER: set(_MANAGER_PERMISSIONS),
    ROLE_EMPLOYEE: set(_STAFF_PERMISSIONS),
}


@dataclass(frozen=True)
class ActorContext:
    """Authenticated caller: who, in which role, scoped to which business."""
    user_id: int | None
    role: str
    business_id: int | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN


def has_permission(actor: ActorContext, permission_code: str) -> bool:
    return permission_code in ROLE_PERMISSIONS.get(actor.role, set())


def require_permission(actor: ActorContext, permission_code: str) -> None:
    if not has_permission(actor, permission_code):
        raise ForbiddenError(
            "Insufficient permissions",
            {"required_permission": permission_code, "role": actor.role},
        )


def ensure_business_access(actor: ActorContext, business_id: int) -> None:
    """Raise unless the actor may act inside business_id."""
    if actor.is_super_admin:
        return
    if actor.business_id is None or actor.business_id != business_id:
        raise ForbiddenError("Cannot access another business", {"business_id": business_id})


def can_see_business(actor: ActorContext, business_id: int) -> bool:
    return actor.is_super_admin or actor.business_id == business_id
