# Overview: Role-to-operation table and the single authorization decision.

"""
Authorization for cartonstock.

Identity is resolved upstream; each request arrives with an ActorContext
(user id, role, location). Roles:

- admin:        everything
- store_staff:  store manager; catalog, stock corrections, order handling
- shop_staff:   sales and stock views at their own location only
- None:         external wholesale customer; catalog view and own orders

Service entry points call require(actor, OPERATION) exactly once.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import PermissionDenied

ROLE_ADMIN = "admin"
ROLE_STORE_STAFF = "store_staff"
ROLE_SHOP_STAFF = "shop_staff"
ROLE_CUSTOMER = None

VALID_ROLES = {ROLE_ADMIN, ROLE_STORE_STAFF, ROLE_SHOP_STAFF}

# Name used for customers in notification targets
CUSTOMER_ROLE_NAME = "customer"


@dataclass(frozen=True)
class ActorContext:
    """Request-scoped identity handed to every service entry point."""
    user_id: str
    role: str | None = None
    location_id: int | None = None

    @property
    def is_customer(self) -> bool:
        return self.role is None

    @property
    def role_name(self) -> str:
        return self.role or CUSTOMER_ROLE_NAME


OPERATIONS = {
    "VIEW_CATALOG": "View products and prices",
    "MANAGE_CATALOG": "Create, edit and delete products",
    "VIEW_LOCATIONS": "View stores and shops",
    "MANAGE_LOCATIONS": "Create locations",
    "VIEW_CUSTOMERS": "View customer accounts",
    "MANAGE_CUSTOMERS": "Create and approve customer accounts",
    "REGISTER_CUSTOMER": "Request a customer account for oneself",
    "VIEW_STOCK": "View live stock counts",
    "RECEIVE_STOCK": "Add received cartons to stock",
    "ADJUST_STOCK": "Manually correct stock with a reason",
    "VIEW_SNAPSHOTS": "View daily reconciliation sheets",
    "OVERRIDE_SNAPSHOT": "Bulk edit daily reconciliation rows",
    "RUN_ROLLOVER": "Create the day's opening snapshot rows",
    "RECORD_SALE": "Record a walk-in sale",
    "VIEW_SALES": "View sales and receipts",
    "CREATE_ORDER": "Place a wholesale order",
    "VIEW_ORDERS": "View orders",
    "APPROVE_ORDER": "Approve a pending order",
    "REJECT_ORDER": "Reject a pending or approved order",
    "FULFILL_ORDER": "Fulfill an approved order from store stock",
    "VIEW_REPORTS": "View sales and stock reports",
}

ROLE_OPERATIONS: dict[str | None, frozenset[str]] = {
    ROLE_ADMIN: frozenset(OPERATIONS),
    ROLE_STORE_STAFF: frozenset({
        "VIEW_CATALOG",
        "MANAGE_CATALOG",
        "VIEW_LOCATIONS",
        "VIEW_CUSTOMERS",
        "VIEW_STOCK",
        "RECEIVE_STOCK",
        "ADJUST_STOCK",
        "VIEW_SNAPSHOTS",
        "OVERRIDE_SNAPSHOT",
        "RECORD_SALE",
        "VIEW_SALES",
        "VIEW_ORDERS",
        "APPROVE_ORDER",
        "REJECT_ORDER",
        "FULFILL_ORDER",
        "VIEW_REPORTS",
    }),
    ROLE_SHOP_STAFF: frozenset({
        "VIEW_CATALOG",
        "VIEW_LOCATIONS",
        "VIEW_STOCK",
        "VIEW_SNAPSHOTS",
        "RECORD_SALE",
        "VIEW_SALES",
    }),
    ROLE_CUSTOMER: frozenset({
        "VIEW_CATALOG",
        "REGISTER_CUSTOMER",
        "CREATE_ORDER",
        "VIEW_ORDERS",
    }),
}

# Roles whose access is limited to their own location
LOCATION_SCOPED_ROLES = {ROLE_SHOP_STAFF}


def authorize(role: str | None, operation: str) -> bool:
    """Allow/deny decision. Unknown roles and operations are denied."""
    if operation not in OPERATIONS:
        return False
    allowed = ROLE_OPERATIONS.get(role)
    if allowed is None:
        return False
    return operation in allowed


def require(actor: ActorContext | None, operation: str) -> None:
    """Raise PermissionDenied unless the actor may perform the operation."""
    if actor is None:
        raise PermissionDenied("Authentication required", details={"operation": operation})
    if not authorize(actor.role, operation):
        raise PermissionDenied(
            f"Role '{actor.role_name}' may not perform {operation}",
            details={"operation": operation, "role": actor.role_name},
        )


def require_location_access(actor: ActorContext, location_id: int) -> None:
    """Location-scoped roles may only act on their assigned location."""
    if actor.role not in LOCATION_SCOPED_ROLES:
        return
    if actor.location_id is None:
        raise PermissionDenied(
            "No location assigned to this account",
            details={"location_id": location_id},
        )
    if int(actor.location_id) != int(location_id):
        raise PermissionDenied(
            "Access limited to your assigned location",
            details={"location_id": location_id, "assigned_location_id": actor.location_id},
        )


def parse_role(value: str | None) -> str | None:
    """Normalize an incoming role header; blank/customer means no staff role."""
    if value is None:
        return None
    role = value.strip().lower()
    if role in ("", CUSTOMER_ROLE_NAME):
        return None
    if role not in VALID_ROLES:
        raise ValueError(f"unknown role {value!r}")
    return role
