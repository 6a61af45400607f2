"""Static role -> permission map.

Roles are fixed (ADMIN, SUPERVISOR, CASHIER); permission codes follow the
``area:action`` convention used by ``require_permission``.
"""

from __future__ import annotations

from shiftpos.app.models.user import RoleEnum

CASHIER_PERMISSIONS: frozenset[str] = frozenset(
    {
        "pos:sale",
        "pos:shift",
        "returns:process",
        "sales:read",
        "discount:read",
        "loyalty:read",
    }
)

SUPERVISOR_PERMISSIONS: frozenset[str] = CASHIER_PERMISSIONS | {
    "shift:list",
    "shift:approve",
    "sale:void",
    "returns:cancel",
}

ADMIN_PERMISSIONS: frozenset[str] = SUPERVISOR_PERMISSIONS | {
    "discount:write",
    "loyalty:write",
}

ROLE_PERMISSIONS: dict[RoleEnum, frozenset[str]] = {
    RoleEnum.CASHIER: CASHIER_PERMISSIONS,
    RoleEnum.SUPERVISOR: SUPERVISOR_PERMISSIONS,
    RoleEnum.ADMIN: ADMIN_PERMISSIONS,
}

# Roles allowed to approve shifts, void sales and cancel returns.
SUPERVISOR_ROLES: frozenset[RoleEnum] = frozenset({RoleEnum.ADMIN, RoleEnum.SUPERVISOR})


def permissions_for(role: RoleEnum) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role, frozenset())


def is_supervisor(role: RoleEnum) -> bool:
    return role in SUPERVISOR_ROLES
