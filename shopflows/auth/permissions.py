from __future__ import annotations

from typing import Final, Literal

Role = Literal["platform_admin", "shop_admin", "supervisor", "shop_user"]

PLATFORM_ADMIN: Final[str] = "platform_admin"
SHOP_ADMIN: Final[str] = "shop_admin"
SUPERVISOR: Final[str] = "supervisor"
SHOP_USER: Final[str] = "shop_user"

ROLES: Final[frozenset[str]] = frozenset({PLATFORM_ADMIN, SHOP_ADMIN, SUPERVISOR, SHOP_USER})
ADMIN_ROLES: Final[frozenset[str]] = frozenset({PLATFORM_ADMIN, SHOP_ADMIN})
# Roles allowed through the admin portal login.
ADMIN_PORTAL_ROLES: Final[frozenset[str]] = frozenset({PLATFORM_ADMIN, SHOP_ADMIN, SUPERVISOR})

PERMISSION_LEVELS: Final[dict[str, int]] = {
    PLATFORM_ADMIN: 100,
    SHOP_ADMIN: 80,
    SUPERVISOR: 60,
    SHOP_USER: 40,
}

LANDING_PATHS: Final[dict[str, str]] = {
    PLATFORM_ADMIN: "/platform",
    SHOP_ADMIN: "/admin",
    SUPERVISOR: "/admin",
    SHOP_USER: "/dashboard",
}

DEVICE_LANDING_PATH: Final[str] = "/track"


def validate_role(role: str | None) -> str:
    """Return ``role`` unchanged if it is one of the known roles.

    Roles come verbatim from the directory; nothing is aliased or upgraded.
    """
    if role not in ROLES:
        raise ValueError(f"Unsupported role: {role}")
    return role


def is_admin_role(role: str | None) -> bool:
    return role in ADMIN_ROLES


def is_platform_admin_role(role: str | None) -> bool:
    return role == PLATFORM_ADMIN


def is_supervisor_role(role: str | None) -> bool:
    return role == SUPERVISOR


def permission_level(role: str | None) -> int:
    return PERMISSION_LEVELS.get(role or "", 0)


def landing_path_for(role: str | None) -> str:
    return LANDING_PATHS.get(role or "", "/dashboard")
