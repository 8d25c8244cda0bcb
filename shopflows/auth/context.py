from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from shopflows.auth.permissions import (
    is_admin_role,
    is_platform_admin_role,
    landing_path_for,
    permission_level,
    validate_role,
)

if TYPE_CHECKING:
    from shopflows.auth.store import SessionStore


@dataclass(frozen=True)
class Session:
    """Identity of whoever is signed in on this terminal.

    ``org_id`` scopes every downstream read and write. It may only be empty
    for a platform admin browsing globally with no organization selected.
    """
    org_id: str | None
    role: str
    user_id: str | None = None
    device_id: str | None = None
    device_name: str | None = None
    email: str | None = None
    name: str | None = None
    is_authenticated: bool = True

    def __post_init__(self) -> None:
        validate_role(self.role)
        if not self.is_authenticated:
            raise ValueError("Anonymous state is represented by no session")
        if not self.org_id and not is_platform_admin_role(self.role):
            raise ValueError(f"org_id is required for role {self.role}")

    @property
    def is_device(self) -> bool:
        return self.device_id is not None


@dataclass(frozen=True)
class SessionView:
    """Authorization flags derived from a session. Advisory only: the data
    layer must still enforce org scoping and role checks on every query."""
    session: Session | None
    is_admin: bool
    is_platform_admin: bool
    permission_level: int
    landing_path: str | None

    @classmethod
    def of(cls, session: Session | None) -> "SessionView":
        if session is None:
            return cls(
                session=None,
                is_admin=False,
                is_platform_admin=False,
                permission_level=0,
                landing_path=None,
            )
        return cls(
            session=session,
            is_admin=is_admin_role(session.role),
            is_platform_admin=is_platform_admin_role(session.role),
            permission_level=permission_level(session.role),
            landing_path=landing_path_for(session.role),
        )

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    @property
    def is_managing_org(self) -> bool:
        return self.is_platform_admin and bool(self.session and self.session.org_id)


def with_organization(session: Session, org_id: str | None) -> Session:
    return replace(session, org_id=org_id)


def switch_organization(store: "SessionStore", org_id: str) -> Session | None:
    """Make ``org_id`` the active organization of the current session.

    Role is kept as-is. Callers are responsible for checking the session is a
    platform admin; this function does not.
    """
    current = store.get_current_session()
    if current is None:
        return None
    updated = with_organization(current, org_id)
    store.commit(updated)
    return updated


def clear_organization(store: "SessionStore") -> Session | None:
    """Return a platform admin to global browsing with no organization selected."""
    current = store.get_current_session()
    if current is None:
        return None
    updated = with_organization(current, None)
    store.commit(updated)
    return updated
