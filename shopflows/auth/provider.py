from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from supabase import AuthApiError, Client

from shopflows.auth.context import Session

logger = logging.getLogger(__name__)

# Events emitted by the auth provider's state-change stream.
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
INITIAL_SESSION = "INITIAL_SESSION"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"

_PROFILE_FIELDS = "id, full_name, role, org_id, auth_id, email"


class InvalidCredentialsError(Exception):
    """The provider rejected the email/password pair. Message is user-facing."""


class IdentityBackendError(Exception):
    """Provider or directory could not be reached or answered unexpectedly."""


@dataclass(frozen=True)
class Principal:
    id: str
    email: str | None = None


@dataclass(frozen=True)
class Profile:
    id: str
    org_id: str | None
    role: str
    full_name: str | None = None
    email: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        return cls(
            id=str(row["id"]),
            org_id=row.get("org_id") or row.get("shop_id"),
            role=row.get("role"),
            full_name=row.get("full_name") or row.get("name"),
            email=row.get("email"),
        )

    def to_session(self, email: str | None = None) -> Session:
        return Session(
            org_id=self.org_id,
            role=self.role,
            user_id=self.id,
            email=email or self.email,
            name=self.full_name,
        )


def first_row(data: Any) -> dict[str, Any] | None:
    """RPCs return either a single object or a list of rows."""
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


def _principal_from_user(user: Any) -> Principal | None:
    if user is None or not getattr(user, "id", None):
        return None
    return Principal(id=str(user.id), email=getattr(user, "email", None))


class SupabaseIdentityProvider:
    """Email/password sign-in against Supabase Auth."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def sign_in(self, email: str, password: str) -> Principal:
        try:
            response = self.supabase.auth.sign_in_with_password({"email": email, "password": password})
        except AuthApiError as exc:
            status = getattr(exc, "status", None)
            if isinstance(status, int) and status >= 500:
                raise IdentityBackendError(f"Auth provider error: {exc}") from exc
            raise InvalidCredentialsError(getattr(exc, "message", None) or "Invalid email or password") from exc
        except Exception as exc:
            raise IdentityBackendError(f"Auth provider unreachable: {exc}") from exc

        principal = _principal_from_user(getattr(response, "user", None))
        if principal is None:
            raise IdentityBackendError("Auth provider returned no user")
        return principal

    def sign_out(self) -> None:
        try:
            self.supabase.auth.sign_out()
        except Exception as exc:
            # Local state is cleared regardless; the provider session expires on its own.
            logger.warning(f"Auth provider sign-out failed: {exc}")

    def current_principal(self) -> Principal | None:
        try:
            session = self.supabase.auth.get_session()
        except Exception as exc:
            raise IdentityBackendError(f"Could not read auth provider session: {exc}") from exc
        if session is None:
            return None
        return _principal_from_user(getattr(session, "user", None))

    def subscribe(self, callback: Callable[[str, Principal | None], None]) -> Callable[[], None]:
        def _on_change(event: Any, session: Any) -> None:
            user = getattr(session, "user", None) if session is not None else None
            callback(str(getattr(event, "value", event)), _principal_from_user(user))

        subscription = self.supabase.auth.on_auth_state_change(_on_change)
        return subscription.unsubscribe


class SupabaseDirectory:
    """Profile and credential lookups against the ``users`` directory."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _rpc_row(self, name: str, params: dict[str, Any]) -> dict[str, Any] | None:
        try:
            result = self.supabase.rpc(name, params).execute()
        except Exception as exc:
            raise IdentityBackendError(f"RPC {name} failed: {exc}") from exc
        return first_row(result.data)

    def lookup_profile(self, principal_id: str) -> Profile | None:
        """Find the profile row for an auth principal.

        The direct table read can be blocked by row-level security for some
        roles, so an empty or failed read falls back to the
        ``get_user_by_auth_id`` RPC.
        """
        try:
            result = self.supabase.table("users").select(_PROFILE_FIELDS).eq(
                "auth_id", principal_id
            ).limit(1).execute()
            if result.data:
                return Profile.from_row(result.data[0])
        except Exception as exc:
            logger.info(f"Direct profile query failed for principal {principal_id}, trying RPC: {exc}")

        row = self._rpc_row("get_user_by_auth_id", {"p_auth_id": principal_id})
        if row is None:
            return None
        return Profile.from_row(row)

    def verify_admin_credentials(self, email: str, password: str) -> dict[str, Any]:
        row = self._rpc_row("verify_admin_credentials", {"p_email": email, "p_password": password})
        return row or {"success": False}

    def device_login(self, pin: str) -> dict[str, Any]:
        row = self._rpc_row("device_login", {"p_pin": pin})
        return row or {"success": False}

    def organization_name(self, org_id: str) -> str | None:
        try:
            result = self.supabase.table("organizations").select("name").eq("id", org_id).limit(1).execute()
        except Exception as exc:
            logger.warning(f"Could not load organization name for {org_id}: {exc}")
            return None
        if not result.data:
            return None
        return result.data[0].get("name")

    def department_of(self, user_id: str) -> str | None:
        try:
            result = self.supabase.table("users").select("department_id").eq("id", user_id).limit(1).execute()
        except Exception as exc:
            raise IdentityBackendError(f"Could not load department for user {user_id}: {exc}") from exc
        if not result.data:
            return None
        return result.data[0].get("department_id")
