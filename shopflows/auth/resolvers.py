from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final, Protocol

from shopflows.auth.context import Session
from shopflows.auth.permissions import (
    DEVICE_LANDING_PATH,
    SHOP_USER,
    landing_path_for,
)
from shopflows.auth.provider import (
    IdentityBackendError,
    InvalidCredentialsError,
    Principal,
    Profile,
)
from shopflows.auth.store import SessionStore
from shopflows.observability import incr_metric, log_event, record_login_attempt

logger = logging.getLogger(__name__)

BAD_CREDENTIALS: Final[str] = "bad_credentials"
PROFILE_NOT_FOUND: Final[str] = "profile_not_found"
INVALID_PROFILE: Final[str] = "invalid_profile"
ACCESS_DENIED: Final[str] = "access_denied"
UNAVAILABLE: Final[str] = "unavailable"
NOT_CONFIGURED: Final[str] = "not_configured"

MSG_INCORRECT_PIN: Final[str] = "Incorrect PIN"
MSG_INVALID_CREDENTIALS: Final[str] = "Invalid email or password"
MSG_MISSING_CREDENTIALS: Final[str] = "Email and password are required"
MSG_PROFILE_NOT_FOUND: Final[str] = "User profile not found. Please contact your administrator."
MSG_INVALID_PROFILE: Final[str] = "User profile is incomplete. Please contact your administrator."
MSG_ACCESS_DENIED: Final[str] = "Access denied. Admin privileges required."
MSG_TRY_AGAIN: Final[str] = "Login failed. Please try again."
MSG_DEVICE_NOT_CONFIGURED: Final[str] = "Device login is not configured"


@dataclass(frozen=True)
class LoginResult:
    success: bool
    message: str | None = None
    reason: str | None = None
    session: Session | None = None
    redirect_to: str | None = None
    # PIN pads reset the entered digits; email/password forms keep their input.
    clear_input: bool = False

    @classmethod
    def ok(cls, session: Session, redirect_to: str) -> "LoginResult":
        return cls(success=True, session=session, redirect_to=redirect_to)

    @classmethod
    def fail(cls, reason: str, message: str, clear_input: bool = False) -> "LoginResult":
        return cls(success=False, reason=reason, message=message, clear_input=clear_input)


class CredentialProvider(Protocol):
    def sign_in(self, email: str, password: str) -> Principal: ...

    def sign_out(self) -> None: ...


class Directory(Protocol):
    def lookup_profile(self, principal_id: str) -> Profile | None: ...

    def verify_admin_credentials(self, email: str, password: str) -> dict[str, Any]: ...

    def device_login(self, pin: str) -> dict[str, Any]: ...


def _finish(store: SessionStore, method: str, result: LoginResult) -> LoginResult:
    if result.success and result.session is not None:
        store.commit(result.session)
        record_login_attempt(method, success=True, role=result.session.role, org_id=result.session.org_id)
    else:
        record_login_attempt(method, success=False, reason=result.reason)
    return result


class DevicePinResolver:
    """Unlock a shop-floor terminal with its PIN.

    In ``static`` mode the PIN is compared with the configured value and the
    terminal signs in to the configured organization. In ``rpc`` mode the
    directory's ``device_login`` RPC identifies the registered device.
    """

    method = "device_pin"

    def __init__(
        self,
        store: SessionStore,
        expected_pin: str | None = None,
        org_id: str | None = None,
        mode: str = "static",
        directory: Directory | None = None,
    ):
        self.store = store
        self.expected_pin = expected_pin
        self.org_id = org_id
        self.mode = mode
        self.directory = directory

    def login(self, pin: str) -> LoginResult:
        pin = pin or ""
        if self.mode == "rpc":
            result = self._login_rpc(pin)
        else:
            result = self._login_static(pin)
        return _finish(self.store, self.method, result)

    def _login_static(self, pin: str) -> LoginResult:
        if not self.expected_pin or not self.org_id:
            logger.error("Device PIN login attempted without DEVICE_PIN/DEVICE_ORG_ID configured")
            return LoginResult.fail(NOT_CONFIGURED, MSG_DEVICE_NOT_CONFIGURED, clear_input=True)
        if pin != self.expected_pin:
            return LoginResult.fail(BAD_CREDENTIALS, MSG_INCORRECT_PIN, clear_input=True)
        return LoginResult.ok(Session(org_id=self.org_id, role=SHOP_USER), DEVICE_LANDING_PATH)

    def _login_rpc(self, pin: str) -> LoginResult:
        if self.directory is None:
            return LoginResult.fail(NOT_CONFIGURED, MSG_DEVICE_NOT_CONFIGURED, clear_input=True)
        try:
            data = self.directory.device_login(pin)
        except IdentityBackendError as exc:
            logger.error(f"Device login RPC failed: {exc}")
            return LoginResult.fail(UNAVAILABLE, MSG_TRY_AGAIN, clear_input=True)

        if not data.get("success"):
            return LoginResult.fail(BAD_CREDENTIALS, data.get("error") or MSG_INCORRECT_PIN, clear_input=True)

        try:
            session = Session(
                org_id=data.get("org_id") or data.get("shop_id"),
                role=SHOP_USER,
                user_id=data.get("user_id"),
                device_id=data.get("device_id"),
                device_name=data.get("device_name"),
                name=data.get("name") or data.get("full_name"),
            )
        except ValueError as exc:
            logger.error(f"Device login RPC returned an unusable device record: {exc}")
            return LoginResult.fail(INVALID_PROFILE, MSG_INVALID_PROFILE, clear_input=True)
        return LoginResult.ok(session, DEVICE_LANDING_PATH)


class AdminCredentialResolver:
    """Sign in through the ``verify_admin_credentials`` RPC.

    The RPC's own error text is shown to the operator as-is.
    """

    method = "admin_credentials"

    def __init__(self, store: SessionStore, directory: Directory):
        self.store = store
        self.directory = directory

    def login(self, email: str, password: str) -> LoginResult:
        return _finish(self.store, self.method, self._resolve((email or "").strip(), password or ""))

    def _resolve(self, email: str, password: str) -> LoginResult:
        if not email or not password:
            return LoginResult.fail(BAD_CREDENTIALS, MSG_MISSING_CREDENTIALS)
        try:
            data = self.directory.verify_admin_credentials(email, password)
        except IdentityBackendError as exc:
            logger.error(f"Admin credential RPC failed: {exc}")
            return LoginResult.fail(UNAVAILABLE, MSG_TRY_AGAIN)

        if not data.get("success"):
            return LoginResult.fail(BAD_CREDENTIALS, data.get("error") or MSG_INVALID_CREDENTIALS)

        try:
            session = Session(
                org_id=data.get("org_id") or data.get("shop_id"),
                role=data.get("role"),
                user_id=data.get("user_id"),
                email=data.get("email") or email,
                name=data.get("name"),
            )
        except ValueError as exc:
            logger.error(f"Admin credential RPC returned an unusable profile: {exc}")
            return LoginResult.fail(INVALID_PROFILE, MSG_INVALID_PROFILE)
        return LoginResult.ok(session, landing_path_for(session.role))


class ProviderLoginResolver:
    """Email/password sign-in at the auth provider, then a directory lookup.

    ``allowed_roles`` gates portals that only some roles may enter; a
    rejected user is signed back out of the provider.
    """

    method = "provider"

    def __init__(
        self,
        store: SessionStore,
        provider: CredentialProvider,
        directory: Directory,
        allowed_roles: frozenset[str] | None = None,
    ):
        self.store = store
        self.provider = provider
        self.directory = directory
        self.allowed_roles = allowed_roles

    def login(self, email: str, password: str, allowed_roles: frozenset[str] | None = None) -> LoginResult:
        roles = allowed_roles if allowed_roles is not None else self.allowed_roles
        with self.store.provider_events_suspended():
            result = self._resolve((email or "").strip(), password or "", roles)
        return _finish(self.store, self.method, result)

    def _resolve(self, email: str, password: str, allowed_roles: frozenset[str] | None) -> LoginResult:
        if not email or not password:
            return LoginResult.fail(BAD_CREDENTIALS, MSG_MISSING_CREDENTIALS)

        try:
            principal = self.provider.sign_in(email, password)
        except InvalidCredentialsError as exc:
            return LoginResult.fail(BAD_CREDENTIALS, str(exc) or MSG_INVALID_CREDENTIALS)
        except IdentityBackendError as exc:
            logger.error(f"Auth provider sign-in failed: {exc}")
            return LoginResult.fail(UNAVAILABLE, MSG_TRY_AGAIN)

        try:
            profile = self.directory.lookup_profile(principal.id)
        except IdentityBackendError as exc:
            logger.error(f"Profile lookup failed for principal {principal.id}: {exc}")
            return LoginResult.fail(UNAVAILABLE, MSG_TRY_AGAIN)

        if profile is None:
            return LoginResult.fail(PROFILE_NOT_FOUND, MSG_PROFILE_NOT_FOUND)

        if allowed_roles is not None and profile.role not in allowed_roles:
            self.provider.sign_out()
            return LoginResult.fail(ACCESS_DENIED, MSG_ACCESS_DENIED)

        try:
            session = profile.to_session(email=principal.email or email)
        except ValueError as exc:
            logger.error(f"Profile {profile.id} cannot back a session: {exc}")
            return LoginResult.fail(INVALID_PROFILE, MSG_INVALID_PROFILE)
        return LoginResult.ok(session, landing_path_for(session.role))


def logout(store: SessionStore, provider: CredentialProvider | None = None) -> None:
    """End the session locally and at the provider. Always leaves no session."""
    try:
        if provider is not None:
            with store.provider_events_suspended():
                provider.sign_out()
    finally:
        store.clear()
    incr_metric("session.logout")
    log_event("session_logout")
