from types import SimpleNamespace

import pytest
from supabase import AuthApiError

from shopflows import observability
from shopflows.auth.context import Session
from shopflows.auth.permissions import ADMIN_PORTAL_ROLES, ROLES
from shopflows.auth.provider import (
    IdentityBackendError,
    InvalidCredentialsError,
    Principal,
    Profile,
    SupabaseDirectory,
    SupabaseIdentityProvider,
)
from shopflows.auth.resolvers import (
    ACCESS_DENIED,
    BAD_CREDENTIALS,
    INVALID_PROFILE,
    MSG_PROFILE_NOT_FOUND,
    MSG_TRY_AGAIN,
    NOT_CONFIGURED,
    PROFILE_NOT_FOUND,
    UNAVAILABLE,
    AdminCredentialResolver,
    DevicePinResolver,
    ProviderLoginResolver,
)
from shopflows.auth.storage import MemoryStorage
from shopflows.auth.store import SessionStore


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, table_name: str, db: "FakeSupabase"):
        self.table_name = table_name
        self.db = db
        self.filters = []
        self.limit_n = None

    def select(self, _fields: str):
        return self

    def eq(self, key: str, value):
        self.filters.append((key, value))
        return self

    def limit(self, n: int):
        self.limit_n = n
        return self

    def execute(self):
        error = self.db.table_errors.get(self.table_name)
        if error:
            raise error
        rows = [dict(r) for r in self.db.tables.get(self.table_name, []) if all(r.get(k) == v for k, v in self.filters)]
        if self.limit_n is not None:
            rows = rows[: self.limit_n]
        return FakeResponse(rows)


class FakeRpc:
    def __init__(self, name: str, params: dict, db: "FakeSupabase"):
        self.name = name
        self.params = params
        self.db = db

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        result = self.db.rpc_results.get(self.name)
        if isinstance(result, Exception):
            raise result
        return FakeResponse(result)


class FakeSupabase:
    def __init__(self, tables=None, rpc_results=None, table_errors=None):
        self.tables = tables or {}
        self.rpc_results = rpc_results or {}
        self.table_errors = table_errors or {}
        self.rpc_calls = []

    def table(self, table_name: str):
        return FakeQuery(table_name, self)

    def rpc(self, name: str, params: dict):
        return FakeRpc(name, params, self)


class FakeProvider:
    def __init__(self, principal=None, error=None):
        self.principal = principal
        self.error = error
        self.sign_out_calls = 0

    def sign_in(self, email, password):
        if self.error:
            raise self.error
        return self.principal

    def sign_out(self):
        self.sign_out_calls += 1


class FakeDirectory:
    def __init__(self, profile=None, profile_error=None, admin_result=None, admin_error=None, device_result=None):
        self.profile = profile
        self.profile_error = profile_error
        self.admin_result = admin_result
        self.admin_error = admin_error
        self.device_result = device_result
        self.admin_calls = []

    def lookup_profile(self, principal_id):
        if self.profile_error:
            raise self.profile_error
        return self.profile

    def verify_admin_credentials(self, email, password):
        self.admin_calls.append(email)
        if self.admin_error:
            raise self.admin_error
        return self.admin_result

    def device_login(self, pin):
        return self.device_result


def _store() -> SessionStore:
    return SessionStore(MemoryStorage(), key="shopflows_session")


# Device PIN

def test_device_pin_success_creates_shop_user_session():
    store = _store()
    resolver = DevicePinResolver(store, expected_pin="1234", org_id="shop-1")

    result = resolver.login("1234")

    assert result.success is True
    assert result.redirect_to == "/track"
    session = store.get_current_session()
    assert session.is_authenticated is True
    assert session.role == "shop_user"
    assert session.org_id == "shop-1"
    assert session.user_id is None
    assert session.device_id is None


def test_device_pin_wrong_pin_leaves_store_empty():
    store = _store()
    resolver = DevicePinResolver(store, expected_pin="1234", org_id="shop-1")

    result = resolver.login("0000")

    assert result.success is False
    assert result.message == "Incorrect PIN"
    assert result.reason == BAD_CREDENTIALS
    assert result.clear_input is True
    assert store.get_current_session() is None


def test_device_pin_wrong_pin_keeps_existing_session():
    store = _store()
    existing = Session(org_id="shop-1", role="shop_user")
    store.commit(existing)

    DevicePinResolver(store, expected_pin="1234", org_id="shop-1").login("9999")

    assert store.get_current_session() == existing


def test_device_pin_unconfigured_reports_error_instead_of_crashing():
    store = _store()

    result = DevicePinResolver(store, expected_pin=None, org_id="shop-1").login("1234")

    assert result.success is False
    assert result.reason == NOT_CONFIGURED
    assert store.get_current_session() is None


def test_device_pin_rpc_mode_copies_device_identity():
    store = _store()
    directory = FakeDirectory(device_result={
        "success": True,
        "shop_id": "shop-2",
        "device_id": "dev-7",
        "device_name": "Paint booth",
        "user_id": "u-7",
        "full_name": "Booth Tech",
    })

    result = DevicePinResolver(store, mode="rpc", directory=directory).login("4321")

    assert result.success is True
    assert store.get_current_session() == Session(
        org_id="shop-2",
        role="shop_user",
        user_id="u-7",
        device_id="dev-7",
        device_name="Paint booth",
        name="Booth Tech",
    )


def test_device_pin_rpc_mode_surfaces_rpc_error():
    store = _store()
    directory = FakeDirectory(device_result={"success": False, "error": "Device disabled"})

    result = DevicePinResolver(store, mode="rpc", directory=directory).login("4321")

    assert result.message == "Device disabled"
    assert result.clear_input is True
    assert store.get_current_session() is None


# Admin credential RPC

def test_admin_rpc_failure_message_is_surfaced_verbatim():
    store = _store()
    directory = FakeDirectory(admin_result={"success": False, "error": "Invalid email or password"})

    result = AdminCredentialResolver(store, directory).login("owner@shop.test", "wrong")

    assert result.success is False
    assert result.message == "Invalid email or password"
    assert store.get_current_session() is None


def test_admin_rpc_failure_without_message_uses_fallback():
    result = AdminCredentialResolver(_store(), FakeDirectory(admin_result={"success": False})).login(
        "owner@shop.test", "wrong"
    )

    assert result.message == "Invalid email or password"


def test_admin_rpc_success_maps_fields_directly():
    store = _store()
    directory = FakeDirectory(admin_result={
        "success": True,
        "shop_id": "shop-3",
        "user_id": "u-3",
        "email": "boss@shop.test",
        "name": "Boss",
        "role": "shop_admin",
    })

    result = AdminCredentialResolver(store, directory).login("  boss@shop.test ", "pw")

    assert result.success is True
    assert result.redirect_to == "/admin"
    assert store.get_current_session() == Session(
        org_id="shop-3",
        role="shop_admin",
        user_id="u-3",
        email="boss@shop.test",
        name="Boss",
    )
    assert directory.admin_calls == ["boss@shop.test"]


def test_admin_rpc_unknown_role_is_rejected_not_mapped():
    store = _store()
    directory = FakeDirectory(admin_result={"success": True, "org_id": "org-1", "user_id": "u-1", "role": "admin"})

    result = AdminCredentialResolver(store, directory).login("a@shop.test", "pw")

    assert result.success is False
    assert result.reason == INVALID_PROFILE
    assert store.get_current_session() is None


def test_admin_rpc_backend_error_is_generic():
    store = _store()
    directory = FakeDirectory(admin_error=IdentityBackendError("relation users does not exist"))

    result = AdminCredentialResolver(store, directory).login("a@shop.test", "pw")

    assert result.reason == UNAVAILABLE
    assert result.message == MSG_TRY_AGAIN
    assert "relation" not in result.message


def test_admin_rpc_requires_both_fields():
    directory = FakeDirectory()

    result = AdminCredentialResolver(_store(), directory).login("", "pw")

    assert result.reason == BAD_CREDENTIALS
    assert directory.admin_calls == []


# Auth provider + profile lookup

def test_provider_login_success_uses_profile_role_verbatim():
    store = _store()
    provider = FakeProvider(principal=Principal(id="auth-1", email="sup@shop.test"))
    directory = FakeDirectory(profile=Profile(id="u-1", org_id="org-1", role="supervisor", full_name="Sue"))

    result = ProviderLoginResolver(store, provider, directory).login("sup@shop.test", "pw")

    assert result.success is True
    assert result.redirect_to == "/admin"
    session = store.get_current_session()
    assert session.role == "supervisor"
    assert session.role in ROLES
    assert session.user_id == "u-1"
    assert session.email == "sup@shop.test"


def test_provider_login_bad_credentials():
    store = _store()
    provider = FakeProvider(error=InvalidCredentialsError("Invalid login credentials"))

    result = ProviderLoginResolver(store, provider, FakeDirectory()).login("x@shop.test", "bad")

    assert result.reason == BAD_CREDENTIALS
    assert result.message == "Invalid login credentials"
    assert result.clear_input is False
    assert store.get_current_session() is None


def test_provider_login_profile_missing_is_distinct_from_generic_failure():
    store = _store()
    provider = FakeProvider(principal=Principal(id="auth-9"))

    result = ProviderLoginResolver(store, provider, FakeDirectory(profile=None)).login("x@shop.test", "pw")

    assert result.reason == PROFILE_NOT_FOUND
    assert result.message == MSG_PROFILE_NOT_FOUND
    assert result.message != MSG_TRY_AGAIN
    assert "administrator" in result.message
    assert store.get_current_session() is None


def test_provider_login_directory_outage_is_generic():
    provider = FakeProvider(principal=Principal(id="auth-9"))
    directory = FakeDirectory(profile_error=IdentityBackendError("timeout"))

    result = ProviderLoginResolver(_store(), provider, directory).login("x@shop.test", "pw")

    assert result.reason == UNAVAILABLE
    assert result.message == MSG_TRY_AGAIN


def test_provider_login_admin_portal_rejects_shop_user_and_signs_out():
    store = _store()
    provider = FakeProvider(principal=Principal(id="auth-4"))
    directory = FakeDirectory(profile=Profile(id="u-4", org_id="org-1", role="shop_user"))

    result = ProviderLoginResolver(store, provider, directory).login(
        "tech@shop.test", "pw", allowed_roles=ADMIN_PORTAL_ROLES
    )

    assert result.reason == ACCESS_DENIED
    assert provider.sign_out_calls == 1
    assert store.get_current_session() is None


@pytest.mark.parametrize(
    "resolver_factory",
    [
        lambda store: DevicePinResolver(store, expected_pin="1234", org_id="org-1"),
        lambda store: AdminCredentialResolver(
            store,
            FakeDirectory(admin_result={"success": True, "org_id": "org-1", "user_id": "u", "role": "shop_admin"}),
        ),
        lambda store: ProviderLoginResolver(
            store,
            FakeProvider(principal=Principal(id="auth")),
            FakeDirectory(profile=Profile(id="u", org_id="org-1", role="platform_admin")),
        ),
    ],
)
def test_every_resolver_success_yields_authenticated_known_role(resolver_factory):
    store = _store()
    resolver = resolver_factory(store)

    if isinstance(resolver, DevicePinResolver):
        result = resolver.login("1234")
    else:
        result = resolver.login("someone@shop.test", "pw")

    assert result.success is True
    assert store.get_current_session().is_authenticated is True
    assert store.get_current_session().role in ROLES


def test_login_outcomes_are_counted():
    observability.reset_metrics()
    store = _store()
    resolver = DevicePinResolver(store, expected_pin="1234", org_id="org-1")

    resolver.login("1111")
    resolver.login("1234")

    snapshot = observability.metrics_snapshot()
    assert snapshot["auth.login|method=device_pin,outcome=failure,reason=bad_credentials"] == 1
    assert snapshot["auth.login|method=device_pin,outcome=success"] == 1


# Supabase-backed directory and provider

def test_directory_direct_query_finds_profile():
    db = FakeSupabase(tables={"users": [
        {"id": "u-1", "auth_id": "auth-1", "org_id": "org-1", "role": "shop_admin", "full_name": "Owner", "email": "o@x"},
    ]})

    profile = SupabaseDirectory(db).lookup_profile("auth-1")

    assert profile == Profile(id="u-1", org_id="org-1", role="shop_admin", full_name="Owner", email="o@x")
    assert db.rpc_calls == []


def test_directory_falls_back_to_rpc_when_direct_query_fails():
    db = FakeSupabase(
        table_errors={"users": RuntimeError("permission denied for table users")},
        rpc_results={"get_user_by_auth_id": [
            {"id": "u-2", "org_id": "org-2", "role": "supervisor", "full_name": "Sup"},
        ]},
    )

    profile = SupabaseDirectory(db).lookup_profile("auth-2")

    assert profile.role == "supervisor"
    assert db.rpc_calls == [("get_user_by_auth_id", {"p_auth_id": "auth-2"})]


def test_directory_not_found_in_both_lookups_returns_none():
    db = FakeSupabase(tables={"users": []}, rpc_results={"get_user_by_auth_id": []})

    assert SupabaseDirectory(db).lookup_profile("auth-3") is None
    assert len(db.rpc_calls) == 1


def test_provider_login_against_supabase_directory_reports_profile_not_found():
    store = _store()
    db = FakeSupabase(table_errors={"users": RuntimeError("0 rows")}, rpc_results={"get_user_by_auth_id": None})
    provider = FakeProvider(principal=Principal(id="auth-3"))

    result = ProviderLoginResolver(store, provider, SupabaseDirectory(db)).login("x@shop.test", "pw")

    assert result.message == MSG_PROFILE_NOT_FOUND
    assert store.get_current_session() is None


def test_directory_rpc_exception_becomes_backend_error():
    db = FakeSupabase(rpc_results={"verify_admin_credentials": RuntimeError("connection reset")})

    with pytest.raises(IdentityBackendError):
        SupabaseDirectory(db).verify_admin_credentials("a@x", "pw")


class FakeAuth:
    def __init__(self, user=None, error=None):
        self.user = user
        self.error = error

    def sign_in_with_password(self, credentials):
        if self.error:
            raise self.error
        return SimpleNamespace(user=self.user, session=None)


def _auth_api_error(message: str, status: int) -> AuthApiError:
    exc = AuthApiError.__new__(AuthApiError)
    exc.message = message
    exc.status = status
    return exc


def test_supabase_provider_translates_rejected_credentials():
    client = SimpleNamespace(auth=FakeAuth(error=_auth_api_error("Invalid login credentials", 400)))

    with pytest.raises(InvalidCredentialsError) as exc_info:
        SupabaseIdentityProvider(client).sign_in("x@shop.test", "bad")

    assert str(exc_info.value) == "Invalid login credentials"


def test_supabase_provider_treats_server_errors_as_backend_errors():
    client = SimpleNamespace(auth=FakeAuth(error=_auth_api_error("upstream timeout", 504)))

    with pytest.raises(IdentityBackendError):
        SupabaseIdentityProvider(client).sign_in("x@shop.test", "pw")


def test_supabase_provider_returns_principal():
    user = SimpleNamespace(id="auth-1", email="x@shop.test")
    client = SimpleNamespace(auth=FakeAuth(user=user))

    assert SupabaseIdentityProvider(client).sign_in("x@shop.test", "pw") == Principal(id="auth-1", email="x@shop.test")


class EmittingProvider:
    """Fires auth-state events from inside sign_in and sign_out."""

    def __init__(self, principal):
        self.principal = principal
        self.callbacks = []
        self.sign_out_calls = 0

    def current_principal(self):
        return None

    def subscribe(self, callback):
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    def sign_in(self, email, password):
        for callback in list(self.callbacks):
            callback("SIGNED_IN", self.principal)
        return self.principal

    def sign_out(self):
        self.sign_out_calls += 1
        for callback in list(self.callbacks):
            callback("SIGNED_OUT", None)


def _attached_store(provider, directory) -> SessionStore:
    store = SessionStore(MemoryStorage(), key="shopflows_session", provider=provider, directory=directory)
    store.attach_provider()
    return store


def test_denied_portal_login_with_live_events_leaves_store_untouched():
    provider = EmittingProvider(Principal(id="auth-1", email="tech@shop.test"))
    directory = FakeDirectory(profile=Profile(id="u-1", org_id="org-1", role="shop_user"))
    store = _attached_store(provider, directory)
    kiosk = Session(org_id="org-1", role="shop_user", device_id="d-1")
    store.commit(kiosk)
    seen = []
    store.subscribe(seen.append)

    result = ProviderLoginResolver(store, provider, directory, allowed_roles=ADMIN_PORTAL_ROLES).login(
        "tech@shop.test", "pw"
    )

    assert result.reason == ACCESS_DENIED
    assert provider.sign_out_calls == 1
    assert seen == []
    assert store.get_current_session() == kiosk


def test_missing_profile_with_live_events_reports_profile_not_found():
    provider = EmittingProvider(Principal(id="auth-9", email="ghost@shop.test"))
    store = _attached_store(provider, FakeDirectory(profile=None))

    result = ProviderLoginResolver(store, provider, FakeDirectory(profile=None)).login("ghost@shop.test", "pw")

    assert result.reason == PROFILE_NOT_FOUND
    assert result.message == MSG_PROFILE_NOT_FOUND
    assert store.get_current_session() is None


def test_successful_login_with_live_events_commits_once():
    provider = EmittingProvider(Principal(id="auth-2", email="owner@shop.test"))
    directory = FakeDirectory(profile=Profile(id="u-2", org_id="org-2", role="shop_admin", full_name="Owner"))
    store = _attached_store(provider, directory)
    seen = []
    store.subscribe(seen.append)

    result = ProviderLoginResolver(store, provider, directory).login("owner@shop.test", "pw")

    assert result.success is True
    assert len(seen) == 1
    assert seen[0].org_id == "org-2"


def test_provider_events_resume_after_login():
    provider = EmittingProvider(Principal(id="auth-2"))
    directory = FakeDirectory(profile=Profile(id="u-2", org_id="org-2", role="shop_admin"))
    store = _attached_store(provider, directory)
    ProviderLoginResolver(store, provider, directory).login("owner@shop.test", "pw")

    provider.sign_out()

    assert store.get_current_session() is None


def test_device_pin_is_compared_exactly():
    store = _store()
    resolver = DevicePinResolver(store, expected_pin="1234", org_id="shop-1")

    result = resolver.login(" 1234 ")

    assert result.success is False
    assert result.message == "Incorrect PIN"
    assert store.get_current_session() is None
