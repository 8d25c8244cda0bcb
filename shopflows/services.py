from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from supabase import Client

from shopflows.auth.provider import SupabaseDirectory, SupabaseIdentityProvider
from shopflows.auth.resolvers import (
    AdminCredentialResolver,
    DevicePinResolver,
    ProviderLoginResolver,
)
from shopflows.auth.storage import FileStorage, KeyValueStorage
from shopflows.auth.store import SessionStore
from shopflows.config import Settings
from shopflows.features import FeatureFlagService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything one terminal process needs, wired once per app."""
    store: SessionStore
    features: FeatureFlagService
    provider: SupabaseIdentityProvider
    directory: SupabaseDirectory
    device_login: DevicePinResolver
    admin_login: AdminCredentialResolver
    provider_login: ProviderLoginResolver
    _stops: list[Callable[[], None]] = field(default_factory=list)
    started: bool = False

    def start(self) -> None:
        if self.started:
            return
        session = self.store.start()
        self._stops.append(self.store.detach_provider)
        self._stops.append(self.features.bind(self.store))
        self.started = True
        logger.info(
            f"Session services started (authenticated={session is not None}, "
            f"role={session.role if session else None})"
        )

    def stop(self) -> None:
        while self._stops:
            self._stops.pop()()
        self.started = False


def build_services(
    settings: Settings,
    supabase: Client,
    storage: KeyValueStorage | None = None,
) -> Services:
    provider = SupabaseIdentityProvider(supabase)
    directory = SupabaseDirectory(supabase)
    store = SessionStore(
        storage or FileStorage(settings.session_storage_dir),
        key=settings.session_storage_key,
        provider=provider,
        directory=directory,
    )
    return Services(
        store=store,
        features=FeatureFlagService(supabase),
        provider=provider,
        directory=directory,
        device_login=DevicePinResolver(
            store,
            expected_pin=settings.device_pin,
            org_id=settings.device_org_id,
            mode=settings.device_login_mode,
            directory=directory,
        ),
        admin_login=AdminCredentialResolver(store, directory),
        provider_login=ProviderLoginResolver(store, provider, directory),
    )

