from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import RLock
from typing import Callable, Iterator, Protocol

from shopflows.auth.context import Session
from shopflows.auth.permissions import PLATFORM_ADMIN
from shopflows.auth.provider import (
    SIGNED_OUT,
    IdentityBackendError,
    Principal,
    Profile,
)
from shopflows.auth.storage import KeyValueStorage, dump_session, load_session
from shopflows.observability import incr_metric, log_event

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session | None], None]


class PrincipalSource(Protocol):
    def current_principal(self) -> Principal | None: ...

    def subscribe(self, callback: Callable[[str, Principal | None], None]) -> Callable[[], None]: ...


class ProfileDirectory(Protocol):
    def lookup_profile(self, principal_id: str) -> Profile | None: ...


class SessionStore:
    """Single source of truth for who is signed in on this terminal.

    Holds one session slot in memory and mirrors it to ``storage`` under
    ``key``. Writes are last-write-wins; ``commit`` and ``clear`` update
    memory and storage under one lock so readers never see them disagree.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = "shopflows_session",
        provider: PrincipalSource | None = None,
        directory: ProfileDirectory | None = None,
    ):
        self.storage = storage
        self.key = key
        self.provider = provider
        self.directory = directory
        self._lock = RLock()
        self._session: Session | None = None
        # Bumped by every commit/clear; a restore that started before a write must not land.
        self._generation = 0
        self._listeners: list[SessionListener] = []
        self._unsubscribe_provider: Callable[[], None] | None = None
        self._suspended = 0

    def get_current_session(self) -> Session | None:
        return self._session

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")

    def commit(self, session: Session) -> Session:
        with self._lock:
            self._session = session
            self._generation += 1
            try:
                self.storage.set(self.key, dump_session(session))
            except OSError as exc:
                log_event("session_persist_failed", level=logging.WARNING, error=str(exc))
        incr_metric("session.committed", role=session.role)
        self._notify(session)
        return session

    def clear(self) -> None:
        with self._lock:
            self._session = None
            self._generation += 1
            try:
                self.storage.remove(self.key)
            except OSError as exc:
                log_event("session_clear_failed", level=logging.WARNING, error=str(exc))
        incr_metric("session.cleared")
        self._notify(None)

    def restore(self) -> Session | None:
        """Adopt the persisted session, if any. Corrupt blobs are dropped."""
        generation = self._generation
        try:
            raw = self.storage.get(self.key)
        except OSError as exc:
            log_event("session_restore_failed", level=logging.WARNING, error=str(exc))
            return None
        if raw is None:
            return None

        try:
            session = load_session(raw)
        except ValueError as exc:
            log_event("session_restore_discarded", level=logging.WARNING, reason=str(exc))
            session = None

        with self._lock:
            if self._generation != generation:
                # A login or provider event already wrote the slot.
                return self._session
            if session is None:
                try:
                    self.storage.remove(self.key)
                except OSError:
                    logger.warning("Could not remove unusable session blob")
                return None
            self._session = session
        self._notify(session)
        return session

    def reconcile_with_identity_provider(
        self,
        event: str | None = None,
        principal: Principal | None = None,
    ) -> Session | None:
        """Bring the local session in line with the auth provider.

        ``event`` is ``None`` on startup, in which case the provider is asked
        for its current principal. Sign-out always clears the local session.
        The directory profile is authoritative, org included. The one
        exception is a platform admin whose cached session is the same user:
        it is left alone so an org context switch survives token refreshes.
        """
        if event == SIGNED_OUT:
            self.clear()
            return None

        if self.provider is None or self.directory is None:
            return self._session

        try:
            if principal is None:
                principal = self.provider.current_principal()
            if principal is None:
                return self._session
            profile = self.directory.lookup_profile(principal.id)
        except IdentityBackendError as exc:
            log_event("session_reconcile_failed", level=logging.WARNING, auth_event=event, error=str(exc))
            return self._session

        if profile is None:
            log_event(
                "session_reconcile_profile_missing",
                level=logging.WARNING,
                auth_event=event,
                principal_id=principal.id,
            )
            return self._session

        current = self._session
        if (
            current is not None
            and current.user_id == profile.id
            and current.role == profile.role == PLATFORM_ADMIN
        ):
            return current

        try:
            session = profile.to_session(email=principal.email)
        except ValueError as exc:
            log_event("session_reconcile_invalid_profile", level=logging.WARNING, principal_id=principal.id, error=str(exc))
            return self._session
        if session == current:
            return current
        return self.commit(session)

    def attach_provider(self) -> None:
        """Follow the provider's sign-in/sign-out events."""
        if self.provider is None or self._unsubscribe_provider is not None:
            return

        def _on_event(event: str, principal: Principal | None) -> None:
            if self._suspended:
                log_event("session_provider_event_ignored", auth_event=event)
                return
            self.reconcile_with_identity_provider(event, principal)

        self._unsubscribe_provider = self.provider.subscribe(_on_event)

    @contextmanager
    def provider_events_suspended(self) -> Iterator[None]:
        """Ignore provider events while a resolver talks to the provider itself.

        The resolver is then the only writer: it commits on success and
        leaves the slot untouched on failure.
        """
        with self._lock:
            self._suspended += 1
        try:
            yield
        finally:
            with self._lock:
                self._suspended -= 1

    def detach_provider(self) -> None:
        if self._unsubscribe_provider is not None:
            self._unsubscribe_provider()
            self._unsubscribe_provider = None

    def start(self) -> Session | None:
        """Startup sequence: storage restore first, then provider reconciliation."""
        self.restore()
        session = self.reconcile_with_identity_provider()
        self.attach_provider()
        return session
