from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable, Final

from pydantic import BaseModel, ConfigDict
from supabase import Client

from shopflows.observability import incr_metric, log_event

if TYPE_CHECKING:
    from shopflows.auth.context import Session
    from shopflows.auth.store import SessionStore

logger = logging.getLogger(__name__)

# Postgres "undefined_column": the features column has not been migrated yet.
UNDEFINED_COLUMN_CODE: Final[str] = "42703"


class FeatureFlags(BaseModel):
    """Optional modules an organization has switched on.

    Mirrors the JSON stored in ``organizations.features``; unknown keys in the
    stored blob are ignored.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    labor_tracking: bool = True
    inventory: bool = False
    messaging: bool = True
    invoicing: bool = False
    ai_assistant: bool = False


FEATURE_NAMES: Final[tuple[str, ...]] = tuple(FeatureFlags.model_fields)
DEFAULT_FEATURES: Final[FeatureFlags] = FeatureFlags()

PLAN_FEATURES: Final[dict[str, tuple[str, ...]]] = {
    "starter": ("labor_tracking", "messaging"),
    "professional": ("labor_tracking", "messaging", "inventory", "invoicing"),
    "enterprise": ("labor_tracking", "messaging", "inventory", "invoicing", "ai_assistant"),
}

LOADED: Final[str] = "loaded"
DEFAULTS: Final[str] = "defaults"
SCHEMA_NOT_READY: Final[str] = "schema_not_ready"
UNAVAILABLE: Final[str] = "unavailable"


def has_feature(flags: FeatureFlags, name: str) -> bool:
    if name not in FEATURE_NAMES:
        return False
    return bool(getattr(flags, name))


def features_for_plan(tier: str) -> FeatureFlags:
    if tier not in PLAN_FEATURES:
        raise ValueError(f"Unknown plan tier: {tier}")
    enabled = set(PLAN_FEATURES[tier])
    return FeatureFlags(**{name: name in enabled for name in FEATURE_NAMES})


def merge_with_defaults(stored: dict[str, Any]) -> FeatureFlags:
    known = {k: v for k, v in stored.items() if k in FEATURE_NAMES and isinstance(v, bool)}
    return DEFAULT_FEATURES.model_copy(update=known)


@dataclass(frozen=True)
class FeatureFlagState:
    org_id: str | None
    flags: FeatureFlags
    status: str
    generation: int = 0
    error: str | None = None

    @property
    def using_defaults(self) -> bool:
        return self.status != LOADED


class FeatureFlagService:
    """Per-organization feature flags, cached in memory for the current org.

    Reads never raise: failures fall back to the defaults and are reported
    through ``state.status`` so a missing column (``schema_not_ready``) can be
    told apart from an org that simply has nothing switched on. Every fetch
    carries a generation number and only the newest one may update the cache.
    """

    def __init__(self, supabase: Client, table: str = "organizations"):
        self.supabase = supabase
        self.table = table
        self._lock = Lock()
        self._generation = 0
        self._state = FeatureFlagState(org_id=None, flags=DEFAULT_FEATURES, status=DEFAULTS)

    @property
    def state(self) -> FeatureFlagState:
        return self._state

    @property
    def flags(self) -> FeatureFlags:
        return self._state.flags

    def has_feature(self, name: str) -> bool:
        return has_feature(self._state.flags, name)

    def fetch(self, org_id: str | None) -> FeatureFlags:
        generation = self._begin()
        state = self._read(org_id, generation)
        self._apply(state)
        return state.flags

    def refresh(self) -> FeatureFlags:
        return self.fetch(self._state.org_id)

    def _begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _apply(self, state: FeatureFlagState) -> bool:
        with self._lock:
            if state.generation != self._generation:
                log_event(
                    "feature_flags_stale_discarded",
                    org_id=state.org_id,
                    generation=state.generation,
                    current_generation=self._generation,
                )
                return False
            self._state = state
        return True

    def _read(self, org_id: str | None, generation: int) -> FeatureFlagState:
        if not org_id:
            return FeatureFlagState(org_id=None, flags=DEFAULT_FEATURES, status=DEFAULTS, generation=generation)

        try:
            result = self.supabase.table(self.table).select("features").eq("id", org_id).limit(1).execute()
        except Exception as exc:
            status = SCHEMA_NOT_READY if getattr(exc, "code", None) == UNDEFINED_COLUMN_CODE else UNAVAILABLE
            incr_metric("features.fetch", outcome=status)
            log_event(
                "feature_flags_fetch_failed",
                level=logging.WARNING,
                org_id=org_id,
                status=status,
                error=str(exc),
            )
            return FeatureFlagState(
                org_id=org_id,
                flags=DEFAULT_FEATURES,
                status=status,
                generation=generation,
                error=str(exc),
            )

        stored = result.data[0].get("features") if result.data else None
        if not isinstance(stored, dict):
            if stored is not None:
                logger.warning(f"Ignoring malformed features for org {org_id}: {stored!r}")
            incr_metric("features.fetch", outcome=DEFAULTS)
            return FeatureFlagState(org_id=org_id, flags=DEFAULT_FEATURES, status=DEFAULTS, generation=generation)

        incr_metric("features.fetch", outcome=LOADED)
        return FeatureFlagState(
            org_id=org_id,
            flags=merge_with_defaults(stored),
            status=LOADED,
            generation=generation,
        )

    def set_feature(self, org_id: str | None, name: str, enabled: bool) -> bool:
        """Persist one flag. The cache only changes once the write succeeded."""
        if not org_id or name not in FEATURE_NAMES:
            return False

        base = self._state
        if base.org_id != org_id:
            base = self._read(org_id, generation=-1)
        if base.status not in (LOADED, DEFAULTS):
            # The write replaces the whole stored map and needs a good read as its base.
            log_event(
                "feature_flag_update_refused",
                level=logging.WARNING,
                org_id=org_id,
                feature=name,
                status=base.status,
            )
            return False
        updated = base.flags.model_copy(update={name: enabled})

        try:
            result = self.supabase.table(self.table).update(
                {"features": updated.model_dump()}
            ).eq("id", org_id).execute()
        except Exception as exc:
            log_event(
                "feature_flag_update_failed",
                level=logging.WARNING,
                org_id=org_id,
                feature=name,
                error=str(exc),
            )
            return False

        if not result.data:
            log_event("feature_flag_update_failed", level=logging.WARNING, org_id=org_id, feature=name, error="no rows updated")
            return False

        with self._lock:
            if self._state.org_id == org_id:
                # Invalidate fetches that started before this write.
                self._generation += 1
                self._state = FeatureFlagState(
                    org_id=org_id,
                    flags=updated,
                    status=LOADED,
                    generation=self._generation,
                )
        log_event("feature_flag_updated", org_id=org_id, feature=name, enabled=enabled)
        return True

    def enable_feature(self, org_id: str | None, name: str) -> bool:
        return self.set_feature(org_id, name, True)

    def disable_feature(self, org_id: str | None, name: str) -> bool:
        return self.set_feature(org_id, name, False)

    def bind(self, store: "SessionStore") -> Callable[[], None]:
        """Refetch whenever the store's session moves to another organization."""

        def _on_session(session: "Session | None") -> None:
            org_id = session.org_id if session is not None else None
            if org_id != self._state.org_id:
                self.fetch(org_id)

        current = store.get_current_session()
        self.fetch(current.org_id if current is not None else None)
        return store.subscribe(_on_session)
