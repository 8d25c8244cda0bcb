from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from shopflows.auth.context import Session

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None):
        self.items: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.items.get(key)

    def set(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove(self, key: str) -> None:
        self.items.pop(key, None)


class FileStorage:
    """One file per key under ``directory``; survives process restarts."""

    def __init__(self, directory: str | os.PathLike[str]):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# Persisted blobs use the camelCase names older terminals wrote. ``shopId`` is
# the legacy name of ``orgId`` and is always written alongside it.
_FIELD_NAMES = {
    "org_id": "orgId",
    "role": "role",
    "user_id": "userId",
    "device_id": "deviceId",
    "device_name": "deviceName",
    "email": "email",
    "name": "name",
}


def session_to_blob(session: Session) -> dict[str, Any]:
    blob: dict[str, Any] = {"isAuthenticated": True}
    for attr, key in _FIELD_NAMES.items():
        value = getattr(session, attr)
        if value is not None:
            blob[key] = value
    blob["orgId"] = session.org_id
    blob["shopId"] = session.org_id
    return blob


def session_from_blob(blob: Any) -> Session | None:
    """Rebuild a session from a persisted blob; ``None`` if it is not one.

    Raises ``ValueError`` for blobs that claim to be authenticated but are
    malformed.
    """
    if not isinstance(blob, dict):
        raise ValueError("Session blob must be an object")
    if not blob.get("isAuthenticated"):
        return None
    kwargs: dict[str, Any] = {}
    for attr, key in _FIELD_NAMES.items():
        value = blob.get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"Session field {key} must be a string")
        kwargs[attr] = value
    if not kwargs["org_id"]:
        shop_id = blob.get("shopId")
        if shop_id is not None and not isinstance(shop_id, str):
            raise ValueError("Session field shopId must be a string")
        kwargs["org_id"] = shop_id
    return Session(**kwargs)


def dump_session(session: Session) -> str:
    return json.dumps(session_to_blob(session), sort_keys=True)


def load_session(raw: str) -> Session | None:
    try:
        blob = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Session blob is not JSON: {exc}") from exc
    return session_from_blob(blob)
