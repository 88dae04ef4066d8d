"""
In-memory stores for the web layer: PendingRoleStore and SessionStore.

Why: Keep server-side state opaque to the client. Cookies carry only random
identifiers; the pending role and the live session context stay server-side.

- PendingRoleStore: the device-local key/value cache that bridges signup and the
  first confirmed session. Each device (browser) gets its own namespace so one
  device's pending role can never be applied to another device's sign-in.
- SessionStore: maps an opaque session id to the live per-user context (the
  session resolver and the clients bound to that user's token).

Both stores are per process. A multi-instance deployment needs sticky sessions.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol
import secrets
import time


def _now() -> int:
    return int(time.time())


class PendingRoleCacheProtocol(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class DeviceCache(PendingRoleCacheProtocol):
    """Key/value view on one device's namespace inside a PendingRoleStore.

    The namespace is created on the first `set` and dropped once its last key
    is removed, so reads for unknown devices allocate nothing.
    """

    def __init__(self, store: "PendingRoleStore", device_id: str) -> None:
        self._store = store
        self._device_id = device_id

    def get(self, key: str) -> Optional[str]:
        data = self._store._live(self._device_id)
        return data.get(key) if data else None

    def set(self, key: str, value: str) -> None:
        self._store._materialise(self._device_id)[key] = value

    def remove(self, key: str) -> None:
        data = self._store._live(self._device_id)
        if data is None:
            return
        data.pop(key, None)
        if not data:
            self._store._drop(self._device_id)


@dataclass
class DeviceRecord:
    data: Dict[str, str]
    expires_at: int


class PendingRoleStore:
    """Per-device pending roles; a namespace lives at most `ttl_seconds` after its last write."""

    def __init__(self, ttl_seconds: int = 60 * 60 * 24 * 30) -> None:
        self._ttl = ttl_seconds
        self._devices: Dict[str, DeviceRecord] = {}

    @staticmethod
    def new_device_id() -> str:
        return secrets.token_urlsafe(24)

    def for_device(self, device_id: str) -> DeviceCache:
        return DeviceCache(self, device_id)

    def device_count(self) -> int:
        return len(self._devices)

    def pop_expired(self) -> int:
        now = _now()
        expired = [did for did, rec in self._devices.items() if rec.expires_at < now]
        for did in expired:
            self._devices.pop(did, None)
        return len(expired)

    def _live(self, device_id: str) -> Optional[Dict[str, str]]:
        rec = self._devices.get(device_id)
        if rec is None:
            return None
        if rec.expires_at < _now():
            self._devices.pop(device_id, None)
            return None
        return rec.data

    def _materialise(self, device_id: str) -> Dict[str, str]:
        rec = self._devices.get(device_id)
        if rec is None or rec.expires_at < _now():
            rec = DeviceRecord(data={}, expires_at=0)
            self._devices[device_id] = rec
        rec.expires_at = _now() + self._ttl
        return rec.data

    def _drop(self, device_id: str) -> None:
        self._devices.pop(device_id, None)


@dataclass
class SessionRecord:
    session_id: str
    context: Any
    expires_at: Optional[int] = None


class SessionStore:
    def __init__(self) -> None:
        self._data: Dict[str, SessionRecord] = {}

    def create(self, *, context: Any, ttl_seconds: int = 3600) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(session_id=sid, context=context, expires_at=_now() + ttl_seconds)
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            return None
        return rec

    def pop(self, session_id: str) -> Optional[SessionRecord]:
        return self._data.pop(session_id, None)

    def session_ids(self) -> List[str]:
        return list(self._data.keys())

    def pop_expired(self) -> List[SessionRecord]:
        """Remove and return expired records so callers can release their context."""
        now = _now()
        expired = [sid for sid, rec in self._data.items() if rec.expires_at and rec.expires_at < now]
        return [self._data.pop(sid) for sid in expired]


__all__ = [
    "PendingRoleCacheProtocol",
    "DeviceCache",
    "DeviceRecord",
    "PendingRoleStore",
    "SessionRecord",
    "SessionStore",
]
