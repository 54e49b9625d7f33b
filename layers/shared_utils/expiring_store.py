"""Keyed in-memory stores whose expiry is checked against a caller-supplied clock.

Lambda containers are reused between invocations, so these live at module
level in the handlers. Nothing here reads the clock or runs timers: every
call takes ``now`` (seconds) from the caller.
"""
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


class ExpiringStore(Generic[V]):
    """A key/value map whose entries expire ``ttl_seconds`` after being set."""

    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[V, float]] = {}

    def set(self, key: str, value: V, now: float) -> None:
        self._entries[key] = (value, now)

    def get(self, key: str, now: float) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if now - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def purge_expired(self, now: float) -> int:
        expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """Fixed-window request counter per identifier."""

    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._windows: Dict[str, Dict[str, Any]] = {}

    def check(self, identifier: str, now: float) -> bool:
        """Count one request for ``identifier`` and report whether it is allowed."""
        self._prune(now)
        window = self._windows.get(identifier)
        if window is None or now - window["last_reset"] > self.window_seconds:
            self._windows[identifier] = {"count": 1, "last_reset": now}
            return True

        if window["count"] >= self.max_requests:
            return False

        window["count"] += 1
        return True

    def _prune(self, now: float) -> None:
        stale = [k for k, w in self._windows.items() if now - w["last_reset"] > self.window_seconds]
        for key in stale:
            del self._windows[key]

    def reset(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


def thumbnail_cache_key(stream_id: str, size: str) -> str:
    return f"thumbnail_{stream_id}_{size}"
