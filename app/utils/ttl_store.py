# app/utils/ttl_store.py
"""
Small thread-safe key/value store with per-entry expiry.

Used for short-lived in-process state such as the certificate generation
lock. The clock is injectable so tests can move time without sleeping.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

Clock = Callable[[], float]


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLStore:
    def __init__(self, default_ttl: float, clock: Clock = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[Hashable, _Entry] = {}
        self._lock = threading.Lock()

    def _live(self, key: Hashable, now: float) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry.value if entry else default

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = _Entry(value, now + (ttl if ttl is not None else self.default_ttl))

    def add(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> bool:
        """Store ``value`` only if no live entry exists. Returns True when stored."""
        with self._lock:
            now = self._clock()
            if self._live(key, now) is not None:
                return False
            self._entries[key] = _Entry(value, now + (ttl if ttl is not None else self.default_ttl))
            return True

    def expire_in(self, key: Hashable, seconds: float) -> bool:
        with self._lock:
            now = self._clock()
            entry = self._live(key, now)
            if entry is None:
                return False
            entry.expires_at = min(entry.expires_at, now + seconds)
            return True

    def delete(self, key: Hashable, value: Any = None) -> None:
        """Remove ``key``; when ``value`` is given only if it is still the stored one."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            if value is not None and entry.value is not value:
                return
            del self._entries[key]

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for e in self._entries.values() if e.expires_at > now)
