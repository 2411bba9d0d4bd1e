"""Small in-process TTL cache used for derived assessments."""

import threading
import time
from typing import Callable, Dict, Generic, Hashable, List, Optional, Protocol, Tuple, TypeVar

V = TypeVar("V")


class Cache(Protocol[V]):
    """Minimal cache interface; a shared cache backend can implement it."""

    def get(self, key: Hashable) -> Optional[V]:
        ...

    def set(self, key: Hashable, value: V) -> None:
        ...

    def invalidate(self, key: Hashable) -> None:
        ...

    def clear(self) -> None:
        ...


class TTLCache(Generic[V]):
    """Thread-safe key/value map whose entries expire after a fixed TTL."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, V]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            if (
                self.max_entries is not None
                and key not in self._entries
                and len(self._entries) >= self.max_entries
            ):
                # Evict the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired: List[Hashable] = [
                k for k, (expires_at, _) in self._entries.items() if now >= expires_at
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
