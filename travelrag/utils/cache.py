"""In-memory TTL cache owned by the component that needs it"""
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Small TTL cache with a fixed key namespace.

    Each owner creates its own instance; keys are prefixed with the
    namespace so deleting by prefix never touches another owner's entries.

    Example:
        cache = TTLCache("catalog", default_ttl=600)
        cache.set("Seoul:museum", rows)
        rows = cache.get("Seoul:museum")
    """

    def __init__(self, namespace: str, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: Dict[str, Tuple[Any, float]] = {}

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        full_key = self._key(key)
        entry = self._store.get(full_key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[full_key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.default_ttl)
        self._store[self._key(key)] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._store.pop(self._key(key), None)

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix; returns count removed"""
        full_prefix = self._key(prefix)
        doomed = [k for k in self._store if k.startswith(full_prefix)]
        for k in doomed:
            del self._store[k]
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
