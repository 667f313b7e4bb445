import hashlib
import threading
import time
from collections import OrderedDict
from typing import Any


class TTLCache:
    """In-process cache; entries are lost on restart and not shared between workers."""

    def __init__(self, *, max_items: int = 5000, ttl_s: int = 3600) -> None:
        self._max_items = max(1, int(max_items or 1))
        self._ttl_s = max(1, int(ttl_s or 1))
        self._items: "OrderedDict[str, tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        now = time.monotonic()
        with self._lock:
            hit = self._items.get(key)
            if hit is None:
                return None
            expires_at, value = hit
            if expires_at <= now:
                del self._items[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._items.pop(key, None)
            self._items[key] = (time.monotonic() + self._ttl_s, value)
            # oldest insertions go first
            while len(self._items) > self._max_items:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def scoped_key(scope: str, user_id: str, key: str) -> str:
    digest = hashlib.sha256(f"{user_id}\x00{key}".encode("utf-8")).hexdigest()
    return f"{scope}:{digest}"
