import logging
import threading
import time
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)

_ALL = object()


class ReadThroughCache:
    """
    In-process read-through cache with explicit invalidation.

    ttl=0 keeps an entry until `invalidate` is called for its key (or for all keys).
    """

    def __init__(self, name: str, ttl: float = 0, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            hit = self._entries.get(key)
            if hit is not None and (not self.ttl or now - hit[0] < self.ttl):
                return hit[1]

        value = loader()
        with self._lock:
            self._entries[key] = (now, value)
        logger.debug("cache=%s miss key=%s", self.name, key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable = _ALL) -> None:
        with self._lock:
            if key is _ALL:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
        logger.debug("cache=%s invalidated key=%s", self.name, "*" if key is _ALL else key)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries
