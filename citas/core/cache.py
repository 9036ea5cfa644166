"""
Read cache for recomputed aggregates.

Best-effort only: a miss or an expired entry means the caller recomputes.
Instances are created per application (see `citas.main`) and handed to the
services through the `get_cache` dependency, so tests can swap in
`NullCache` or a `TTLCache` with a fake clock.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Protocol

from fastapi import Request

logger = logging.getLogger(__name__)


class ReadCache(Protocol):
    def get(self, key: Hashable) -> Optional[Any]: ...

    def set(self, key: Hashable, value: Any) -> None: ...


class TTLCache:
    """Bounded in-memory cache whose entries expire `ttl_seconds` after `set`."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                logger.debug("cache miss key=%s", key)
                return None
            stored_at, value = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                logger.debug("cache expired key=%s", key)
                return None
            logger.debug("cache hit key=%s", key)
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NullCache:
    """Cache that never stores anything."""

    def get(self, key: Hashable) -> Optional[Any]:
        return None

    def set(self, key: Hashable, value: Any) -> None:
        return None


def cache_key(namespace: str, **params: Any) -> str:
    """Stable key for a filter combination: list params are sorted, None dropped."""
    parts = [namespace]
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            value = ",".join(str(v) for v in sorted(value))
        parts.append(f"{name}={value}")
    return ":".join(parts)


def get_cache(request: Request) -> ReadCache:
    return request.app.state.cache
