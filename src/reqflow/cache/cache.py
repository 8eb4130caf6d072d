"""Cache stores and request fingerprinting.

Only GET responses are cached, and only when the final outcome of the
request was a 2xx response; that policy is enforced by the pipeline, the
stores themselves simply hold :class:`~reqflow.models.ResponseEnvelope`
values with a time-to-live.

Cache keys are SHA-256 hashes of ``METHOD|URL|sorted_params`` so that
identical requests always resolve to the same entry regardless of
parameter ordering.  Headers never take part in the key.

A store may implement ``get``/``set`` as coroutines; the pipeline awaits
whatever is awaitable.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import diskcache

from reqflow.models import CacheEntry, HTTPMethod, RequestDescriptor, ResponseEnvelope

Clock = Callable[[], float]

DEFAULT_MAX_ENTRIES = 1024


def is_cacheable(method: Union[HTTPMethod, str]) -> bool:
    """Return ``True`` for methods whose responses may be cached (GET only)."""
    value = method.value if isinstance(method, HTTPMethod) else str(method).upper()
    return value == HTTPMethod.GET.value


def fingerprint(request: RequestDescriptor) -> str:
    """Generate a cache key from method, URL, and sorted query params."""
    parts = [request.method.value, request.url]
    if request.params:
        parts.append(json.dumps(request.params, sort_keys=True, default=str))
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()


class CacheStore(Protocol):
    """Interface the pipeline expects from a cache store."""

    def get(
        self, key: str
    ) -> Union[Optional[ResponseEnvelope], Awaitable[Optional[ResponseEnvelope]]]: ...

    def set(
        self, key: str, value: ResponseEnvelope, ttl_ms: int
    ) -> Union[None, Awaitable[None]]: ...


class MemoryCacheStore:
    """In-process LRU cache store.

    An :class:`~collections.OrderedDict` of :class:`~reqflow.models.CacheEntry`
    guarded by a lock, so concurrent ``get``/``set`` from several threads or
    tasks never corrupt it; the last ``set`` for a key wins.  Every ``set``
    drops expired entries, then evicts the least recently used ones beyond
    *max_entries*.

    Args:
        clock: Time source in seconds.  Defaults to :func:`time.monotonic`;
            tests pass a fake clock to step over TTLs.
        max_entries: Upper bound on stored entries.
    """

    def __init__(self, clock: Clock = time.monotonic, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._clock = clock
        self.max_entries = max_entries
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ResponseEnvelope]:
        """Return the cached envelope, or ``None`` on a miss or expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_valid(self._clock()):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: ResponseEnvelope, ttl_ms: int) -> None:
        """Store *value* under *key* for *ttl_ms* milliseconds."""
        now = self._clock()
        entry = CacheEntry(key=key, value=value, stored_at=now, ttl_ms=ttl_ms)
        with self._lock:
            self._remove_expired(now)
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            return self._remove_expired(self._clock())

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {"backend": "memory", "size": len(self._entries), "max_entries": self.max_entries}

    def _remove_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class DiskCacheStore:
    """Disk-backed cache store using :mod:`diskcache`.

    Envelopes are stored without their originating request (which may hold
    a cancel token and callbacks) as plain dicts together with the storage
    time and TTL.  diskcache's own ``expire`` is set as well so
    :meth:`sweep` can drop stale rows in one pass.

    Args:
        cache_dir: Root directory for the cache.  A ``responses/``
            subdirectory is created inside it.
        clock: Wall-clock time source in seconds, since entries outlive the
            process.

    Example::

        from reqflow.cache import DiskCacheStore

        store = DiskCacheStore("/tmp/reqflow-cache")
        store.set(key, envelope, ttl_ms=60_000)
        hit = store.get(key)
    """

    def __init__(self, cache_dir: str | Path, clock: Clock = time.time) -> None:
        self._cache_dir = Path(cache_dir)
        self._clock = clock
        self._cache = diskcache.Cache(str(self._cache_dir / "responses"))

    def get(self, key: str) -> Optional[ResponseEnvelope]:
        """Look up a cached envelope, deleting it if it has expired."""
        payload = self._cache.get(key)
        if payload is None:
            return None
        entry = CacheEntry(
            key=key,
            value=ResponseEnvelope.model_validate(payload["value"]),
            stored_at=payload["stored_at"],
            ttl_ms=payload["ttl_ms"],
        )
        if not entry.is_valid(self._clock()):
            self._cache.delete(key)
            return None
        return entry.value

    def set(self, key: str, value: ResponseEnvelope, ttl_ms: int) -> None:
        """Store *value* under *key* for *ttl_ms* milliseconds."""
        payload = {
            "value": value.model_dump(exclude={"request"}),
            "stored_at": self._clock(),
            "ttl_ms": ttl_ms,
        }
        self._cache.set(key, payload, expire=ttl_ms / 1000)

    def delete(self, key: str) -> None:
        """Remove a specific cache entry."""
        self._cache.delete(key)

    def clear(self) -> None:
        """Remove all entries from the cache."""
        self._cache.clear()

    def sweep(self) -> int:
        """Remove expired entries and return how many were removed."""
        return self._cache.expire()

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``backend``, ``size`` (number of entries), and
            ``directory`` (str path).
        """
        return {
            "backend": "disk",
            "size": len(self._cache),
            "directory": str(self._cache_dir / "responses"),
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()
