"""Response caching for reqflow.

This package provides the cache stores consulted by
:class:`~reqflow.client.pipeline.RequestPipeline`:

* :class:`MemoryCacheStore` -- in-process store, the default for every client.
* :class:`DiskCacheStore` -- persistent store backed by :mod:`diskcache`,
  used by the ``reqflow`` CLI so entries survive between invocations.

Entries are keyed by :func:`fingerprint` and only GET requests are eligible
(:func:`is_cacheable`).  Expired entries are treated as absent and removed on
lookup; :meth:`~MemoryCacheStore.sweep` removes them eagerly.
"""

from reqflow.cache.cache import (
    CacheStore,
    DiskCacheStore,
    MemoryCacheStore,
    fingerprint,
    is_cacheable,
)

__all__ = [
    "CacheStore",
    "DiskCacheStore",
    "MemoryCacheStore",
    "fingerprint",
    "is_cacheable",
]
