"""Cache commands -- inspect and maintain the persistent response cache.

Provides the ``reqflow cache`` sub-command group.  The verb commands store
successful GET responses in a :class:`~reqflow.cache.DiskCacheStore` under
:func:`~reqflow.config.get_cache_dir`; these commands operate on that same
store.
"""

from __future__ import annotations

import typer

from reqflow.output import format_response, info, success


cache_app = typer.Typer(no_args_is_help=True)


@cache_app.command("stats")
def cache_stats() -> None:
    """Show the cache location and number of entries.

    Example::

        reqflow cache stats
        reqflow --json cache stats
    """
    from reqflow.cache import DiskCacheStore
    from reqflow.config import get_cache_dir

    store = DiskCacheStore(get_cache_dir())
    try:
        format_response(store.stats())
    finally:
        store.close()


@cache_app.command("clear")
def cache_clear() -> None:
    """Remove every cached response."""
    from reqflow.cache import DiskCacheStore
    from reqflow.config import get_cache_dir

    store = DiskCacheStore(get_cache_dir())
    try:
        store.clear()
    finally:
        store.close()
    success("Cache cleared.")


@cache_app.command("sweep")
def cache_sweep() -> None:
    """Remove expired responses, keeping the ones still within their TTL."""
    from reqflow.cache import DiskCacheStore
    from reqflow.config import get_cache_dir

    store = DiskCacheStore(get_cache_dir())
    try:
        removed = store.sweep()
    finally:
        store.close()
    info(f"Removed {removed} expired entr{'y' if removed == 1 else 'ies'}.")
