"""Request and response interceptor chains.

This module provides three components:

* :class:`InterceptorManager` -- an ordered, thread-safe registry of
  ``(on_fulfilled, on_rejected)`` handler pairs with ``use``/``eject``.
* :class:`Interceptors` -- the pair of managers (``request`` and
  ``response``) owned by every client.
* :func:`run_chain` -- executes a snapshot of entries over a value or an
  error with promise-chain fallthrough.

The chain follows a pipeline pattern: each fulfilled handler receives the
output of the previous one.  When a fulfilled handler raises, the error skips
to the rejected handler of the *next* entry that has one.  A rejected handler
recovers the chain by returning a value; returning ``None`` or raising keeps
the chain rejected, so recovery is always explicit.  Handlers may be plain
functions or coroutine functions.

Example::

    client.interceptors.request.use(lambda req: req.headers.update(auth) or req)

    def fallback(error):
        if error.status == 401:
            return ResponseEnvelope(status=200, data={"anonymous": True})
        raise error

    client.interceptors.response.use(None, fallback)
"""

from __future__ import annotations

import inspect
import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from reqflow.exceptions import ApiError

Handler = Callable[[Any], Any]


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class InterceptorEntry:
    """A registered handler pair and its handle for :meth:`InterceptorManager.eject`."""

    id: int
    on_fulfilled: Optional[Handler] = None
    on_rejected: Optional[Handler] = None


class InterceptorManager:
    """Ordered registry of interceptor entries.

    Ids are monotonic and never reused, so ejecting one entry leaves the
    order and ids of the others untouched.  Executions iterate a
    :meth:`snapshot`, which makes ``use``/``eject`` during an in-flight
    request safe: that request finishes with the entries it started with.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[InterceptorEntry] = []
        self._ids = itertools.count(1)

    def use(
        self,
        on_fulfilled: Optional[Handler] = None,
        on_rejected: Optional[Handler] = None,
    ) -> int:
        """Append a handler pair and return its id.

        Args:
            on_fulfilled: Called with the current value (request descriptor
                or response envelope).  Returns the value to pass on, or
                ``None`` to pass on the value it was given.
            on_rejected: Called with an :class:`~reqflow.exceptions.ApiError`
                raised upstream.  Returns a value to recover.
        """
        with self._lock:
            entry = InterceptorEntry(
                id=next(self._ids), on_fulfilled=on_fulfilled, on_rejected=on_rejected
            )
            self._entries.append(entry)
            return entry.id

    def eject(self, interceptor_id: int) -> None:
        """Remove the entry registered under *interceptor_id*, if present."""
        with self._lock:
            self._entries = [e for e in self._entries if e.id != interceptor_id]

    def clear(self) -> None:
        with self._lock:
            self._entries = []

    def snapshot(self) -> tuple[InterceptorEntry, ...]:
        """Return the current entries in registration order."""
        with self._lock:
            return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[InterceptorEntry]:
        return iter(self.snapshot())


class Interceptors:
    """The request and response interceptor managers of one client."""

    def __init__(self) -> None:
        self.request = InterceptorManager()
        self.response = InterceptorManager()


async def run_chain(
    entries: tuple[InterceptorEntry, ...],
    value: Any,
    classify: Callable[[BaseException], ApiError],
    error: Optional[ApiError] = None,
) -> Any:
    """Run *entries* in order starting from *value* or, if given, *error*.

    Args:
        entries: A snapshot from :meth:`InterceptorManager.snapshot`.
        value: The initial value (ignored while the chain is rejected).
        classify: Turns any exception raised by a handler into the
            :class:`~reqflow.exceptions.ApiError` given to the next
            rejected handler.
        error: Start the chain in the rejected state with this error.

    Returns:
        The final value.

    Raises:
        ApiError: If the chain ends rejected.
    """
    for entry in entries:
        if error is None:
            if entry.on_fulfilled is None:
                continue
            try:
                result = await maybe_await(entry.on_fulfilled(value))
            except Exception as exc:
                error = classify(exc)
            else:
                if result is not None:
                    value = result
        elif entry.on_rejected is not None:
            try:
                result = await maybe_await(entry.on_rejected(error))
            except Exception as exc:
                error = classify(exc)
            else:
                if result is not None:
                    value = result
                    error = None
    if error is not None:
        raise error
    return value
