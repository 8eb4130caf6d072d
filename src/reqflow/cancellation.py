"""Cooperative cancellation tokens.

A :class:`CancelToken` is a one-way switch shared by reference between the
code that may want to abort work and the requests that should honour it::

    source = CancelToken.source()
    task = asyncio.create_task(client.get("/slow", {"cancel_token": source.token}))
    ...
    source.cancel("user abort")

Once cancelled a token stays cancelled; later ``cancel()`` calls are no-ops.
The request pipeline polls the token at its checkpoints and also registers
an :meth:`CancelToken.on_cancel` listener to abort an in-flight transport
call.  Tokens may be cancelled from any thread.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from reqflow.exceptions import CancelledError_

if TYPE_CHECKING:
    from reqflow.models import RequestDescriptor

CancelListener = Callable[[Optional[str]], None]


class CancelToken:
    """Shared cancellation state: ``active -> cancelled``, never back."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: Optional[str] = None
        self._listeners: dict[int, CancelListener] = {}
        self._ids = itertools.count(1)

    @classmethod
    def source(cls) -> CancelSource:
        """Create a fresh token paired with the function that cancels it."""
        token = cls()
        return CancelSource(token=token, cancel=token._cancel)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def on_cancel(self, callback: CancelListener) -> Callable[[], None]:
        """Register *callback* to run once, with the reason, when cancelled.

        Listeners run synchronously inside ``cancel()``.  Every listener is
        called even if an earlier one raises; the first such error is then
        re-raised from ``cancel()``.  If the token is already cancelled the
        callback runs immediately.

        Returns:
            A function that unregisters the callback.  Calling it after the
            callback fired, or twice, does nothing.
        """
        with self._lock:
            if not self._cancelled:
                listener_id = next(self._ids)
                self._listeners[listener_id] = callback
                return lambda: self._remove_listener(listener_id)
            reason = self._reason
        callback(reason)
        return lambda: None

    def throw_if_cancelled(self, request: Optional[RequestDescriptor] = None) -> None:
        """Raise :class:`~reqflow.exceptions.CancelledError_` if cancelled."""
        if self._cancelled:
            raise CancelledError_(self._reason, request=request)

    def _remove_listener(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)

    def _cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            listeners = list(self._listeners.values())
            self._listeners.clear()
        first_error: Optional[Exception] = None
        for listener in listeners:
            try:
                listener(reason)
            except Exception as exc:
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def __repr__(self) -> str:
        state = f"cancelled, reason={self._reason!r}" if self._cancelled else "active"
        return f"CancelToken({state})"


@dataclass(frozen=True)
class CancelSource:
    """A token together with its ``cancel(reason=None)`` function."""

    token: CancelToken
    cancel: Callable[..., None]
