"""Exception hierarchy for reqflow.

All exceptions inherit from :class:`ReqflowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`reqflow.exit_codes`.
The CLI entry point :func:`reqflow.app.main` catches ``ReqflowError`` and
exits with the appropriate code.

Request failures are reported as :class:`ApiError`, a tagged variant whose
``kind`` is one of :class:`ErrorKind`.  Each kind has its own subclass so
callers can either ``except NetworkError`` or branch on the discriminant
properties (``is_cancel``, ``is_timeout``, ``is_network``).

Subclass hierarchy::

    ReqflowError (exit 1)
    +-- InvalidUsageError     (exit 2)
    +-- ConfigError           (exit 1)
    +-- ApiError              (exit 1, kind=UNKNOWN)
        +-- HttpStatusError   (exit 3, kind=HTTP_STATUS)
        +-- CancelledError_   (exit 4, kind=CANCELLED)
        +-- TimeoutError_     (exit 5, kind=TIMEOUT)
        +-- NetworkError      (exit 6, kind=NETWORK)
        +-- UnknownError      (exit 1, kind=UNKNOWN)
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Optional

from reqflow.exit_codes import (
    EXIT_CANCELLED,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_STATUS,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_TIMEOUT,
)

if TYPE_CHECKING:
    from reqflow.models import RequestDescriptor, ResponseEnvelope


class ErrorKind(str, enum.Enum):
    """Classification tag carried by every :class:`ApiError`."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    HTTP_STATUS = "http_status"
    UNKNOWN = "unknown"


class ReqflowError(Exception):
    """Base exception for all reqflow errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`reqflow.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(ReqflowError):
    """Raised for unknown config options, bad arguments, or malformed values."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(ReqflowError):
    """Raised when a config file cannot be read, parsed, or validated."""

    exit_code = EXIT_GENERIC_FAILURE


class ApiError(ReqflowError):
    """A request that did not produce a successful response.

    Args:
        message: Human-readable error description.
        request: The descriptor that triggered the failure, when known.
        response: The response envelope, for errors raised after the
            transport completed (HTTP status errors).
        cause: The underlying exception (transport error, interceptor
            exception), when there is one.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        request: Optional[RequestDescriptor] = None,
        response: Optional[ResponseEnvelope] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.request = request
        self.response = response
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @property
    def status(self) -> Optional[int]:
        """HTTP status of the attached response, or ``None``."""
        return self.response.status if self.response is not None else None

    @property
    def is_cancel(self) -> bool:
        return self.kind is ErrorKind.CANCELLED

    @property
    def is_timeout(self) -> bool:
        return self.kind is ErrorKind.TIMEOUT

    @property
    def is_network(self) -> bool:
        return self.kind is ErrorKind.NETWORK

    @property
    def is_http_status(self) -> bool:
        return self.kind is ErrorKind.HTTP_STATUS

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class NetworkError(ApiError):
    """The transport could not complete the exchange."""

    kind = ErrorKind.NETWORK
    exit_code = EXIT_NETWORK_ERROR


class TimeoutError_(ApiError):
    """An attempt exceeded its deadline.

    Named with a trailing underscore to avoid shadowing the built-in
    ``TimeoutError``.
    """

    kind = ErrorKind.TIMEOUT
    exit_code = EXIT_TIMEOUT


class CancelledError_(ApiError):
    """The request's cancel token fired before or during an attempt.

    Named with a trailing underscore to avoid confusion with
    :class:`asyncio.CancelledError`, which is a different thing: task
    cancellation still propagates unchanged.

    Args:
        reason: The reason passed to ``cancel()``, also used as the message.
    """

    kind = ErrorKind.CANCELLED
    exit_code = EXIT_CANCELLED

    def __init__(
        self,
        reason: Optional[str] = None,
        *,
        request: Optional[RequestDescriptor] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(reason or "Request cancelled", request=request, cause=cause)
        self.reason = reason


class HttpStatusError(ApiError):
    """The transport completed but the server answered outside 2xx.

    The parsed response is available as :attr:`response` so callers (and
    response interceptors) can inspect the body.
    """

    kind = ErrorKind.HTTP_STATUS
    exit_code = EXIT_HTTP_STATUS

    def __init__(
        self,
        message: str,
        *,
        response: ResponseEnvelope,
        request: Optional[RequestDescriptor] = None,
    ) -> None:
        super().__init__(message, request=request, response=response)


class UnknownError(ApiError):
    """An interceptor-raised or otherwise unclassified failure."""

    kind = ErrorKind.UNKNOWN


def classify_error(exc: BaseException, request: Optional[RequestDescriptor] = None) -> ApiError:
    """Return *exc* as an :class:`ApiError`.

    ``ApiError`` instances pass through (picking up *request* if they have
    none); anything else is wrapped in :class:`UnknownError` with the
    original exception as ``cause``.
    """
    if isinstance(exc, ApiError):
        if exc.request is None:
            exc.request = request
        return exc
    message = str(exc) or type(exc).__name__
    return UnknownError(message, request=request, cause=exc)


def is_cancel(value: Any) -> bool:
    """Return ``True`` if *value* is a cancellation error."""
    return isinstance(value, ApiError) and value.is_cancel
