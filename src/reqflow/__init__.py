"""reqflow -- an asynchronous HTTP client with interceptors, caching, retry, and cancellation.

A :class:`Client` offers ``get``/``post``/``put``/``patch``/``delete`` over an
injectable transport.  Every call goes through a request pipeline that runs
request interceptors, serves GET responses from a time-bounded cache,
retries network and timeout failures with exponential backoff, honours
cooperative cancellation tokens, and finally runs response interceptors.

Typical use::

    from reqflow import CancelToken, create

    api = create({"base_url": "https://api.example.com", "retries": 2})
    response = await api.get("/users", {"cache": True, "cache_time": 60_000})

The package also ships a ``reqflow`` command (see :mod:`reqflow.app`).

Modules:
    client: Client, request pipeline, transports, response decoding.
    cache: Cache stores and request fingerprinting.
    cancellation: Cancel tokens.
    interceptors: Request/response interceptor chains.
    retry: Retry policies.
    models: Pydantic models shared across the package.
    config: XDG-aware config files and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting and diagnostics.
"""

__version__ = "0.1.0"

from reqflow.cancellation import CancelSource, CancelToken
from reqflow.client import Client, create
from reqflow.exceptions import (
    ApiError,
    CancelledError_,
    ErrorKind,
    HttpStatusError,
    NetworkError,
    TimeoutError_,
    UnknownError,
    is_cancel,
)
from reqflow.models import ClientConfig, RequestConfig, RequestDescriptor, ResponseEnvelope

__all__ = [
    "ApiError",
    "CancelSource",
    "CancelToken",
    "CancelledError_",
    "Client",
    "ClientConfig",
    "ErrorKind",
    "HttpStatusError",
    "NetworkError",
    "RequestConfig",
    "RequestDescriptor",
    "ResponseEnvelope",
    "TimeoutError_",
    "UnknownError",
    "__version__",
    "create",
    "is_cancel",
]
