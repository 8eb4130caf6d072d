"""Asynchronous client: verb helpers, config resolution, and instance factory.

This module provides :class:`Client`, the public entry point of reqflow.
A client holds its defaults (:class:`~reqflow.models.ClientConfig`) and a
:class:`~reqflow.client.pipeline.RequestPipeline` with its own cache store
and interceptors.  Each verb helper resolves a
:class:`~reqflow.models.RequestDescriptor` from the defaults and the per-call
:class:`~reqflow.models.RequestConfig`, then hands it to the pipeline.

Merge contract (defaults <- per-call, per-call wins):

* ``headers`` merge key by key, case-insensitively;
* ``params`` merge key by key;
* every other option is replaced when it is set on the call.

Example::

    from reqflow import CancelToken, create

    async with create({"base_url": "https://api.example.com", "retries": 2}) as api:
        users = await api.get("/users", {"cache": True, "cache_time": 60_000})
        print(users.status, users.data)

        source = CancelToken.source()
        source.cancel("user abort")
        await api.get("/users", {"cancel_token": source.token})  # CancelledError_
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from reqflow.cache import CacheStore
from reqflow.client.pipeline import RequestPipeline, Sleep
from reqflow.client.transport import HttpxTransport, Transport
from reqflow.exceptions import InvalidUsageError
from reqflow.interceptors import Interceptors
from reqflow.models import (
    ClientConfig,
    HTTPMethod,
    RequestConfig,
    RequestDescriptor,
    ResponseEnvelope,
    by_field_name,
)
from reqflow.retry import RetryPolicy

ClientConfigInput = Union[ClientConfig, Mapping[str, Any], None]
RequestConfigInput = Union[RequestConfig, Mapping[str, Any], None]


class Client:
    """Asynchronous HTTP client with interceptors, caching, retry, and cancellation.

    Args:
        config: Instance defaults, as a :class:`~reqflow.models.ClientConfig`
            or a mapping of its fields.  Unknown keys raise
            :class:`~reqflow.exceptions.InvalidUsageError`.
        transport: Performs the network exchange.  Defaults to an owned
            :class:`~reqflow.client.transport.HttpxTransport`, closed by
            :meth:`aclose`.  Injected transports are not closed.
        cache_store: Cache store for this instance.  Defaults to an
            in-memory store.
        retry_policy: Defaults to :class:`~reqflow.retry.DefaultRetryPolicy`.
        sleep: Coroutine used for backoff delays (seconds).

    Example::

        async with Client({"base_url": "https://api.example.com"}) as client:
            response = await client.post("/items", {"name": "test"})
    """

    def __init__(
        self,
        config: ClientConfigInput = None,
        *,
        transport: Optional[Transport] = None,
        cache_store: Optional[CacheStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.defaults = _coerce_client_config(config)
        self._owns_transport = transport is None
        self._transport: Transport = transport if transport is not None else HttpxTransport()
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._pipeline = RequestPipeline(
            self._transport,
            cache_store=cache_store,
            interceptors=Interceptors(),
            retry_policy=retry_policy,
            default_cache_ttl_ms=self.defaults.cache_time,
            sleep=sleep,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def interceptors(self) -> Interceptors:
        """The ``request`` and ``response`` interceptor managers."""
        return self._pipeline.interceptors

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    @property
    def cache_store(self) -> CacheStore:
        return self._pipeline.cache_store

    def create(self, config: ClientConfigInput = None) -> Client:
        """Derive a client whose defaults are these deep-merged with *config*.

        The new client has its own pipeline, cache store, and interceptors.
        An injected transport is shared; an owned one is not.
        """
        return Client(
            merge_client_config(self.defaults, config),
            transport=None if self._owns_transport else self._transport,
            retry_policy=self._retry_policy,
            sleep=self._sleep,
        )

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: Union[HTTPMethod, str],
        url: str,
        data: Any = None,
        config: RequestConfigInput = None,
        **overrides: Any,
    ) -> ResponseEnvelope:
        """Resolve a descriptor and execute it through the pipeline.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            url: Absolute URL, or a path joined onto ``base_url``.
            data: Request body.  ``str``/``bytes`` are sent as-is, anything
                else as JSON.
            config: Per-call options (:class:`~reqflow.models.RequestConfig`
                or a mapping).
            **overrides: Per-call options given as keywords; they win over
                *config*.

        Returns:
            The :class:`~reqflow.models.ResponseEnvelope`.

        Raises:
            ApiError: The classified failure (see :mod:`reqflow.exceptions`).
            InvalidUsageError: On an unknown or invalid option.
        """
        request_config = coerce_request_config(config, **overrides)
        descriptor = resolve_request(self.defaults, method, url, data, request_config)
        return await self._pipeline.execute(descriptor)

    async def get(self, url: str, config: RequestConfigInput = None, **overrides: Any) -> ResponseEnvelope:
        """Send a GET request (the only cacheable method)."""
        return await self.request(HTTPMethod.GET, url, None, config, **overrides)

    async def delete(self, url: str, config: RequestConfigInput = None, **overrides: Any) -> ResponseEnvelope:
        """Send a DELETE request."""
        return await self.request(HTTPMethod.DELETE, url, None, config, **overrides)

    async def post(
        self, url: str, data: Any = None, config: RequestConfigInput = None, **overrides: Any
    ) -> ResponseEnvelope:
        """Send a POST request with *data* as the body."""
        return await self.request(HTTPMethod.POST, url, data, config, **overrides)

    async def put(
        self, url: str, data: Any = None, config: RequestConfigInput = None, **overrides: Any
    ) -> ResponseEnvelope:
        """Send a PUT request with *data* as the body."""
        return await self.request(HTTPMethod.PUT, url, data, config, **overrides)

    async def patch(
        self, url: str, data: Any = None, config: RequestConfigInput = None, **overrides: Any
    ) -> ResponseEnvelope:
        """Send a PATCH request with *data* as the body."""
        return await self.request(HTTPMethod.PATCH, url, data, config, **overrides)


def create(
    base_config: ClientConfigInput = None,
    *,
    transport: Optional[Transport] = None,
    cache_store: Optional[CacheStore] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> Client:
    """Create a new :class:`Client` with *base_config* as its defaults."""
    return Client(
        base_config,
        transport=transport,
        cache_store=cache_store,
        retry_policy=retry_policy,
    )


# ------------------------------------------------------------------ #
# Config resolution
# ------------------------------------------------------------------ #


def coerce_request_config(config: RequestConfigInput = None, **overrides: Any) -> RequestConfig:
    """Validate per-call options into a :class:`~reqflow.models.RequestConfig`.

    Raises:
        InvalidUsageError: On an unknown key or an invalid value.
    """
    if isinstance(config, RequestConfig) and not overrides:
        return config

    data: dict[str, Any] = {}
    if isinstance(config, RequestConfig):
        data = {name: getattr(config, name) for name in config.model_fields_set}
    elif config is not None:
        data = by_field_name(RequestConfig, config)
    data.update(by_field_name(RequestConfig, overrides))
    try:
        return RequestConfig.model_validate(data)
    except ValidationError as exc:
        raise InvalidUsageError(f"Invalid request config: {exc}") from exc


def merge_client_config(base: ClientConfig, override: ClientConfigInput) -> ClientConfig:
    """Deep-merge *override* onto *base*; *override* wins.

    Raises:
        InvalidUsageError: On an unknown key or an invalid value.
    """
    if override is None:
        return base.model_copy(deep=True)
    if isinstance(override, ClientConfig):
        override_data = override.model_dump(exclude_unset=True)
    else:
        override_data = by_field_name(ClientConfig, override)
    try:
        return ClientConfig.model_validate(_deep_merge(base.model_dump(), override_data))
    except ValidationError as exc:
        raise InvalidUsageError(f"Invalid client config: {exc}") from exc


def resolve_request(
    defaults: ClientConfig,
    method: Union[HTTPMethod, str],
    url: str,
    data: Any,
    config: RequestConfig,
) -> RequestDescriptor:
    """Build the descriptor for one call from client defaults and call options."""
    headers = _merge_headers(defaults.headers, config.headers or {})
    params = {**defaults.params, **(config.params or {})}
    timeout = config.timeout if "timeout" in config.model_fields_set else defaults.timeout
    try:
        return RequestDescriptor(
            method=method,
            url=build_url(defaults.base_url, url),
            headers=headers,
            params=params or None,
            body=data,
            timeout_ms=timeout,
            cache_enabled=config.cache if config.cache is not None else defaults.cache,
            cache_ttl_ms=config.cache_time or defaults.cache_time,
            max_retries=config.retries if config.retries is not None else defaults.retries,
            cancel_token=config.cancel_token,
            on_upload_progress=config.on_upload_progress,
            on_download_progress=config.on_download_progress,
        )
    except ValidationError as exc:
        raise InvalidUsageError(f"Invalid request: {exc}") from exc


def build_url(base_url: Optional[str], url: str) -> str:
    """Join *url* onto *base_url* unless *url* is already absolute."""
    if not base_url or httpx.URL(url).is_absolute_url:
        return url
    if not url:
        return base_url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def _coerce_client_config(config: ClientConfigInput) -> ClientConfig:
    if isinstance(config, ClientConfig):
        return config
    try:
        return ClientConfig.model_validate(dict(config or {}))
    except ValidationError as exc:
        raise InvalidUsageError(f"Invalid client config: {exc}") from exc


def _merge_headers(base: Mapping[str, str], override: Mapping[str, str]) -> dict[str, str]:
    merged = dict(base)
    for name, value in override.items():
        for existing in [k for k in merged if k.lower() == name.lower()]:
            del merged[existing]
        merged[name] = value
    return merged


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged
