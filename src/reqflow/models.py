"""Canonical Pydantic models shared across all reqflow modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- explicit option structs, validated strictly so an
unknown option is an error rather than a silently ignored key:
    :class:`ClientConfig` (instance defaults, also the shape of config files)
    and :class:`RequestConfig` (per-call overrides).

**Pipeline models** -- the values that flow through
:class:`~reqflow.client.pipeline.RequestPipeline`:
    :class:`HTTPMethod`, :class:`RequestDescriptor`,
    :class:`ResponseEnvelope`, and :class:`CacheEntry`.

All models use Pydantic v2.  Models that carry a
:class:`~reqflow.cancellation.CancelToken` or progress callbacks set
``arbitrary_types_allowed``.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reqflow.cancellation import CancelToken

ProgressCallback = Callable[..., Any]


# --- Configuration Models ---


class ClientConfig(BaseModel):
    """Defaults applied to every request made by a client instance.

    Also the shape of the global and project config files read by
    :mod:`reqflow.config`.  Durations are in milliseconds.

    Example::

        ClientConfig(
            base_url="https://api.example.com",
            headers={"Accept": "application/json"},
            timeout=10_000,
            retries=2,
        )
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    base_url: Optional[str] = Field(
        default=None, alias="baseURL", description="Prefix for relative request URLs"
    )
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(
        default_factory=dict, description="Query parameters sent with every request"
    )
    timeout: Optional[int] = Field(
        default=None, gt=0, description="Per-attempt timeout in ms; None waits forever"
    )
    cache: bool = Field(default=False, description="Cache successful GET responses")
    cache_time: int = Field(
        default=300_000, gt=0, alias="cacheTime", description="Cache TTL in ms"
    )
    retries: int = Field(
        default=0, ge=0, description="Retries after a network or timeout failure"
    )


class RequestConfig(BaseModel):
    """Per-call overrides accepted by the verb helpers.

    Every field defaults to ``None`` meaning "inherit from the client".
    Only fields that were explicitly set take part in the merge (see
    :func:`~reqflow.client.async_client.resolve_request`).  The camelCase
    aliases (``cacheTime``, ``cancelToken``, ...) are accepted as well.
    """

    model_config = ConfigDict(
        extra="forbid", populate_by_name=True, arbitrary_types_allowed=True
    )

    headers: Optional[dict[str, str]] = None
    params: Optional[dict[str, Any]] = None
    timeout: Optional[int] = Field(default=None, gt=0)
    cache: Optional[bool] = None
    cache_time: Optional[int] = Field(default=None, gt=0, alias="cacheTime")
    retries: Optional[int] = Field(default=None, ge=0)
    cancel_token: Optional[CancelToken] = Field(default=None, alias="cancelToken")
    on_upload_progress: Optional[ProgressCallback] = Field(
        default=None, alias="onUploadProgress"
    )
    on_download_progress: Optional[ProgressCallback] = Field(
        default=None, alias="onDownloadProgress"
    )


def by_field_name(model: type[BaseModel], data: Mapping[str, Any]) -> dict[str, Any]:
    """Return *data* with camelCase alias keys renamed to *model*'s field names.

    Layers written with either spelling can then be merged key by key.
    Unknown keys are kept so validation still rejects them.
    """
    aliases = {field.alias: name for name, field in model.model_fields.items() if field.alias}
    return {aliases.get(key, key): value for key, value in data.items()}


# --- Pipeline Models ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods supported by the verb helpers."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class RequestDescriptor(BaseModel):
    """A fully resolved request, as handed to the pipeline.

    The pipeline never mutates the caller's instance; it works on
    :meth:`draft`, which request interceptors may mutate in place or
    replace.  ``url`` is absolute by the time it reaches the transport.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    method: HTTPMethod
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: Optional[dict[str, Any]] = None
    body: Any = None
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    cache_enabled: bool = False
    cache_ttl_ms: Optional[int] = Field(default=None, gt=0)
    max_retries: int = Field(default=0, ge=0)
    cancel_token: Optional[CancelToken] = None
    on_upload_progress: Optional[ProgressCallback] = None
    on_download_progress: Optional[ProgressCallback] = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    def draft(self) -> RequestDescriptor:
        """Return a copy safe to mutate: own ``headers`` and ``params`` dicts.

        The cancel token and callbacks are shared by reference.
        """
        return self.model_copy(
            update={
                "headers": dict(self.headers),
                "params": dict(self.params) if self.params is not None else None,
            }
        )


class ResponseEnvelope(BaseModel):
    """Normalized response produced by the pipeline.

    ``data`` is the JSON-decoded body when the content type is JSON, text for
    textual content types, raw bytes otherwise, and ``None`` for an empty
    body.  ``cached`` is ``True`` when the envelope was served from the
    cache store rather than the transport.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None
    request: Optional[RequestDescriptor] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        """Whether :attr:`status` is in the 2xx range."""
        return 200 <= self.status < 300


class CacheEntry(BaseModel):
    """A cached envelope with its storage time (seconds) and TTL (ms)."""

    key: str
    value: ResponseEnvelope
    stored_at: float
    ttl_ms: int = Field(gt=0)

    def is_valid(self, now: float) -> bool:
        """An entry is valid iff ``now - stored_at < ttl``."""
        return (now - self.stored_at) * 1000 < self.ttl_ms
