"""HTTP client module for reqflow.

Provides the asynchronous :class:`Client` and the machinery behind it:

Classes:
    :class:`Client` -- verb helpers over the request pipeline.
    :class:`RequestPipeline` -- interceptors, cache, transport, retry, and
        cancellation for one request at a time.
    :class:`HttpxTransport` -- default transport backed by
        :class:`httpx.AsyncClient`.

Example::

    from reqflow.client import create

    async with create({"base_url": "https://api.example.com"}) as client:
        resp = await client.get("/users")
"""

from reqflow.client.async_client import Client, create
from reqflow.client.pipeline import PipelineState, RequestPipeline
from reqflow.client.transport import HttpxTransport, RawResponse, Transport

__all__ = [
    "Client",
    "HttpxTransport",
    "PipelineState",
    "RawResponse",
    "RequestPipeline",
    "Transport",
    "create",
]
