"""Transports: the one place that talks to the network.

The pipeline only needs something that performs a single exchange and
either returns a :class:`RawResponse` or raises
:class:`~reqflow.exceptions.NetworkError` /
:class:`~reqflow.exceptions.TimeoutError_`.  :class:`HttpxTransport` is the
default, built on :class:`httpx.AsyncClient`; tests inject an
:class:`httpx.MockTransport` through it or supply their own
:class:`Transport`.

Aborting is done by cancelling the asyncio task that awaits
:meth:`Transport.send`, which httpx honours by closing the connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from reqflow.exceptions import NetworkError, TimeoutError_
from reqflow.models import RequestDescriptor


@dataclass
class RawResponse:
    """What a transport returns: status, headers, and the undecoded body."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""


class Transport(Protocol):
    """Performs one network exchange for a request descriptor."""

    async def send(
        self, request: RequestDescriptor, *, timeout: Optional[float] = None
    ) -> RawResponse: ...


class HttpxTransport:
    """Default transport wrapping :class:`httpx.AsyncClient`.

    Args:
        client: An existing client to use.  It is not closed by
            :meth:`aclose`.  When ``None``, a client is created and owned.
        transport: Optional low-level httpx transport for the owned client
            (e.g. :class:`httpx.MockTransport` in tests).
        verify: Verify TLS certificates (owned client only).
        follow_redirects: Follow redirects (owned client only).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        verify: bool = True,
        follow_redirects: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            transport=transport,
            verify=verify,
            follow_redirects=follow_redirects,
        )

    async def send(
        self, request: RequestDescriptor, *, timeout: Optional[float] = None
    ) -> RawResponse:
        """Send *request*; *timeout* is in seconds, ``None`` for no limit."""
        kwargs: dict[str, Any] = {
            "method": request.method.value,
            "url": request.url,
            "headers": request.headers,
            "params": request.params,
            "timeout": timeout,
        }
        body = request.body
        if isinstance(body, (bytes, bytearray, str)):
            kwargs["content"] = body
        elif body is not None:
            kwargs["json"] = body

        try:
            response = await self._client.request(**kwargs)
        except httpx.TimeoutException as exc:
            raise TimeoutError_(
                f"{request.method.value} {request.url} timed out: {exc}",
                request=request,
                cause=exc,
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(
                f"Connection failed for {request.method.value} {request.url}: {exc}",
                request=request,
                cause=exc,
            ) from exc

        return RawResponse(
            status=response.status_code,
            headers=dict(response.headers),
            content=response.content,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
