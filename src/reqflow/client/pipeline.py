"""The request execution pipeline.

:class:`RequestPipeline` turns one :class:`~reqflow.models.RequestDescriptor`
into a :class:`~reqflow.models.ResponseEnvelope` or an
:class:`~reqflow.exceptions.ApiError`.  Each execution walks the states of
:class:`PipelineState`::

    INIT -> INTERCEPTED -> CACHE_CHECK -> DISPATCHING <-> RETRYING
         -> POST_PROCESS -> DONE | FAILED

1. Request interceptors run over a draft of the descriptor.  If they end
   rejected the execution fails at once: no transport call, no response
   interceptors.
2. The cancel token is checked, then the cache store is consulted for
   cacheable requests with caching enabled.  A hit skips the transport and
   retries but still goes through the response interceptors.
3. Before every dispatch the token is checked again.  The transport call is
   bounded by the per-attempt timeout and aborted if the token fires while
   it is in flight.
4. Non-2xx responses become :class:`~reqflow.exceptions.HttpStatusError`.
   Network and timeout errors go to the retry policy; the token is checked
   before a retry is scheduled and the backoff sleep is abortable too.
5. Response interceptors run over the outcome.  A successful GET whose
   transport response was 2xx is written to the cache.

Every transition is reported through :func:`reqflow.output.debug`.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from reqflow.cache import CacheStore, MemoryCacheStore, fingerprint, is_cacheable
from reqflow.client.response import build_envelope
from reqflow.client.transport import RawResponse, Transport
from reqflow.exceptions import (
    ApiError,
    CancelledError_,
    HttpStatusError,
    NetworkError,
    TimeoutError_,
    UnknownError,
    classify_error,
)
from reqflow.interceptors import Interceptors, maybe_await, run_chain
from reqflow.models import RequestDescriptor, ResponseEnvelope
from reqflow.output import get_output
from reqflow.retry import DefaultRetryPolicy, RetryPolicy

DEFAULT_CACHE_TTL_MS = 300_000

Sleep = Callable[[float], Awaitable[None]]


class PipelineState(str, enum.Enum):
    """States of a single execution."""

    INIT = "init"
    INTERCEPTED = "intercepted"
    CACHE_CHECK = "cache_check"
    DISPATCHING = "dispatching"
    RETRYING = "retrying"
    POST_PROCESS = "post_process"
    DONE = "done"
    FAILED = "failed"


class RequestPipeline:
    """Executes requests through interceptors, cache, transport, and retry.

    The pipeline owns the cache store and the interceptor managers for the
    lifetime of its client; both are shared by concurrent executions.
    Nothing else is shared between executions.

    Args:
        transport: Performs one network exchange per attempt.
        cache_store: Where cacheable responses are kept.  Defaults to a new
            :class:`~reqflow.cache.MemoryCacheStore`.
        interceptors: Request/response interceptor managers.  Defaults to a
            new, empty :class:`~reqflow.interceptors.Interceptors`.
        retry_policy: Defaults to :class:`~reqflow.retry.DefaultRetryPolicy`.
        default_cache_ttl_ms: TTL used when a request sets none.
        sleep: Coroutine used for backoff delays, in seconds.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        cache_store: Optional[CacheStore] = None,
        interceptors: Optional[Interceptors] = None,
        retry_policy: Optional[RetryPolicy] = None,
        default_cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.cache_store: CacheStore = cache_store if cache_store is not None else MemoryCacheStore()
        self.interceptors = interceptors if interceptors is not None else Interceptors()
        self.retry_policy: RetryPolicy = retry_policy or DefaultRetryPolicy()
        self.default_cache_ttl_ms = default_cache_ttl_ms
        self._sleep = sleep

    async def execute(self, request: RequestDescriptor) -> ResponseEnvelope:
        """Run one request to completion.

        Args:
            request: The resolved descriptor.  It is not mutated.

        Returns:
            The envelope produced by the transport or the cache, as
            transformed by the response interceptors.

        Raises:
            ApiError: The classified failure, unless a response interceptor
                recovered from it.
        """
        request_chain = self.interceptors.request.snapshot()
        response_chain = self.interceptors.response.snapshot()
        draft = request.draft()
        _trace(PipelineState.INIT, draft)

        def _classify(exc: BaseException) -> ApiError:
            return classify_error(exc, draft)

        try:
            draft = await run_chain(request_chain, draft, _classify)
        except ApiError as exc:
            _trace(PipelineState.FAILED, request, exc)
            raise
        if not isinstance(draft, RequestDescriptor):
            error = UnknownError(
                f"Request interceptor returned {type(draft).__name__}, "
                "expected RequestDescriptor",
                request=request,
            )
            _trace(PipelineState.FAILED, request, error)
            raise error
        _trace(PipelineState.INTERCEPTED, draft)

        envelope: Optional[ResponseEnvelope] = None
        error: Optional[ApiError] = None
        try:
            envelope = await self._fetch(draft)
        except Exception as exc:
            error = _classify(exc)

        # Snapshot before interceptors can touch it; hits are re-served raw.
        cache_candidate: Optional[ResponseEnvelope] = None
        if envelope is not None and not envelope.cached and _caching_applies(draft):
            cache_candidate = _detach(envelope)

        _trace(PipelineState.POST_PROCESS, draft, error)
        try:
            result = await run_chain(response_chain, envelope, _classify, error=error)
        except ApiError as exc:
            _trace(PipelineState.FAILED, draft, exc)
            raise
        if not isinstance(result, ResponseEnvelope):
            failure = UnknownError(
                f"Response interceptor returned {type(result).__name__}, "
                "expected ResponseEnvelope",
                request=draft,
            )
            _trace(PipelineState.FAILED, draft, failure)
            raise failure

        if cache_candidate is not None:
            ttl_ms = draft.cache_ttl_ms or self.default_cache_ttl_ms
            await maybe_await(self.cache_store.set(fingerprint(draft), cache_candidate, ttl_ms))
            get_output().debug(f"Cached {draft.method.value} {draft.url} for {ttl_ms}ms")

        _trace(PipelineState.DONE, draft)
        return result

    # ------------------------------------------------------------------ #
    # Stages
    # ------------------------------------------------------------------ #

    async def _fetch(self, request: RequestDescriptor) -> ResponseEnvelope:
        """Cache lookup, then dispatch under the retry policy."""
        token = request.cancel_token
        _check_cancelled(request)

        if _caching_applies(request):
            _trace(PipelineState.CACHE_CHECK, request)
            cached = await maybe_await(self.cache_store.get(fingerprint(request)))
            if cached is not None:
                get_output().debug(f"Cache hit for {request.method.value} {request.url}")
                return _detach(cached).model_copy(update={"request": request, "cached": True})

        attempt = 0
        while True:
            _check_cancelled(request)
            _trace(PipelineState.DISPATCHING, request, attempt=attempt)
            try:
                raw = await self._dispatch(request)
            except ApiError as exc:
                if exc.is_cancel or not self.retry_policy.should_retry(attempt, exc, request):
                    raise
                if token is not None and token.cancelled:
                    raise CancelledError_(token.reason, request=request, cause=exc) from exc
                delay_ms = self.retry_policy.delay_for(attempt)
                _trace(PipelineState.RETRYING, request, exc, attempt=attempt)
                get_output().debug(
                    f"{exc.kind.value} error, retrying in {delay_ms:g}ms "
                    f"(attempt {attempt + 1}/{request.max_retries})"
                )
                await _abortable(self._sleep(delay_ms / 1000), request)
                attempt += 1
                continue

            envelope = build_envelope(raw, request)
            if not envelope.ok:
                raise HttpStatusError(
                    f"Request failed with status code {envelope.status}",
                    response=envelope,
                    request=request,
                )
            return envelope

    async def _dispatch(self, request: RequestDescriptor) -> RawResponse:
        """One transport attempt, bounded by the attempt timeout and the token."""
        try:
            return await _abortable(self._send(request), request)
        except ApiError:
            raise
        except Exception as exc:
            raise _classify_transport_error(exc, request) from exc

    async def _send(self, request: RequestDescriptor) -> RawResponse:
        timeout = request.timeout_ms / 1000 if request.timeout_ms else None
        try:
            return await asyncio.wait_for(
                self.transport.send(request, timeout=timeout), timeout
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError_(
                f"timeout of {request.timeout_ms}ms exceeded",
                request=request,
                cause=exc,
            ) from exc


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _caching_applies(request: RequestDescriptor) -> bool:
    return request.cache_enabled and is_cacheable(request.method)


def _detach(envelope: ResponseEnvelope) -> ResponseEnvelope:
    """Deep copy of *envelope* without its request (and so its token)."""
    return envelope.model_copy(update={"request": None}).model_copy(deep=True)


def _check_cancelled(request: RequestDescriptor) -> None:
    token = request.cancel_token
    if token is not None and token.cancelled:
        get_output().debug(f"Cancelled {request.method.value} {request.url}: {token.reason}")
        token.throw_if_cancelled(request)


async def _abortable(awaitable: Awaitable[Any], request: RequestDescriptor) -> Any:
    """Await *awaitable* in a task that is cancelled if the token fires."""
    token = request.cancel_token
    if token is None:
        return await awaitable

    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)
    unsubscribe = token.on_cancel(lambda _reason: loop.call_soon_threadsafe(task.cancel))
    try:
        return await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        outer_cancelled = current is not None and current.cancelling() > 0
        if token.cancelled and not outer_cancelled:
            raise CancelledError_(token.reason, request=request) from None
        raise
    finally:
        unsubscribe()


def _trace(
    state: PipelineState,
    request: RequestDescriptor,
    error: Optional[ApiError] = None,
    attempt: Optional[int] = None,
) -> None:
    parts = [f"[{state.value}] {request.method.value} {request.url}"]
    if attempt is not None:
        parts.append(f"attempt={attempt}")
    if error is not None:
        parts.append(f"error={error.kind.value}: {error.message}")
    get_output().debug(" ".join(parts))


def _classify_transport_error(exc: Exception, request: RequestDescriptor) -> ApiError:
    """Map a raw exception escaping an injected transport onto an error kind.

    Timeouts become :class:`TimeoutError_`; connection-level failures
    (``OSError``, ``httpx.TransportError``) become :class:`NetworkError` and
    are eligible for retry.  Anything else is unclassified.
    """
    message = str(exc) or type(exc).__name__
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return TimeoutError_(message, request=request, cause=exc)
    if isinstance(exc, (httpx.TransportError, OSError)):
        return NetworkError(message, request=request, cause=exc)
    return classify_error(exc, request)
