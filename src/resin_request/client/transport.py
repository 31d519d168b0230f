"""
Transport collaborators and the retrying transport invoker.

A transport performs exactly one HTTP exchange. The invoker times it,
bounds it by the configured timeout and retries transport-level failures.
HTTP error status codes are valid transport results and are never retried.
"""

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager, contextmanager
from dataclasses import dataclass
from enum import Flag, auto
from typing import Any, Protocol, TypeVar, runtime_checkable

import anyio
import httpx

from resin_request.client.options import TransportOptions
from resin_request.errors import RequestTimeoutError, TransportError
from resin_request.shared._httpx_utils import HttpClientFactory, create_http_client
from resin_request.types import RequestEcho, ResponseEnvelope, TransportResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Capability(Flag):
    """Operations a transport is able to serve."""

    SEND = auto()
    STREAM = auto()


@dataclass
class TransportStream:
    """An open response whose body has not been read yet."""

    status_code: int
    headers: httpx.Headers
    url: str
    chunks: AsyncIterator[bytes]

    async def aread(self) -> bytes:
        return b"".join([chunk async for chunk in self.chunks])


@runtime_checkable
class Transport(Protocol):
    """Performs a single HTTP exchange.

    Network failures raise ``httpx.TransportError`` or ``OSError``; error
    status codes are returned as regular responses.
    """

    capabilities: Capability

    async def send(self, url: str, options: TransportOptions) -> TransportResponse: ...


@runtime_checkable
class StreamingTransport(Transport, Protocol):
    def stream(self, url: str, options: TransportOptions) -> AbstractAsyncContextManager[TransportStream]: ...


class HttpxTransport:
    """Transport backed by an ``httpx.AsyncClient``."""

    capabilities = Capability.SEND | Capability.STREAM

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        httpx_client_factory: HttpClientFactory = create_http_client,
    ):
        self._owns_client = client is None
        self._client = client or httpx_client_factory()

    async def send(self, url: str, options: TransportOptions) -> TransportResponse:
        async with self._open(url, options) as response:
            if options.compress:
                content = await response.aread()
            else:
                content = b"".join([chunk async for chunk in response.aiter_raw()])
        return TransportResponse(
            status_code=response.status_code,
            headers=response.headers,
            content=content,
            url=str(response.url),
        )

    @asynccontextmanager
    async def stream(self, url: str, options: TransportOptions) -> AsyncIterator[TransportStream]:
        async with self._open(url, options) as response:
            chunks = response.aiter_bytes() if options.compress else response.aiter_raw()
            yield TransportStream(
                status_code=response.status_code,
                headers=response.headers,
                url=str(response.url),
                chunks=chunks,
            )

    def _open(self, url: str, options: TransportOptions) -> AbstractAsyncContextManager[httpx.Response]:
        kwargs: dict[str, Any] = {
            "headers": options.headers,
            "content": options.content,
            "follow_redirects": options.follow_redirects,
        }
        if options.timeout is not None:
            kwargs["timeout"] = httpx.Timeout(options.timeout)
        return self._client.stream(options.method, url, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@contextmanager
def _transport_failures(url: str, options: TransportOptions) -> Iterator[None]:
    """Bound a transport call by its timeout and normalize its failures."""
    try:
        with anyio.fail_after(options.timeout):
            yield
    except (TimeoutError, httpx.TimeoutException) as exc:
        raise RequestTimeoutError(f"Request timed out after {options.timeout}s: {options.method} {url}") from exc
    except (httpx.TransportError, OSError) as exc:
        raise TransportError(f"Failed to send request: {options.method} {url}: {exc}") from exc


async def _with_retries(
    attempt: Callable[[], Awaitable[T]],
    retries_remaining: int,
    *,
    retry_delay: float = 0.0,
    backoff_factor: float = 2.0,
) -> T:
    delay = retry_delay
    while True:
        try:
            return await attempt()
        except TransportError as exc:
            if retries_remaining <= 0:
                raise
            retries_remaining -= 1
            logger.debug(f"Transport failure, retrying ({retries_remaining} retries left): {exc}")
            if delay > 0:
                await anyio.sleep(delay)
                delay *= backoff_factor


async def invoke_transport(
    transport: Transport,
    url: str,
    options: TransportOptions,
    retries_remaining: int | None = None,
    *,
    retry_delay: float = 0.0,
    backoff_factor: float = 2.0,
) -> ResponseEnvelope:
    """
    Perform a transport call, retrying transport failures.

    The returned envelope carries the raw response bytes as its body; decoding
    is left to the caller.

    Raises:
        RequestTimeoutError: The last attempt exceeded the timeout.
        TransportError: The last attempt failed at the network level.
    """
    if retries_remaining is None:
        retries_remaining = options.retries

    async def attempt() -> ResponseEnvelope:
        started = time.perf_counter()
        with _transport_failures(url, options):
            response = await transport.send(url, options)
        duration_ms = (time.perf_counter() - started) * 1000
        return ResponseEnvelope(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
            duration_ms=duration_ms,
            request=RequestEcho(headers=options.headers, url=httpx.URL(url)),
            url=response.url or url,
        )

    return await _with_retries(
        attempt,
        retries_remaining,
        retry_delay=retry_delay,
        backoff_factor=backoff_factor,
    )


@asynccontextmanager
async def open_transport_stream(
    transport: StreamingTransport,
    url: str,
    options: TransportOptions,
    retries_remaining: int | None = None,
    *,
    retry_delay: float = 0.0,
    backoff_factor: float = 2.0,
) -> AsyncIterator[TransportStream]:
    """Open a streaming response, retrying failures while connecting."""
    if retries_remaining is None:
        retries_remaining = options.retries

    async with AsyncExitStack() as stack:

        async def attempt() -> TransportStream:
            with _transport_failures(url, options):
                return await stack.enter_async_context(transport.stream(url, options))

        yield await _with_retries(
            attempt,
            retries_remaining,
            retry_delay=retry_delay,
            backoff_factor=backoff_factor,
        )
