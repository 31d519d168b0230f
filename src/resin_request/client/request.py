"""
Authenticated requests to a remote service.

``RequestClient`` composes the request pipeline: token gate, authorization
header, option translation, retrying transport invocation, body decoding and
status classification.

The client attaches a bearer session token from the configured token store
when there is one, appends ``api_key`` as the ``apikey`` query parameter when
given, and otherwise sends the request anonymously.
"""

import json
import logging
import re
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from resin_request.client.options import append_query, check_options, translate_options
from resin_request.client.token import TokenGate, TokenStore, get_authorization_header
from resin_request.client.transport import (
    Capability,
    HttpxTransport,
    StreamingTransport,
    Transport,
    TransportStream,
    invoke_transport,
    open_transport_stream,
)
from resin_request.errors import (
    InvalidOptionError,
    RequestError,
    UnsupportedCapabilityError,
    stringify_pydantic_error,
)
from resin_request.settings import RequestSettings, load_settings
from resin_request.types import RequestDescriptor, ResponseEnvelope, ResponseLength

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "The request was unsuccessful"

_CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


def is_error_code(status_code: int) -> bool:
    return status_code >= 400


def get_error_message(body: Any) -> str:
    """Extract a human readable error message from a decoded response body."""
    if not body:
        return DEFAULT_ERROR_MESSAGE
    if isinstance(body, Mapping) and body.get("error") is not None:
        error = body["error"]
        if isinstance(error, Mapping) and error.get("text"):
            return str(error["text"])
        return error if isinstance(error, str) else json.dumps(error)
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    return json.dumps(body)


def _decode_text(headers: httpx.Headers, content: bytes) -> str:
    match = _CHARSET_RE.search(headers.get("Content-Type", ""))
    encoding = match.group(1) if match else "utf-8"
    try:
        return content.decode(encoding, errors="replace")
    except LookupError:
        return content.decode("utf-8", errors="replace")


def decode_body(headers: httpx.Headers, content: bytes) -> Any:
    """Decode a response body according to its declared content type."""
    content_type = headers.get("Content-Type", "")
    if "binary/octet-stream" in content_type:
        return content
    if "application/json" in content_type:
        if not content:
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            logger.debug(f"Response declared JSON but could not be parsed, using text: {e}")
    return _decode_text(headers, content)


def get_response_length(headers: httpx.Headers) -> ResponseLength:
    """Declared body length, uncompressed and as transferred."""

    def _parse(name: str) -> int | None:
        try:
            return int(headers.get(name, "")) or None
        except ValueError:
            return None

    return ResponseLength(uncompressed=_parse("Content-Length"), compressed=_parse("X-Transfer-Length"))


@dataclass
class Download:
    """A successful streaming response."""

    stream: TransportStream
    mime: str | None = None

    @property
    def status_code(self) -> int:
        return self.stream.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.stream.headers

    @property
    def length(self) -> ResponseLength:
        return get_response_length(self.stream.headers)

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self.stream.chunks


class RequestClient:
    """
    Sends authenticated requests to a remote service.

    Args:
        transport: Transport performing the HTTP exchanges. Defaults to an
            httpx-backed transport.
        token_store: Session token store. Without one every request is
            anonymous.
        settings: Request defaults; loaded from the environment when omitted.
        capabilities: Operations the transport supports. Defaults to the
            transport's own ``capabilities``.
        **overrides: Individual settings overriding ``settings``.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        token_store: TokenStore | None = None,
        settings: RequestSettings | None = None,
        capabilities: Capability | None = None,
        **overrides: Any,
    ):
        if settings is None:
            settings = load_settings(**overrides)
        elif overrides:
            settings = RequestSettings.model_validate({**settings.model_dump(), **overrides})
        self.settings = settings

        self.transport = transport or HttpxTransport()
        if capabilities is None:
            capabilities = getattr(self.transport, "capabilities", Capability.SEND)
        self.capabilities = capabilities

        self.token_store = token_store
        self._token_gate: TokenGate | None = None
        if token_store is not None:
            self._token_gate = TokenGate(
                token_store,
                self._whoami,
                refresh_interval=self.settings.token_refresh_interval,
            )

    async def __aenter__(self) -> "RequestClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()

    def _require(self, capability: Capability, name: str) -> None:
        if capability not in self.capabilities:
            raise UnsupportedCapabilityError(name)

    def _coerce(self, descriptor: RequestDescriptor | None, options: dict[str, Any]) -> RequestDescriptor:
        try:
            if descriptor is None:
                return RequestDescriptor(**options)
            if options:
                return descriptor.merge(options)
            return descriptor
        except ValidationError as e:
            raise InvalidOptionError(stringify_pydantic_error(e)) from e

    def _apply_defaults(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        updates: dict[str, Any] = {}
        if descriptor.retries is None:
            updates["retries"] = self.settings.retries
        if descriptor.timeout_ms is None:
            updates["timeout_ms"] = self.settings.timeout_ms
        if descriptor.base_url is None and self.settings.base_url:
            updates["base_url"] = self.settings.base_url
        return descriptor.model_copy(update=updates) if updates else descriptor

    async def _prepare(self, descriptor: RequestDescriptor | None, options: dict[str, Any]) -> RequestDescriptor:
        descriptor = self._apply_defaults(self._coerce(descriptor, options))
        check_options(descriptor)
        if self._token_gate is not None:
            await self._token_gate.ensure_fresh(descriptor)
        return descriptor

    async def _authorize(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        headers = dict(descriptor.headers)
        authorization = await get_authorization_header(self.token_store)
        if authorization is not None:
            headers["Authorization"] = authorization

        url = descriptor.url
        if descriptor.api_key:
            url = append_query(url, f"apikey={quote(descriptor.api_key, safe='')}")
        return descriptor.model_copy(update={"headers": headers, "url": url})

    def _debug_failure(self, method: str, url: str, status_code: int, duration_ms: float | None = None) -> None:
        if not self.settings.debug:
            return
        duration = f" in {duration_ms:.0f}ms" if duration_ms is not None else ""
        logger.error(f"Request failed: {method} {url} -> {status_code}{duration}")

    async def _dispatch(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        """Send a request without consulting the token gate."""
        descriptor = await self._authorize(descriptor)
        url, options = translate_options(descriptor)
        response = await invoke_transport(
            self.transport,
            url,
            options,
            retry_delay=self.settings.retry_delay,
            backoff_factor=self.settings.retry_backoff_factor,
        )
        response = replace(response, body=decode_body(response.headers, response.body))

        if response.is_error:
            self._debug_failure(options.method, url, response.status_code, response.duration_ms)
            raise RequestError(get_error_message(response.body), response.status_code)
        return response

    async def _whoami(self, base_url: str | None) -> ResponseEnvelope:
        descriptor = RequestDescriptor(url=self.settings.whoami_path, base_url=base_url, refresh_token=False)
        return await self._dispatch(self._apply_defaults(descriptor))

    async def send(self, descriptor: RequestDescriptor | None = None, /, **options: Any) -> ResponseEnvelope:
        """
        Perform an authenticated HTTP request.

        Accepts either a ``RequestDescriptor`` or its fields as keyword
        arguments; keyword arguments override fields of a given descriptor.

        Example:
            response = await client.send(method="GET", base_url="https://api.example.com", url="/foo")
            print(response.body)

        Raises:
            RequestError: The service answered with a status code >= 400.
            ExpiredTokenError: The session token was rejected while refreshing it.
            UnsupportedOptionError: A legacy option without equivalent was given.
            InvalidOptionError: An option has a value that is never allowed.
            TransportError: The request failed at the network level after all retries.
        """
        self._require(Capability.SEND, "send")
        descriptor = await self._prepare(descriptor, options)
        return await self._dispatch(descriptor)

    @asynccontextmanager
    async def stream(self, descriptor: RequestDescriptor | None = None, /, **options: Any) -> AsyncIterator[Download]:
        """
        Stream an HTTP response body.

        Authentication is handled as in ``send``. Error responses are read in
        full and raised as ``RequestError``.

        Example:
            async with client.stream(url="/download/foo") as download:
                async for chunk in download.aiter_bytes():
                    ...

        Raises:
            UnsupportedCapabilityError: The transport cannot stream responses.
        """
        self._require(Capability.STREAM, "stream")
        if not isinstance(self.transport, StreamingTransport):
            raise UnsupportedCapabilityError("stream")

        descriptor = await self._authorize(await self._prepare(descriptor, options))
        url, transport_options = translate_options(descriptor)
        async with open_transport_stream(
            self.transport,
            url,
            transport_options,
            retry_delay=self.settings.retry_delay,
            backoff_factor=self.settings.retry_backoff_factor,
        ) as response:
            if is_error_code(response.status_code):
                data = _decode_text(response.headers, await response.aread())
                self._debug_failure(transport_options.method, url, response.status_code)
                raise RequestError(data or DEFAULT_ERROR_MESSAGE, response.status_code)

            yield Download(stream=response, mime=response.headers.get("Content-Type"))
