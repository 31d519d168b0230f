"""
Translation of generic request descriptors into transport parameters.

The translator resolves the final URL, serializes the body and assembles the
header set. Options that the transport cannot honour are rejected here, before
anything touches the network.
"""

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from resin_request.errors import InvalidOptionError, UnsupportedOptionError
from resin_request.types import RequestDescriptor

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_ENCODING = "compress, gzip"

# Legacy transport knobs with no supported equivalent
UNSUPPORTED_REQUEST_PARAMS = (
    "qsParseOptions",
    "qsStringifyOptions",
    "useQuerystring",
    "form",
    "formData",
    "multipart",
    "preambleCRLF",
    "postambleCRLF",
    "jsonReviver",
    "jsonReplacer",
    "auth",
    "oauth",
    "aws",
    "httpSignature",
    "followAllRedirects",
    "maxRedirects",
    "removeRefererHeader",
    "encoding",
    "jar",
    "agent",
    "agentClass",
    "agentOptions",
    "forever",
    "pool",
    "localAddress",
    "proxy",
    "proxyHeaderWhiteList",
    "proxyHeaderExclusiveList",
    "time",
    "har",
    "callback",
)


@dataclass
class TransportOptions:
    """Transport-ready parameters for a single request."""

    method: str = "GET"
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes | str | None = None
    follow_redirects: bool = True
    compress: bool = True
    timeout: float | None = None
    retries: int = 0


def check_options(descriptor: RequestDescriptor) -> None:
    """Reject options that must never reach the transport."""
    if descriptor.strict_ssl is False:
        raise InvalidOptionError("`strictSSL` must be true or absent")

    extra = descriptor.extra_options
    for key in UNSUPPORTED_REQUEST_PARAMS:
        value = extra.get(key)
        if value is not None:
            raise UnsupportedOptionError(key, value)


def resolve_url(url: str, base_url: str | None = None) -> str:
    """Resolve ``url`` against ``base_url`` unless it carries its own scheme."""
    if urlparse(url).scheme:
        return url
    if base_url:
        return urljoin(base_url, url)
    raise InvalidOptionError(f"A relative url requires a base url: {url!r}")


def _flatten_query(params: Mapping[str, Any], prefix: str | None = None) -> Iterator[tuple[str, Any]]:
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            yield from _flatten_query(value, name)
        elif isinstance(value, list | tuple):
            for item in value:
                yield name, item
        else:
            yield name, value


def encode_query_params(params: Mapping[str, Any]) -> str:
    """Serialize query params, using bracket keys for nested mappings."""
    return str(httpx.QueryParams(list(_flatten_query(params))))


def append_query(url: str, query: str) -> str:
    """Append an encoded query string to ``url``."""
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


def _serialize_body(descriptor: RequestDescriptor, headers: httpx.Headers) -> bytes | str | None:
    body = descriptor.body
    if body is None:
        return None
    if descriptor.json_:
        try:
            content = json.dumps(body)
        except (TypeError, ValueError) as exc:
            raise InvalidOptionError(f"The body cannot be serialized as JSON: {exc}") from exc
        headers["Content-Type"] = "application/json"
        return content
    if isinstance(body, bytes | str):
        return body
    raise InvalidOptionError(f"A non-JSON body must be str or bytes, got {type(body).__name__}")


def translate_options(descriptor: RequestDescriptor) -> tuple[str, TransportOptions]:
    """
    Convert a request descriptor into the final URL and transport options.

    Args:
        descriptor: The request, with defaults already applied.

    Returns:
        A ``(url, options)`` pair ready for the transport invoker.

    Raises:
        UnsupportedOptionError: A deny-listed legacy option is present.
        InvalidOptionError: An option has a value that is never allowed.
    """
    check_options(descriptor)

    url = resolve_url(descriptor.url, descriptor.base_url)
    if descriptor.query_params:
        url = append_query(url, encode_query_params(descriptor.query_params))

    headers = httpx.Headers(descriptor.headers)
    content = _serialize_body(descriptor, headers)
    if "Accept-Encoding" not in headers:
        headers["Accept-Encoding"] = DEFAULT_ACCEPT_ENCODING

    options = TransportOptions(
        method=descriptor.method,
        headers=headers,
        content=content,
        follow_redirects=descriptor.follow_redirect,
        compress=descriptor.gzip if descriptor.gzip is not None else True,
        timeout=descriptor.timeout_ms / 1000 if descriptor.timeout_ms else None,
        retries=descriptor.retries or 0,
    )
    logger.debug(f"Translated request options: {options.method} {url}")
    return url, options
