"""Utilities for creating standardized httpx AsyncClient instances."""

from typing import Protocol

import httpx

__all__ = ["create_http_client", "HttpClientFactory"]


class HttpClientFactory(Protocol):
    def __call__(self) -> httpx.AsyncClient: ...


def create_http_client() -> httpx.AsyncClient:
    """Create a standardized httpx AsyncClient.

    Redirect following and timeouts are decided per request by the transport,
    so the client only carries connection-level defaults.
    """
    return httpx.AsyncClient(
        follow_redirects=True,
        # Certificate validation can never be disabled
        verify=True,
        timeout=httpx.Timeout(30.0),
    )
