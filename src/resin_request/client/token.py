"""
Session token storage and proactive token refresh.

Before an authenticated request goes out, the token gate checks how old the
stored session token is. Once it is older than the refresh interval the gate
asks the service who the session belongs to and stores the token it answers
with. A rejected refresh clears the store and surfaces ``ExpiredTokenError``.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from os import PathLike
from typing import Protocol

import anyio

from resin_request.errors import ExpiredTokenError, RequestError
from resin_request.settings import TOKEN_REFRESH_INTERVAL
from resin_request.types import RequestDescriptor, ResponseEnvelope

logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Protocol for session token storage implementations."""

    async def get(self) -> str | None:
        """Get the stored token."""
        ...

    async def set(self, token: str) -> None:
        """Store a token, resetting its age."""
        ...

    async def remove(self) -> None:
        """Forget the stored token."""
        ...

    async def get_age(self) -> timedelta | None:
        """Time since the token was stored, or None without a token."""
        ...


class InMemoryTokenStore:
    """Token store that keeps the session token in process memory."""

    def __init__(self, token: str | None = None):
        self._token: str | None = None
        self._stored_at: float | None = None
        if token is not None:
            self._store(token)

    def _store(self, token: str) -> None:
        self._token = token
        self._stored_at = time.monotonic()

    async def get(self) -> str | None:
        return self._token

    async def set(self, token: str) -> None:
        self._store(token)

    async def remove(self) -> None:
        self._token = None
        self._stored_at = None

    async def get_age(self) -> timedelta | None:
        if self._token is None or self._stored_at is None:
            return None
        return timedelta(seconds=time.monotonic() - self._stored_at)


class FileTokenStore:
    """Token store persisting the session token to a file.

    The token age is taken from the file modification time, so it survives
    process restarts.
    """

    def __init__(self, path: str | PathLike[str]):
        self.path = anyio.Path(path)

    async def get(self) -> str | None:
        try:
            token = (await self.path.read_text(encoding="utf-8")).strip()
        except FileNotFoundError:
            return None
        return token or None

    async def set(self, token: str) -> None:
        await self.path.parent.mkdir(parents=True, exist_ok=True)
        await self.path.write_text(token, encoding="utf-8")

    async def remove(self) -> None:
        await self.path.unlink(missing_ok=True)

    async def get_age(self) -> timedelta | None:
        try:
            stat = await self.path.stat()
        except FileNotFoundError:
            return None
        return timedelta(seconds=max(0.0, time.time() - stat.st_mtime))


async def should_update_token(store: TokenStore, refresh_interval: timedelta = TOKEN_REFRESH_INTERVAL) -> bool:
    """Return True once the stored token is old enough to be refreshed.

    The interval does not mean the token is invalid, only that it is a good
    time to renew it before it becomes so.
    """
    age = await store.get_age()
    return age is not None and age >= refresh_interval


async def get_authorization_header(store: TokenStore | None) -> str | None:
    """Build the Authorization header value, or None without a token."""
    if store is None:
        return None
    token = await store.get()
    if token is None:
        return None
    return f"Bearer {token}"


def _token_from_body(body: object) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8").strip()
    return str(body).strip()


RefreshRequest = Callable[[str | None], Awaitable[ResponseEnvelope]]


class TokenGate:
    """
    Refreshes the stored session token before authenticated requests.

    ``refresh_request`` performs the "who am I" call against the base URL of
    the pending request. It receives nothing else, so the refresh call can
    never ask for another refresh.

    Concurrent callers that find a stale token share a single refresh: the
    first one performs it while the others wait on the lock and find a fresh
    token afterwards.
    """

    def __init__(
        self,
        store: TokenStore,
        refresh_request: RefreshRequest,
        refresh_interval: timedelta = TOKEN_REFRESH_INTERVAL,
    ):
        self.store = store
        self.refresh_interval = refresh_interval
        self._refresh_request = refresh_request
        self._refresh_lock = anyio.Lock()

    async def ensure_fresh(self, descriptor: RequestDescriptor) -> None:
        """Refresh the stored token first if the request allows it and it is stale.

        Raises:
            ExpiredTokenError: The service rejected the stored token.
        """
        if not descriptor.refresh_token:
            return
        if not await should_update_token(self.store, self.refresh_interval):
            return

        async with self._refresh_lock:
            if not await should_update_token(self.store, self.refresh_interval):
                logger.debug("Session token already refreshed by a concurrent request")
                return
            await self._refresh(descriptor.base_url)

    async def _refresh(self, base_url: str | None) -> None:
        logger.debug("Refreshing session token")
        try:
            response = await self._refresh_request(base_url)
        except RequestError as exc:
            if exc.status_code != 401:
                raise
            token = await self.store.get()
            await self.store.remove()
            logger.debug("Session token was rejected, removed it from the store")
            raise ExpiredTokenError(token) from exc

        await self.store.set(_token_from_body(response.body))
        logger.debug("Session token refreshed")
