"""Bearer token sources for outgoing requests.

A provider is asked for a token on every request. An empty token means no
``Authorization`` header is sent.
"""

from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Protocol

import anyio.to_thread
import httpx


class TokenProvider(Protocol):
    def get(self) -> str:
        """Return the current token.

        Raises:
            OSError: the token source could not be read.
        """
        ...


class NoOpToken:
    """Never authenticates."""

    def get(self) -> str:
        return ""


class StaticToken:
    def __init__(self, token: str) -> None:
        self._token = token

    def get(self) -> str:
        return self._token


class FileToken:
    """Re-reads the token file on every call so rotated tokens are picked up."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def get(self) -> str:
        return self._path.read_text().strip()


def token_provider(token: str = "", token_file: str = "") -> TokenProvider:
    """Pick the token source: a static token wins over a token file."""
    if token:
        return StaticToken(token)
    if token_file:
        return FileToken(token_file)
    return NoOpToken()


class BearerAuth(httpx.Auth):
    """httpx auth flow attaching ``Authorization: Bearer <token>``.

    With an async client the token is fetched in a worker thread.
    """

    def __init__(self, provider: TokenProvider) -> None:
        self._provider = provider

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        yield _authorize(request, self._provider.get())

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        token = await anyio.to_thread.run_sync(self._provider.get)
        yield _authorize(request, token)


def _authorize(request: httpx.Request, token: str) -> httpx.Request:
    if token:
        request.headers["Authorization"] = f"Bearer {token}"
    return request
