"""Tests for bearer token providers and the httpx auth flow."""

import threading
from pathlib import Path

import httpx
import pytest

from up.tokens import BearerAuth, FileToken, NoOpToken, StaticToken, token_provider

pytestmark = pytest.mark.anyio


class TestTokenProvider:
    def test_static_token_wins_over_file(self, tmp_path: Path):
        token_file = tmp_path / "token"
        token_file.write_text("from-file")

        provider = token_provider("static", str(token_file))

        assert isinstance(provider, StaticToken)
        assert provider.get() == "static"

    def test_file_token_when_no_static_token(self, tmp_path: Path):
        token_file = tmp_path / "token"
        token_file.write_text("from-file\n")

        provider = token_provider("", str(token_file))

        assert isinstance(provider, FileToken)
        assert provider.get() == "from-file"

    def test_no_token_configured(self):
        provider = token_provider()

        assert isinstance(provider, NoOpToken)
        assert provider.get() == ""

    def test_file_token_picks_up_rotation(self, tmp_path: Path):
        token_file = tmp_path / "token"
        token_file.write_text("first")
        provider = FileToken(token_file)

        assert provider.get() == "first"
        token_file.write_text("second")
        assert provider.get() == "second"

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(OSError):
            FileToken(tmp_path / "missing").get()


class TestBearerAuth:
    async def test_sets_authorization_header(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with httpx.AsyncClient(
            auth=BearerAuth(StaticToken("s3cr3t")), transport=httpx.MockTransport(handler)
        ) as client:
            await client.get("http://prometheus:9090/")

        assert seen[0].headers["Authorization"] == "Bearer s3cr3t"

    async def test_empty_token_sends_no_header(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with httpx.AsyncClient(
            auth=BearerAuth(NoOpToken()), transport=httpx.MockTransport(handler)
        ) as client:
            await client.get("http://prometheus:9090/")

        assert "Authorization" not in seen[0].headers

    async def test_unreadable_token_fails_the_request(self, tmp_path: Path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        async with httpx.AsyncClient(
            auth=BearerAuth(FileToken(tmp_path / "missing")),
            transport=httpx.MockTransport(handler),
        ) as client:
            with pytest.raises(OSError):
                await client.get("http://prometheus:9090/")

    async def test_token_is_fetched_off_the_event_loop_thread(self):
        loop_thread = threading.get_ident()
        fetched_on: list[int] = []

        class RecordingToken:
            def get(self) -> str:
                fetched_on.append(threading.get_ident())
                return "rotated"

        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with httpx.AsyncClient(
            auth=BearerAuth(RecordingToken()), transport=httpx.MockTransport(handler)
        ) as client:
            await client.get("http://prometheus:9090/")

        assert seen[0].headers["Authorization"] == "Bearer rotated"
        assert fetched_on and fetched_on[0] != loop_thread

    def test_sync_client_is_supported(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=request.headers.get("Authorization", ""))

        with httpx.Client(
            auth=BearerAuth(StaticToken("s3cr3t")), transport=httpx.MockTransport(handler)
        ) as client:
            assert client.get("http://prometheus:9090/").text == "Bearer s3cr3t"
