import httpx
import pytest

from github_chat_sync.clients.http import (
    DEFAULT_BASE_URL,
    LONG_POLL_READ_TIMEOUT,
    SESSION_COOKIE_NAME,
    get_base_url,
    get_http_client,
    get_request_timeout,
    is_unauthorized,
    long_poll_timeout,
)


def test_get_base_url(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CHAT_BASE_URL", raising=False)
    assert get_base_url() == DEFAULT_BASE_URL

    monkeypatch.setenv("CHAT_BASE_URL", "https://chat.example.com")
    assert get_base_url() == "https://chat.example.com"


def test_get_request_timeout(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CHAT_REQUEST_TIMEOUT", "5")

    assert get_request_timeout() == 5.0


async def test_get_http_client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CHAT_SESSION_TOKEN", "secret")
    monkeypatch.setenv("CHAT_REQUEST_TIMEOUT", "5")

    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    async with get_http_client(base_url="http://chat.test", transport=httpx.MockTransport(handler)) as http_client:
        assert http_client.timeout == httpx.Timeout(5.0)

        _ = await http_client.get("/api/chat-threads")

    assert str(seen[0].url) == "http://chat.test/api/chat-threads"
    assert seen[0].headers["cookie"] == f"{SESSION_COOKIE_NAME}=secret"


async def test_get_http_client_without_session(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CHAT_SESSION_TOKEN", raising=False)

    async with get_http_client(base_url="http://chat.test") as http_client:
        assert not http_client.cookies


def test_is_unauthorized():
    assert is_unauthorized(httpx.Response(401))
    assert is_unauthorized(httpx.Response(403))
    assert not is_unauthorized(httpx.Response(404))
    assert not is_unauthorized(httpx.Response(200))


def test_long_poll_timeout():
    assert long_poll_timeout(httpx.Timeout(5.0)) == httpx.Timeout(5.0, read=LONG_POLL_READ_TIMEOUT)
