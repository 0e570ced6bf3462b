import json
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from typing import Any, overload

import httpx
import pytest
from fastmcp import FastMCP
from fastmcp.client.client import CallToolResult
from fastmcp.server.middleware.logging import StructuredLoggingMiddleware
from pydantic import BaseModel

from github_chat_sync.clients.auth import GET_SESSION_PATH, AuthSession
from github_chat_sync.clients.completions import GUEST_COMPLETIONS_PATH, THREAD_COMPLETIONS_PATH
from github_chat_sync.clients.http import get_http_client
from github_chat_sync.clients.mutations import MUTATIONS_PATH
from github_chat_sync.clients.shape import MemoryShapeStream
from github_chat_sync.models.shape import ShapeBatch
from github_chat_sync.session import ChatSession
from github_chat_sync.sync.replica import ShapeReplica

TEST_BASE_URL = "http://chat.test"
TEST_SESSION_TOKEN = "test-session-token"  # noqa: S105
TEST_USER_ID = "user-1"
TEST_TIMESTAMP = "2024-05-01 10:00:00+00"

TEST_AUTH_SESSION: dict[str, Any] = {
    "session": {"id": "session-1", "userId": TEST_USER_ID, "expiresAt": "2030-01-01T00:00:00Z"},
    "user": {"id": TEST_USER_ID, "name": "Octo Cat", "email": "octocat@example.com"},
}


async def byte_chunks(chunks: Sequence[bytes], error: Exception | None = None) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk

    if error is not None:
        raise error


class FakeChatApi:
    """An in-process stand-in for the chat application's HTTP endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.auth_session: dict[str, Any] | None = None

        self.next_thread_id: int = 1
        self.next_message_id: int = 100

        self.mutation_status: int = 200
        self.completion_status: int = 200
        self.completion_chunks: list[bytes] = [b"Hi", b" there"]
        self.completion_error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == GET_SESSION_PATH:
            return httpx.Response(200, json=self.auth_session)

        if request.url.path == MUTATIONS_PATH:
            return self._handle_mutation(request)

        if request.url.path in (THREAD_COMPLETIONS_PATH, GUEST_COMPLETIONS_PATH):
            if self.completion_status != 200:
                return httpx.Response(self.completion_status, text="completion failed")

            return httpx.Response(200, content=byte_chunks(self.completion_chunks, self.completion_error))

        return httpx.Response(404, text="not found")

    def _handle_mutation(self, request: httpx.Request) -> httpx.Response:
        if self.mutation_status != 200:
            return httpx.Response(self.mutation_status, text="mutation failed")

        payload: dict[str, Any] = json.loads(request.content)  # pyright: ignore[reportAny]

        if payload["action"] == "createThread":
            thread = {"id": self.next_thread_id, "title": payload["title"], "user_id": TEST_USER_ID, "created_at": TEST_TIMESTAMP}
            self.next_thread_id += 1
            return httpx.Response(200, json={"thread": thread})

        message = {
            "id": self.next_message_id,
            "thread_id": payload["threadId"],
            "role": payload["role"],
            "content": payload["content"],
            "created_at": TEST_TIMESTAMP,
        }
        self.next_message_id += 1
        return httpx.Response(200, json={"message": message})

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]


@pytest.fixture
def chat_api() -> FakeChatApi:
    return FakeChatApi()


@pytest.fixture
async def http_client(chat_api: FakeChatApi) -> AsyncGenerator[httpx.AsyncClient, Any]:
    http_client = get_http_client(base_url=TEST_BASE_URL, session_token=TEST_SESSION_TOKEN, transport=httpx.MockTransport(chat_api.handler))

    async with http_client:
        yield http_client


@pytest.fixture
def threads_stream() -> MemoryShapeStream:
    return MemoryShapeStream()


@pytest.fixture
def messages_stream() -> MemoryShapeStream:
    return MemoryShapeStream()


@pytest.fixture
def chat_session(http_client: httpx.AsyncClient, threads_stream: MemoryShapeStream, messages_stream: MemoryShapeStream) -> ChatSession:
    return ChatSession(http_client=http_client, threads_stream=threads_stream, messages_stream=messages_stream)


@pytest.fixture
async def guest_session(chat_session: ChatSession) -> AsyncGenerator[ChatSession, Any]:
    async with chat_session:
        yield chat_session


@pytest.fixture
async def user_session(chat_api: FakeChatApi, chat_session: ChatSession) -> AsyncGenerator[ChatSession, Any]:
    chat_api.auth_session = TEST_AUTH_SESSION

    async with chat_session:
        assert chat_session.auth_session == AuthSession.model_validate(TEST_AUTH_SESSION)
        yield chat_session


async def deliver(replica: ShapeReplica[Any], stream: MemoryShapeStream, batch: ShapeBatch) -> int:
    """Push a batch into a running replica and wait for it to be committed."""

    version = replica.version
    stream.push(batch)
    return await replica.wait_for_update(after_version=version, timeout=1)


@pytest.fixture
def logging_middleware() -> StructuredLoggingMiddleware:
    return StructuredLoggingMiddleware(include_payloads=True)


@pytest.fixture
def fastmcp(logging_middleware: StructuredLoggingMiddleware) -> FastMCP[Any]:
    return FastMCP(name="GitHub Chat Sync", middleware=[logging_middleware])


def handle_exclude_keys(dictionary: dict[str, Any], exclude_keys: list[str] | None = None) -> dict[str, Any]:
    if exclude_keys is None:
        return dictionary
    return {key: value for key, value in dictionary.items() if key not in exclude_keys}


@overload
def dump_for_snapshot(
    basemodel: None,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> None: ...


@overload
def dump_for_snapshot(
    basemodel: BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any]: ...


def dump_for_snapshot(
    basemodel: None | BaseModel,
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> dict[str, Any] | None:
    if basemodel is None:
        return None

    return handle_exclude_keys(basemodel.model_dump(exclude_none=exclude_none, **dump_kwargs), exclude_keys)


def dump_list_for_snapshot(
    basemodel: None | Sequence[BaseModel],
    /,
    exclude_keys: list[str] | None = None,
    exclude_none: bool = True,
    **dump_kwargs: Any,
) -> list[dict[str, Any]]:
    if basemodel is None:
        return []

    return [dump_for_snapshot(item, exclude_keys=exclude_keys, exclude_none=exclude_none, **dump_kwargs) for item in basemodel]


def dump_call_tool_result_for_snapshot(
    call_tool_result: CallToolResult,
    /,
) -> dict[str, Any]:
    return {
        "content": [item.model_dump() for item in call_tool_result.content],
        "structured_content": call_tool_result.structured_content,
    }
