import json

import httpx
import pytest
from dirty_equals import IsDatetime
from inline_snapshot import snapshot

from github_chat_sync.clients.errors.chat import AuthenticationError, MalformedResponseError, TransportError
from github_chat_sync.clients.mutations import MUTATIONS_PATH, MutationSubmitter
from tests.conftest import TEST_USER_ID, FakeChatApi, dump_for_snapshot


@pytest.fixture
def submitter(http_client: httpx.AsyncClient) -> MutationSubmitter:
    return MutationSubmitter(http_client=http_client)


async def test_create_thread(chat_api: FakeChatApi, submitter: MutationSubmitter):
    thread = await submitter.create_thread(title="How do I build this?")

    assert dump_for_snapshot(thread) == snapshot({"id": 1, "title": "How do I build this?", "user_id": TEST_USER_ID, "created_at": IsDatetime()})
    assert json.loads(chat_api.requests_to(MUTATIONS_PATH)[0].content) == snapshot({"action": "createThread", "title": "How do I build this?"})


async def test_create_thread_default_title(chat_api: FakeChatApi, submitter: MutationSubmitter):
    thread = await submitter.create_thread()

    assert thread.title == "New chat"


async def test_append_message(chat_api: FakeChatApi, submitter: MutationSubmitter):
    message = await submitter.append_message(thread_id=7, role="user", content="Hello")

    assert dump_for_snapshot(message) == snapshot({"id": 100, "thread_id": 7, "role": "user", "content": "Hello", "created_at": IsDatetime()})
    assert json.loads(chat_api.requests_to(MUTATIONS_PATH)[0].content) == snapshot(
        {"action": "addMessage", "threadId": 7, "role": "user", "content": "Hello"}
    )


@pytest.mark.parametrize("status_code", [401, 403])
async def test_unauthorized(chat_api: FakeChatApi, submitter: MutationSubmitter, status_code: int):
    chat_api.mutation_status = status_code

    with pytest.raises(AuthenticationError, match="Create thread"):
        _ = await submitter.create_thread(title="Hello")


async def test_server_error(chat_api: FakeChatApi, submitter: MutationSubmitter):
    chat_api.mutation_status = 500

    with pytest.raises(TransportError, match="mutation failed") as exc_info:
        _ = await submitter.append_message(thread_id=7, role="user", content="Hello")

    assert exc_info.value.status_code == 500


async def test_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(base_url="http://chat.test", transport=httpx.MockTransport(handler)) as http_client:
        submitter = MutationSubmitter(http_client=http_client)

        with pytest.raises(TransportError, match="connection refused"):
            _ = await submitter.create_thread(title="Hello")


async def test_malformed_response():
    async with httpx.AsyncClient(
        base_url="http://chat.test", transport=httpx.MockTransport(lambda _: httpx.Response(200, json={"thread": {"id": "abc"}}))
    ) as http_client:
        submitter = MutationSubmitter(http_client=http_client)

        with pytest.raises(MalformedResponseError, match="Create thread"):
            _ = await submitter.create_thread(title="Hello")
