from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
from click.testing import CliRunner
from fastmcp.client import Client
from fastmcp.client.transports import FastMCPTransport
from inline_snapshot import snapshot

from github_chat_sync import main
from github_chat_sync.clients.shape import MemoryShapeStream
from github_chat_sync.main import lifespan, mcp, run_mcp
from github_chat_sync.servers.chat import ChatServer
from github_chat_sync.session import ChatSession
from tests.conftest import FakeChatApi


def test_main():
    assert mcp is not None


def test_run_mcp_help():
    result = CliRunner().invoke(run_mcp, ["--help"])

    assert result.exit_code == 0
    assert "--mcp-transport [stdio|streamable-http]" in result.output


@pytest.fixture
async def main_mcp_client() -> AsyncGenerator[Client[FastMCPTransport], Any]:
    async with Client[FastMCPTransport](transport=mcp) as mcp_client:
        yield mcp_client


async def test_list_tools(main_mcp_client: Client[FastMCPTransport]):
    list_tools = await main_mcp_client.list_tools()
    assert [tool.name for tool in list_tools] == snapshot(
        ["list_threads", "select_thread", "new_chat", "get_messages", "send_message", "list_models", "select_model"]
    )


async def test_lifespan_closes_chat_session(chat_api: FakeChatApi, monkeypatch: pytest.MonkeyPatch):
    http_client = httpx.AsyncClient(base_url="http://chat.test", transport=httpx.MockTransport(chat_api.handler))
    session = ChatSession(
        http_client=http_client, threads_stream=MemoryShapeStream(), messages_stream=MemoryShapeStream(), owns_http_client=True
    )
    chat_server = ChatServer(session=session)
    monkeypatch.setattr(main, "chat_server", chat_server)

    async with lifespan(mcp):
        _ = await chat_server.get_session()

        assert not http_client.is_closed

    assert http_client.is_closed
