from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging import Logger
from typing import Literal

import click
from fastmcp import FastMCP
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.utilities.logging import get_logger

from github_chat_sync.servers.chat import ChatServer

logger: Logger = get_logger(name=__name__)

chat_server: ChatServer = ChatServer(logger=logger)


@asynccontextmanager
async def lifespan(_: FastMCP[None]) -> AsyncIterator[None]:
    try:
        yield
    finally:
        await chat_server.close()


mcp: FastMCP[None] = FastMCP[None](name="GitHub Chat Sync", lifespan=lifespan)

mcp.add_middleware(middleware=LoggingMiddleware(include_payloads=True, logger=logger))

_ = chat_server.register_tools(fastmcp=mcp)


@click.command()
@click.option(
    "--mcp-transport",
    type=click.Choice(["stdio", "streamable-http"]),
    default="stdio",
    help="The transport to run the MCP server on",
)
def run_mcp(mcp_transport: Literal["stdio", "streamable-http"]):
    mcp.run(transport=mcp_transport)


if __name__ == "__main__":
    run_mcp()
