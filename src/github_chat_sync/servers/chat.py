import asyncio
from collections.abc import Callable
from logging import Logger
from typing import Any

from fastmcp.server import FastMCP
from fastmcp.tools import Tool
from fastmcp.utilities.logging import get_logger

from github_chat_sync.models.chat import AVAILABLE_MODELS, ChatModel
from github_chat_sync.servers.models.chat import ChatView, ModelListing, SendMessageResult, ThreadListing
from github_chat_sync.servers.shared.annotations import CONTENT, MODEL_ID, THREAD_ID
from github_chat_sync.servers.shared.errors import ServerError, SignInRequiredError
from github_chat_sync.session import ChatSession


class ChatServer:
    """Exposes a chat session as MCP tools.

    The session is opened on the first tool call and shared by every call after that."""

    logger: Logger
    session_factory: Callable[[], ChatSession]

    def __init__(
        self,
        session: ChatSession | None = None,
        session_factory: Callable[[], ChatSession] | None = None,
        logger: Logger | None = None,
    ):
        self.logger = logger or get_logger(name=__name__)
        self.session_factory = session_factory or (lambda: ChatSession.from_environment(logger=self.logger))

        self._session: ChatSession | None = session
        self._session_opened: bool = False
        self._session_lock: asyncio.Lock = asyncio.Lock()

    def register_tools(self, fastmcp: FastMCP[Any]) -> FastMCP[Any]:
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.list_threads, description="List the chat threads of the signed-in user."))
        _ = fastmcp.add_tool(
            tool=Tool.from_function(fn=self.select_thread, description="Make a thread the active thread and get its messages.")
        )
        _ = fastmcp.add_tool(
            tool=Tool.from_function(fn=self.new_chat, description="Start a new chat. The thread is created when the first message is sent.")
        )
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.get_messages, description="Get the messages of the active thread."))
        _ = fastmcp.add_tool(
            tool=Tool.from_function(
                fn=self.send_message,
                description="Send a message to the active thread and wait for the assistant's response. "
                + "Guests may send one free message before they have to sign in.",
            )
        )
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.list_models, description="List the models that can answer messages."))
        _ = fastmcp.add_tool(tool=Tool.from_function(fn=self.select_model, description="Select the model that answers new messages."))

        return fastmcp

    async def get_session(self) -> ChatSession:
        async with self._session_lock:
            if self._session is None:
                self._session = self.session_factory()

            if not self._session_opened:
                await self._session.open()
                self._session_opened = True

        return self._session

    async def close(self) -> None:
        async with self._session_lock:
            if self._session is not None and self._session_opened:
                await self._session.close()

            self._session = None
            self._session_opened = False

    async def list_threads(self) -> ThreadListing:
        session = await self.get_session()

        return ThreadListing.from_session(session=session)

    async def select_thread(self, thread_id: THREAD_ID) -> ChatView:
        session = await self.get_session()

        if not session.is_authenticated:
            raise SignInRequiredError(action="Select thread")

        if thread_id not in {thread.id for thread in session.list_threads()}:
            raise ServerError(message="The thread does not exist.", extra_info={"thread_id": str(thread_id)})

        session.select_thread(thread_id)

        return ChatView.from_session(session=session)

    async def new_chat(self) -> ChatView:
        session = await self.get_session()

        session.new_chat()

        return ChatView.from_session(session=session)

    async def get_messages(self) -> ChatView:
        session = await self.get_session()

        return ChatView.from_session(session=session)

    async def send_message(self, content: CONTENT) -> SendMessageResult:
        session = await self.get_session()

        outcome = await session.send_message(content)

        self.logger.info(f"Sending message in thread {session.active_thread_id} finished with outcome {outcome}")

        return SendMessageResult(outcome=outcome, view=ChatView.from_session(session=session))

    async def list_models(self) -> ModelListing:
        session = await self.get_session()

        return ModelListing(selected=session.model, models=list(AVAILABLE_MODELS))

    async def select_model(self, model_id: MODEL_ID) -> ChatModel:
        session = await self.get_session()

        try:
            return session.select_model(model_id)
        except ValueError as e:
            raise ServerError(message=str(e)) from e
