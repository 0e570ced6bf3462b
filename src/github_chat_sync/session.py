import asyncio
import os
from collections.abc import Callable
from logging import Logger
from types import TracebackType
from typing import Literal, Self

import httpx
from fastmcp.utilities.logging import get_logger

from github_chat_sync.clients.auth import AuthClient, AuthSession
from github_chat_sync.clients.completions import CompletionClient
from github_chat_sync.clients.errors.chat import AuthenticationError, TransportError
from github_chat_sync.clients.http import get_http_client
from github_chat_sync.clients.mutations import DEFAULT_THREAD_TITLE, MutationSubmitter
from github_chat_sync.clients.shape import CHAT_MESSAGES_SHAPE_PATH, CHAT_THREADS_SHAPE_PATH, ElectricShapeStream, ShapeStream
from github_chat_sync.models.chat import (
    AVAILABLE_MODELS,
    ChatMessage,
    ChatModel,
    ChatThread,
    CompletionMessage,
    DisplayMessage,
    GuestMessage,
    Role,
    get_chat_model,
)
from github_chat_sync.sync.engine import ReconciliationEngine
from github_chat_sync.sync.replica import LiveCollection, ShapeReplica
from github_chat_sync.sync.view import merge_guest_messages, merge_threads, thread_order

FREE_REQUEST_LIMIT = 1
THREAD_TITLE_LENGTH = 40

SendOutcome = Literal["sent", "blocked", "ignored"]


def get_default_model() -> ChatModel:
    if (model_id := os.getenv("CHAT_MODEL")) and (model := get_chat_model(model_id)):
        return model

    return AVAILABLE_MODELS[0]


def thread_title(text: str) -> str:
    return text[:THREAD_TITLE_LENGTH] or DEFAULT_THREAD_TITLE


class ChatSession:
    """Everything a chat client needs for one signed-in (or guest) session.

    The session owns the replicas of the user's threads and messages, the reconciliation engine, and the clients for
    the mutation and completion endpoints. It is created explicitly, opened once, and closed when the session ends."""

    http_client: httpx.AsyncClient
    logger: Logger

    auth_session: AuthSession | None

    threads_replica: ShapeReplica[ChatThread]
    messages_replica: ShapeReplica[ChatMessage]
    engine: ReconciliationEngine

    submitter: MutationSubmitter
    completions: CompletionClient
    auth_client: AuthClient

    model: ChatModel
    free_requests_used: int
    auth_prompt_visible: bool
    is_loading: bool

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        threads_stream: ShapeStream | None = None,
        messages_stream: ShapeStream | None = None,
        auth_session: AuthSession | None = None,
        owns_http_client: bool = False,
        logger: Logger | None = None,
    ):
        self.http_client = http_client
        self.logger = logger or get_logger(name=__name__)
        self.auth_session = auth_session

        self._owns_http_client: bool = owns_http_client

        self.threads_replica = ShapeReplica[ChatThread](
            name="chat_threads",
            stream=threads_stream or ElectricShapeStream(http_client=http_client, path=CHAT_THREADS_SHAPE_PATH, logger=self.logger),
            row_model=ChatThread,
            logger=self.logger,
        )
        self.messages_replica = ShapeReplica[ChatMessage](
            name="chat_messages",
            stream=messages_stream or ElectricShapeStream(http_client=http_client, path=CHAT_MESSAGES_SHAPE_PATH, logger=self.logger),
            row_model=ChatMessage,
            logger=self.logger,
        )

        self.threads: LiveCollection[ChatThread] = self.threads_replica.subscribe(order_by=thread_order)
        self.engine = ReconciliationEngine(messages_replica=self.messages_replica, logger=self.logger)

        self.submitter = MutationSubmitter(http_client=http_client, logger=self.logger)
        self.completions = CompletionClient(http_client=http_client, logger=self.logger)
        self.auth_client = AuthClient(http_client=http_client, logger=self.logger)

        self.model = get_default_model()
        self.free_requests_used = 0
        self.auth_prompt_visible = False
        self.is_loading = False

        self._guest_messages: list[GuestMessage] = []
        self._new_chat_requested: bool = False
        self._created_threads: dict[int, ChatThread] = {}
        self._unsubscribe_threads: Callable[[], None] = self.threads.on_change(self._on_threads_changed)

    @classmethod
    def from_environment(cls, logger: Logger | None = None) -> Self:
        return cls(http_client=get_http_client(), owns_http_client=True, logger=logger)

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        await self.close()

    async def open(self, lookup_session: bool = True) -> None:
        """Look up who is signed in and start following the threads and messages shapes."""

        if lookup_session:
            self.auth_session = await self.auth_client.get_session()

        if self.auth_session:
            self.logger.info(f"Opening chat session for user {self.auth_session.user_id}")
        else:
            self.logger.info("Opening chat session as a guest")

        _ = self.threads_replica.start()
        _ = self.messages_replica.start()

    async def close(self) -> None:
        self._unsubscribe_threads()

        await asyncio.gather(self.threads_replica.stop(), self.messages_replica.stop())

        self.threads.close()
        self.engine.close()

        if self._owns_http_client:
            await self.http_client.aclose()

    @property
    def is_authenticated(self) -> bool:
        return self.auth_session is not None

    @property
    def active_thread_id(self) -> int | None:
        return self.engine.active_thread_id

    def list_threads(self) -> tuple[ChatThread, ...]:
        if not self.is_authenticated:
            return ()

        return merge_threads(replicated=self.threads.rows(), created=list(self._created_threads.values()))

    def select_thread(self, thread_id: int | None) -> None:
        self._new_chat_requested = False
        self.engine.select_thread(thread_id)

    def new_chat(self) -> None:
        """Clear the active thread. The next message creates a new one."""

        self.engine.select_thread(None)
        self._new_chat_requested = True

    def select_model(self, model_id: str) -> ChatModel:
        if not (model := get_chat_model(model_id)):
            msg = f"Unknown model {model_id}, available models: {', '.join(model.id for model in AVAILABLE_MODELS)}"
            raise ValueError(msg)

        self.model = model

        return model

    def dismiss_auth_prompt(self) -> None:
        self.auth_prompt_visible = False

    def messages(self) -> tuple[DisplayMessage, ...]:
        if not self.is_authenticated:
            return merge_guest_messages(guest_messages=self._guest_messages, streaming=self.engine.stream.snapshot())

        return self.engine.view()

    def _on_threads_changed(self) -> None:
        replicated_ids = {thread.id for thread in self.threads.rows()}

        for thread_id in [thread_id for thread_id in self._created_threads if thread_id in replicated_ids]:
            del self._created_threads[thread_id]

        if self._new_chat_requested or not self.is_authenticated or self.active_thread_id is not None:
            return

        if threads := self.list_threads():
            self.select_thread(threads[0].id)

    async def send_message(self, content: str) -> SendOutcome:
        """Send a message in the active thread, or as a guest when nobody is signed in.

        Raises:
            AuthenticationError: If the session expired while sending.
            TransportError: If a request fails. Any partial response stays visible.
        """

        text = content.strip()

        if not text or self.is_loading:
            return "ignored"

        self.is_loading = True

        try:
            if not self.is_authenticated:
                return await self._send_guest_message(text)

            return await self._send_thread_message(text)
        except AuthenticationError:
            self.auth_prompt_visible = True
            raise
        finally:
            self.is_loading = False

    async def _send_guest_message(self, text: str) -> SendOutcome:
        if self.free_requests_used >= FREE_REQUEST_LIMIT:
            self.logger.info("Guest has used all free requests, asking them to sign in")
            self.auth_prompt_visible = True
            return "blocked"

        if self._guest_messages and self._guest_messages[-1].role == "user":
            # The previous attempt never got a response, this one replaces it.
            _ = self._guest_messages.pop()

        history = [CompletionMessage(role=message.role, content=message.content) for message in self._guest_messages]

        self._append_guest_message(role="user", content=text)

        content = await self._stream_response(messages=[*history, CompletionMessage(role="user", content=text)], thread_id=None)

        self._append_guest_message(role="assistant", content=content)
        _ = self.engine.stream.complete()

        self.free_requests_used += 1

        if self.free_requests_used >= FREE_REQUEST_LIMIT:
            self.auth_prompt_visible = True

        return "sent"

    def _append_guest_message(self, role: Role, content: str) -> None:
        self._guest_messages.append(GuestMessage(id=len(self._guest_messages) + 1, role=role, content=content))

    async def _send_thread_message(self, text: str) -> SendOutcome:
        thread_id = self.active_thread_id

        if thread_id is None:
            thread = await self.submitter.create_thread(title=thread_title(text))
            self._created_threads[thread.id] = thread
            thread_id = thread.id
            self.select_thread(thread_id)

        history = [CompletionMessage(role=message.role, content=message.content) for message in self.engine.confirmed()]

        pending = self.engine.add_pending(thread_id=thread_id, role="user", content=text)

        try:
            _ = await self.submitter.append_message(thread_id=thread_id, role="user", content=text)
        except (AuthenticationError, TransportError):
            self.engine.discard_pending(pending.id)
            raise

        _ = await self._stream_response(messages=[*history, CompletionMessage(role="user", content=text)], thread_id=thread_id)

        _ = self.engine.complete_stream()

        return "sent"

    async def _stream_response(self, messages: list[CompletionMessage], thread_id: int | None) -> str:
        """Stream the assistant response into the accumulator, leaving it open for the caller to complete."""

        stream = self.engine.stream
        stream.begin(thread_id)

        try:
            async for chunk in self.completions.stream(messages=messages, model=self.model.id, thread_id=thread_id):
                stream.append(chunk)
        except (AuthenticationError, TransportError, asyncio.CancelledError):
            self.logger.info(f"Response stream for thread {thread_id} ended early after {len(stream.content)} characters")
            stream.abort()
            raise

        return stream.content
