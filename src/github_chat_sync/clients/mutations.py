from logging import Logger
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from github_chat_sync.clients.errors.chat import AuthenticationError, MalformedResponseError, TransportError
from github_chat_sync.clients.http import ChatApiClient, is_unauthorized
from github_chat_sync.models.chat import ChatMessage, ChatThread, Role

MUTATIONS_PATH = "/api/chat/mutations"

DEFAULT_THREAD_TITLE = "New chat"


class CreateThreadMutation(BaseModel):
    action: Literal["createThread"] = "createThread"
    title: str


class AddMessageMutation(BaseModel):
    action: Literal["addMessage"] = "addMessage"
    thread_id: int = Field(serialization_alias="threadId")
    role: Role
    content: str


class CreateThreadResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    thread: ChatThread


class AddMessageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: ChatMessage


class MutationSubmitter(ChatApiClient):
    """Performs durable writes against the chat application and returns the canonical records.

    Writes are not retried and are not injected into any local replica. A successful write shows up later through
    the shape streams, and the pending write buffer covers the gap until it does."""

    path: str

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        path: str = MUTATIONS_PATH,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        super().__init__(
            http_client=http_client, logger=logger, log_requests=log_requests, log_responses=log_responses, log_on_error=log_on_error
        )
        self.path = path

    async def create_thread(self, title: str = DEFAULT_THREAD_TITLE) -> ChatThread:
        """Create a thread owned by the current user.

        Raises:
            AuthenticationError: If there is no active session.
            TransportError: If the request fails.
        """

        response = await self._submit(
            action="Create thread",
            mutation=CreateThreadMutation(title=title),
            response_model=CreateThreadResponse,
        )

        return response.thread

    async def append_message(self, thread_id: int, role: Role, content: str) -> ChatMessage:
        """Append a message to an existing thread.

        The thread must already exist, callers without an active thread create one first.

        Raises:
            AuthenticationError: If there is no active session.
            TransportError: If the request fails.
        """

        response = await self._submit(
            action="Add message",
            mutation=AddMessageMutation(thread_id=thread_id, role=role, content=content),
            response_model=AddMessageResponse,
        )

        return response.message

    async def _submit[T: BaseModel](self, action: str, mutation: BaseModel, response_model: type[T]) -> T:
        request_logger, response_logger, error_logger = self._get_loggers()

        payload: dict[str, Any] = mutation.model_dump(by_alias=True)

        request_logger(f"Performing {action} with payload {payload}")

        try:
            response: httpx.Response = await self.http_client.post(self.path, json=payload)
        except httpx.HTTPError as e:
            error_logger(f"Error performing {action}: {e}")
            raise TransportError(action=action, message=str(e)) from e

        if is_unauthorized(response):
            self.logger.info(f"{action} requires an active session, the server answered {response.status_code}")
            raise AuthenticationError(action=action, status_code=response.status_code)

        if response.is_error:
            self.logger.warning(f"{action} failed with status {response.status_code}: {response.text}")
            raise TransportError(action=action, message=response.text, status_code=response.status_code)

        try:
            result = response_model.model_validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(action=action, message=str(e)) from e

        response_logger(f"Completed {action}: {result}")

        return result
