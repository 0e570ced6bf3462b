from collections.abc import AsyncIterator, Sequence
from logging import Logger
from typing import Any

import httpx

from github_chat_sync.clients.errors.chat import AuthenticationError, TransportError
from github_chat_sync.clients.http import ChatApiClient, is_unauthorized
from github_chat_sync.models.chat import CompletionMessage

THREAD_COMPLETIONS_PATH = "/api/chat/ai"
GUEST_COMPLETIONS_PATH = "/api/chat/guest"


class CompletionClient(ChatApiClient):
    """Streams assistant responses from the completion endpoints."""

    thread_path: str
    guest_path: str

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        thread_path: str = THREAD_COMPLETIONS_PATH,
        guest_path: str = GUEST_COMPLETIONS_PATH,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        super().__init__(
            http_client=http_client, logger=logger, log_requests=log_requests, log_responses=log_responses, log_on_error=log_on_error
        )
        self.thread_path = thread_path
        self.guest_path = guest_path

    async def stream(self, messages: Sequence[CompletionMessage], model: str, thread_id: int | None = None) -> AsyncIterator[str]:
        """Stream the text of an assistant response, chunk by chunk.

        Responses for a thread go through the authenticated endpoint, which also persists the finished response.
        Without a thread the guest endpoint is used and nothing is persisted.

        Raises:
            AuthenticationError: If the endpoint requires a session that is not present.
            TransportError: If the request fails or the stream breaks before it is closed by the server.
        """

        request_logger, response_logger, error_logger = self._get_loggers()

        payload: dict[str, Any] = {"messages": [message.model_dump() for message in messages], "model": model}

        if thread_id is None:
            action = "Stream guest completion"
            path = self.guest_path
        else:
            action = f"Stream completion for thread {thread_id}"
            path = self.thread_path
            payload["threadId"] = thread_id

        request_logger(f"Performing {action} with {len(messages)} messages using {model}")

        received_characters = 0

        try:
            async with self.http_client.stream("POST", path, json=payload) as response:
                if is_unauthorized(response):
                    self.logger.info(f"{action} requires an active session, the server answered {response.status_code}")
                    raise AuthenticationError(action=action, status_code=response.status_code)

                if response.is_error:
                    _ = await response.aread()
                    raise TransportError(action=action, message=response.text, status_code=response.status_code)

                async for chunk in response.aiter_text():
                    if not chunk:
                        continue

                    received_characters += len(chunk)
                    yield chunk
        except httpx.HTTPError as e:
            error_logger(f"Error performing {action} after {received_characters} characters: {e}")
            raise TransportError(action=action, message=str(e)) from e

        response_logger(f"Completed {action}: received {received_characters} characters")
