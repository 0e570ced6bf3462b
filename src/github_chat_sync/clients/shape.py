import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from logging import Logger
from typing import override

import httpx
from pydantic import ValidationError

from github_chat_sync.clients.errors.chat import AuthenticationError, MalformedResponseError, TransportError
from github_chat_sync.clients.http import ChatApiClient, is_unauthorized, long_poll_timeout
from github_chat_sync.models.shape import INITIAL_OFFSET, SHAPE_MESSAGES_ADAPTER, ShapeBatch, ShapeMessage

CHAT_THREADS_SHAPE_PATH = "/api/chat-threads"
CHAT_MESSAGES_SHAPE_PATH = "/api/chat-messages"

HANDLE_HEADER = "electric-handle"
OFFSET_HEADER = "electric-offset"
CURSOR_HEADER = "electric-cursor"
UP_TO_DATE_HEADER = "electric-up-to-date"


class ShapeStream(ABC):
    """A stream of change batches for a single shape."""

    @abstractmethod
    def batches(self) -> AsyncIterator[ShapeBatch]:
        """Yield batches until the stream ends.

        Raises:
            AuthenticationError: If the session may not read the shape.
            TransportError: If the connection fails. Calling `batches` again resumes from the last offset.
        """
        ...


class ElectricShapeStream(ChatApiClient, ShapeStream):  # pyright: ignore[reportUnsafeMultipleInheritance]
    """Follows a shape served over the Electric HTTP protocol.

    The first request fetches the full shape starting from offset `-1`. Once the client is up to date it switches
    to live mode, where each request long-polls for the next change after the last offset."""

    path: str
    params: dict[str, str]

    offset: str
    handle: str | None
    cursor: str | None
    live: bool

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        path: str,
        params: dict[str, str] | None = None,
        logger: Logger | None = None,
        log_requests: bool = False,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        super().__init__(
            http_client=http_client, logger=logger, log_requests=log_requests, log_responses=log_responses, log_on_error=log_on_error
        )
        self.path = path
        self.params = params or {}
        self.reset()

    def reset(self) -> None:
        self.offset = INITIAL_OFFSET
        self.handle = None
        self.cursor = None
        self.live = False

    def _request_params(self) -> dict[str, str]:
        params: dict[str, str] = {**self.params, "offset": self.offset}

        if self.handle is not None:
            params["handle"] = self.handle

        if self.live:
            params["live"] = "true"

            if self.cursor is not None:
                params["cursor"] = self.cursor

        return params

    async def fetch(self) -> ShapeBatch:
        """Perform a single shape request and return the batch it delivered."""

        action = f"Get shape {self.path}"

        request_logger, response_logger, error_logger = self._get_loggers()

        params = self._request_params()

        request_logger(f"Performing {action} with params {params}")

        try:
            response: httpx.Response = await self.http_client.get(self.path, params=params, timeout=long_poll_timeout(self.http_client.timeout))
        except httpx.HTTPError as e:
            error_logger(f"Error performing {action} with params {params}: {e}")
            raise TransportError(action=action, message=str(e)) from e

        if is_unauthorized(response):
            self.logger.debug(f"{action} was rejected with status {response.status_code}")
            raise AuthenticationError(action=action, status_code=response.status_code)

        if response.status_code == httpx.codes.CONFLICT:
            self.logger.info(f"{action} must be refetched, the shape handle {self.handle} has expired")
            self.reset()
            return ShapeBatch(must_refetch=True)

        if response.is_error:
            raise TransportError(action=action, message=response.text, status_code=response.status_code)

        messages: list[ShapeMessage] = self._parse_messages(action=action, response=response)

        self.handle = response.headers.get(HANDLE_HEADER, self.handle)
        self.offset = response.headers.get(OFFSET_HEADER, self.offset)
        self.cursor = response.headers.get(CURSOR_HEADER, self.cursor)

        batch = ShapeBatch.from_messages(
            messages=messages,
            up_to_date=UP_TO_DATE_HEADER in response.headers,
            offset=self.offset,
            handle=self.handle,
        )

        if batch.must_refetch:
            self.reset()
        elif batch.up_to_date:
            self.live = True

        response_logger(f"Completed {action}: {len(batch.changes)} changes, up to date: {batch.up_to_date}, offset: {self.offset}")

        return batch

    def _parse_messages(self, action: str, response: httpx.Response) -> list[ShapeMessage]:
        if response.status_code == httpx.codes.NO_CONTENT or not response.content.strip():
            return []

        try:
            return SHAPE_MESSAGES_ADAPTER.validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(action=action, message=str(e)) from e

    @override
    async def batches(self) -> AsyncIterator[ShapeBatch]:
        while True:
            yield await self.fetch()


class MemoryShapeStream(ShapeStream):
    """A shape stream fed from within the process, used for local development and tests."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ShapeBatch | BaseException | None] = asyncio.Queue()

    def push(self, batch: ShapeBatch) -> None:
        self._queue.put_nowait(batch)

    def fail(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    def close(self) -> None:
        self._queue.put_nowait(None)

    @override
    async def batches(self) -> AsyncIterator[ShapeBatch]:
        while True:
            item = await self._queue.get()

            if item is None:
                return

            if isinstance(item, BaseException):
                raise item

            yield item

