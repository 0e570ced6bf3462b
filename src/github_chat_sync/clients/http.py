import os
from collections.abc import Callable
from logging import Logger, getLogger
from typing import Any

import httpx

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 30.0

# Shape requests in live mode are long-polls that the server holds open until there is a change.
LONG_POLL_READ_TIMEOUT = 60.0

SESSION_COOKIE_NAME = "better-auth.session_token"

UNAUTHORIZED_STATUS_CODES = {httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN}


def get_base_url() -> str:
    return os.getenv("CHAT_BASE_URL") or DEFAULT_BASE_URL


def get_session_token() -> str | None:
    return os.getenv("CHAT_SESSION_TOKEN") or None


def get_request_timeout() -> float:
    return float(os.getenv("CHAT_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT)))


def get_http_client(
    base_url: str | None = None,
    session_token: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the HTTP client shared by every collaborator of a chat session.

    The client is created once per session and passed to the shape streams, the mutation submitter, and the
    completion client so that they all present the same session cookie."""

    cookies: dict[str, str] = {}

    if session_token := session_token or get_session_token():
        cookies[SESSION_COOKIE_NAME] = session_token

    return httpx.AsyncClient(
        base_url=base_url or get_base_url(),
        cookies=cookies,
        timeout=get_request_timeout(),
        transport=transport,
    )


def long_poll_timeout(timeout: httpx.Timeout) -> httpx.Timeout:
    """Keep the client timeouts but let reads wait as long as the server holds a long-poll open."""

    return httpx.Timeout(connect=timeout.connect, read=LONG_POLL_READ_TIMEOUT, write=timeout.write, pool=timeout.pool)


def is_unauthorized(response: httpx.Response) -> bool:
    return response.status_code in UNAUTHORIZED_STATUS_CODES


class ChatApiClient:
    """Base class for the clients that talk to the chat application's HTTP endpoints."""

    http_client: httpx.AsyncClient
    logger: Logger

    log_requests: bool
    log_responses: bool
    log_on_error: bool

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        logger: Logger | None = None,
        log_requests: bool = True,
        log_responses: bool = False,
        log_on_error: bool = True,
    ):
        self.http_client = http_client
        self.logger = logger or getLogger(__name__)
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_on_error = log_on_error

    def _get_loggers(
        self, log_request: bool | None = None, log_response: bool | None = None, log_on_error: bool | None = None
    ) -> tuple[Callable[[str], Any], Callable[[str], Any], Callable[[BaseException | str], Any]]:
        request_logger = self.logger.info if log_request or self.log_requests else self.logger.debug
        response_logger = self.logger.info if log_response or self.log_responses else self.logger.debug
        error_logger = self.logger.exception if log_on_error or self.log_on_error else self.logger.debug
        return request_logger, response_logger, error_logger
