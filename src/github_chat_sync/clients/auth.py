from datetime import datetime

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from github_chat_sync.clients.errors.chat import MalformedResponseError, TransportError
from github_chat_sync.clients.http import ChatApiClient, is_unauthorized

GET_SESSION_PATH = "/api/auth/get-session"


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str | None = None
    email: str | None = None


class AuthSessionInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")


class AuthSession(BaseModel):
    """The session of the signed-in user."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    session: AuthSessionInfo
    user: AuthUser

    @property
    def user_id(self) -> str:
        return self.user.id


class AuthClient(ChatApiClient):
    """Looks up the session the HTTP client is signed in with."""

    async def get_session(self, path: str = GET_SESSION_PATH) -> AuthSession | None:
        """Get the current session, or None for guests.

        Raises:
            TransportError: If the lookup fails.
        """

        action = "Get session"

        request_logger, _, error_logger = self._get_loggers()

        request_logger(f"Performing {action}")

        try:
            response: httpx.Response = await self.http_client.get(path)
        except httpx.HTTPError as e:
            error_logger(f"Error performing {action}: {e}")
            raise TransportError(action=action, message=str(e)) from e

        if is_unauthorized(response):
            return None

        if response.is_error:
            raise TransportError(action=action, message=response.text, status_code=response.status_code)

        if not response.content.strip() or response.content.strip() == b"null":
            return None

        try:
            return AuthSession.model_validate_json(response.content)
        except ValidationError as e:
            raise MalformedResponseError(action=action, message=str(e)) from e
