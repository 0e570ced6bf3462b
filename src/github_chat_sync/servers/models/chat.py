from typing import Self

from pydantic import BaseModel, Field

from github_chat_sync.models.chat import ChatModel, ChatThread, DisplayMessage
from github_chat_sync.session import ChatSession, SendOutcome


class ThreadListing(BaseModel):
    """The threads of the signed-in user, newest first."""

    signed_in: bool = Field(description="Whether a user is signed in. Guests have no threads.")
    active_thread_id: int | None = Field(description="The thread new messages are sent to, if any.")
    threads: list[ChatThread] = Field(description="The threads of the user.")

    @classmethod
    def from_session(cls, session: ChatSession) -> Self:
        return cls(
            signed_in=session.is_authenticated,
            active_thread_id=session.active_thread_id,
            threads=list(session.list_threads()),
        )


class ChatView(BaseModel):
    """The messages of the active thread as they should be displayed."""

    signed_in: bool = Field(description="Whether a user is signed in.")
    thread_id: int | None = Field(description="The active thread, or None for a new chat or a guest session.")
    messages: list[DisplayMessage] = Field(description="The messages in display order.")
    auth_prompt_visible: bool = Field(description="Whether the user should be asked to sign in.")

    @classmethod
    def from_session(cls, session: ChatSession) -> Self:
        return cls(
            signed_in=session.is_authenticated,
            thread_id=session.active_thread_id,
            messages=list(session.messages()),
            auth_prompt_visible=session.auth_prompt_visible,
        )


class SendMessageResult(BaseModel):
    """The outcome of sending a message."""

    outcome: SendOutcome = Field(
        description="`sent` if the message was sent, `blocked` if a guest ran out of free messages, `ignored` for empty input."
    )
    view: ChatView


class ModelListing(BaseModel):
    selected: ChatModel = Field(description="The model that answers new messages.")
    models: list[ChatModel] = Field(description="The models that can be selected.")
