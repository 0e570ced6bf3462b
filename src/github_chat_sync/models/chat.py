import re
from datetime import UTC, datetime
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

Role = Literal["user", "assistant"]

MessageStatus = Literal["confirmed", "pending", "streaming", "aborted", "local"]

MatchKey = tuple[int | None, Role, str]

STREAMING_MESSAGE_ID = -1

PENDING_ID_PREFIX = "pending-"

# Postgres renders timestamptz offsets as "+00" which not every ISO parser accepts.
SHORT_UTC_OFFSET_PATTERN = re.compile(r"([+-]\d{2})$")


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_timestamptz(value: Any) -> Any:  # pyright: ignore[reportAny]
    """Parse a Postgres `timestamptz` string into an aware datetime, leaving other values for pydantic."""

    if not isinstance(value, str):
        return value

    normalized = SHORT_UTC_OFFSET_PATTERN.sub(r"\1:00", value.strip())

    parsed = datetime.fromisoformat(normalized)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)

    return parsed


class ChatThread(BaseModel):
    """A chat thread owned by a single user."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="The server-assigned id of the thread.")
    title: str = Field(description="The title of the thread.")
    user_id: str | None = Field(default=None, description="The id of the user that owns the thread.")
    created_at: datetime = Field(default_factory=utc_now, description="When the thread was created.")

    @field_validator("created_at", mode="before")
    @classmethod
    def validate_created_at(cls, v: Any) -> Any:  # pyright: ignore[reportAny]
        return parse_timestamptz(v)


class ChatMessage(BaseModel):
    """A confirmed chat message. Messages are append-only once confirmed."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="The server-assigned id of the message.")
    thread_id: int = Field(description="The id of the thread the message belongs to.")
    role: Role = Field(description="Who sent the message.")
    content: str = Field(description="The message content.")
    created_at: datetime = Field(default_factory=utc_now, description="When the message was created.")

    @field_validator("created_at", mode="before")
    @classmethod
    def validate_created_at(cls, v: Any) -> Any:  # pyright: ignore[reportAny]
        return parse_timestamptz(v)

    @property
    def match_key(self) -> MatchKey:
        return (self.thread_id, self.role, self.content)


class PendingMessage(BaseModel):
    """An optimistic message shown before its confirmed copy arrives."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="The client-local temporary id of the message.")
    thread_id: int
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def match_key(self) -> MatchKey:
        return (self.thread_id, self.role, self.content)


class GuestMessage(BaseModel):
    """A message exchanged by a guest. Guest messages only live in the session."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: Role
    content: str


class StreamingMessage(BaseModel):
    """A snapshot of an assistant response that is still being received."""

    model_config = ConfigDict(frozen=True)

    thread_id: int | None
    content: str
    aborted: bool = False


class DisplayMessage(BaseModel):
    """A single entry of the merged message view."""

    model_config = ConfigDict(frozen=True)

    id: int | str = Field(description="The server id, the temporary id, or -1 for a response that is still streaming.")
    thread_id: int | None = Field(default=None, description="The thread the message belongs to.")
    role: Role = Field(description="Who sent the message.")
    content: str = Field(description="The message content.")
    created_at: datetime | None = Field(default=None, description="When the message was created.")
    status: MessageStatus = Field(
        description="Whether the message is confirmed, pending, still streaming, aborted while streaming, or local to a guest session."
    )

    @property
    def ephemeral(self) -> bool:
        return self.status in ("streaming", "aborted")

    @property
    def match_key(self) -> MatchKey:
        return (self.thread_id, self.role, self.content)

    @classmethod
    def from_chat_message(cls, chat_message: ChatMessage) -> Self:
        return cls(
            id=chat_message.id,
            thread_id=chat_message.thread_id,
            role=chat_message.role,
            content=chat_message.content,
            created_at=chat_message.created_at,
            status="confirmed",
        )

    @classmethod
    def from_pending_message(cls, pending_message: PendingMessage) -> Self:
        return cls(
            id=pending_message.id,
            thread_id=pending_message.thread_id,
            role=pending_message.role,
            content=pending_message.content,
            created_at=pending_message.created_at,
            status="pending",
        )

    @classmethod
    def from_guest_message(cls, guest_message: GuestMessage) -> Self:
        return cls(id=guest_message.id, role=guest_message.role, content=guest_message.content, status="local")

    @classmethod
    def from_streaming_message(cls, streaming_message: StreamingMessage) -> Self:
        return cls(
            id=STREAMING_MESSAGE_ID,
            thread_id=streaming_message.thread_id,
            role="assistant",
            content=streaming_message.content,
            status="aborted" if streaming_message.aborted else "streaming",
        )


class CompletionMessage(BaseModel):
    """A message sent to the completion endpoint as conversation history."""

    role: Role
    content: str


class ChatModel(BaseModel):
    """A model that can answer chat messages."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="The id of the model.")
    name: str = Field(description="The display name of the model.")
    provider: str = Field(description="The provider of the model.")


AVAILABLE_MODELS: tuple[ChatModel, ...] = (
    ChatModel(id="google/gemini-2.0-flash-001", name="Gemini 2.0 Flash", provider="Google"),
    ChatModel(id="anthropic/claude-sonnet-4", name="Claude Sonnet 4", provider="Anthropic"),
    ChatModel(id="openai/gpt-4o", name="GPT-4o", provider="OpenAI"),
)


def get_chat_model(model_id: str) -> ChatModel | None:
    return next((model for model in AVAILABLE_MODELS if model.id == model_id), None)
