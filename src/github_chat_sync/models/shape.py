from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

Operation = Literal["insert", "update", "delete"]
Control = Literal["up-to-date", "must-refetch", "snapshot-end"]

INITIAL_OFFSET = "-1"


class ChangeHeaders(BaseModel):
    model_config = ConfigDict(extra="allow")

    operation: Operation


class ChangeMessage(BaseModel):
    """A row-level change to a shape."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="The key of the row within the shape.")
    value: dict[str, Any] = Field(default_factory=dict, description="The columns of the row, partial for updates.")
    headers: ChangeHeaders

    @property
    def operation(self) -> Operation:
        return self.headers.operation


class ControlHeaders(BaseModel):
    model_config = ConfigDict(extra="allow")

    control: Control


class ControlMessage(BaseModel):
    """A control message that tells the client about the state of the shape log."""

    model_config = ConfigDict(frozen=True)

    headers: ControlHeaders

    @property
    def control(self) -> Control:
        return self.headers.control


ShapeMessage = ChangeMessage | ControlMessage

SHAPE_MESSAGES_ADAPTER: TypeAdapter[list[ShapeMessage]] = TypeAdapter(list[ShapeMessage])


class ShapeBatch(BaseModel):
    """The changes delivered by a single response of a shape stream."""

    model_config = ConfigDict(frozen=True)

    changes: list[ChangeMessage] = Field(default_factory=list)
    up_to_date: bool = Field(default=False, description="Whether the client has caught up with the shape log.")
    must_refetch: bool = Field(default=False, description="Whether the client must discard its rows and sync from scratch.")
    offset: str | None = None
    handle: str | None = None

    @classmethod
    def from_messages(
        cls, messages: list[ShapeMessage], up_to_date: bool = False, offset: str | None = None, handle: str | None = None
    ) -> "ShapeBatch":
        changes: list[ChangeMessage] = [message for message in messages if isinstance(message, ChangeMessage)]
        controls: set[Control] = {message.control for message in messages if isinstance(message, ControlMessage)}

        return cls(
            changes=changes,
            up_to_date=up_to_date or "up-to-date" in controls,
            must_refetch="must-refetch" in controls,
            offset=offset,
            handle=handle,
        )


def insert(key: str, **value: Any) -> ChangeMessage:  # pyright: ignore[reportAny]
    return ChangeMessage(key=key, value=value, headers=ChangeHeaders(operation="insert"))


def update(key: str, **value: Any) -> ChangeMessage:  # pyright: ignore[reportAny]
    return ChangeMessage(key=key, value=value, headers=ChangeHeaders(operation="update"))


def delete(key: str, **value: Any) -> ChangeMessage:  # pyright: ignore[reportAny]
    return ChangeMessage(key=key, value=value, headers=ChangeHeaders(operation="delete"))
