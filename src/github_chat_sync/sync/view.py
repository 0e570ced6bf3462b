from collections.abc import Sequence
from typing import Any

from github_chat_sync.models.chat import ChatMessage, ChatThread, DisplayMessage, GuestMessage, PendingMessage, StreamingMessage
from github_chat_sync.sync.pending import unmatched_pending


def message_order(message: ChatMessage) -> tuple[Any, ...]:
    return (message.created_at, message.id)


def thread_order(thread: ChatThread) -> tuple[Any, ...]:
    return (thread.created_at, thread.id)


def merge_messages(
    confirmed: Sequence[ChatMessage],
    pending: Sequence[PendingMessage],
    streaming: StreamingMessage | None = None,
) -> tuple[DisplayMessage, ...]:
    """Merge confirmed, pending, and streaming messages into the list shown to the user.

    Confirmed messages come first in creation order. Pending messages without a confirmed copy follow in the order
    they were sent, and the streaming response is always last."""

    ordered_confirmed: list[ChatMessage] = sorted(confirmed, key=message_order)

    waiting, _ = unmatched_pending(pending=pending, confirmed=ordered_confirmed)

    merged: list[DisplayMessage] = [DisplayMessage.from_chat_message(chat_message=message) for message in ordered_confirmed]
    merged.extend(DisplayMessage.from_pending_message(pending_message=entry) for entry in waiting)

    if streaming is not None and streaming.content:
        merged.append(DisplayMessage.from_streaming_message(streaming_message=streaming))

    return tuple(merged)


def merge_guest_messages(guest_messages: Sequence[GuestMessage], streaming: StreamingMessage | None = None) -> tuple[DisplayMessage, ...]:
    merged: list[DisplayMessage] = [DisplayMessage.from_guest_message(guest_message=message) for message in guest_messages]

    if streaming is not None and streaming.content:
        merged.append(DisplayMessage.from_streaming_message(streaming_message=streaming))

    return tuple(merged)


def merge_threads(replicated: Sequence[ChatThread], created: Sequence[ChatThread]) -> tuple[ChatThread, ...]:
    """Combine replicated threads with threads created locally that the replica has not delivered yet, newest first."""

    replicated_ids: set[int] = {thread.id for thread in replicated}

    threads: list[ChatThread] = [*replicated, *(thread for thread in created if thread.id not in replicated_ids)]

    return tuple(sorted(threads, key=lambda thread: thread.id, reverse=True))
