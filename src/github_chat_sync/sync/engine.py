from collections.abc import Callable
from logging import Logger
from typing import Any

from fastmcp.utilities.logging import get_logger

from github_chat_sync.models.chat import ChatMessage, DisplayMessage, PendingMessage, Role
from github_chat_sync.sync.pending import PendingWriteBuffer
from github_chat_sync.sync.replica import LiveCollection, ShapeReplica, match_nothing, where_equals
from github_chat_sync.sync.streaming import StreamAccumulator
from github_chat_sync.sync.view import merge_messages, message_order


def thread_predicate(thread_id: int | None) -> Callable[[Any], bool]:
    if thread_id is None:
        return match_nothing

    return where_equals(field="thread_id", value=thread_id)


class ReconciliationEngine:
    """Produces the single ordered list of messages shown for the active thread.

    Optimistic messages live in the pending write buffer until a structurally equal message is committed to the
    messages replica. The buffer is reconciled against every commit, including commits for threads that are not
    active, so an entry is never stranded by a late or out-of-order delivery."""

    messages_replica: ShapeReplica[ChatMessage]
    buffer: PendingWriteBuffer
    stream: StreamAccumulator
    logger: Logger

    active_thread_id: int | None

    def __init__(
        self,
        messages_replica: ShapeReplica[ChatMessage],
        buffer: PendingWriteBuffer | None = None,
        stream: StreamAccumulator | None = None,
        logger: Logger | None = None,
    ):
        self.messages_replica = messages_replica
        self.buffer = buffer or PendingWriteBuffer()
        self.stream = stream or StreamAccumulator()
        self.logger = logger or get_logger(name=__name__)

        self.active_thread_id = None

        self.messages: LiveCollection[ChatMessage] = messages_replica.subscribe(where=match_nothing, order_by=message_order)

        self._view_key: tuple[Any, ...] | None = None
        self._view: tuple[DisplayMessage, ...] = ()
        self._unsubscribe: Callable[[], None] = self.messages.on_change(self.reconcile)

    def select_thread(self, thread_id: int | None) -> None:
        if thread_id == self.active_thread_id:
            return

        self.logger.debug(f"Switching active thread from {self.active_thread_id} to {thread_id}")

        self.active_thread_id = thread_id
        self.messages.reparameterize(where=thread_predicate(thread_id))

    def confirmed(self) -> tuple[ChatMessage, ...]:
        return self.messages.rows()

    def add_pending(self, thread_id: int, role: Role, content: str) -> PendingMessage:
        return self.buffer.add(thread_id=thread_id, role=role, content=content)

    def discard_pending(self, pending_id: str) -> None:
        _ = self.buffer.discard(pending_id)

    def reconcile(self) -> list[PendingMessage]:
        removed = self.buffer.reconcile(confirmed=self.messages_replica.rows())

        if removed:
            self.logger.debug(f"Reconciled {len(removed)} pending messages with their confirmed copies")

        return removed

    def complete_stream(self) -> PendingMessage | None:
        """Hand a finished response to the pending buffer until its confirmed copy is synced.

        Returns the pending entry, or None if nothing is left waiting for a confirmed copy."""

        thread_id = self.stream.thread_id
        content = self.stream.content

        pending: PendingMessage | None = None

        if thread_id is not None and content:
            pending = self.add_pending(thread_id=thread_id, role="assistant", content=content)

        _ = self.stream.complete()

        # The server persists the response itself, so its confirmed copy may already be in the replica.
        if pending is not None and pending in self.reconcile():
            return None

        return pending

    def view(self) -> tuple[DisplayMessage, ...]:
        """Return the merged view of the active thread.

        The result is recomputed only when the replica, the filter, the pending buffer, or the stream changed, so
        repeated calls without new data return the same tuple."""

        key = (self.messages.version, self.buffer.version, self.stream.version, self.active_thread_id)

        if key == self._view_key:
            return self._view

        streaming = self.stream.snapshot()

        if streaming is not None and streaming.thread_id != self.active_thread_id:
            streaming = None

        self._view = merge_messages(
            confirmed=self.confirmed(),
            pending=self.buffer.for_thread(self.active_thread_id),
            streaming=streaming,
        )
        self._view_key = key

        return self._view

    def close(self) -> None:
        self._unsubscribe()
        self.messages.close()
        self.buffer.clear()
        self.stream.reset()
