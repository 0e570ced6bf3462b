from collections import Counter
from collections.abc import Iterable
from uuid import uuid4

from github_chat_sync.models.chat import PENDING_ID_PREFIX, ChatMessage, MatchKey, PendingMessage, Role


def new_pending_id() -> str:
    return f"{PENDING_ID_PREFIX}{uuid4().hex}"


def unmatched_pending[T: PendingMessage](pending: Iterable[T], confirmed: Iterable[ChatMessage]) -> tuple[list[T], list[T]]:
    """Split pending entries into those still waiting and those matched by a confirmed message.

    Matching is by value on (thread_id, role, content). Each confirmed message absorbs at most one pending entry,
    oldest first, so two pending copies of the same text need two confirmed copies to both be matched."""

    available: Counter[MatchKey] = Counter(message.match_key for message in confirmed)

    waiting: list[T] = []
    matched: list[T] = []

    for entry in pending:
        if available[entry.match_key] > 0:
            available[entry.match_key] -= 1
            matched.append(entry)
        else:
            waiting.append(entry)

    return waiting, matched


class PendingWriteBuffer:
    """Holds optimistic messages until their confirmed copies show up in the replica."""

    _entries: list[PendingMessage]
    version: int

    def __init__(self) -> None:
        self._entries = []
        self.version = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[PendingMessage, ...]:
        return tuple(self._entries)

    def for_thread(self, thread_id: int | None) -> tuple[PendingMessage, ...]:
        return tuple(entry for entry in self._entries if entry.thread_id == thread_id)

    def add(self, thread_id: int, role: Role, content: str) -> PendingMessage:
        entry = PendingMessage(id=new_pending_id(), thread_id=thread_id, role=role, content=content)

        self._entries.append(entry)
        self.version += 1

        return entry

    def discard(self, pending_id: str) -> PendingMessage | None:
        for index, entry in enumerate(self._entries):
            if entry.id == pending_id:
                del self._entries[index]
                self.version += 1
                return entry

        return None

    def reconcile(self, confirmed: Iterable[ChatMessage]) -> list[PendingMessage]:
        """Remove every pending entry that has a confirmed counterpart and return the removed entries."""

        if not self._entries:
            return []

        waiting, matched = unmatched_pending(pending=self._entries, confirmed=confirmed)

        if matched:
            self._entries = waiting
            self.version += 1

        return matched

    def clear(self) -> None:
        if self._entries:
            self._entries = []
            self.version += 1
