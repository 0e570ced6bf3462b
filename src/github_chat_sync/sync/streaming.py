from typing import Literal

from github_chat_sync.models.chat import StreamingMessage

StreamStatus = Literal["idle", "streaming", "aborted"]


class StreamAccumulator:
    """Collects the chunks of the assistant response that is currently streaming.

    Only one response streams at a time. Every appended chunk is published right away, so readers always see a
    prefix of the response."""

    thread_id: int | None
    content: str
    status: StreamStatus
    version: int

    def __init__(self) -> None:
        self.thread_id = None
        self.content = ""
        self.status = "idle"
        self.version = 0

    @property
    def active(self) -> bool:
        return self.status == "streaming"

    def begin(self, thread_id: int | None) -> None:
        self.thread_id = thread_id
        self.content = ""
        self.status = "streaming"
        self.version += 1

    def append(self, chunk: str) -> None:
        if self.status != "streaming":
            msg = f"Cannot append to a stream that is {self.status}"
            raise RuntimeError(msg)

        if not chunk:
            return

        self.content += chunk
        self.version += 1

    def complete(self) -> str:
        """Finish the stream and return the full response, leaving the accumulator idle."""

        content = self.content
        self.reset()
        return content

    def abort(self) -> None:
        """Stop the stream but keep what was received so far on display."""

        if self.status == "streaming":
            self.status = "aborted"
            self.version += 1

    def reset(self) -> None:
        self.thread_id = None
        self.content = ""
        self.status = "idle"
        self.version += 1

    def snapshot(self) -> StreamingMessage | None:
        if self.status == "idle" or not self.content:
            return None

        return StreamingMessage(thread_id=self.thread_id, content=self.content, aborted=self.status == "aborted")
