import asyncio
import contextlib
from collections.abc import Callable
from logging import Logger
from typing import Any

from fastmcp.utilities.logging import get_logger
from pydantic import BaseModel, ValidationError

from github_chat_sync.clients.errors.chat import AuthenticationError, TransportError
from github_chat_sync.clients.shape import ShapeStream
from github_chat_sync.models.shape import ChangeMessage, ShapeBatch

DEFAULT_RECONNECT_DELAY = 1.0

type Predicate[T] = Callable[[T], bool]
type OrderKey[T] = Callable[[T], Any]
type Listener = Callable[[], None]


def match_nothing(_: Any) -> bool:  # pyright: ignore[reportAny]
    return False


def match_everything(_: Any) -> bool:  # pyright: ignore[reportAny]
    return True


def insertion_order(_: Any) -> int:  # pyright: ignore[reportAny]
    return 0


def where_equals(field: str, value: Any) -> Predicate[BaseModel]:  # pyright: ignore[reportAny]
    def predicate(row: BaseModel) -> bool:
        return getattr(row, field) == value  # pyright: ignore[reportAny]

    return predicate


class LiveCollection[T: BaseModel]:
    """A filtered, ordered view of a replica that stays current as the replica changes.

    Rows are filtered when they are read, so changing the filter replaces the previous one entirely and updates
    that arrive for rows outside the current filter never show up in the result."""

    replica: "ShapeReplica[T]"
    where: Predicate[T]
    order_by: OrderKey[T]
    generation: int

    def __init__(self, replica: "ShapeReplica[T]", where: Predicate[T], order_by: OrderKey[T]):
        self.replica = replica
        self.where = where
        self.order_by = order_by
        self.generation = 0

        self._listeners: list[Listener] = []
        self._cache_version: tuple[int, int] | None = None
        self._cache: tuple[T, ...] = ()
        self._unsubscribe: Callable[[], None] = replica.on_change(self._notify)

    @property
    def version(self) -> tuple[int, int]:
        return (self.replica.version, self.generation)

    def rows(self) -> tuple[T, ...]:
        if self._cache_version != self.version:
            self._cache = tuple(sorted((row for row in self.replica.rows() if self.where(row)), key=self.order_by))
            self._cache_version = self.version

        return self._cache

    def reparameterize(self, where: Predicate[T], order_by: OrderKey[T] | None = None) -> None:
        self.where = where

        if order_by is not None:
            self.order_by = order_by

        self.generation += 1
        self._notify()

    def on_change(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()


class ShapeReplica[T: BaseModel]:
    """A local, continuously updated copy of a server table delivered through a shape stream.

    Changes are staged as they arrive and committed together once the stream reports that it is up to date, so
    readers never observe a half-applied sync."""

    name: str
    stream: ShapeStream
    row_model: type[T]
    logger: Logger
    reconnect_delay: float

    version: int
    synced: asyncio.Event
    denied: bool

    def __init__(
        self,
        name: str,
        stream: ShapeStream,
        row_model: type[T],
        logger: Logger | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ):
        self.name = name
        self.stream = stream
        self.row_model = row_model
        self.logger = logger or get_logger(name=__name__)
        self.reconnect_delay = reconnect_delay

        self.version = 0
        self.synced = asyncio.Event()
        self.denied = False

        self._rows: dict[str, T] = {}
        self._staged_changes: list[ChangeMessage] = []
        self._refetching: bool = False
        self._listeners: list[Listener] = []
        self._update_event: asyncio.Event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._rows)

    def rows(self) -> tuple[T, ...]:
        return tuple(self._rows.values())

    def subscribe(self, where: Predicate[T] = match_everything, order_by: OrderKey[T] = insertion_order) -> LiveCollection[T]:
        return LiveCollection[T](replica=self, where=where, order_by=order_by)

    def on_change(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, batch: ShapeBatch) -> bool:
        """Stage the changes of a batch and commit them if the batch brings the replica up to date.

        Returns whether a commit happened."""

        if batch.must_refetch:
            self.logger.info(f"Shape replica {self.name} must refetch, keeping {len(self._rows)} rows until the refetch completes")
            self._staged_changes = []
            self._refetching = True

        self._staged_changes.extend(batch.changes)

        if not batch.up_to_date:
            return False

        self._commit()

        return True

    def _commit(self) -> None:
        rows: dict[str, T] = {} if self._refetching else dict(self._rows)

        for change in self._staged_changes:
            self._apply_change(rows=rows, change=change)

        changed = rows != self._rows or not self.synced.is_set()

        self._staged_changes = []
        self._refetching = False
        self._rows = rows

        self.synced.set()

        if not changed:
            return

        self.version += 1

        self.logger.debug(f"Shape replica {self.name} committed version {self.version} with {len(self._rows)} rows")

        for listener in list(self._listeners):
            listener()

        update_event, self._update_event = self._update_event, asyncio.Event()
        update_event.set()

    def _apply_change(self, rows: dict[str, T], change: ChangeMessage) -> None:
        if change.operation == "delete":
            _ = rows.pop(change.key, None)
            return

        value: dict[str, Any] = change.value

        if change.operation == "update" and (existing := rows.get(change.key)):
            value = {**existing.model_dump(), **change.value}

        try:
            rows[change.key] = self.row_model.model_validate(value)
        except ValidationError as e:
            self.logger.warning(f"Shape replica {self.name} skipped {change.operation} of {change.key}, the row is malformed: {e}")

    async def wait_for_update(self, after_version: int, timeout: float | None = None) -> int:
        """Wait until the replica has committed a version newer than `after_version` and return it."""

        async def wait() -> None:
            while self.version <= after_version:
                _ = await self._update_event.wait()

        await asyncio.wait_for(wait(), timeout=timeout)

        return self.version

    async def run(self) -> None:
        """Follow the stream until it ends.

        A session without access to the shape leaves the replica empty instead of surfacing an error, so guests see
        an empty collection. Connection failures are retried from the last offset."""

        self.logger.info(f"Starting shape replica {self.name}")

        while True:
            try:
                async for batch in self.stream.batches():
                    _ = self.apply(batch)
            except AuthenticationError as e:
                self.logger.debug(f"Shape replica {self.name} is not available to this session, leaving it empty: {e}")
                self.denied = True
                return
            except TransportError as e:
                self.logger.warning(f"Shape replica {self.name} lost its connection, reconnecting in {self.reconnect_delay}s: {e}")
                await asyncio.sleep(self.reconnect_delay)
                continue

            self.logger.info(f"Shape replica {self.name} stream ended")
            return

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"shape-replica-{self.name}")

        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return

        task, self._task = self._task, None

        _ = task.cancel()

        with contextlib.suppress(asyncio.CancelledError):
            await task
