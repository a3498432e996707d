"""Ordered hand-off of chunks to the display sink.

The sink may only be called on its owner context (a UI thread, an event loop,
a game server tick). The dispatcher never calls the sink directly; it enqueues
one delivery per chunk on the owner context, in sequence order.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from typing import Callable, Optional, Protocol

from chatstream.models import Chunk

logger = logging.getLogger(__name__)


class MessageSink(Protocol):
    """Host display primitive."""

    def deliver(self, text: str) -> None:
        ...


class OwnerContext(ABC):
    """Somewhere to run sink deliveries, in submission order."""

    @abstractmethod
    def execute(self, fn: Callable[[], None]) -> None:
        """Enqueue ``fn``. Must return only after ``fn`` is queued."""
        ...


class InlineOwner(OwnerContext):
    """Runs deliveries immediately on the calling thread."""

    def execute(self, fn: Callable[[], None]) -> None:
        fn()


class EventLoopOwner(OwnerContext):
    """Runs deliveries on an asyncio event loop, from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def execute(self, fn: Callable[[], None]) -> None:
        self.loop.call_soon_threadsafe(fn)


class ExecutorOwner(OwnerContext):
    """Runs deliveries on an executor.

    Ordering holds only for single-worker executors.
    """

    def __init__(self, executor: Executor):
        self.executor = executor

    def execute(self, fn: Callable[[], None]) -> None:
        self.executor.submit(fn)


class Dispatcher:
    """Delivers one query's chunks to the sink on its owner context."""

    def __init__(
        self,
        sink: MessageSink,
        owner: OwnerContext,
        cancel: Optional[threading.Event] = None,
    ):
        self.sink = sink
        self.owner = owner
        self._next_sequence = 0
        self._cancelled = cancel if cancel is not None else threading.Event()

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop delivering. Deliveries already queued but not yet run are dropped."""
        self._cancelled.set()

    def dispatch(self, chunk: Chunk) -> bool:
        """Queue ``chunk`` for delivery. Returns False if cancelled.

        Raises:
            ValueError: If ``chunk`` is not the next chunk in sequence.
        """
        if chunk.sequence != self._next_sequence:
            raise ValueError(
                f"Chunk {chunk.sequence} dispatched out of order; "
                f"expected {self._next_sequence}"
            )
        self._next_sequence += 1
        if self.cancelled:
            logger.debug("Dropping chunk %d after cancellation", chunk.sequence)
            return False

        self.owner.execute(lambda: self._deliver(chunk))
        return True

    def _deliver(self, chunk: Chunk) -> None:
        if self.cancelled:
            return
        self.sink.deliver(chunk.text)
