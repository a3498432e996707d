"""Re-segmentation of canonical deltas into display-sized chunks.

The chunker accumulates TEXT deltas into the query's StreamState buffer and
cuts it into chunks no longer than ``max_length``, preferring to end a chunk
after a sentence, then after a clause, then after a word. FLUSH and END deltas
drain whatever is buffered; END also marks the state done.
"""
import logging
from typing import Iterable, Iterator, List, Optional

from chatstream.models import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    Chunk,
    Delta,
    DeltaKind,
    StreamState,
)

logger = logging.getLogger(__name__)

# How far back from the window end a period or comma may sit and still be used.
SENTENCE_BREAK_WINDOW = 30
CLAUSE_BREAK_WINDOW = 20


def find_break_point(text: str, max_length: int) -> int:
    """Return the length of the next chunk to cut from ``text``.

    The result is always between 1 and ``max_length`` when ``text`` is
    longer than ``max_length``, and ``len(text)`` otherwise.
    """
    if len(text) <= max_length:
        return len(text)

    last_period = text.rfind(".", 0, max_length)
    if last_period >= 0 and last_period > max_length - SENTENCE_BREAK_WINDOW:
        return last_period + 1

    last_comma = text.rfind(",", 0, max_length)
    if last_comma >= 0 and last_comma > max_length - CLAUSE_BREAK_WINDOW:
        return last_comma + 1

    last_space = text.rfind(" ", 0, max_length)
    if last_space > 0:
        return last_space + 1

    return max_length


class Chunker:
    """Turns one query's delta sequence into ordered, de-duplicated chunks."""

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        state: Optional[StreamState] = None,
    ):
        if max_length < 1:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self.max_length = max_length
        self.state = state if state is not None else StreamState()

    @property
    def done(self) -> bool:
        return self.state.done

    def push(self, delta: Delta) -> List[Chunk]:
        """Feed one delta and return the chunks it completes."""
        if self.state.done:
            logger.debug("Ignoring %s delta after end of stream", delta.kind.value)
            return []

        if delta.kind is DeltaKind.TEXT:
            self.state.buffer += delta.text
            return self._drain(lambda buffer: len(buffer) >= self.max_length)

        chunks = self._drain(lambda buffer: len(buffer) > 0)
        if delta.kind is DeltaKind.END:
            self.state.done = True
        return chunks

    def notice(self, text: str, sequence: Optional[int] = None) -> Optional[Chunk]:
        """Emit a service message (e.g. a failure description) as the next chunk.

        Notices are truncated to the maximum length and are never suppressed
        as duplicates. Passing ``sequence`` renumbers from that point, for
        when chunks already numbered were never handed off.
        """
        message = text.strip()[: self.max_length].strip()
        if not message:
            return None
        if sequence is not None:
            self.state.sequence = sequence
        return self._make_chunk(message)

    def _drain(self, should_cut) -> List[Chunk]:
        chunks: List[Chunk] = []
        while should_cut(self.state.buffer):
            buffer = self.state.buffer
            break_point = find_break_point(buffer, self.max_length)
            self.state.buffer = buffer[break_point:]
            chunk = self._emit(buffer[:break_point])
            if chunk is not None:
                chunks.append(chunk)
        return chunks

    def _emit(self, text: str) -> Optional[Chunk]:
        text = text.strip()
        if not text:
            return None
        if text == self.state.last_emitted:
            logger.debug("Suppressing duplicate chunk: %r", text)
            return None
        return self._make_chunk(text)

    def _make_chunk(self, text: str) -> Chunk:
        chunk = Chunk(text=text, sequence=self.state.sequence)
        self.state.sequence += 1
        self.state.last_emitted = text
        return chunk


def chunk_deltas(
    deltas: Iterable[Delta], max_length: int = DEFAULT_MAX_MESSAGE_LENGTH
) -> Iterator[Chunk]:
    """Run a complete delta sequence through a fresh chunker."""
    chunker = Chunker(max_length=max_length)
    for delta in deltas:
        yield from chunker.push(delta)
