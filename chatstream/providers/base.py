"""Base provider and parser interfaces."""
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from chatstream.errors import MalformedFrameError
from chatstream.models import (
    Delta,
    DeltaKind,
    ProviderConfig,
    ProviderType,
    Query,
    StreamState,
)
from chatstream.transport import ProviderRequest

logger = logging.getLogger(__name__)


class VendorParser(ABC):
    """Converts one vendor's response format into canonical deltas.

    A parser instance belongs to exactly one query. ``consume`` is called with
    each piece of transport output, ``finish`` once the input is exhausted.
    After the END delta has been produced further input is ignored.
    """

    def __init__(self, state: Optional[StreamState] = None, debug: bool = False):
        self.state = state if state is not None else StreamState()
        self.debug = debug
        self.ended = False

    @abstractmethod
    def consume(self, data: bytes) -> List[Delta]:
        """Parse the next piece of raw input."""
        ...

    def finish(self) -> List[Delta]:
        """Signal end of input. Guarantees the delta sequence ends with END."""
        if self.ended:
            return []
        logger.debug("Input ended without an end-of-stream marker")
        self.ended = True
        return [Delta.end()]

    def _collect(self, deltas: List[Delta], delta: Optional[Delta]) -> None:
        if delta is None or self.ended:
            return
        if delta.kind is DeltaKind.TEXT and not delta.text:
            return
        if delta.kind is DeltaKind.END:
            self.ended = True
        deltas.append(delta)


class LineStreamParser(VendorParser):
    """Parser for newline-delimited ``data:`` event streams.

    Bytes are buffered in the query's StreamState until a newline arrives, so
    frames (and multi-byte characters) split across reads are reassembled
    before decoding.
    """

    DATA_PREFIX = "data:"

    def consume(self, data: bytes) -> List[Delta]:
        deltas: List[Delta] = []
        if self.ended:
            return deltas

        buffer = self.state.line_buffer
        buffer.extend(data)
        while not self.ended:
            newline = buffer.find(b"\n")
            if newline < 0:
                break
            raw_line = bytes(buffer[:newline])
            del buffer[: newline + 1]
            self._handle_line(raw_line, deltas)
        return deltas

    def finish(self) -> List[Delta]:
        deltas: List[Delta] = []
        buffer = self.state.line_buffer
        if buffer and not self.ended:
            raw_line = bytes(buffer)
            buffer.clear()
            self._handle_line(raw_line, deltas)
        deltas.extend(super().finish())
        return deltas

    def _handle_line(self, raw_line: bytes, deltas: List[Delta]) -> None:
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
        if not line.strip():
            return
        if self.debug:
            logger.debug("Received line: %s", line)
        if not line.startswith(self.DATA_PREFIX):
            return

        data = line[len(self.DATA_PREFIX):].strip()
        if not data:
            return
        try:
            for delta in self.parse_frame(data):
                self._collect(deltas, delta)
        except MalformedFrameError as e:
            logger.warning("Skipping malformed frame: %s", e)

    @abstractmethod
    def parse_frame(self, data: str) -> List[Delta]:
        """Translate one ``data:`` payload into deltas.

        Raises:
            MalformedFrameError: The payload is not a well-formed record.
        """
        ...

    @staticmethod
    def decode_json_object(data: str) -> Dict[str, Any]:
        """Decode a frame payload that must be a JSON object."""
        try:
            value = json.loads(data)
        except json.JSONDecodeError as e:
            raise MalformedFrameError(f"invalid JSON ({e.msg}): {data[:200]}") from e
        if not isinstance(value, dict):
            raise MalformedFrameError(f"expected a JSON object: {data[:200]}")
        return value


class LLMProvider(ABC):
    """One LLM vendor: how to build its request and how to read its response.

    Providers are stateless; per-query state lives in the parser returned by
    ``new_parser``.
    """

    provider_type: ProviderType
    display_name: str
    default_endpoint: str
    streaming: bool = True

    def endpoint(self, config: ProviderConfig) -> str:
        template = config.endpoint or self.default_endpoint
        return template.format(model=config.model, api_key=config.api_key)

    def build_request(self, query: Query, config: ProviderConfig) -> ProviderRequest:
        """Build the HTTP request for ``query`` from the config snapshot."""
        return ProviderRequest(
            url=self.endpoint(config),
            headers=self.build_headers(config),
            body=json.dumps(self.build_body(query, config), ensure_ascii=False),
        )

    @abstractmethod
    def build_headers(self, config: ProviderConfig) -> Dict[str, str]:
        ...

    @abstractmethod
    def build_body(self, query: Query, config: ProviderConfig) -> Dict[str, Any]:
        ...

    @abstractmethod
    def new_parser(self, state: StreamState, debug: bool = False) -> VendorParser:
        """Create the parser for one query's response."""
        ...
