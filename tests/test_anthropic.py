"""Tests for AnthropicProvider and its stream parser."""
import json

import pytest

from chatstream.chunker import chunk_deltas
from chatstream.models import Delta, DeltaKind, ProviderConfig, ProviderType, Query, StreamState
from chatstream.providers.anthropic import (
    ANTHROPIC_API_URL,
    AnthropicProvider,
    AnthropicStreamParser,
)

pytestmark = pytest.mark.unit


def frame(event: dict) -> bytes:
    """Encode one server-sent event the way the Messages API does."""
    return f"event: {event['type']}\ndata: {json.dumps(event, ensure_ascii=False)}\n\n".encode()


def text_frame(text: str) -> bytes:
    return frame({"type": "content_block_delta", "index": 0,
                  "delta": {"type": "text_delta", "text": text}})


BLOCK_STOP = frame({"type": "content_block_stop", "index": 0})
MESSAGE_STOP = frame({"type": "message_stop"})
PING = frame({"type": "ping"})


@pytest.fixture
def provider():
    return AnthropicProvider()


@pytest.fixture
def config():
    return ProviderConfig(
        provider=ProviderType.ANTHROPIC,
        api_key="sk-ant-test",
        model="claude-3-haiku-20240307",
        system_prompt='Be "brief"',
    )


class TestAnthropicRequest:
    """Test request construction."""

    def test_headers(self, provider, config):
        """Test the vendor auth and version headers."""
        request = provider.build_request(Query(text="hi"), config)

        assert request.url == ANTHROPIC_API_URL
        assert request.headers == {
            "content-type": "application/json",
            "x-api-key": "sk-ant-test",
            "anthropic-version": "2023-06-01",
        }

    def test_body_with_system_prompt(self, provider, config):
        """Test that the body carries model, message, system, stream and max_tokens."""
        request = provider.build_request(Query(text='Say "hello"'), config)
        body = json.loads(request.body)

        assert body == {
            "model": "claude-3-haiku-20240307",
            "messages": [{"role": "user", "content": 'Say "hello"'}],
            "system": 'Be "brief"',
            "stream": True,
            "max_tokens": 2000,
        }
        assert '\\"hello\\"' in request.body

    def test_body_without_system_prompt(self, provider, config):
        """Test that system is omitted when no prompt is configured."""
        config = config.model_copy(update={"system_prompt": None})
        body = json.loads(provider.build_request(Query(text="hi"), config).body)

        assert "system" not in body

    def test_redacted_headers_hide_key(self, provider, config):
        """Test that debug output never shows the API key."""
        request = provider.build_request(Query(text="hi"), config)

        assert request.redacted_headers()["x-api-key"] == "[API_KEY_HIDDEN]"

    def test_endpoint_override(self, provider, config):
        """Test that a configured endpoint template replaces the default."""
        config = config.model_copy(update={"endpoint": "http://localhost:9000/{model}"})

        assert provider.endpoint(config) == "http://localhost:9000/claude-3-haiku-20240307"


class TestAnthropicStreamParser:
    """Test Anthropic event parsing."""

    def test_content_delta_yields_text(self):
        """Test that a content_block_delta becomes one TEXT delta."""
        parser = AnthropicStreamParser()

        deltas = parser.consume(text_frame("Hello"))

        assert deltas == [Delta.text_delta("Hello")]

    def test_block_stop_flushes_and_message_stop_ends(self):
        """Test the block and message completion events."""
        parser = AnthropicStreamParser()

        deltas = parser.consume(text_frame("Hi") + BLOCK_STOP + MESSAGE_STOP)

        assert [d.kind for d in deltas] == [DeltaKind.TEXT, DeltaKind.FLUSH, DeltaKind.END]
        assert parser.ended

    def test_ping_and_empty_frames_ignored(self):
        """Test that heartbeats and blank data produce nothing."""
        parser = AnthropicStreamParser()

        assert parser.consume(PING + b"data: \n\n" + b": comment\n") == []

    def test_frame_split_across_reads(self):
        """Test that a partial frame is carried over to the next read."""
        parser = AnthropicStreamParser()
        raw = text_frame("split")

        assert parser.consume(raw[:20]) == []
        assert parser.consume(raw[20:]) == [Delta.text_delta("split")]

    def test_multibyte_character_split_across_reads(self):
        """Test that UTF-8 sequences split between reads are reassembled."""
        parser = AnthropicStreamParser()
        raw = text_frame("café")
        cut = raw.index("é".encode()) + 1

        deltas = parser.consume(raw[:cut]) + parser.consume(raw[cut:])

        assert deltas == [Delta.text_delta("café")]

    def test_malformed_frame_skipped(self, caplog):
        """Test that a bad frame mid-stream does not stop later frames."""
        parser = AnthropicStreamParser()

        deltas = parser.consume(
            text_frame("before ") + b"data: {not json\n\n" + text_frame("after")
        )

        assert deltas == [Delta.text_delta("before "), Delta.text_delta("after")]
        assert "Skipping malformed frame" in caplog.text

    def test_non_object_frame_skipped(self):
        """Test that JSON that is not an object counts as malformed."""
        parser = AnthropicStreamParser()

        assert parser.consume(b"data: [1, 2]\n") == []

    def test_error_event_ignored(self, caplog):
        """Test that an in-stream error event is logged and skipped."""
        parser = AnthropicStreamParser()

        deltas = parser.consume(frame({"type": "error", "error": {"type": "overloaded_error"}}))

        assert deltas == []
        assert "overloaded_error" in caplog.text

    def test_input_after_end_ignored(self):
        """Test that nothing is produced after message_stop."""
        parser = AnthropicStreamParser()
        parser.consume(MESSAGE_STOP)

        assert parser.consume(text_frame("late")) == []
        assert parser.finish() == []

    def test_finish_without_message_stop_ends(self):
        """Test that a truncated stream still ends with END."""
        parser = AnthropicStreamParser()
        parser.consume(text_frame("partial"))

        assert parser.finish() == [Delta.end()]

    def test_finish_parses_trailing_line_without_newline(self):
        """Test that a final frame missing its newline is still parsed."""
        parser = AnthropicStreamParser()
        raw = b'data: {"type": "message_stop"}'

        assert parser.consume(raw) == []
        assert parser.finish() == [Delta.end()]

    def test_line_buffer_lives_in_stream_state(self):
        """Test that partial lines are held in the query's StreamState."""
        state = StreamState()
        parser = AnthropicStreamParser(state=state)

        parser.consume(b"data: {\"type\"")

        assert bytes(state.line_buffer) == b"data: {\"type\""

    def test_undelimited_text_hard_break(self):
        """Test 260 undelimited characters then message_stop give two chunks."""
        parser = AnthropicStreamParser()
        raw = b"".join(text_frame("x" * 26) for _ in range(10)) + MESSAGE_STOP

        deltas = []
        for i in range(0, len(raw), 17):
            deltas.extend(parser.consume(raw[i:i + 17]))
        deltas.extend(parser.finish())
        chunks = list(chunk_deltas(deltas, max_length=250))

        assert [c.text for c in chunks] == ["x" * 250, "x" * 10]
