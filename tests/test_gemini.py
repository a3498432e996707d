"""Tests for GeminiProvider and its batch parser."""
import json

import pytest

from chatstream.chunker import chunk_deltas
from chatstream.models import Delta, ProviderConfig, ProviderType, Query
from chatstream.providers.gemini import (
    EMPTY_RESPONSE_PLACEHOLDER,
    GeminiBatchParser,
    GeminiProvider,
    extract_candidate_text,
)

pytestmark = pytest.mark.unit


def response(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


@pytest.fixture
def provider():
    return GeminiProvider()


@pytest.fixture
def config():
    return ProviderConfig(
        provider=ProviderType.GEMINI,
        api_key="AIza-test",
        model="gemini-2.0-flash",
        system_prompt="Be terse.",
    )


class TestGeminiRequest:
    """Test request construction."""

    def test_url_contains_model_and_key(self, provider, config):
        """Test the model- and key-parameterised endpoint."""
        request = provider.build_request(Query(text="hi"), config)

        assert request.url == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-2.0-flash:streamGenerateContent?key=AIza-test"
        )
        assert request.headers == {"Content-Type": "application/json"}
        assert "AIza-test" not in request.redacted_url()

    def test_body_with_system_instruction(self, provider, config):
        """Test the contents, system_instruction and generationConfig fields."""
        body = json.loads(provider.build_request(Query(text='say "x"'), config).body)

        assert body == {
            "system_instruction": {"parts": [{"text": "Be terse."}]},
            "contents": [{"role": "user", "parts": [{"text": 'say "x"'}]}],
            "generationConfig": {"responseMimeType": "text/plain"},
        }

    def test_body_without_system_instruction(self, provider, config):
        """Test that system_instruction is omitted without a system prompt."""
        config = config.model_copy(update={"system_prompt": None})
        body = json.loads(provider.build_request(Query(text="hi"), config).body)

        assert "system_instruction" not in body

    def test_is_batch_provider(self, provider):
        """Test that Gemini responses are read in full."""
        assert provider.streaming is False


class TestExtractCandidateText:
    """Test text extraction from one response object."""

    def test_first_part_of_first_candidate(self):
        """Test that only the first part of the first candidate is used."""
        obj = {"candidates": [
            {"content": {"parts": [{"text": "one"}, {"text": "two"}]}},
            {"content": {"parts": [{"text": "other"}]}},
        ]}

        assert extract_candidate_text(obj) == "one"

    @pytest.mark.parametrize("obj", [
        {},
        {"candidates": []},
        {"candidates": [{"finishReason": "STOP"}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"inlineData": {}}]}}]},
    ])
    def test_missing_text(self, obj):
        """Test that objects without text yield None."""
        assert extract_candidate_text(obj) is None


class TestGeminiBatchParser:
    """Test Gemini body parsing."""

    def test_json_array_body(self):
        """Test that an array of two objects yields their concatenated text."""
        parser = GeminiBatchParser()
        body = json.dumps([response("Hello, "), response("world.")], indent=2)

        deltas = parser.consume(body.encode())

        assert deltas == [Delta.text_delta("Hello, world."), Delta.end()]
        assert [c.text for c in chunk_deltas(deltas)] == ["Hello, world."]

    def test_newline_separated_body(self):
        """Test that newline-separated objects are parsed one per line."""
        parser = GeminiBatchParser()
        body = "\r\n".join([json.dumps(response("a")), "", "garbage", "{bad", json.dumps(response("b"))])

        assert parser.consume(body.encode()) == [Delta.text_delta("ab"), Delta.end()]

    def test_empty_body_yields_placeholder(self):
        """Test that an empty body produces exactly one placeholder chunk."""
        parser = GeminiBatchParser()

        deltas = parser.consume(b"")
        chunks = list(chunk_deltas(deltas))

        assert deltas == [Delta.placeholder_text(EMPTY_RESPONSE_PLACEHOLDER), Delta.end()]
        assert [c.text for c in chunks] == [EMPTY_RESPONSE_PLACEHOLDER]

    def test_objects_without_text_yield_placeholder(self):
        """Test that a body with no candidate text gets the placeholder."""
        parser = GeminiBatchParser()
        body = json.dumps([{"candidates": [{"finishReason": "SAFETY"}]}])

        assert parser.consume(body.encode())[0].text == EMPTY_RESPONSE_PLACEHOLDER

    def test_broken_array_falls_back_to_lines(self):
        """Test that a truncated array is scanned line by line."""
        parser = GeminiBatchParser()
        body = "[\n" + json.dumps(response("kept")) + ",\n{\"candidates\": ["

        assert parser.consume(body.encode())[0] == Delta.placeholder_text(EMPTY_RESPONSE_PLACEHOLDER)

        parser = GeminiBatchParser()
        body = "[" + json.dumps(response("kept")) + "\n" + json.dumps(response("!")) + "\n"

        assert parser.consume(body.encode())[0] == Delta.text_delta("!")

    def test_array_skips_non_objects(self):
        """Test that non-object array items are ignored."""
        parser = GeminiBatchParser()
        body = json.dumps([1, "x", response("ok")])

        assert parser.consume(body.encode())[0] == Delta.text_delta("ok")

    def test_long_text_split_into_bounded_chunks(self):
        """Test that a long batch answer is re-segmented by the chunker."""
        parser = GeminiBatchParser()
        text = " ".join(f"word{i}" for i in range(120))
        deltas = parser.consume(json.dumps([response(text)]).encode())

        chunks = list(chunk_deltas(deltas, max_length=250))

        assert len(chunks) == 4
        assert all(len(c.text) <= 250 for c in chunks)
        assert " ".join(c.text for c in chunks) == text

    def test_finish_after_consume_is_noop(self):
        """Test that finish adds nothing once the body was parsed."""
        parser = GeminiBatchParser()
        parser.consume(json.dumps([response("x")]).encode())

        assert parser.finish() == []

    def test_finish_without_body_yields_placeholder(self):
        """Test that finishing with no body still gives visible feedback."""
        parser = GeminiBatchParser()

        assert parser.finish() == [Delta.placeholder_text(EMPTY_RESPONSE_PLACEHOLDER), Delta.end()]
