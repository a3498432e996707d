"""OpenAI Chat Completions provider (choice-delta stream)."""
from typing import Any, Dict, List

from chatstream.errors import MalformedFrameError
from chatstream.models import Delta, ProviderConfig, ProviderType, Query, StreamState
from chatstream.providers.base import LineStreamParser, LLMProvider

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
DONE_SENTINEL = "[DONE]"


class OpenAIStreamParser(LineStreamParser):
    """Parses OpenAI chat completion chunks.

    Only the ``[DONE]`` sentinel ends the stream. A non-null ``finish_reason``
    flushes pending text but does not end it, since further frames may follow.
    """

    def parse_frame(self, data: str) -> List[Delta]:
        if data == DONE_SENTINEL:
            return [Delta.end()]

        frame = self.decode_json_object(data)
        choices = frame.get("choices")
        if not isinstance(choices, list) or not choices:
            return []
        choice = choices[0]
        if not isinstance(choice, dict):
            raise MalformedFrameError(f"choice is not an object: {data[:200]}")

        deltas: List[Delta] = []
        delta = choice.get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            deltas.append(Delta.text_delta(delta["content"]))
        if choice.get("finish_reason") is not None:
            deltas.append(Delta.flush())
        return deltas


class OpenAIProvider(LLMProvider):
    """GPT models via the Chat Completions API with ``stream: true``."""

    provider_type = ProviderType.OPENAI
    display_name = "OpenAI"
    default_endpoint = OPENAI_API_URL

    def build_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }

    def build_body(self, query: Query, config: ProviderConfig) -> Dict[str, Any]:
        messages = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": query.text})
        return {
            "model": config.model,
            "messages": messages,
            "stream": True,
            "max_tokens": config.max_tokens,
        }

    def new_parser(self, state: StreamState, debug: bool = False) -> OpenAIStreamParser:
        return OpenAIStreamParser(state=state, debug=debug)
