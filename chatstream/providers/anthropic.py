"""Anthropic Messages API provider (token-event stream)."""
import logging
from typing import Any, Dict, List

from chatstream.models import Delta, ProviderConfig, ProviderType, Query, StreamState
from chatstream.providers.base import LineStreamParser, LLMProvider

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicStreamParser(LineStreamParser):
    """Parses Anthropic server-sent events.

    Event handling:
    - content_block_delta: text fragment
    - content_block_stop: flush pending text
    - message_stop: end of stream
    - ping, message_start, message_delta, content_block_start: ignored
    - error: logged, ignored
    """

    def parse_frame(self, data: str) -> List[Delta]:
        event = self.decode_json_object(data)
        event_type = event.get("type")

        if event_type == "content_block_delta":
            delta = event.get("delta")
            if isinstance(delta, dict) and isinstance(delta.get("text"), str):
                return [Delta.text_delta(delta["text"])]
            return []
        if event_type == "content_block_stop":
            return [Delta.flush()]
        if event_type == "message_stop":
            return [Delta.end()]
        if event_type == "error":
            logger.warning("Anthropic stream reported an error: %s", event.get("error"))
        return []


class AnthropicProvider(LLMProvider):
    """Claude models via the Messages API with ``stream: true``."""

    provider_type = ProviderType.ANTHROPIC
    display_name = "Claude"
    default_endpoint = ANTHROPIC_API_URL

    def build_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(self, query: Query, config: ProviderConfig) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": config.model,
            "messages": [{"role": "user", "content": query.text}],
        }
        if config.system_prompt:
            body["system"] = config.system_prompt
        body["stream"] = True
        body["max_tokens"] = config.max_tokens
        return body

    def new_parser(self, state: StreamState, debug: bool = False) -> AnthropicStreamParser:
        return AnthropicStreamParser(state=state, debug=debug)
