"""Google Gemini provider.

The incremental endpoint is called, but its body is read in full and parsed in
one pass: it arrives either as a JSON array of response objects or as
newline-separated JSON objects. The accumulated text is then replayed as a
single TEXT delta followed by END.
"""
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from chatstream.errors import EmptyResponseError, MalformedFrameError
from chatstream.models import Delta, ProviderConfig, ProviderType, Query, StreamState
from chatstream.providers.base import LLMProvider, VendorParser

logger = logging.getLogger(__name__)

GEMINI_API_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "{model}:streamGenerateContent?key={api_key}"
)
EMPTY_RESPONSE_PLACEHOLDER = "(Received empty response from Gemini)"

_LINE_SPLIT = re.compile(r"\r?\n")


def extract_candidate_text(response: Dict[str, Any]) -> Optional[str]:
    """Return the text of the first part of the first candidate, if any."""
    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        return None
    part = parts[0]
    if isinstance(part, dict) and isinstance(part.get("text"), str):
        return part["text"]
    return None


class GeminiBatchParser(VendorParser):
    """Parses a complete Gemini response body."""

    def consume(self, data: bytes) -> List[Delta]:
        if self.ended:
            return []
        body = data.decode("utf-8", errors="replace")
        if self.debug:
            logger.debug("Full response body: %s", body)

        self.ended = True
        try:
            text = self._accumulate_text(body)
        except EmptyResponseError as e:
            logger.warning("%s; substituting placeholder", e)
            return [Delta.placeholder_text(EMPTY_RESPONSE_PLACEHOLDER), Delta.end()]
        return [Delta.text_delta(text), Delta.end()]

    def finish(self) -> List[Delta]:
        if not self.ended:
            # No body was ever consumed.
            return self.consume(b"")
        return []

    def _accumulate_text(self, body: str) -> str:
        parts = []
        for obj in self._iter_objects(body):
            text = extract_candidate_text(obj)
            if text:
                parts.append(text)
        if not parts:
            raise EmptyResponseError("no candidate text in Gemini response")
        return "".join(parts)

    def _iter_objects(self, body: str) -> Iterator[Dict[str, Any]]:
        stripped = body.strip()
        if stripped.startswith("["):
            try:
                items = json.loads(stripped)
            except json.JSONDecodeError as e:
                logger.warning("Response array is not valid JSON (%s); scanning lines", e.msg)
            else:
                if isinstance(items, list):
                    for item in items:
                        if isinstance(item, dict):
                            yield item
                    return
        for line in _LINE_SPLIT.split(body):
            try:
                yield self._decode_line(line)
            except MalformedFrameError as e:
                if self.debug:
                    logger.debug("Skipping line: %s", e)

    @staticmethod
    def _decode_line(line: str) -> Dict[str, Any]:
        line = line.strip()
        if not line.startswith("{"):
            raise MalformedFrameError(f"not a JSON object: {line[:200]!r}")
        try:
            value = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedFrameError(f"invalid JSON ({e.msg}): {line[:200]}") from e
        if not isinstance(value, dict):
            raise MalformedFrameError(f"not a JSON object: {line[:200]!r}")
        return value


class GeminiProvider(LLMProvider):
    """Gemini models via generativelanguage.googleapis.com."""

    provider_type = ProviderType.GEMINI
    display_name = "Gemini"
    default_endpoint = GEMINI_API_URL
    streaming = False

    def build_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_body(self, query: Query, config: ProviderConfig) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if config.system_prompt:
            body["system_instruction"] = {"parts": [{"text": config.system_prompt}]}
        body["contents"] = [{"role": "user", "parts": [{"text": query.text}]}]
        body["generationConfig"] = {"responseMimeType": "text/plain"}
        return body

    def new_parser(self, state: StreamState, debug: bool = False) -> GeminiBatchParser:
        return GeminiBatchParser(state=state, debug=debug)
