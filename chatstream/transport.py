"""HTTP transport for provider requests.

One request per query, no retries. Streaming providers read the body as raw
bytes in whatever pieces the network delivers; batch providers get the full
body at once.
"""
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

import httpx

from chatstream.errors import ProviderHttpError, ProviderTransportError
from chatstream.models import DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

_SECRET_HEADERS = {"x-api-key", "authorization"}
_KEY_PARAM = re.compile(r"([?&]key=)[^&]+")


@dataclass(frozen=True)
class ProviderRequest:
    """A fully built provider request: POST ``body`` to ``url``."""
    url: str
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    def redacted_url(self) -> str:
        return _KEY_PARAM.sub(r"\1[API_KEY_HIDDEN]", self.url)

    def redacted_headers(self) -> Dict[str, str]:
        return {
            name: "[API_KEY_HIDDEN]" if name.lower() in _SECRET_HEADERS else value
            for name, value in self.headers.items()
        }


class HttpTransport:
    """Sends provider requests with httpx.

    Args:
        timeout_seconds: Timeout applied to connect and read operations.
        transport: Optional httpx transport, used to swap the network layer.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def stream(
        self,
        request: ProviderRequest,
        cancel: Optional[threading.Event] = None,
    ) -> AsyncIterator[bytes]:
        """Yield the response body as it arrives.

        Raises:
            ProviderHttpError: The provider answered with a non-2xx status.
            ProviderTransportError: The connection failed or timed out.
        """
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", request.url, headers=request.headers, content=request.body
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        raise ProviderHttpError(
                            response.status_code, body.decode("utf-8", errors="replace")
                        )
                    async for data in response.aiter_bytes():
                        if cancel is not None and cancel.is_set():
                            logger.info("Stream from %s cancelled", request.redacted_url())
                            return
                        yield data
        except httpx.HTTPError as exc:
            raise ProviderTransportError(
                f"Request to {request.redacted_url()} failed: {exc!r}"
            ) from exc

    async def fetch(self, request: ProviderRequest) -> str:
        """Return the complete response body.

        Raises:
            ProviderHttpError: The provider answered with a non-2xx status.
            ProviderTransportError: The connection failed or timed out.
        """
        try:
            async with self._client() as client:
                response = await client.post(
                    request.url, headers=request.headers, content=request.body
                )
        except httpx.HTTPError as exc:
            raise ProviderTransportError(
                f"Request to {request.redacted_url()} failed: {exc!r}"
            ) from exc

        if not response.is_success:
            raise ProviderHttpError(response.status_code, response.text)
        return response.text
