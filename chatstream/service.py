"""Query execution: transport → parser → chunker → dispatcher.

Each query runs as its own unit of work with its own StreamState. Provider
failures end the query and are shown to the user as one short notice chunk.
"""
import asyncio
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from chatstream.chunker import Chunker
from chatstream.config import PROVIDER_ENV_VARS, has_valid_api_key
from chatstream.dispatcher import Dispatcher, InlineOwner, MessageSink, OwnerContext
from chatstream.errors import (
    MissingApiKeyError,
    ProviderError,
    ProviderHttpError,
    ProviderTransportError,
)
from chatstream.models import Chunk, DeltaKind, ProviderConfig, Query, StreamState
from chatstream.normalizer import iter_deltas
from chatstream.providers.base import LLMProvider
from chatstream.providers.registry import ProviderRegistry, default_registry
from chatstream.transport import HttpTransport, ProviderRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass
class QueryOutcome:
    """What happened to one query."""
    request_id: str
    chunks: List[Chunk] = field(default_factory=list)
    error: Optional[Exception] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def describe_failure(error: Exception, name: str) -> str:
    """One-line, user-facing description of a failed query against ``name``."""
    if isinstance(error, MissingApiKeyError):
        return str(error)
    if isinstance(error, ProviderHttpError):
        return f"Error talking to {name}: {error}"
    if isinstance(error, ProviderTransportError):
        return f"Error talking to {name}: could not reach the API (connection failed or timed out)"
    if isinstance(error, ProviderError):
        return f"Error talking to {name}: {error}"
    return f"Error talking to {name}: unexpected failure"


class ChatService:
    """Runs queries against the configured provider and streams answers to a sink.

    Args:
        sink: Host display primitive, only ever called through ``owner``.
        owner: Owner context of the sink. Defaults to running deliveries inline.
        registry: Provider registry. Defaults to the built-in providers.
        http_transport: Optional httpx transport, used to swap the network layer.
        max_workers: Worker threads used by ``submit``.
    """

    def __init__(
        self,
        sink: MessageSink,
        owner: Optional[OwnerContext] = None,
        registry: Optional[ProviderRegistry] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self._sink = sink
        self._owner = owner or InlineOwner()
        self._registry = registry or default_registry()
        self._http_transport = http_transport
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="chatstream-query"
        )

    def __enter__(self) -> "ChatService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Wait for submitted queries and release the worker threads."""
        self._executor.shutdown(wait=True)

    def submit(
        self,
        query: Query,
        config: ProviderConfig,
        cancel: Optional[threading.Event] = None,
    ) -> "Future[QueryOutcome]":
        """Run a query on a worker thread; returns immediately."""
        return self._executor.submit(lambda: asyncio.run(self.run(query, config, cancel)))

    async def run(
        self,
        query: Query,
        config: ProviderConfig,
        cancel: Optional[threading.Event] = None,
    ) -> QueryOutcome:
        """Run one query to completion, delivering chunks as they are produced.

        Never raises for provider or sink failures: they are logged, shown to
        the user as a single notice and recorded on the returned outcome.
        """
        request_id = str(uuid.uuid4())[:8]
        outcome = QueryOutcome(request_id=request_id)
        state = StreamState()
        chunker = Chunker(max_length=config.max_message_length, state=state)
        dispatcher = Dispatcher(self._sink, self._owner, cancel=cancel)
        name = config.provider.value

        logger.info(
            "[%s] Query: provider=%s model=%s",
            request_id, config.provider.value, config.model,
        )

        try:
            provider = self._registry.get(config.provider)
            name = provider.display_name
            request = self._prepare(provider, query, config, request_id)
            deltas = iter_deltas(
                provider,
                request,
                self._transport(config),
                state,
                debug=config.debug,
                cancel=cancel,
            )
            async with aclosing(deltas):
                async for delta in deltas:
                    for chunk in chunker.push(delta):
                        if not dispatcher.dispatch(chunk):
                            break
                        outcome.chunks.append(chunk)
                    if dispatcher.cancelled:
                        break
        except ProviderError as e:
            logger.error("[%s] %s request failed: %s", request_id, name, e)
            outcome.error = e
            self._notify(chunker, dispatcher, describe_failure(e, name), outcome)
        except Exception as e:
            logger.exception("[%s] Unexpected error while handling query", request_id)
            outcome.error = e
            self._notify(chunker, dispatcher, describe_failure(e, name), outcome)

        outcome.cancelled = dispatcher.cancelled
        if outcome.cancelled:
            logger.info("[%s] Query cancelled after %d chunks", request_id, len(outcome.chunks))
        else:
            logger.info("[%s] Query finished with %d chunks", request_id, len(outcome.chunks))
        return outcome

    async def complete(self, query: Query, config: ProviderConfig) -> str:
        """Return the whole answer as one string, without chunking or delivery.

        Raises:
            MissingApiKeyError: No usable API key is configured.
            ProviderHttpError: The provider answered with a non-2xx status.
            ProviderTransportError: The connection failed or timed out.
        """
        request_id = str(uuid.uuid4())[:8]
        provider = self._registry.get(config.provider)
        request = self._prepare(provider, query, config, request_id)
        parts = []
        async for delta in iter_deltas(
            provider, request, self._transport(config), StreamState(), debug=config.debug
        ):
            # Placeholders are for display only; an empty answer stays empty.
            if delta.kind is DeltaKind.TEXT and not delta.placeholder:
                parts.append(delta.text)
        return "".join(parts)

    def _prepare(
        self,
        provider: LLMProvider,
        query: Query,
        config: ProviderConfig,
        request_id: str,
    ) -> ProviderRequest:
        if not has_valid_api_key(config):
            key_var, _ = PROVIDER_ENV_VARS[config.provider]
            raise MissingApiKeyError(
                f"No API key configured for {provider.display_name}. Set {key_var}."
            )
        request = provider.build_request(query, config)
        if config.debug:
            logger.debug(
                "[%s] POST %s headers=%s body=%s",
                request_id, request.redacted_url(), request.redacted_headers(), request.body,
            )
        return request

    def _transport(self, config: ProviderConfig) -> HttpTransport:
        return HttpTransport(
            timeout_seconds=config.timeout_seconds, transport=self._http_transport
        )

    @staticmethod
    def _notify(
        chunker: Chunker, dispatcher: Dispatcher, message: str, outcome: QueryOutcome
    ) -> None:
        # Chunks numbered by the chunker but never dispatched are skipped.
        chunk = chunker.notice(message, sequence=dispatcher.next_sequence)
        if chunk is None:
            return
        try:
            delivered = dispatcher.dispatch(chunk)
        except Exception:
            logger.exception("[%s] Could not deliver error notice", outcome.request_id)
            return
        if delivered:
            outcome.chunks.append(chunk)
