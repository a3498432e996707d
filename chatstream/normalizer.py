"""Uniform delta stream over every provider's transport and parser."""
import logging
import threading
from contextlib import aclosing
from typing import AsyncIterator, Optional

from chatstream.models import Delta, StreamState
from chatstream.providers.base import LLMProvider
from chatstream.transport import HttpTransport, ProviderRequest

logger = logging.getLogger(__name__)


async def iter_deltas(
    provider: LLMProvider,
    request: ProviderRequest,
    transport: HttpTransport,
    state: StreamState,
    debug: bool = False,
    cancel: Optional[threading.Event] = None,
) -> AsyncIterator[Delta]:
    """Send ``request`` and yield the provider's response as canonical deltas.

    Streaming providers are parsed as bytes arrive; batch providers once the
    whole body is in. The sequence always ends with an END delta unless the
    transport raises or ``cancel`` is set.
    """
    parser = provider.new_parser(state, debug=debug)

    if provider.streaming:
        async with aclosing(transport.stream(request, cancel=cancel)) as reads:
            async for data in reads:
                for delta in parser.consume(data):
                    yield delta
                if parser.ended:
                    break
    else:
        body = await transport.fetch(request)
        for delta in parser.consume(body.encode("utf-8")):
            yield delta

    if cancel is not None and cancel.is_set():
        return
    for delta in parser.finish():
        yield delta
