"""Streams LLM answers to a chat-style display in bounded chunks."""
from chatstream.chunker import Chunker, find_break_point
from chatstream.config import load_config
from chatstream.dispatcher import (
    Dispatcher,
    EventLoopOwner,
    ExecutorOwner,
    InlineOwner,
    OwnerContext,
)
from chatstream.errors import (
    EmptyResponseError,
    MalformedFrameError,
    MissingApiKeyError,
    ProviderError,
    ProviderHttpError,
    ProviderTransportError,
)
from chatstream.models import Chunk, Delta, DeltaKind, ProviderConfig, ProviderType, Query
from chatstream.service import ChatService, QueryOutcome

__all__ = [
    "ChatService",
    "Chunk",
    "Chunker",
    "Delta",
    "DeltaKind",
    "Dispatcher",
    "EmptyResponseError",
    "EventLoopOwner",
    "ExecutorOwner",
    "InlineOwner",
    "MalformedFrameError",
    "MissingApiKeyError",
    "OwnerContext",
    "ProviderConfig",
    "ProviderError",
    "ProviderHttpError",
    "ProviderTransportError",
    "ProviderType",
    "Query",
    "QueryOutcome",
    "find_break_point",
    "load_config",
]
