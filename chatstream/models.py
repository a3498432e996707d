"""Core data models for the chatstream pipeline."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_MESSAGE_LENGTH = 250
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TIMEOUT_SECONDS = 120.0


class ProviderType(str, Enum):
    """Supported LLM vendors."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GEMINI = "gemini"


class DeltaKind(str, Enum):
    """Kinds of canonical delta produced by vendor parsers."""
    TEXT = "text"
    FLUSH = "flush"
    END = "end"


@dataclass(frozen=True)
class Delta:
    """One increment of model output, or a flush/end marker.

    ``placeholder`` marks display-only text standing in for a missing answer.
    """
    kind: DeltaKind
    text: str = ""
    placeholder: bool = False

    @classmethod
    def text_delta(cls, text: str) -> "Delta":
        return cls(kind=DeltaKind.TEXT, text=text)

    @classmethod
    def placeholder_text(cls, text: str) -> "Delta":
        return cls(kind=DeltaKind.TEXT, text=text, placeholder=True)

    @classmethod
    def flush(cls) -> "Delta":
        return cls(kind=DeltaKind.FLUSH)

    @classmethod
    def end(cls) -> "Delta":
        return cls(kind=DeltaKind.END)


@dataclass(frozen=True)
class Chunk:
    """A bounded, trimmed piece of text ready for display."""
    text: str
    sequence: int


@dataclass
class StreamState:
    """Mutable per-query state shared by that query's parser and chunker.

    Never shared between queries.
    """
    buffer: str = ""
    last_emitted: Optional[str] = None
    sequence: int = 0
    line_buffer: bytearray = field(default_factory=bytearray)
    done: bool = False


class Query(BaseModel):
    """A free-text question from the user."""
    text: str = Field(..., min_length=1)


class ProviderConfig(BaseModel):
    """Immutable snapshot of everything a query needs to reach a provider."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    provider: ProviderType = ProviderType.ANTHROPIC
    api_key: str = ""
    model: str = Field(..., min_length=1)
    system_prompt: Optional[str] = None
    debug: bool = False
    endpoint: Optional[str] = None
    max_tokens: int = Field(DEFAULT_MAX_TOKENS, gt=0)
    timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_message_length: int = Field(DEFAULT_MAX_MESSAGE_LENGTH, gt=0)
