"""Provider registry for routing queries to the correct LLM provider."""
from typing import Dict, Union

from chatstream.models import ProviderType
from chatstream.providers.anthropic import AnthropicProvider
from chatstream.providers.base import LLMProvider
from chatstream.providers.gemini import GeminiProvider
from chatstream.providers.openai import OpenAIProvider


class ProviderRegistry:
    """Maps provider types to LLMProvider instances.

    Usage:
        registry = ProviderRegistry()
        registry.register(ProviderType.OPENAI, OpenAIProvider())
        provider = registry.get("openai")
    """

    def __init__(self):
        self._providers: Dict[ProviderType, LLMProvider] = {}

    def register(self, provider_type: ProviderType, provider: LLMProvider) -> None:
        """Register a provider for a provider type."""
        self._providers[ProviderType(provider_type)] = provider

    def get(self, provider_type: Union[ProviderType, str]) -> LLMProvider:
        """Get the provider for a provider type or its name.

        Raises:
            ValueError: If no provider is registered for the type.
        """
        try:
            key = ProviderType(provider_type)
        except ValueError:
            key = None
        provider = self._providers.get(key) if key is not None else None
        if provider is None:
            available = ", ".join(sorted(p.value for p in self._providers)) or "(none)"
            raise ValueError(
                f"No provider registered for '{getattr(provider_type, 'value', provider_type)}'. "
                f"Available providers: {available}"
            )
        return provider


def default_registry() -> ProviderRegistry:
    """Registry with the three built-in providers."""
    registry = ProviderRegistry()
    registry.register(ProviderType.ANTHROPIC, AnthropicProvider())
    registry.register(ProviderType.OPENAI, OpenAIProvider())
    registry.register(ProviderType.GEMINI, GeminiProvider())
    return registry
