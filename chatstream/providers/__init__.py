"""LLM provider implementations."""
from chatstream.providers.base import LLMProvider, VendorParser
from chatstream.providers.registry import ProviderRegistry, default_registry

__all__ = ["LLMProvider", "VendorParser", "ProviderRegistry", "default_registry"]
