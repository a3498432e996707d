"""Configuration loading from the environment.

Values come from environment variables, optionally seeded from a ``.env``
file. The result is a frozen ProviderConfig that each query snapshots.
"""
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import load_dotenv

from chatstream.models import (
    DEFAULT_MAX_MESSAGE_LENGTH,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TIMEOUT_SECONDS,
    ProviderConfig,
    ProviderType,
)

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = ProviderType.ANTHROPIC

DEFAULT_MODELS: Dict[ProviderType, str] = {
    ProviderType.ANTHROPIC: "claude-3-haiku-20240307",
    ProviderType.OPENAI: "gpt-4o-mini",
    ProviderType.GEMINI: "gemini-2.0-flash",
}

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Keep responses concise so they fit "
    "in a chat window."
)

# Env var names per provider: (api key, model)
PROVIDER_ENV_VARS: Dict[ProviderType, tuple] = {
    ProviderType.ANTHROPIC: ("ANTHROPIC_API_KEY", "ANTHROPIC_MODEL"),
    ProviderType.OPENAI: ("OPENAI_API_KEY", "OPENAI_MODEL"),
    ProviderType.GEMINI: ("GEMINI_API_KEY", "GEMINI_MODEL"),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def placeholder_api_key(provider: ProviderType) -> str:
    """The value shipped in sample configs before a real key is filled in."""
    return f"your_{provider.value}_key_here"


def has_valid_api_key(config: ProviderConfig) -> bool:
    """Whether the config carries a usable API key."""
    key = config.api_key.strip()
    return bool(key) and key != placeholder_api_key(config.provider)


def parse_provider(name: Optional[str]) -> ProviderType:
    """Map a provider name to a ProviderType, falling back to the default."""
    if not name:
        return DEFAULT_PROVIDER
    try:
        return ProviderType(name.strip().lower())
    except ValueError:
        logger.warning(
            "Unknown provider '%s', falling back to %s", name, DEFAULT_PROVIDER.value
        )
        return DEFAULT_PROVIDER


def _env_number(name: str, default: Union[int, float], cast) -> Union[int, float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(
            f"Environment variable '{name}' must be a number, got '{raw}'"
        ) from None


def load_config(
    env_file: Optional[Union[str, Path]] = None,
    provider: Optional[str] = None,
) -> ProviderConfig:
    """Build a ProviderConfig from environment variables.

    Args:
        env_file: Optional .env file loaded first. Existing environment
            variables win over values in the file.
        provider: Provider name overriding LLM_PROVIDER.
    """
    if env_file is not None:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("Loaded environment variables from %s", env_path)
        else:
            logger.warning(".env file not found at %s", env_path)

    provider_type = parse_provider(provider or os.getenv("LLM_PROVIDER"))
    key_var, model_var = PROVIDER_ENV_VARS[provider_type]

    system_prompt = os.getenv("LLM_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT)

    return ProviderConfig(
        provider=provider_type,
        api_key=os.getenv(key_var, ""),
        model=os.getenv(model_var) or DEFAULT_MODELS[provider_type],
        system_prompt=system_prompt or None,
        debug=os.getenv("LLM_DEBUG", "").strip().lower() in _TRUE_VALUES,
        endpoint=os.getenv("LLM_ENDPOINT") or None,
        max_tokens=_env_number("LLM_MAX_TOKENS", DEFAULT_MAX_TOKENS, int),
        timeout_seconds=_env_number("LLM_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, float),
        max_message_length=_env_number(
            "LLM_MAX_MESSAGE_LENGTH", DEFAULT_MAX_MESSAGE_LENGTH, int
        ),
    )
