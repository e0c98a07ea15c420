"""
Provider factory for creating LLM providers.

Provides a unified interface for creating providers based on configuration.
Provider type names map to the module that implements them; the module is
imported only when that provider is actually requested.
"""

from __future__ import annotations

import importlib as _importlib
import logging as _logging
import typing as _typing

import parley.api.base as base
import parley.config as config
import parley.constants as _constants

_logger = _logging.getLogger(__name__)

# Mapping of provider types to (module path, class name)
BUILTIN_PROVIDER_TYPES: dict[str, tuple[str, str]] = {
    "anthropic": ("parley.api.providers.anthropic.provider", "AnthropicProvider"),
    "openai": ("parley.api.providers.openai.provider", "OpenAIProvider"),
    "gemini": ("parley.api.providers.gemini.provider", "GeminiProvider"),
    "ollama": ("parley.api.providers.ollama.provider", "OllamaProvider"),
}


def create_provider(
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    *,
    settings: config.Settings | None = None,
    **kwargs: _typing.Any,
) -> base.LLMProvider:
    """
    Create an LLM provider based on configuration.

    Provider selection (in order of precedence):
    1. Explicit `provider` parameter
    2. providers.default from settings (PARLEY_PROVIDERS__DEFAULT, config files)

    Args:
        provider: Provider type name ('anthropic', 'openai', 'gemini', 'ollama')
        model: Model to use (defaults to providers.models[<type>])
        api_key: API key (defaults to the key held by settings)
        settings: Settings to read defaults from (loaded when omitted)
        **kwargs: Extra constructor arguments (e.g. ``transport`` in tests)

    Returns:
        Configured LLMProvider instance

    Raises:
        ValueError: If the provider type is unknown or its API key is missing
    """
    if settings is None:
        settings = config.Settings()

    provider = provider or settings.providers.default
    if provider not in BUILTIN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider: {provider}. "
            f"Available types: {', '.join(sorted(BUILTIN_PROVIDER_TYPES))}."
        )

    module_path, class_name = BUILTIN_PROVIDER_TYPES[provider]
    module = _importlib.import_module(module_path)
    provider_cls: type[base.LLMProvider] = getattr(module, class_name)

    constructor_args: dict[str, _typing.Any] = {
        "model": model
        or settings.providers.get_model(provider)
        or _constants.DEFAULT_MODELS[provider],
        "timeout": settings.behavior.provider_timeout,
    }
    base_url = settings.providers.get_base_url(provider)
    if base_url:
        constructor_args["base_url"] = base_url
    resolved_key = api_key or settings.get_api_key(provider)
    if resolved_key:
        constructor_args["api_key"] = resolved_key
    constructor_args.update(kwargs)

    _logger.debug(
        "Creating provider '%s' (model: %s)", provider, constructor_args["model"]
    )
    return provider_cls(**constructor_args)


def get_available_providers(
    settings: config.Settings | None = None,
) -> list[dict[str, _typing.Any]]:
    """
    Get list of available providers and their configuration status.

    Returns:
        List of provider info dicts with name, description, key_env_var,
        key_configured and default_model fields
    """
    if settings is None:
        settings = config.Settings()

    return [
        {
            "name": "anthropic",
            "description": "Anthropic Messages API (streaming, prompt caching)",
            "key_env_var": "ANTHROPIC_API_KEY",
            "key_configured": bool(settings.anthropic_api_key),
            "default_model": settings.providers.get_model("anthropic"),
        },
        {
            "name": "openai",
            "description": "OpenAI Responses API (flattened transcript input)",
            "key_env_var": "OPENAI_API_KEY",
            "key_configured": bool(settings.openai_api_key),
            "default_model": settings.providers.get_model("openai"),
        },
        {
            "name": "gemini",
            "description": "Google Gemini API (streamGenerateContent over SSE)",
            "key_env_var": "GEMINI_API_KEY",
            "key_configured": bool(settings.gemini_api_key),
            "default_model": settings.providers.get_model("gemini"),
        },
        {
            "name": "ollama",
            "description": "Ollama (local or remote models via OLLAMA_HOST)",
            "key_env_var": None,  # No API key needed
            "key_configured": True,  # Assumes server is reachable
            "default_model": settings.providers.get_model("ollama"),
            "host_env_var": "PARLEY_OLLAMA_HOST or OLLAMA_HOST",
        },
    ]

