"""
LLM API providers for Parley.

Provides a unified streaming interface over different LLM vendors:
- Anthropic (Messages API)
- OpenAI (Responses API)
- Google Gemini (streamGenerateContent)
- Ollama (local or remote models, OpenAI-compatible endpoint)
"""

from parley.api.base import LLMProvider, ProviderStream
from parley.api.factory import BUILTIN_PROVIDER_TYPES, create_provider, get_available_providers
from parley.api.types import StreamEvent, StreamRequest, Usage

__all__ = [
    # Base classes
    "LLMProvider",
    "ProviderStream",
    # Factory
    "BUILTIN_PROVIDER_TYPES",
    "create_provider",
    "get_available_providers",
    # Types
    "StreamEvent",
    "StreamRequest",
    "Usage",
]
