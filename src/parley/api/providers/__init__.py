"""
Provider implementations for LLM APIs.

Each provider is in its own submodule for clean separation.
Built-in providers: anthropic, openai, gemini, ollama
"""

import parley.api.providers.anthropic.provider as _anthropic
import parley.api.providers.gemini.provider as _gemini
import parley.api.providers.ollama.provider as _ollama
import parley.api.providers.openai.provider as _openai

# Re-export providers for convenient access
AnthropicProvider = _anthropic.AnthropicProvider
GeminiProvider = _gemini.GeminiProvider
OllamaProvider = _ollama.OllamaProvider
OpenAIProvider = _openai.OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
]
