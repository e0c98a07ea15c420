"""
Shared constants for Parley.

This module provides a single source of truth for default values
that are used across multiple modules.
"""

# Provider/Model defaults
DEFAULT_PROVIDER = "anthropic"
"""Default LLM provider."""

DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-3-5-sonnet-20241022",
    "openai": "gpt-4o",
    "gemini": "gemini-2.0-flash",
    "ollama": "llama3",
}
"""Default model per provider type."""

# LLM interaction defaults
DEFAULT_MAX_TOKENS = 4096
"""Default maximum tokens for LLM responses."""

DEFAULT_TEMPERATURE = 0.0
"""Default sampling temperature."""

# Turn-loop defaults
MAX_STEPS = 50
"""Provider round-trips allowed before the circuit breaker forces a final answer."""

PROVIDER_TIMEOUT_SECONDS = 180.0
"""Timeout for a single provider streaming call (3 minutes)."""

TOOL_TIMEOUT_SECONDS = 30.0
"""Timeout for a single tool invocation."""

# Tag names in the inbound grammar
TAG_TOOL = "tool"
TAG_THINKING = "thinking"
TAG_ANSWER = "answer"
TAG_TITLE = "title"
TAG_QUESTION = "question"
TAG_NAME = "name"
TAG_PARAMETERS = "parameters"

# Injected instructions
TITLE_INSTRUCTION = (
    "\n\nAfter providing your answer, suggest a brief, descriptive title for this chat "
    "based on the discussion. Format it as: <title>Your suggested title</title>"
)
"""Appended to the system prompt until the conversation has its first answer."""

FORCED_FINAL_INSTRUCTION = (
    "You have reached the maximum number of steps for this request. Do not call any "
    "more tools. Stop now and give your final answer immediately, wrapped in "
    "<answer></answer> tags, using only the information you already have."
)
"""User message injected when the circuit breaker trips."""

CIRCUIT_BREAKER_NOTICE = (
    "Reached the maximum number of processing steps. Asking the assistant for a final answer."
)
"""System-level UI warning emitted when the circuit breaker trips."""

# Truncation limits for display
DEFAULT_PREVIEW_LENGTH = 200
"""Default length to truncate content previews in log records."""
