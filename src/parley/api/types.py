"""
Type definitions for LLM API interactions.

These types provide a provider-agnostic interface for working with
streamed model output. Every provider adapts its native event stream
into StreamEvent objects.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import typing as _typing

StreamEventType = _typing.Literal[
    "message_start",
    "text_delta",
    "message_stop",
    "error",
]


@_dataclasses.dataclass
class Usage:
    """Token usage information."""

    input_tokens: int = 0
    output_tokens: int = 0

    cache_read_tokens: int | None = None
    """Tokens served from the prompt cache (providers that report it)."""


@_dataclasses.dataclass
class StreamEvent:
    """
    Provider-agnostic stream event.

    Different providers emit different event types, but we normalize them
    to this common structure.
    """

    type: StreamEventType

    # Text content (for text_delta events)
    text: str | None = None

    # Error info (for error events)
    error: str | None = None

    # Message ID (for message_start)
    message_id: str | None = None

    # Stop reason (for message_stop)
    stop_reason: str | None = None

    # Usage info (for message_stop)
    usage: Usage | None = None


@_dataclasses.dataclass
class StreamRequest:
    """Everything a provider needs to start one streaming call."""

    messages: list[dict[str, _typing.Any]]
    system: str
    model: str
    max_tokens: int
    temperature: float

    def to_log_dict(self) -> dict[str, _typing.Any]:
        """Summary suitable for structured logging (no message bodies)."""
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "message_count": len(self.messages),
            "system_length": len(self.system),
        }
