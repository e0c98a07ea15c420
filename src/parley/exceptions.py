"""
Exception hierarchy for Parley.

Recoverable conditions inside a turn (malformed tool calls, unknown tools,
failing tools) are reported as values, not exceptions. The classes here are
for faults that genuinely propagate: transport failures and programming
errors at the seams.
"""

from __future__ import annotations


class ParleyError(Exception):
    """Base class for all Parley errors."""


class ProviderError(ParleyError):
    """The model provider could not be reached or returned a failure."""

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """A provider streaming call exceeded its timeout and was aborted."""


class ProviderStreamError(ProviderError):
    """The provider reported an error event in the middle of a stream."""


class ToolInvocationError(ParleyError):
    """A tool handler could not be located or failed to run."""


class InvalidToolResultError(ToolInvocationError):
    """A tool handler returned a response without a text payload."""


class MessageValidationError(ParleyError):
    """Message history violated a structural invariant before a provider call."""

    def __init__(self, message: str, *, index: int | None = None) -> None:
        self.index = index
        super().__init__(message)
