"""
Abstract base class for LLM providers.

All providers (Anthropic, OpenAI, Gemini, Ollama) implement this interface. They
differ only in how the request is shaped and how their native event stream
is adapted into the shared StreamEvent taxonomy.
"""

from __future__ import annotations

import abc as _abc
import logging as _logging
import typing as _typing

import parley.api.types as types
import parley.constants as _constants
import parley.exceptions as _exceptions

_logger = _logging.getLogger(__name__)


class ProviderStream:
    """
    Handle on one in-flight streaming call.

    Iterate it with ``async for`` to receive StreamEvent objects. ``abort()``
    closes the underlying event generator, which in turn closes the HTTP
    response, so the connection is released even if the stream was not
    consumed to the end.
    """

    def __init__(
        self,
        events: _typing.AsyncGenerator[types.StreamEvent, None],
        *,
        provider: str = "unknown",
    ) -> None:
        self._events = events
        self._provider = provider
        self._aborted = False
        self._finished = False

    @property
    def aborted(self) -> bool:
        """Whether abort() has been called."""
        return self._aborted

    @property
    def finished(self) -> bool:
        """Whether the provider ran out of events."""
        return self._finished

    def __aiter__(self) -> ProviderStream:
        return self

    async def __anext__(self) -> types.StreamEvent:
        if self._aborted:
            raise StopAsyncIteration
        try:
            return await self._events.__anext__()
        except StopAsyncIteration:
            self._finished = True
            raise

    async def abort(self) -> None:
        """Stop the stream and release the connection. Safe to call twice."""
        if self._aborted:
            return
        self._aborted = True
        if self._finished:
            return
        _logger.debug("Aborting %s stream", self._provider)
        await self._events.aclose()


class LLMProvider(_abc.ABC):
    """
    Abstract base for LLM providers.

    Implementations handle the specifics of each provider's API while
    presenting a unified interface. Subclasses implement ``_shape_payload``
    and ``_stream_events``; the base class turns that into an abortable
    ProviderStream.
    """

    @property
    @_abc.abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'anthropic', 'openai')."""
        ...

    @property
    @_abc.abstractmethod
    def model(self) -> str:
        """Current model being used."""
        ...

    def build_request(
        self,
        messages: list[dict[str, _typing.Any]],
        *,
        system: str = "",
        max_tokens: int = _constants.DEFAULT_MAX_TOKENS,
        temperature: float = _constants.DEFAULT_TEMPERATURE,
    ) -> types.StreamRequest:
        """Collect the provider-agnostic request fields."""
        return types.StreamRequest(
            messages=list(messages),
            system=system,
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    @_abc.abstractmethod
    def _shape_payload(self, request: types.StreamRequest) -> dict[str, _typing.Any]:
        """Translate a request into the provider's native JSON body."""
        ...

    @_abc.abstractmethod
    def _stream_events(
        self,
        request: types.StreamRequest,
    ) -> _typing.AsyncGenerator[types.StreamEvent, None]:
        """
        Stream a request and yield normalized events as they arrive.

        Implementations should use 'async def' with 'yield', and must raise
        ProviderError for transport-level failures.
        """
        ...

    def stream(
        self,
        messages: list[dict[str, _typing.Any]],
        *,
        system: str = "",
        max_tokens: int = _constants.DEFAULT_MAX_TOKENS,
        temperature: float = _constants.DEFAULT_TEMPERATURE,
    ) -> ProviderStream:
        """
        Start a streaming call.

        Note: This method is not async itself. The HTTP request is only sent
        when the returned stream is first iterated.

        Args:
            messages: Canonical conversation messages (user/assistant only)
            system: System prompt
            max_tokens: Maximum tokens in the response
            temperature: Sampling temperature

        Returns:
            ProviderStream yielding StreamEvent objects
        """
        request = self.build_request(
            messages,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        _logger.debug("Starting %s stream", self.name, extra=request.to_log_dict())
        return ProviderStream(self._stream_events(request), provider=self.name)

    async def complete(
        self,
        messages: list[dict[str, _typing.Any]],
        *,
        system: str = "",
        max_tokens: int = _constants.DEFAULT_MAX_TOKENS,
        temperature: float = _constants.DEFAULT_TEMPERATURE,
    ) -> str:
        """Stream a response to the end and return the concatenated text."""
        parts: list[str] = []
        async for event in self.stream(
            messages,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        ):
            if event.type == "text_delta" and event.text:
                parts.append(event.text)
            elif event.type == "error":
                raise _exceptions.ProviderStreamError(
                    event.error or "Unknown stream error",
                    provider=self.name,
                )
        return "".join(parts)

    async def aclose(self) -> None:  # noqa: B027
        """Release any pooled connections. Default no-op."""
        pass
