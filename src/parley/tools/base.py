"""
Base classes for tool invocation.

The engine does not know what any particular tool does. It resolves a tool
name to the server that owns it and hands ``(server_id, tool_name,
parameters, identity)`` to a ToolInvoker. A successful response is anything
whose first content item carries a string ``text`` field.
"""

from __future__ import annotations

import abc as _abc
import collections.abc as _collections_abc
import dataclasses as _dataclasses
import importlib as _importlib
import logging as _logging
import typing as _typing

import parley.exceptions as _exceptions

_logger = _logging.getLogger(__name__)

ToolHandler = _typing.Callable[
    [dict[str, _typing.Any], str | None],
    _typing.Awaitable[_typing.Any],
]
"""Async callable taking ``(parameters, identity)`` for one tool."""

ServerHandler = _typing.Callable[
    [str, dict[str, _typing.Any], str | None],
    _typing.Awaitable[_typing.Any],
]
"""Async callable taking ``(tool_name, parameters, identity)`` for a whole server."""


@_dataclasses.dataclass
class ToolMetrics:
    """Call totals for one tool over a request."""

    tool_name: str
    call_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_duration_ms: float = 0.0
    slowest_ms: float = 0.0
    last_error: str | None = None

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.call_count if self.call_count else 0.0

    def record_call(self, duration_ms: float, error: str | None = None) -> None:
        """Add one call; a call with an ``error`` counts as a failure."""
        self.call_count += 1
        self.total_duration_ms += duration_ms
        self.slowest_ms = max(self.slowest_ms, duration_ms)
        if error is None:
            self.success_count += 1
        else:
            self.failure_count += 1
            self.last_error = error

    def to_dict(self) -> dict[str, _typing.Any]:
        record = _dataclasses.asdict(self)
        record["average_duration_ms"] = round(self.average_duration_ms, 2)
        return record


class MetricsCollector:
    """
    Per-tool totals for the tool calls of one executor.

    The turn loop writes them to the conversation log once the request ends.
    """

    def __init__(self) -> None:
        self._metrics: dict[str, ToolMetrics] = {}

    def record(self, tool_name: str, duration_ms: float, error: str | None = None) -> None:
        metrics = self._metrics.setdefault(tool_name, ToolMetrics(tool_name=tool_name))
        metrics.record_call(duration_ms, error)

    def get(self, tool_name: str) -> ToolMetrics | None:
        return self._metrics.get(tool_name)

    def all(self) -> list[ToolMetrics]:
        """Metrics for every tool called, busiest first."""
        return sorted(self._metrics.values(), key=lambda m: -m.call_count)

    def to_dict(self) -> dict[str, dict[str, _typing.Any]]:
        return {m.tool_name: m.to_dict() for m in self.all()}


class ToolInvoker(_abc.ABC):
    """
    Abstract interface to whatever actually runs tools.

    Implementations may call out to remote tool servers or to in-process
    handlers. Any exception raised from ``invoke`` is treated by the
    executor as a failed tool call.
    """

    @_abc.abstractmethod
    async def invoke(
        self,
        server_id: str,
        tool_name: str,
        parameters: dict[str, _typing.Any],
        identity: str | None = None,
    ) -> _typing.Any:
        """
        Run one tool.

        Args:
            server_id: Server that owns the tool
            tool_name: Tool to run
            parameters: Decoded JSON object from the tool call
            identity: Caller identity forwarded to the server (e.g. a user id)

        Returns:
            Raw response, expected to look like ``{"content": [{"text": "..."}]}``
        """
        ...


class HandlerInvoker(ToolInvoker):
    """
    Invoker that dispatches to async callables registered in-process.

    Handlers can be registered for one tool of a server, or for a whole
    server; a per-tool handler takes precedence.
    """

    @classmethod
    def from_import_paths(cls, handlers: _typing.Mapping[str, str]) -> HandlerInvoker:
        """
        Build an invoker from server id -> "module:callable" import paths.

        Raises:
            ValueError: If a path is not of the form "module:callable"
            ImportError: If the module cannot be imported
            AttributeError: If the module has no such callable
        """
        invoker = cls()
        for server_id, path in handlers.items():
            module_path, sep, attr = path.partition(":")
            if not sep or not module_path or not attr:
                raise ValueError(
                    f"Handler for server '{server_id}' must be 'module:callable', got '{path}'"
                )
            module = _importlib.import_module(module_path)
            invoker.register_server(server_id, getattr(module, attr))
            _logger.debug("Registered handler %s for server %s", path, server_id)
        return invoker

    def __init__(self) -> None:
        self._tool_handlers: dict[tuple[str, str], ToolHandler] = {}
        self._server_handlers: dict[str, ServerHandler] = {}

    def register(self, server_id: str, tool_name: str, handler: ToolHandler) -> None:
        """
        Register a handler for one tool.

        Raises:
            ValueError: If the tool already has a handler
        """
        key = (server_id, tool_name)
        if key in self._tool_handlers:
            raise ValueError(f"Handler for '{server_id}/{tool_name}' is already registered")
        self._tool_handlers[key] = handler

    def register_server(self, server_id: str, handler: ServerHandler) -> None:
        """
        Register a handler for every tool of a server.

        Raises:
            ValueError: If the server already has a handler
        """
        if server_id in self._server_handlers:
            raise ValueError(f"Handler for server '{server_id}' is already registered")
        self._server_handlers[server_id] = handler

    async def invoke(
        self,
        server_id: str,
        tool_name: str,
        parameters: dict[str, _typing.Any],
        identity: str | None = None,
    ) -> _typing.Any:
        tool_handler = self._tool_handlers.get((server_id, tool_name))
        if tool_handler is not None:
            return await tool_handler(parameters, identity)

        server_handler = self._server_handlers.get(server_id)
        if server_handler is not None:
            return await server_handler(tool_name, parameters, identity)

        raise LookupError(f"No handler registered for '{server_id}/{tool_name}'")


def _first_text(response: _typing.Any) -> _typing.Any:
    """Dig out ``content[0].text`` with either mapping or attribute access."""
    content = (
        response.get("content")
        if isinstance(response, _collections_abc.Mapping)
        else getattr(response, "content", None)
    )
    if not isinstance(content, _collections_abc.Sequence) or isinstance(content, str) or not content:
        return None

    first = content[0]
    if isinstance(first, _collections_abc.Mapping):
        return first.get("text")
    return getattr(first, "text", None)


def validate_tool_response(response: _typing.Any) -> str:
    """
    Extract the text payload of a tool response.

    Returns:
        The first content item's text

    Raises:
        InvalidToolResultError: If the response has no string (or an empty)
            ``content[0].text``
    """
    text = _first_text(response)
    if not isinstance(text, str) or not text:
        _logger.error("Invalid tool result format", extra={"response_type": type(response).__name__})
        raise _exceptions.InvalidToolResultError("Invalid tool result format")
    return text
