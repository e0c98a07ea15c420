"""
Tool execution for the turn loop.

Every outcome of a tool call, good or bad, becomes one ``user``-role message
for the model plus UI notifications, and always asks for another model
turn: the model needs the result (or the reason there is none) to proceed.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import json as _json
import logging as _logging
import time as _time
import typing as _typing

import parley.constants as _constants
import parley.core.events as events
import parley.core.tool_calls as tool_calls
import parley.logging as parley_logging
import parley.tools.base as tools_base
import parley.tools.registry as tools_registry

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass
class ToolExecutionResult:
    """Outcome of one tool call as seen by the turn loop."""

    messages: list[dict[str, _typing.Any]]
    """History with the tool result (or error) message appended."""

    tool_name: str | None
    success: bool
    has_tool_calls: bool = True
    continue_processing: bool = True


def format_tool_data(text: str) -> str:
    """Pretty-print JSON tool output for display; other text is returned as-is."""
    try:
        return _json.dumps(_json.loads(text), indent=2)
    except ValueError:
        return text


class ToolExecutor:
    """
    Parses, resolves and runs tool calls with a bounded timeout.

    Tool metrics are always collected during execution.
    """

    def __init__(
        self,
        registry: tools_registry.ToolServerRegistry,
        invoker: tools_base.ToolInvoker,
        *,
        timeout: float = _constants.TOOL_TIMEOUT_SECONDS,
        logger: parley_logging.ConversationLogger | None = None,
    ) -> None:
        """
        Initialize the tool executor.

        Args:
            registry: Tool name -> server id mapping.
            invoker: Runs a resolved tool.
            timeout: Seconds allowed per tool call.
            logger: Optional conversation logger.
        """
        self._registry = registry
        self._invoker = invoker
        self._timeout = timeout
        self._logger = logger
        self._metrics = tools_base.MetricsCollector()

    @property
    def metrics(self) -> tools_base.MetricsCollector:
        """Get the metrics collector for this executor."""
        return self._metrics

    async def execute_tool_call(
        self,
        tool_content: str,
        messages: list[dict[str, _typing.Any]],
        notify: events.EventSink,
        identity: str | None = None,
    ) -> ToolExecutionResult:
        """
        Execute one tool call found in model output.

        Steps: parse and resolve the call, announce it, invoke it with the
        timeout, then append either "Tool {name} returned: {text}" or an
        error message. Nothing raised by the tool escapes.

        Args:
            tool_content: Inner content of the ``<tool>`` tag.
            messages: Current history. Not modified; a copy is returned.
            notify: Sink for UI notifications.
            identity: Caller identity forwarded to the tool server.

        Returns:
            ToolExecutionResult whose continue_processing is always True.
        """
        _logger.info(
            "Parsing tool call content",
            extra={
                "preview": tool_content[:_constants.DEFAULT_PREVIEW_LENGTH],
                "length": len(tool_content),
            },
        )

        outcome = tool_calls.parse_tool_invocation(tool_content, self._registry)
        if isinstance(outcome, tool_calls.ToolCallError):
            notify.emit(events.thinking(outcome.notice))
            return self._make_error_result(messages, outcome.tool_name, outcome.message)

        invocation = outcome
        if self._logger:
            self._logger.log_tool_call(
                invocation.name, invocation.parameters, invocation.server_id
            )

        notify.emit(
            events.thinking(
                f"Using {invocation.name} tool...",
                tool_data=_json.dumps(invocation.parameters, indent=2),
            )
        )

        _logger.info(
            "Starting tool execution",
            extra={"server": invocation.server_id, "tool": invocation.name},
        )
        start_time = _time.perf_counter()
        try:
            response = await _asyncio.wait_for(
                self._invoker.invoke(
                    invocation.server_id,
                    invocation.name,
                    invocation.parameters,
                    identity,
                ),
                timeout=self._timeout,
            )
            text = tools_base.validate_tool_response(response)
        except TimeoutError:
            error = f"Tool execution timed out after {self._timeout:g}s"
            return self._fail(invocation.name, error, messages, notify, start_time)
        except Exception as e:
            _logger.exception("Error executing tool %s", invocation.name)
            return self._fail(invocation.name, str(e), messages, notify, start_time)

        duration_ms = (_time.perf_counter() - start_time) * 1000
        self._metrics.record(invocation.name, duration_ms)
        _logger.info(
            "Tool execution successful",
            extra={
                "tool": invocation.name,
                "preview": text[:_constants.DEFAULT_PREVIEW_LENGTH],
                "length": len(text),
            },
        )

        notify.emit(
            events.thinking(
                f"Tool {invocation.name} result:",
                tool_data=format_tool_data(text),
            )
        )
        updated = [
            *messages,
            {"role": "user", "content": f"Tool {invocation.name} returned: {text}"},
        ]
        self._log_result(invocation.name, True, output=text, duration_ms=duration_ms)
        return ToolExecutionResult(messages=updated, tool_name=invocation.name, success=True)

    def _fail(
        self,
        tool_name: str,
        error: str,
        messages: list[dict[str, _typing.Any]],
        notify: events.EventSink,
        start_time: float,
    ) -> ToolExecutionResult:
        duration_ms = (_time.perf_counter() - start_time) * 1000
        self._metrics.record(tool_name, duration_ms, error)
        notify.emit(events.thinking(f"Error executing tool: {error}"))
        return self._make_error_result(
            messages,
            tool_name,
            f"Tool {tool_name} error: {error}",
            duration_ms,
        )

    def _make_error_result(
        self,
        messages: list[dict[str, _typing.Any]],
        tool_name: str | None,
        content: str,
        duration_ms: float | None = None,
    ) -> ToolExecutionResult:
        """Append an error message for the model and log it."""
        updated = [*messages, {"role": "user", "content": content}]
        self._log_result(tool_name, False, error=content, duration_ms=duration_ms)
        return ToolExecutionResult(messages=updated, tool_name=tool_name, success=False)

    def _log_result(
        self,
        tool_name: str | None,
        success: bool,
        *,
        output: str | None = None,
        error: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log a tool result if logger is configured."""
        if self._logger:
            self._logger.log_tool_result(
                tool_name=tool_name,
                success=success,
                output=output,
                error=error,
                duration_ms=duration_ms,
            )
