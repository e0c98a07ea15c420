"""
Tool-call detection and parsing.

A tool call is embedded in model text as::

    <tool><name>TOOL_NAME</name><parameters>{JSON_OBJECT}</parameters></tool>

Detection only looks for a complete ``tool`` tag. Parsing the inside is a
separate step whose failures are returned as ToolCallError values, since a
malformed call is an expected, recoverable outcome: the model is told what
went wrong and gets another turn.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import json as _json
import logging as _logging
import typing as _typing

import parley.constants as _constants
import parley.core.tags as tags
import parley.tools.registry as _registry

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass(frozen=True)
class ToolCallDetection:
    """Outcome of looking for a complete tool tag in a buffer."""

    match: tags.TagMatch | None = None

    @property
    def found(self) -> bool:
        return self.match is not None

    @property
    def content(self) -> str:
        return self.match.content if self.match else ""


@_dataclasses.dataclass(frozen=True)
class ToolInvocation:
    """A parsed, resolved tool call."""

    name: str
    parameters: dict[str, _typing.Any]
    server_id: str


@_dataclasses.dataclass(frozen=True)
class ToolCallError:
    """A tool call that could not be parsed or resolved."""

    reason: str
    tool_name: str | None = None

    @property
    def message(self) -> str:
        """Diagnostic fed back to the model as a user turn."""
        if self.tool_name:
            return f"Tool {self.tool_name} error: {self.reason}"
        return f"Tool call error: {self.reason}"

    @property
    def notice(self) -> str:
        """Thinking-channel text shown to the user."""
        if self.tool_name:
            return f"Error executing tool: {self.reason}"
        return f"Error parsing tool call: {self.reason}"


ParseOutcome = ToolInvocation | ToolCallError


def detect_tool_call(buffer: str | tags.StreamBuffer) -> ToolCallDetection:
    """Look for the first complete ``<tool>`` tag without consuming it."""
    if isinstance(buffer, tags.StreamBuffer):
        return ToolCallDetection(buffer.peek(_constants.TAG_TOOL))
    return ToolCallDetection(tags.find_complete_tag(_constants.TAG_TOOL, buffer))


def parse_tool_invocation(
    tool_content: str,
    registry: _registry.ToolServerRegistry,
) -> ParseOutcome:
    """
    Parse the inside of a tool tag and resolve the tool to its server.

    Returns:
        ToolInvocation on success, ToolCallError when a sub-tag is missing,
        the parameters are not a JSON object, or the tool is unknown
    """
    name_match = tags.find_complete_tag(_constants.TAG_NAME, tool_content)
    params_match = tags.find_complete_tag(_constants.TAG_PARAMETERS, tool_content)

    if name_match is None or params_match is None or not name_match.content:
        _logger.warning(
            "Malformed tool call",
            extra={
                "name_found": name_match is not None,
                "parameters_found": params_match is not None,
                "preview": tool_content[:_constants.DEFAULT_PREVIEW_LENGTH],
            },
        )
        return ToolCallError("Malformed tool call - missing name or parameters")

    tool_name = name_match.content

    try:
        parameters = _json.loads(params_match.content)
    except _json.JSONDecodeError as e:
        _logger.warning("Invalid JSON in parameters for %s: %s", tool_name, e)
        return ToolCallError(f"Invalid JSON in tool parameters: {e}", tool_name)

    if not isinstance(parameters, dict):
        return ToolCallError(
            f"Tool parameters must be a JSON object, got {type(parameters).__name__}",
            tool_name,
        )

    server_id = registry.get(tool_name)
    if server_id is None:
        _logger.warning("Unknown tool requested: %s", tool_name)
        return ToolCallError(f"Unknown tool: {tool_name}", tool_name)

    return ToolInvocation(name=tool_name, parameters=parameters, server_id=server_id)
