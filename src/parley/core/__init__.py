"""
Orchestration engine for Parley.

Tag scanning, tool-call handling, response classification, message
consolidation and the turn loop that ties them together.
"""

from parley.core.consolidator import consolidate
from parley.core.events import (
    CallbackSink,
    CollectingSink,
    CompletionGuard,
    EventSink,
    UIEvent,
)
from parley.core.request import create_controller, handle_request
from parley.core.response_processor import ResponseState, finish_stream, process_tags
from parley.core.tags import StreamBuffer, TagMatch, find_complete_tag
from parley.core.tool_calls import detect_tool_call, parse_tool_invocation
from parley.core.tool_executor import ToolExecutionResult, ToolExecutor
from parley.core.turn_controller import TurnController, TurnLoopResult

__all__ = [
    "CallbackSink",
    "CollectingSink",
    "CompletionGuard",
    "EventSink",
    "ResponseState",
    "StreamBuffer",
    "TagMatch",
    "ToolExecutionResult",
    "ToolExecutor",
    "TurnController",
    "TurnLoopResult",
    "UIEvent",
    "consolidate",
    "create_controller",
    "detect_tool_call",
    "find_complete_tag",
    "finish_stream",
    "handle_request",
    "parse_tool_invocation",
    "process_tags",
]
