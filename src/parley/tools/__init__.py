"""
Tool resolution for Parley.

Tools themselves live outside the engine; this package maps tool names to
their servers and defines how a tool is invoked and its response checked.
"""

from parley.tools.base import (
    HandlerInvoker,
    MetricsCollector,
    ToolInvoker,
    ToolMetrics,
    validate_tool_response,
)
from parley.tools.registry import ToolServerRegistry

__all__ = [
    "HandlerInvoker",
    "MetricsCollector",
    "ToolInvoker",
    "ToolMetrics",
    "ToolServerRegistry",
    "validate_tool_response",
]
