"""Tests for core/tool_calls.py."""

import pytest as _pytest

import parley.core.tags as tags
import parley.core.tool_calls as tool_calls
import parley.tools.registry as tools_registry


class TestDetectToolCall:
    """Tests for detect_tool_call."""

    def test_detects_complete_tool_tag(self) -> None:
        text = 'Let me look. <tool><name>search_college_data</name><parameters>{"query":"MIT"}</parameters></tool>'
        detection = tool_calls.detect_tool_call(text)
        assert detection.found
        assert "<name>search_college_data</name>" in detection.content

    def test_incomplete_tool_tag_not_found(self) -> None:
        detection = tool_calls.detect_tool_call("<tool><name>search_college_data</name>")
        assert not detection.found
        assert detection.content == ""

    def test_works_on_stream_buffer_without_consuming(self) -> None:
        buffer = tags.StreamBuffer("<tool><name>x</name><parameters>{}</parameters></tool>")
        assert tool_calls.detect_tool_call(buffer).found
        assert buffer.text.startswith("<tool>")


class TestParseToolInvocation:
    """Tests for parse_tool_invocation."""

    def test_valid_call(self, tool_registry: tools_registry.ToolServerRegistry) -> None:
        outcome = tool_calls.parse_tool_invocation(
            '<name>search_college_data</name><parameters>{"query": "MIT"}</parameters>',
            tool_registry,
        )
        assert isinstance(outcome, tool_calls.ToolInvocation)
        assert outcome.name == "search_college_data"
        assert outcome.parameters == {"query": "MIT"}
        assert outcome.server_id == "college-data"

    @_pytest.mark.parametrize(
        "content",
        [
            "<parameters>{}</parameters>",
            "<name>search_college_data</name>",
            "<name></name><parameters>{}</parameters>",
            "just text",
        ],
    )
    def test_missing_sub_tag(
        self,
        content: str,
        tool_registry: tools_registry.ToolServerRegistry,
    ) -> None:
        """Missing name or parameters is a malformed call."""
        outcome = tool_calls.parse_tool_invocation(content, tool_registry)
        assert isinstance(outcome, tool_calls.ToolCallError)
        assert outcome.reason == "Malformed tool call - missing name or parameters"
        assert outcome.message.startswith("Tool call error:")

    def test_invalid_json(self, tool_registry: tools_registry.ToolServerRegistry) -> None:
        outcome = tool_calls.parse_tool_invocation(
            "<name>search_college_data</name><parameters>{not valid json}</parameters>",
            tool_registry,
        )
        assert isinstance(outcome, tool_calls.ToolCallError)
        assert outcome.reason.startswith("Invalid JSON in tool parameters")
        assert outcome.tool_name == "search_college_data"
        assert outcome.message.startswith("Tool search_college_data error: Invalid JSON")

    def test_parameters_must_be_object(
        self,
        tool_registry: tools_registry.ToolServerRegistry,
    ) -> None:
        outcome = tool_calls.parse_tool_invocation(
            "<name>search_college_data</name><parameters>[1, 2]</parameters>",
            tool_registry,
        )
        assert isinstance(outcome, tool_calls.ToolCallError)
        assert "must be a JSON object" in outcome.reason

    def test_unknown_tool(self, tool_registry: tools_registry.ToolServerRegistry) -> None:
        outcome = tool_calls.parse_tool_invocation(
            "<name>launch_rockets</name><parameters>{}</parameters>",
            tool_registry,
        )
        assert isinstance(outcome, tool_calls.ToolCallError)
        assert outcome.reason == "Unknown tool: launch_rockets"
        assert outcome.message == "Tool launch_rockets error: Unknown tool: launch_rockets"
        assert outcome.notice == "Error executing tool: Unknown tool: launch_rockets"
