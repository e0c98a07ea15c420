"""Tests for core/request.py."""

import typing as _typing

import pytest as _pytest

import parley.api.types as api_types
import parley.config as config
import parley.core.events as events
import parley.core.request as request
import parley.core.turn_controller as turn_controller
import parley.tools.base as tools_base
import parley.tools.registry as tools_registry

USER = {"role": "user", "content": "Tell me about MIT"}


class ExplodingController(turn_controller.TurnController):
    """Controller whose run() raises a given exception."""

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def run(self, *args: _typing.Any, **kwargs: _typing.Any) -> turn_controller.TurnLoopResult:
        raise self._exc


def _make_controller(
    clean_settings: config.Settings,
    provider,
    registry: tools_registry.ToolServerRegistry,
    invoker: tools_base.ToolInvoker,
) -> turn_controller.TurnController:
    return request.create_controller(clean_settings, invoker, provider=provider, registry=registry)


class TestHandleRequest:
    """Every request ends with exactly one complete event."""

    @_pytest.mark.asyncio
    async def test_success_ends_with_complete(
        self,
        clean_settings: config.Settings,
        scripted_provider_factory,
        tool_registry: tools_registry.ToolServerRegistry,
        handler_invoker: tools_base.HandlerInvoker,
        collecting_sink: events.CollectingSink,
    ) -> None:
        provider = scripted_provider_factory([["<answer>MIT</answer>"]])
        controller = _make_controller(clean_settings, provider, tool_registry, handler_invoker)

        result = await request.handle_request(controller, [USER], "", collecting_sink)

        assert result is not None
        assert result.saved_answer == "MIT"
        assert [e.type for e in collecting_sink.events] == ["response", "complete"]

    @_pytest.mark.asyncio
    async def test_provider_error_becomes_error_then_complete(
        self,
        clean_settings: config.Settings,
        scripted_provider_factory,
        tool_registry: tools_registry.ToolServerRegistry,
        handler_invoker: tools_base.HandlerInvoker,
        collecting_sink: events.CollectingSink,
    ) -> None:
        provider = scripted_provider_factory(
            [[api_types.StreamEvent(type="error", error="overloaded")]]
        )
        controller = _make_controller(clean_settings, provider, tool_registry, handler_invoker)

        result = await request.handle_request(controller, [USER], "", collecting_sink)

        assert result is None
        assert [e.type for e in collecting_sink.events] == ["error", "complete"]
        assert collecting_sink.events[0].content == "overloaded"

    @_pytest.mark.asyncio
    async def test_timeout_becomes_error(
        self,
        clean_settings: config.Settings,
        scripted_provider_factory,
        tool_registry: tools_registry.ToolServerRegistry,
        handler_invoker: tools_base.HandlerInvoker,
        collecting_sink: events.CollectingSink,
    ) -> None:
        clean_settings.behavior.provider_timeout = 0.05
        provider = scripted_provider_factory([["<answer>slow</answer>"]], delay=1.0)
        controller = _make_controller(clean_settings, provider, tool_registry, handler_invoker)

        await request.handle_request(controller, [USER], "", collecting_sink)

        assert [e.type for e in collecting_sink.events] == ["error", "complete"]
        assert "timed out" in collecting_sink.events[0].content

    @_pytest.mark.asyncio
    async def test_unexpected_error_still_completes(
        self,
        collecting_sink: events.CollectingSink,
    ) -> None:
        controller = ExplodingController(RuntimeError("kaboom"))

        result = await request.handle_request(controller, [USER], "", collecting_sink)

        assert result is None
        assert [e.type for e in collecting_sink.events] == ["error", "complete"]
        assert collecting_sink.events[0].content == "Error processing message: kaboom"

    @_pytest.mark.asyncio
    async def test_cancelled_request_completes(
        self,
        clean_settings: config.Settings,
        scripted_provider_factory,
        tool_registry: tools_registry.ToolServerRegistry,
        handler_invoker: tools_base.HandlerInvoker,
        collecting_sink: events.CollectingSink,
    ) -> None:
        provider = scripted_provider_factory([["<answer>x</answer>"]])
        controller = _make_controller(clean_settings, provider, tool_registry, handler_invoker)
        controller.cancel()

        result = await request.handle_request(controller, [USER], "", collecting_sink)

        assert result is not None
        assert result.cancelled
        assert [e.type for e in collecting_sink.events] == ["complete"]


class TestCreateController:
    """Tests for wiring a controller from settings."""

    def test_uses_settings_tools(self, clean_settings: config.Settings, scripted_provider_factory) -> None:
        clean_settings.tools.servers = {"fetch": ["fetch_txt"]}
        controller = request.create_controller(
            clean_settings,
            tools_base.HandlerInvoker(),
            provider=scripted_provider_factory([]),
        )
        assert isinstance(controller, turn_controller.TurnController)
        assert not controller.cancelled
