"""
Entry point for one externally initiated request.

Whatever happens inside the turn loop, the caller's sink receives exactly
one ``complete`` event at the end, preceded by an ``error`` event when the
loop failed.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import parley.api.base as api_base
import parley.api.factory as api_factory
import parley.config as config
import parley.core.events as events
import parley.core.tool_executor as tool_executor
import parley.core.turn_controller as turn_controller
import parley.exceptions as _exceptions
import parley.logging as parley_logging
import parley.tools.base as tools_base
import parley.tools.registry as tools_registry

_logger = _logging.getLogger(__name__)


def create_controller(
    settings: config.Settings,
    invoker: tools_base.ToolInvoker,
    *,
    provider: api_base.LLMProvider | None = None,
    registry: tools_registry.ToolServerRegistry | None = None,
    logger: parley_logging.ConversationLogger | None = None,
) -> turn_controller.TurnController:
    """
    Wire a TurnController from settings.

    Args:
        settings: Loaded settings.
        invoker: Runs resolved tools.
        provider: Provider to use (default: created from settings).
        registry: Tool mapping (default: ``tools.servers`` from settings).
        logger: Conversation logger shared by the controller and executor.
    """
    if provider is None:
        provider = api_factory.create_provider(settings=settings)
    if registry is None:
        registry = tools_registry.ToolServerRegistry.from_settings(settings)

    executor = tool_executor.ToolExecutor(
        registry,
        invoker,
        timeout=settings.behavior.tool_timeout,
        logger=logger,
    )
    return turn_controller.TurnController(
        provider,
        executor,
        behavior=settings.behavior,
        logger=logger,
    )


def create_conversation_logger(
    settings: config.Settings,
    provider: api_base.LLMProvider,
) -> parley_logging.ConversationLogger:
    """Conversation logger configured by the ``logging`` settings section."""
    return parley_logging.ConversationLogger(
        log_dir=settings.logs_dir,
        provider=provider.name,
        model=provider.model,
        enabled=settings.logging.enabled,
    )


async def handle_request(
    controller: turn_controller.TurnController,
    messages: list[dict[str, _typing.Any]],
    system_prompt: str,
    sink: events.EventSink,
    *,
    identity: str | None = None,
    logger: parley_logging.ConversationLogger | None = None,
) -> turn_controller.TurnLoopResult | None:
    """
    Run one turn-loop and guarantee its ``complete`` event.

    Provider and history faults become an ``error`` event. Unexpected
    exceptions are logged and reported the same way.

    Returns:
        The loop result, or None if the loop failed.
    """
    if logger and messages and messages[-1].get("role") == "user":
        logger.log_user_message(str(messages[-1].get("content", "")))

    with events.CompletionGuard(sink) as guard:
        try:
            result = await controller.run(messages, system_prompt, guard, identity)
        except _exceptions.ParleyError as e:
            _logger.error("Turn loop failed: %s", e)
            if logger:
                logger.log_error(str(e), context=type(e).__name__)
            guard.emit(events.error(str(e)))
            return None
        except Exception as e:
            _logger.exception("Unexpected error processing message")
            if logger:
                logger.log_error(str(e), context="unexpected")
            guard.emit(events.error(f"Error processing message: {e}"))
            return None

    if result.cancelled:
        _logger.info("Request cancelled after %d step(s)", result.steps)
    return result
