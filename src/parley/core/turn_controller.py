"""
The turn loop.

One call to TurnController.run() handles one user request: it streams a
provider round, classifies the output, runs any requested tool, and starts
another round until the model answers, asks a question, or the circuit
breaker forces a final round.

Rounds are strictly sequential. History messages produced while a round is
streaming are held back and only committed once the round has finished, so
a timed-out or cancelled round never leaves partial output in the history.
UI events are emitted as they are produced and are never retracted.
"""

from __future__ import annotations

import asyncio as _asyncio
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

import parley.api.base as api_base
import parley.api.types as api_types
import parley.config.types as config_types
import parley.constants as _constants
import parley.core.consolidator as consolidator
import parley.core.events as events
import parley.core.message_validators as message_validators
import parley.core.response_processor as response_processor
import parley.core.tags as tags
import parley.core.tool_executor as tool_executor
import parley.exceptions as _exceptions
import parley.logging as parley_logging

_logger = _logging.getLogger(__name__)

_T = _typing.TypeVar("_T")


@_dataclasses.dataclass
class TurnLoopResult:
    """Outcome of one turn-loop."""

    messages: list[dict[str, _typing.Any]]
    """Authoritative history after the loop, synthetic roles included."""

    steps: int
    """Provider rounds started, the forced-final round included."""

    saved_answer: str | None = None
    research_tasks: list[dict[str, _typing.Any]] = _dataclasses.field(default_factory=list)
    title_sent: bool = False
    cancelled: bool = False
    forced_final: bool = False
    usage: api_types.Usage = _dataclasses.field(default_factory=api_types.Usage)


@_dataclasses.dataclass
class _RoundOutcome:
    state: response_processor.ResponseState
    pending_messages: list[dict[str, _typing.Any]]
    tool_contents: list[str]
    continue_processing: bool


class TurnController:
    """
    Runs the provider/tool loop for a single conversation.

    An instance is bound to one conversation at a time; its classification
    state lives in the ResponseState threaded through each run, so separate
    controllers never share anything mutable.
    """

    def __init__(
        self,
        provider: api_base.LLMProvider,
        executor: tool_executor.ToolExecutor,
        *,
        behavior: config_types.BehaviorConfig | None = None,
        logger: parley_logging.ConversationLogger | None = None,
    ) -> None:
        """
        Initialize the turn controller.

        Args:
            provider: Streaming LLM provider.
            executor: Runs tool calls found in model output.
            behavior: Loop limits, timeouts and tag policies.
            logger: Optional conversation logger.
        """
        self._provider = provider
        self._executor = executor
        self._behavior = behavior or config_types.BehaviorConfig()
        self._logger = logger
        self._cancelled = False
        self._task: _asyncio.Future[_typing.Any] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """
        Stop the loop from outside (e.g. the user pressed stop).

        The active provider stream or tool call is cancelled, no further
        round is scheduled, and nothing more is appended to the history.
        Called before run(), it cancels the next run only.
        """
        if self._cancelled:
            return
        _logger.info("Turn loop cancelled")
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(
        self,
        messages: list[dict[str, _typing.Any]],
        system_prompt: str,
        sink: events.EventSink,
        identity: str | None = None,
    ) -> TurnLoopResult:
        """
        Run rounds until the model is done, the loop is cancelled, or the
        forced-final round has run.

        Args:
            messages: History ending with the new user message. Not modified.
            system_prompt: System prompt for every round.
            sink: Receives UI events.
            identity: Caller identity forwarded to tool servers.

        Returns:
            TurnLoopResult with the updated history.

        Raises:
            ProviderError: A provider round failed, errored, or timed out.
            MessageValidationError: The consolidated history is not sendable.
        """
        try:
            return await self._run_loop(messages, system_prompt, sink, identity)
        finally:
            # A cancel applies to the request in flight, not to later ones
            self._cancelled = False

    async def _run_loop(
        self,
        messages: list[dict[str, _typing.Any]],
        system_prompt: str,
        sink: events.EventSink,
        identity: str | None,
    ) -> TurnLoopResult:
        behavior = self._behavior
        history = list(messages)
        state = response_processor.ResponseState()
        usage = api_types.Usage()
        system = self._build_system_prompt(system_prompt, history)
        if self._logger:
            self._logger.log_system_prompt(system)

        step = 0
        forced_final = False
        while not self._cancelled:
            step += 1
            if self._logger:
                self._logger.log_step(step, len(history))

            try:
                outcome = await self._cancellable(
                    self._run_round(step, history, system, state, sink, usage)
                )
            except _asyncio.CancelledError:
                if not self._cancelled:
                    raise
                break

            if self._cancelled:
                break
            history.extend(outcome.pending_messages)
            state = outcome.state

            if forced_final:
                _logger.info("Forced-final round complete; ending turn loop")
                break
            if not outcome.continue_processing:
                break

            for tool_content in outcome.tool_contents:
                try:
                    result = await self._cancellable(
                        self._executor.execute_tool_call(tool_content, history, sink, identity)
                    )
                except _asyncio.CancelledError:
                    if not self._cancelled:
                        raise
                    break
                history = result.messages

            if self._cancelled:
                break

            if step >= behavior.max_steps:
                _logger.warning(
                    "Circuit breaker tripped after %d steps; forcing a final answer", step
                )
                forced_final = True
                history.append({"role": "user", "content": _constants.FORCED_FINAL_INSTRUCTION})
                sink.emit(events.system(_constants.CIRCUIT_BREAKER_NOTICE))
                if self._logger:
                    self._logger.log_forced_final(step)

        if self._logger and self._executor.metrics.all():
            self._logger.log_tool_metrics(self._executor.metrics.to_dict())

        return TurnLoopResult(
            messages=history,
            steps=step,
            saved_answer=state.saved_answer,
            research_tasks=list(state.research_tasks),
            title_sent=state.title_sent,
            cancelled=self._cancelled,
            forced_final=forced_final,
            usage=usage,
        )

    def _build_system_prompt(
        self,
        system_prompt: str,
        history: list[dict[str, _typing.Any]],
    ) -> str:
        """Append the title instruction until the conversation has its first answer."""
        if not self._behavior.request_title:
            return system_prompt
        has_assistant_turn = any(
            m.get("role") == "assistant" for m in consolidator.consolidate(history)
        )
        if has_assistant_turn:
            return system_prompt
        return system_prompt + _constants.TITLE_INSTRUCTION

    async def _cancellable(self, coro: _typing.Awaitable[_T]) -> _T:
        """Await a coroutine as a task that cancel() can interrupt."""
        task = _asyncio.ensure_future(coro)
        self._task = task
        try:
            return await task
        finally:
            self._task = None

    async def _run_round(
        self,
        step: int,
        history: list[dict[str, _typing.Any]],
        system: str,
        state: response_processor.ResponseState,
        sink: events.EventSink,
        usage: api_types.Usage,
    ) -> _RoundOutcome:
        """Stream one provider call under the provider timeout."""
        provider_messages = consolidator.consolidate(history)
        message_validators.validate_provider_messages(provider_messages)

        stream = self._provider.stream(
            provider_messages,
            system=system,
            max_tokens=self._behavior.max_tokens,
            temperature=self._behavior.temperature,
        )
        timeout = self._behavior.provider_timeout
        try:
            return await _asyncio.wait_for(
                self._consume(step, stream, state, sink, usage),
                timeout=timeout,
            )
        except TimeoutError as e:
            _logger.error("Provider call timed out after %gs", timeout)
            raise _exceptions.ProviderTimeoutError(
                f"Provider call timed out after {timeout:g}s",
                provider=self._provider.name,
            ) from e
        finally:
            await stream.abort()

    async def _consume(
        self,
        step: int,
        stream: api_base.ProviderStream,
        state: response_processor.ResponseState,
        sink: events.EventSink,
        usage: api_types.Usage,
    ) -> _RoundOutcome:
        """
        Read a provider stream and classify its text as it arrives.

        A complete tool tag ends the round at once: the stream is aborted
        and anything after the tag is never looked at.
        """
        behavior = self._behavior
        buffer = tags.StreamBuffer()
        message_content = ""
        pending: list[dict[str, _typing.Any]] = []

        async for event in stream:
            if event.type == "error":
                raise _exceptions.ProviderStreamError(
                    event.error or "Unknown stream error",
                    provider=self._provider.name,
                )
            if event.type == "message_start":
                _logger.debug("Message started", extra={"message_id": event.message_id})
                continue
            if event.type == "message_stop":
                if event.usage:
                    usage.input_tokens += event.usage.input_tokens
                    usage.output_tokens += event.usage.output_tokens
                    if self._logger:
                        self._logger.log_usage(
                            step,
                            event.stop_reason,
                            event.usage.input_tokens,
                            event.usage.output_tokens,
                        )
                _logger.debug("Message stopped: %s", event.stop_reason)
                continue
            if not event.text:
                continue

            buffer.append(event.text)

            tool_match = buffer.peek(_constants.TAG_TOOL)
            if tool_match is not None:
                if state.saved_answer is not None and behavior.late_tool_policy == "discard":
                    _logger.info("Discarding tool call after saved answer")
                    buffer.take(_constants.TAG_TOOL)
                else:
                    _logger.info("Tool call detected mid-stream; aborting provider stream")
                    await stream.abort()
                    # Tags that closed before the tool call still count
                    before = tags.StreamBuffer(buffer.text[:tool_match.start])
                    state, effects = response_processor.process_tags(
                        state, before, title_mode=behavior.title_mode
                    )
                    self._apply(effects, pending, sink)
                    return _RoundOutcome(state, pending, [tool_match.content], True)

            state, effects = response_processor.process_tags(
                state, buffer, title_mode=behavior.title_mode
            )
            self._apply(effects, pending, sink)
            message_content += buffer.flush_plain_text()

        end = response_processor.finish_stream(
            state,
            buffer,
            message_content,
            title_mode=behavior.title_mode,
            late_tool_policy=behavior.late_tool_policy,
        )
        self._apply(end.effects, pending, sink, fallback=end.fallback_answer)
        return _RoundOutcome(end.state, pending, end.tool_contents, end.continue_processing)

    def _apply(
        self,
        effects: list[response_processor.Effect],
        pending: list[dict[str, _typing.Any]],
        sink: events.EventSink,
        *,
        fallback: bool = False,
    ) -> None:
        """
        Emit events now; queue messages for commit at the end of the round.

        ``fallback`` marks the last queued message as a promoted untagged answer.
        """
        last_message = max(
            (i for i, e in enumerate(effects) if isinstance(e, response_processor.AppendMessage)),
            default=-1,
        )
        for index, effect in enumerate(effects):
            if isinstance(effect, response_processor.EmitEvent):
                sink.emit(effect.event)
                if self._logger and effect.event.type == "thinking" and effect.event.content:
                    self._logger.log_thinking(effect.event.content)
            else:
                pending.append(effect.message)
                if self._logger and effect.message["role"] == "answer":
                    self._logger.log_answer(
                        effect.message["content"],
                        fallback=fallback and index == last_message,
                    )
