"""
Classification of streamed model output.

The processor turns complete ``thinking``, ``answer``, ``question`` and
``title`` tags into UI events and history messages. It is written as pure
functions over an explicit ResponseState: each call takes the current
state and returns the next state plus a list of effects for the caller to
apply. Nothing here touches the provider, the history, or the event sink
directly, so one conversation's state can never leak into another's.

Tool tags are deliberately not handled here; the turn controller checks
for them first because a tool call ends the provider round.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import json as _json
import logging as _logging
import re as _re
import typing as _typing

import pydantic as _pydantic

import parley.constants as _constants
import parley.core.events as events
import parley.core.tags as tags

_logger = _logging.getLogger(__name__)

TitleMode = _typing.Literal["separate", "bundled"]
LateToolPolicy = _typing.Literal["execute", "discard"]

_RESEARCH_TASK_PATTERN = _re.compile(
    r"\[RESEARCH_TASK\]\s*(\{.*?\})\s*\[/RESEARCH_TASK\]",
    _re.DOTALL,
)

# Tags whose markers are stripped from leftover text promoted to an answer
_CLASSIFIED_TAGS = (
    _constants.TAG_THINKING,
    _constants.TAG_ANSWER,
    _constants.TAG_QUESTION,
    _constants.TAG_TITLE,
)


# =============================================================================
# Research tasks
# =============================================================================


class ResearchFinding(_pydantic.BaseModel):
    """One fact gathered about a research target."""

    detail: str
    category: _typing.Literal["deadline", "requirement", "contact", "financial", "other"]
    confidence: _typing.Literal["high", "medium", "low"]
    source: str | None = None


class ResearchTask(_pydantic.BaseModel):
    """A follow-up research item embedded in an answer."""

    type: _typing.Literal["college", "scholarship"]
    name: str
    findings: list[ResearchFinding]


def extract_research_tasks(text: str) -> list[dict[str, _typing.Any]]:
    """
    Pull ``[RESEARCH_TASK]{...}[/RESEARCH_TASK]`` markers out of answer text.

    Markers whose JSON does not parse or does not match ResearchTask are
    logged and skipped.
    """
    tasks: list[dict[str, _typing.Any]] = []
    for match in _RESEARCH_TASK_PATTERN.finditer(text):
        try:
            task = ResearchTask.model_validate(_json.loads(match.group(1)))
        except (ValueError, _pydantic.ValidationError) as e:
            _logger.warning("Skipping invalid research task: %s", e)
            continue
        tasks.append(task.model_dump(exclude_none=True))
    return tasks


# =============================================================================
# State and effects
# =============================================================================


@_dataclasses.dataclass(frozen=True)
class ResponseState:
    """
    Per-conversation classification state.

    A fresh ResponseState() starts every independent turn-loop.
    """

    saved_answer: str | None = None
    """The first complete answer of the turn-loop; never overwritten."""

    title_sent: bool = False
    research_tasks: tuple[dict[str, _typing.Any], ...] = ()
    """Tasks from the most recent answer, attached to title events."""

    asked_question: bool = False

    @property
    def has_user_facing_output(self) -> bool:
        return self.saved_answer is not None or self.asked_question


@_dataclasses.dataclass(frozen=True)
class EmitEvent:
    event: events.UIEvent


@_dataclasses.dataclass(frozen=True)
class AppendMessage:
    message: dict[str, _typing.Any]


Effect = EmitEvent | AppendMessage


@_dataclasses.dataclass(frozen=True)
class StreamEnd:
    """How a provider round ended, as decided by finish_stream."""

    state: ResponseState
    effects: list[Effect]

    tool_contents: list[str]
    """Inner content of each complete tool tag left over, in closing order."""

    continue_processing: bool
    fallback_answer: bool = False


# =============================================================================
# Tag processing
# =============================================================================


def _response_event(
    content: str | None,
    research_tasks: tuple[dict[str, _typing.Any], ...],
    suggested_title: str | None = None,
) -> events.UIEvent:
    return events.UIEvent(
        type="response",
        content=content,
        suggested_title=suggested_title,
        research_tasks=list(research_tasks),
    )


def _answer_effects(
    state: ResponseState,
    content: str,
) -> tuple[ResponseState, list[Effect]]:
    research_tasks = tuple(extract_research_tasks(content))
    if state.saved_answer is not None:
        _logger.info("Additional answer after saved answer; saved answer kept")
    state = _dataclasses.replace(
        state,
        saved_answer=state.saved_answer if state.saved_answer is not None else content,
        research_tasks=research_tasks,
    )
    return state, [
        AppendMessage({"role": "answer", "content": content}),
        EmitEvent(_response_event(content, research_tasks)),
    ]


def _title_effects(
    state: ResponseState,
    title: str,
    title_mode: TitleMode,
) -> tuple[ResponseState, list[Effect]]:
    if state.title_sent:
        _logger.debug("Ignoring repeated title: %s", title)
        return state, []

    if state.saved_answer is None:
        # Title arrived first: send it on a response event with no content
        event = _response_event(None, state.research_tasks, suggested_title=title)
    elif title_mode == "bundled":
        event = _response_event(state.saved_answer, state.research_tasks, suggested_title=title)
    else:
        event = events.UIEvent(
            type="title",
            suggested_title=title,
            research_tasks=list(state.research_tasks),
        )
    return _dataclasses.replace(state, title_sent=True), [EmitEvent(event)]


def _apply_tag(
    state: ResponseState,
    match: tags.TagMatch,
    title_mode: TitleMode,
) -> tuple[ResponseState, list[Effect]]:
    if match.is_empty:
        return state, []

    if match.tag_name == _constants.TAG_THINKING:
        return state, [EmitEvent(events.thinking(match.content))]

    if match.tag_name == _constants.TAG_ANSWER:
        return _answer_effects(state, match.content)

    if match.tag_name == _constants.TAG_QUESTION:
        state = _dataclasses.replace(state, asked_question=True)
        return state, [
            AppendMessage({"role": "question", "content": match.content}),
            EmitEvent(_response_event(match.content, ())),
        ]

    return _title_effects(state, match.content, title_mode)


def process_tags(
    state: ResponseState,
    buffer: tags.StreamBuffer,
    *,
    title_mode: TitleMode = "separate",
) -> tuple[ResponseState, list[Effect]]:
    """
    Drain every complete classified tag from the buffer.

    Tags are handled in the order their closing markers appear. Each
    matched span is removed from the buffer; empty tags are removed
    without producing anything.

    Returns:
        The next state and the effects to apply, in order.
    """
    effects: list[Effect] = []
    while True:
        candidates = [
            match
            for tag_name in _CLASSIFIED_TAGS
            if (match := buffer.peek(tag_name)) is not None
        ]
        if not candidates:
            return state, effects

        first = min(candidates, key=lambda m: m.end)
        buffer.take(first.tag_name)
        _logger.debug("Found complete %s tag", first.tag_name, extra={"preview": first.content[:80]})
        state, tag_effects = _apply_tag(state, first, title_mode)
        effects.extend(tag_effects)


def _strip_markers(text: str) -> str:
    for tag_name in _CLASSIFIED_TAGS:
        text = text.replace(tags.open_marker(tag_name), "").replace(tags.close_marker(tag_name), "")
    return text.strip()


def finish_stream(
    state: ResponseState,
    buffer: tags.StreamBuffer,
    message_content: str,
    *,
    title_mode: TitleMode = "separate",
    late_tool_policy: LateToolPolicy = "execute",
) -> StreamEnd:
    """
    Decide what a finished provider round means.

    1. Nothing left over: the loop ends (whether or not an answer was saved).
    2. Complete tool tags left over: they are returned for execution and
       the loop continues, unless an answer is saved and the policy is
       ``discard``.
    3. Untagged text left over and no answer or question yet: the text
       becomes the answer.
    4. Otherwise the loop ends and the leftover text is dropped.

    The buffer is drained.
    """
    combined = tags.StreamBuffer(message_content + buffer.clear())
    if not combined.text.strip():
        _logger.info("No content left at end of stream")
        return StreamEnd(state, [], [], continue_processing=False)

    state, effects = process_tags(state, combined, title_mode=title_mode)

    tool_matches = combined.take_all(_constants.TAG_TOOL)
    if tool_matches:
        if state.saved_answer is not None and late_tool_policy == "discard":
            _logger.info(
                "Discarding %d tool call(s) after saved answer", len(tool_matches)
            )
        else:
            _logger.info("Found %d tool call(s) at end of stream", len(tool_matches))
            return StreamEnd(
                state,
                effects,
                [m.content for m in tool_matches],
                continue_processing=True,
            )

    remaining = _strip_markers(combined.clear())
    if remaining and not state.has_user_facing_output:
        _logger.info(
            "No explicit <answer> tags found, treating remaining content as answer",
            extra={"length": len(remaining), "preview": remaining[:_constants.DEFAULT_PREVIEW_LENGTH]},
        )
        state, answer_effects = _answer_effects(state, remaining)
        return StreamEnd(
            state,
            effects + answer_effects,
            [],
            continue_processing=False,
            fallback_answer=True,
        )

    if remaining:
        _logger.debug("Dropping %d chars of untagged text after answer", len(remaining))
    return StreamEnd(state, effects, [], continue_processing=False)
