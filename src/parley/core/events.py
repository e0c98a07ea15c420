"""
UI events produced while a request is processed.

Events travel one way, from the engine to whatever renders them (a
server-sent-events stream, the CLI). Every externally initiated request
ends with exactly one ``complete`` event, also after an error.
"""

from __future__ import annotations

import abc as _abc
import dataclasses as _dataclasses
import logging as _logging
import typing as _typing

_logger = _logging.getLogger(__name__)

UIEventType = _typing.Literal["thinking", "response", "title", "system", "error", "complete"]


@_dataclasses.dataclass(frozen=True)
class UIEvent:
    """One UI notification."""

    type: UIEventType
    content: str | None = None
    tool_data: str | None = None
    suggested_title: str | None = None
    research_tasks: list[dict[str, _typing.Any]] | None = None

    def to_dict(self) -> dict[str, _typing.Any]:
        """
        Wire form with camelCase keys.

        Unset fields are omitted, except that a ``response`` event always
        carries ``content`` (null when a title arrives before any answer).
        """
        data: dict[str, _typing.Any] = {"type": self.type}
        if self.content is not None or self.type == "response":
            data["content"] = self.content
        if self.tool_data is not None:
            data["toolData"] = self.tool_data
        if self.suggested_title is not None:
            data["suggestedTitle"] = self.suggested_title
        if self.research_tasks is not None:
            data["researchTasks"] = self.research_tasks
        return data


def thinking(content: str, tool_data: str | None = None) -> UIEvent:
    return UIEvent(type="thinking", content=content, tool_data=tool_data)


def system(content: str) -> UIEvent:
    return UIEvent(type="system", content=content)


def error(content: str) -> UIEvent:
    return UIEvent(type="error", content=content)


class EventSink(_abc.ABC):
    """Receives UI events in the order they are produced."""

    @_abc.abstractmethod
    def emit(self, event: UIEvent) -> None:
        ...


class CollectingSink(EventSink):
    """Keeps every event in memory. Used by the CLI and tests."""

    def __init__(self) -> None:
        self.events: list[UIEvent] = []

    def emit(self, event: UIEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: UIEventType) -> list[UIEvent]:
        return [e for e in self.events if e.type == event_type]


class CallbackSink(EventSink):
    """Forwards each event's wire dict to a callable (e.g. an SSE writer)."""

    def __init__(self, callback: _typing.Callable[[dict[str, _typing.Any]], None]) -> None:
        self._callback = callback

    def emit(self, event: UIEvent) -> None:
        self._callback(event.to_dict())


class CompletionGuard(EventSink):
    """
    Wraps a sink so that exactly one ``complete`` event reaches it.

    ``complete()`` may be called any number of times; only the first call
    emits. Events emitted after completion are dropped. Used as a context
    manager, the guard completes on exit however the block ends.
    """

    def __init__(self, sink: EventSink) -> None:
        self._sink = sink
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def emit(self, event: UIEvent) -> None:
        if self._completed:
            _logger.warning("Dropping %s event emitted after completion", event.type)
            return
        if event.type == "complete":
            self.complete()
            return
        self._sink.emit(event)

    def complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        self._sink.emit(UIEvent(type="complete"))

    def __enter__(self) -> CompletionGuard:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.complete()
