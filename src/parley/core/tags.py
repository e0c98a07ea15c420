"""
Tag scanning for streamed model output.

The model embeds structured content in its text as XML-like tags
(``<thinking>``, ``<answer>``, ``<title>``, ``<tool>``). Text arrives in
arbitrary fragments, so a tag is only acted on once both its opening and
closing markers are present; a tag that has opened but not yet closed is
"not yet complete" rather than malformed.

``find_complete_tag`` is the stateless form. ``StreamBuffer`` keeps the
text of one provider round and remembers, per tag name, how far it has
already looked, so each delta only re-examines the new tail.
"""

from __future__ import annotations

import dataclasses as _dataclasses


def open_marker(tag_name: str) -> str:
    return f"<{tag_name}>"


def close_marker(tag_name: str) -> str:
    return f"</{tag_name}>"


@_dataclasses.dataclass(frozen=True)
class TagMatch:
    """One complete ``<tag>...</tag>`` occurrence."""

    tag_name: str

    content: str
    """Text between the markers, trimmed of surrounding whitespace. May be empty."""

    full_match: str
    """The exact matched span, markers included."""

    start: int
    """Index of the opening marker in the scanned text."""

    @property
    def end(self) -> int:
        """Index just past the closing marker."""
        return self.start + len(self.full_match)

    @property
    def is_empty(self) -> bool:
        return not self.content


def _match_at(tag_name: str, text: str, start: int, close_at: int) -> TagMatch:
    end = close_at + len(close_marker(tag_name))
    return TagMatch(
        tag_name=tag_name,
        content=text[start + len(open_marker(tag_name)):close_at].strip(),
        full_match=text[start:end],
        start=start,
    )


def find_complete_tag(tag_name: str, buffer: str) -> TagMatch | None:
    """
    Find the first complete occurrence of a tag.

    The span runs from the first opening marker to the first closing
    marker after it. Nested or repeated openings inside the span are not
    interpreted; they become part of the content.

    Returns:
        The match, or None when no opening marker has a closing marker
        after it yet.
    """
    start = buffer.find(open_marker(tag_name))
    if start == -1:
        return None

    close_at = buffer.find(close_marker(tag_name), start + len(open_marker(tag_name)))
    if close_at == -1:
        return None

    return _match_at(tag_name, buffer, start, close_at)


def find_all_complete_tags(tag_name: str, buffer: str) -> tuple[list[TagMatch], str]:
    """
    Drain every complete occurrence of a tag, in document order.

    Returns:
        The matches and the buffer with each matched span removed.
    """
    matches: list[TagMatch] = []
    while (match := find_complete_tag(tag_name, buffer)) is not None:
        matches.append(match)
        buffer = buffer[:match.start] + buffer[match.end:]
    return matches, buffer


@_dataclasses.dataclass
class _ScanState:
    """Where to resume looking for one tag name."""

    open_from: int = 0
    """No opening marker starts before this index."""

    open_at: int | None = None
    """Index of an opening marker still waiting for its close."""

    close_from: int = 0
    """No closing marker for ``open_at`` starts before this index."""


class StreamBuffer:
    """
    Accumulates the text of one provider round and extracts complete tags.

    Scanning resumes where the previous scan for the same tag stopped,
    backed off by the marker length so a marker split across two deltas
    is still found. Removing a span can join text on either side into a
    new marker, so every removal resets all resume points.
    """

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._scans: dict[str, _ScanState] = {}

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def __bool__(self) -> bool:
        return bool(self._text)

    def __str__(self) -> str:
        return self._text

    def append(self, delta: str) -> None:
        self._text += delta

    def has_tag_start(self) -> bool:
        """Whether any ``<`` is buffered, i.e. a tag may be in progress."""
        return "<" in self._text

    def clear(self) -> str:
        """Empty the buffer and return what it held."""
        text = self._text
        self._text = ""
        self._scans.clear()
        return text

    def flush_plain_text(self) -> str:
        """
        Release buffered text that cannot be part of a tag.

        Only when no ``<`` is buffered at all; an unclosed tag keeps
        everything buffered until it closes or the stream ends.
        """
        if self.has_tag_start():
            return ""
        return self.clear()

    def peek(self, tag_name: str) -> TagMatch | None:
        """Find the first complete tag without removing it."""
        scan = self._scans.setdefault(tag_name, _ScanState())
        opening = open_marker(tag_name)
        closing = close_marker(tag_name)

        if scan.open_at is None:
            start = self._text.find(opening, scan.open_from)
            if start == -1:
                scan.open_from = max(0, len(self._text) - len(opening) + 1)
                return None
            scan.open_at = start
            scan.close_from = start + len(opening)

        close_at = self._text.find(closing, scan.close_from)
        if close_at == -1:
            scan.close_from = max(
                scan.open_at + len(opening),
                len(self._text) - len(closing) + 1,
            )
            return None

        return _match_at(tag_name, self._text, scan.open_at, close_at)

    def take(self, tag_name: str) -> TagMatch | None:
        """Find the first complete tag and remove its exact span from the buffer."""
        match = self.peek(tag_name)
        if match is None:
            return None
        self._text = self._text[:match.start] + self._text[match.end:]
        self._scans.clear()
        return match

    def take_all(self, tag_name: str) -> list[TagMatch]:
        """Remove every complete occurrence of a tag, in closing order."""
        matches: list[TagMatch] = []
        while (match := self.take(tag_name)) is not None:
            matches.append(match)
        return matches
