"""
Message consolidation before a provider call.

During a turn the history picks up UI-only roles (``thinking``, ``answer``,
``question``). Providers accept only ``user`` and ``assistant``, so before
each call the synthetic messages between two canonical turns are folded
into one assistant message that re-embeds them as tags.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import parley.constants as _constants
import parley.core.tags as tags

_logger = _logging.getLogger(__name__)

CANONICAL_ROLES = frozenset({"user", "assistant"})
SYNTHETIC_ROLES = (_constants.TAG_THINKING, _constants.TAG_ANSWER, _constants.TAG_QUESTION)


def build_structured_content(
    thinking: str = "",
    answer: str = "",
    question: str = "",
) -> str:
    """Wrap the parts that are present in tags, in thinking/answer/question order."""
    parts = [
        (_constants.TAG_THINKING, thinking),
        (_constants.TAG_ANSWER, answer),
        (_constants.TAG_QUESTION, question),
    ]
    return "".join(
        f"{tags.open_marker(name)}{text}{tags.close_marker(name)}"
        for name, text in parts
        if text
    )


def consolidate(messages: list[dict[str, _typing.Any]]) -> list[dict[str, _typing.Any]]:
    """
    Fold synthetic-role messages into canonical assistant turns.

    Pending thinking/answer/question content is flushed as one assistant
    message whenever a user or assistant message is reached, and at the
    end of the list. Several pending messages of the same role are joined
    with a blank line. Other roles (e.g. ``system``) are dropped. A list
    that is already canonical comes back unchanged.
    """
    consolidated: list[dict[str, _typing.Any]] = []
    pending: dict[str, list[str]] = {role: [] for role in SYNTHETIC_ROLES}

    def flush() -> None:
        if not any(pending.values()):
            return
        consolidated.append({
            "role": "assistant",
            "content": build_structured_content(
                **{role: "\n\n".join(texts) for role, texts in pending.items()}
            ),
        })
        for texts in pending.values():
            texts.clear()

    for message in messages:
        role = message.get("role")
        if role in CANONICAL_ROLES:
            flush()
            consolidated.append(message)
        elif role in pending:
            if message.get("content"):
                pending[role].append(message["content"])
        else:
            _logger.debug("Dropping %s message from provider history", role)

    flush()
    return consolidated
