"""Structural checks on the history sent to a provider.

Consolidation should always produce a transcript of ``user`` and
``assistant`` turns with string content, starting with a user turn. These
validators fail fast when that does not hold, instead of letting a vendor
API reject the request with a less specific error.
"""

import typing as _typing

import parley.core.consolidator as consolidator
import parley.exceptions as _exceptions


def validate_provider_messages(
    messages: list[dict[str, _typing.Any]],
    *,
    strict: bool = True,
) -> list[str]:
    """Validate a provider-bound history.

    Args:
        messages: Consolidated messages.
        strict: If True, raise on the first violation. If False, collect
                and return all violations as strings.

    Returns:
        List of violation descriptions (empty if valid).

    Raises:
        MessageValidationError: If strict=True and any violation is found.
    """
    violations: list[tuple[str, int | None]] = []

    if not messages:
        violations.append(("History is empty", None))
    elif messages[0].get("role") != "user":
        violations.append(
            (f"History must start with a user message, got {messages[0].get('role')!r}", 0)
        )

    for i, msg in enumerate(messages):
        role = msg.get("role")
        if role not in consolidator.CANONICAL_ROLES:
            violations.append((f"Message {i} has non-canonical role {role!r}", i))
        if not isinstance(msg.get("content"), str):
            violations.append((f"Message {i} content must be a string", i))

    if strict and violations:
        description, index = violations[0]
        raise _exceptions.MessageValidationError(description, index=index)

    return [description for description, _ in violations]
