"""
Conversation logger for Parley.

Records one request's turn-loop as JSON lines, one object per event, for
debugging and offline analysis. Every record carries ``timestamp``,
``event_number`` and ``event_type``; the remaining keys depend on the
event type:

=============== ==================================================
session_start   session_id, provider, model
system_prompt   content
user_message    content
step            step, message_count
thinking        content
answer          content, fallback
tool_call       tool_name, tool_input, server_id
tool_result     tool_name, success, output (truncated), error,
                duration_ms
usage           step, stop_reason, input_tokens, output_tokens
forced_final    step
tool_metrics    tools
error           error, context
session_end     total_events
=============== ==================================================
"""

import datetime as _datetime
import json as _json
import pathlib as _pathlib
import typing as _typing

import parley.constants as _constants

DEFAULT_LOG_DIR = _pathlib.Path("/tmp/parley-logs")


def _now() -> _datetime.datetime:
    return _datetime.datetime.now(_datetime.UTC)


def _preview(text: str | None) -> str | None:
    if text is None:
        return None
    return text[:_constants.DEFAULT_PREVIEW_LENGTH]


class ConversationLogger:
    """
    Appends turn-loop events to a JSONL file.

    A disabled logger accepts every call and writes nothing, so callers
    never need to check whether logging is on.

    Usage:
        with ConversationLogger(log_dir="/tmp/logs", provider="anthropic") as log:
            log.log_user_message("Tell me about MIT")
            log.log_answer("MIT is ...")
    """

    def __init__(
        self,
        *,
        log_dir: _pathlib.Path | str | None = None,
        log_file: _pathlib.Path | str | None = None,
        private_mode: bool = True,
        provider: str = "unknown",
        model: str = "unknown",
        enabled: bool = True,
    ) -> None:
        """
        Open the log and write the session_start record.

        Args:
            log_dir: Directory for an auto-named log file.
            log_file: Exact file to write (wins over log_dir).
            private_mode: Restrict the log directory to its owner (0o700).
            provider: Provider name recorded in session_start.
            model: Model name recorded in session_start.
            enabled: When False nothing is created or written.
        """
        self._session_id = _now().strftime("%Y%m%d_%H%M%S_%f")
        self._event_count = 0
        self._stream: _typing.TextIO | None = None
        self._path: _pathlib.Path | None = None

        if not enabled:
            return

        self._path = self._resolve_path(log_dir, log_file, private_mode)
        self._stream = self._path.open("w", encoding="utf-8")
        self._emit("session_start", session_id=self._session_id, provider=provider, model=model)

    def _resolve_path(
        self,
        log_dir: _pathlib.Path | str | None,
        log_file: _pathlib.Path | str | None,
        private_mode: bool,
    ) -> _pathlib.Path:
        if log_file:
            return _pathlib.Path(log_file)

        directory = _pathlib.Path(log_dir) if log_dir else DEFAULT_LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        if private_mode:
            directory.chmod(0o700)
        return directory / f"parley_{self._session_id}.jsonl"

    def _emit(self, event_type: str, **fields: _typing.Any) -> None:
        if self._stream is None:
            return

        self._event_count += 1
        record = {
            "timestamp": _now().isoformat(),
            "event_number": self._event_count,
            "event_type": event_type,
            **fields,
        }
        try:
            self._stream.write(_json.dumps(record, default=str) + "\n")
            self._stream.flush()
        except OSError:
            # A full disk must not end the conversation
            pass

    # -------------------------------------------------------------------------
    # Request inputs
    # -------------------------------------------------------------------------

    def log_system_prompt(self, prompt: str) -> None:
        self._emit("system_prompt", content=prompt)

    def log_user_message(self, content: str) -> None:
        self._emit("user_message", content=content)

    # -------------------------------------------------------------------------
    # Turn loop
    # -------------------------------------------------------------------------

    def log_step(self, step: int, message_count: int) -> None:
        """A provider round is starting with ``message_count`` history messages."""
        self._emit("step", step=step, message_count=message_count)

    def log_thinking(self, content: str) -> None:
        self._emit("thinking", content=content)

    def log_answer(self, content: str, *, fallback: bool = False) -> None:
        """An answer was classified; ``fallback`` means it was untagged leftover text."""
        self._emit("answer", content=content, fallback=fallback)

    def log_usage(
        self,
        step: int,
        stop_reason: str | None,
        input_tokens: int,
        output_tokens: int,
    ) -> None:
        """Token counts reported by the provider at the end of a round."""
        self._emit(
            "usage",
            step=step,
            stop_reason=stop_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def log_forced_final(self, step: int) -> None:
        self._emit("forced_final", step=step)

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: dict[str, _typing.Any],
        server_id: str | None = None,
    ) -> None:
        self._emit("tool_call", tool_name=tool_name, tool_input=tool_input, server_id=server_id)

    def log_tool_result(
        self,
        tool_name: str | None,
        success: bool,
        output: str | None = None,
        error: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Outcome of one tool call; long output is truncated to a preview."""
        fields: dict[str, _typing.Any] = {
            "tool_name": tool_name,
            "success": success,
            "output": _preview(output),
            "error": error,
        }
        if duration_ms is not None:
            fields["duration_ms"] = round(duration_ms, 2)
        self._emit("tool_result", **fields)

    def log_tool_metrics(self, metrics: dict[str, dict[str, _typing.Any]]) -> None:
        """Per-tool totals, as returned by MetricsCollector.to_dict()."""
        self._emit("tool_metrics", tools=metrics)

    def log_error(self, error: str, context: str | None = None) -> None:
        self._emit("error", error=error, context=context)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def file_path(self) -> _pathlib.Path | None:
        return self._path

    @property
    def enabled(self) -> bool:
        return self._path is not None

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        """Write session_end and close the file. Later calls are ignored."""
        if self._stream is None:
            return

        self._emit("session_end", total_events=self._event_count)
        stream, self._stream = self._stream, None
        try:
            stream.close()
        except OSError:
            pass

    def __enter__(self) -> "ConversationLogger":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: _typing.Any,
    ) -> None:
        if exc_type is not None:
            self.log_error(str(exc_val), context=f"Exception: {exc_type.__name__}")
        self.close()
