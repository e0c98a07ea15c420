"""
Shared pytest fixtures for Parley tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import asyncio as _asyncio
import os as _os
import pathlib as _pathlib
import typing as _typing
import unittest.mock as _mock

import click.testing as _click_testing
import pytest as _pytest

import parley.api.base as api_base
import parley.api.types as api_types
import parley.config as config
import parley.core.events as events
import parley.tools.base as tools_base
import parley.tools.registry as tools_registry

# Environment keys that should be cleared for isolated tests
ENV_KEYS_TO_CLEAR = [
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "OLLAMA_HOST",
    "PARLEY_OLLAMA_HOST",
    "PARLEY_CONFIG_DIR",
    "PARLEY_ENV_FILE",
]


@_pytest.fixture
def clean_env() -> dict[str, str]:
    """
    Return environment dict with test-related keys removed.

    Use with mock.patch.dict to isolate tests from the actual environment.
    """
    return {
        k: v
        for k, v in _os.environ.items()
        if k not in ENV_KEYS_TO_CLEAR and not k.startswith("PARLEY_")
    }


@_pytest.fixture
def isolated_env(clean_env: dict[str, str], tmp_path: _pathlib.Path):
    """
    Context manager that isolates tests from environment variables and the
    user's config directory.

    Usage:
        def test_something(isolated_env):
            with isolated_env:
                settings = config.Settings.construct_without_dotenv()
    """
    user_dir = tmp_path / "user-config"
    user_dir.mkdir(exist_ok=True)
    return _mock.patch.dict(
        _os.environ,
        {**clean_env, "PARLEY_CONFIG_DIR": str(user_dir)},
        clear=True,
    )


@_pytest.fixture
def clean_settings(
    isolated_env,
    tmp_path: _pathlib.Path,
    monkeypatch: _pytest.MonkeyPatch,
) -> config.Settings:
    """
    Settings instance isolated from environment, .env file and config files.

    This fixture ensures tests get predictable default settings.
    """
    project = tmp_path / "project"
    project.mkdir(exist_ok=True)
    monkeypatch.chdir(project)
    with isolated_env:
        return config.Settings.construct_without_dotenv()


# =============================================================================
# Scripted provider
# =============================================================================

RoundScript = list[str | api_types.StreamEvent]


class ScriptedMockProvider(api_base.LLMProvider):
    """
    Mock provider that streams a script of text deltas, one round per call.

    Useful for testing the turn loop: every request is recorded, and for
    each round the provider remembers which deltas were actually delivered
    and whether the stream was closed before it ran out.
    """

    def __init__(
        self,
        script: list[RoundScript] | _typing.Callable[[int], RoundScript],
        *,
        name: str = "mock",
        model: str = "mock-model",
        delay: float = 0.0,
    ) -> None:
        """
        Initialize with a script of rounds.

        Script format: one list per provider round; strings become
        ``text_delta`` events, StreamEvent items are yielded as-is. A
        callable receives the round index and returns that round.
        """
        self._script = script
        self._name = name
        self._model = model
        self._delay = delay
        self.requests: list[api_types.StreamRequest] = []
        self.delivered: list[list[str]] = []
        self.closed_early: list[bool] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> str:
        return self._model

    @property
    def rounds(self) -> int:
        return len(self.requests)

    def _round(self, index: int) -> RoundScript:
        if callable(self._script):
            return self._script(index)
        if index < len(self._script):
            return self._script[index]
        return ["<answer>[Script exhausted]</answer>"]

    def _shape_payload(self, request: api_types.StreamRequest) -> dict[str, _typing.Any]:
        return {"model": request.model, "messages": request.messages}

    async def _stream_events(
        self,
        request: api_types.StreamRequest,
    ) -> _typing.AsyncGenerator[api_types.StreamEvent, None]:
        index = len(self.requests)
        self.requests.append(request)
        delivered: list[str] = []
        self.delivered.append(delivered)
        completed = False
        try:
            yield api_types.StreamEvent(type="message_start", message_id=f"msg-{index}")
            for item in self._round(index):
                if isinstance(item, api_types.StreamEvent):
                    yield item
                    continue
                if self._delay:
                    await _asyncio.sleep(self._delay)
                delivered.append(item)
                yield api_types.StreamEvent(type="text_delta", text=item)
            yield api_types.StreamEvent(
                type="message_stop",
                stop_reason="end_turn",
                usage=api_types.Usage(input_tokens=10, output_tokens=5),
            )
            completed = True
        finally:
            self.closed_early.append(not completed)


def tool_call(name: str, parameters: str) -> str:
    """Build a tool tag the way a model writes it."""
    return f"<tool><name>{name}</name><parameters>{parameters}</parameters></tool>"


@_pytest.fixture
def scripted_provider_factory() -> _typing.Callable[..., ScriptedMockProvider]:
    """Factory fixture for ScriptedMockProvider instances."""

    def _create(
        script: list[RoundScript] | _typing.Callable[[int], RoundScript],
        **kwargs: _typing.Any,
    ) -> ScriptedMockProvider:
        return ScriptedMockProvider(script, **kwargs)

    return _create


# =============================================================================
# Tools
# =============================================================================


class RecordingHandler:
    """Server handler that records calls and returns a canned response."""

    def __init__(
        self,
        response: _typing.Any = None,
        *,
        exception: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self._response = response
        self._exception = exception
        self._delay = delay
        self.calls: list[tuple[str, dict[str, _typing.Any], str | None]] = []

    async def __call__(
        self,
        tool_name: str,
        parameters: dict[str, _typing.Any],
        identity: str | None,
    ) -> _typing.Any:
        self.calls.append((tool_name, parameters, identity))
        if self._delay:
            await _asyncio.sleep(self._delay)
        if self._exception:
            raise self._exception
        if self._response is not None:
            return self._response
        return {"content": [{"text": f'{{"tool": "{tool_name}", "results": ["MIT"]}}'}]}


@_pytest.fixture
def tool_registry() -> tools_registry.ToolServerRegistry:
    """Registry with the college data server's tools."""
    return tools_registry.ToolServerRegistry.from_mapping(
        {
            "college-data": ["search_college_data", "get_cds_data"],
            "fetch": ["fetch_txt"],
        }
    )


@_pytest.fixture
def recording_handler() -> RecordingHandler:
    return RecordingHandler()


@_pytest.fixture
def handler_invoker(recording_handler: RecordingHandler) -> tools_base.HandlerInvoker:
    """Invoker routing both servers to the recording handler."""
    invoker = tools_base.HandlerInvoker()
    invoker.register_server("college-data", recording_handler)
    invoker.register_server("fetch", recording_handler)
    return invoker


@_pytest.fixture
def collecting_sink() -> events.CollectingSink:
    return events.CollectingSink()


@_pytest.fixture
def cli_runner() -> _click_testing.CliRunner:
    """Click CLI test runner."""
    return _click_testing.CliRunner()
