"""Tests for CLI main module."""

import json as _json
import pathlib as _pathlib
import textwrap as _textwrap

import click.testing as _click_testing
import pytest as _pytest

import parley.api as api
import parley.api.types as api_types
import parley.cli as cli
import tests.conftest as conftest


@_pytest.fixture
def project_dir(tmp_path: _pathlib.Path, monkeypatch: _pytest.MonkeyPatch) -> _pathlib.Path:
    """Empty project directory used as the working directory."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    return project


def _write_user_config(tmp_path: _pathlib.Path, content: str) -> None:
    path = tmp_path / "user-config" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_textwrap.dedent(content))


def _json_events(output: str) -> list[dict]:
    return [_json.loads(line) for line in output.splitlines() if line.startswith("{")]


class TestCLIBasics:
    """Commands that need no provider."""

    def test_help_lists_commands(
        self, cli_runner: _click_testing.CliRunner, isolated_env, project_dir
    ) -> None:
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["--help"])
        assert result.exit_code == 0
        for cmd in ["chat", "config", "providers", "tools"]:
            assert cmd in result.output

    def test_providers_json(
        self, cli_runner: _click_testing.CliRunner, isolated_env, project_dir
    ) -> None:
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["providers", "--json"])
        assert result.exit_code == 0
        names = [p["name"] for p in _json.loads(result.output)]
        assert names == ["anthropic", "openai", "gemini", "ollama"]

    def test_providers_text(
        self, cli_runner: _click_testing.CliRunner, isolated_env, project_dir
    ) -> None:
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["providers"])
        assert result.exit_code == 0
        assert "ANTHROPIC_API_KEY" in result.output

    def test_config_json_section(
        self, cli_runner: _click_testing.CliRunner, isolated_env, project_dir
    ) -> None:
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["config", "--json", "--section", "behavior"])
        assert result.exit_code == 0
        data = _json.loads(result.output)
        assert list(data) == ["behavior"]
        assert data["behavior"]["max_steps"] == 50

    def test_config_yaml(
        self, cli_runner: _click_testing.CliRunner, isolated_env, project_dir
    ) -> None:
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["config"])
        assert result.exit_code == 0
        assert "behavior:" in result.output
        assert "has_anthropic_api_key: false" in result.output

    def test_malformed_config_is_reported(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        tmp_path: _pathlib.Path,
    ) -> None:
        _write_user_config(tmp_path, "behavior: [oops\n")
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["config"])
        assert result.exit_code == 1
        assert "invalid YAML" in result.output

    def test_tools_listing(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        tmp_path: _pathlib.Path,
    ) -> None:
        _write_user_config(
            tmp_path,
            """
            tools:
              servers:
                college-data: [search_college_data, get_cds_data]
            """,
        )
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["tools", "--json"])
        assert result.exit_code == 0
        assert _json.loads(result.output) == {
            "college-data": ["get_cds_data", "search_college_data"]
        }

    def test_no_tools(
        self, cli_runner: _click_testing.CliRunner, isolated_env, project_dir
    ) -> None:
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["tools"])
        assert result.exit_code == 0
        assert "No tools configured" in result.output


class TestChatCommand:
    """Tests for `parley chat` with a scripted provider."""

    @_pytest.fixture
    def use_script(self, monkeypatch: _pytest.MonkeyPatch):
        """Make create_provider return a scripted provider."""

        def _install(script) -> conftest.ScriptedMockProvider:
            provider = conftest.ScriptedMockProvider(script)
            monkeypatch.setattr(api, "create_provider", lambda *args, **kwargs: provider)
            return provider

        return _install

    def test_json_events(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        use_script,
    ) -> None:
        use_script([["<answer>MIT is a good fit.</answer>"]])
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["chat", "--json", "Tell me about MIT"])

        assert result.exit_code == 0
        events = _json_events(result.output)
        assert [e["type"] for e in events] == ["response", "complete"]
        assert events[0]["content"] == "MIT is a good fit."

    def test_message_from_stdin(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        use_script,
    ) -> None:
        provider = use_script([["<answer>ok</answer>"]])
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["chat", "--json"], input="from stdin\n")

        assert result.exit_code == 0
        assert provider.requests[0].messages[-1]["content"] == "from stdin"

    def test_rich_rendering(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        use_script,
    ) -> None:
        use_script([["<thinking>Checking [bold]sources</thinking><answer>Harvard</answer>"]])
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["chat", "hello"])

        assert result.exit_code == 0
        assert "Checking [bold]sources" in result.output
        assert "Harvard" in result.output

    def test_system_prompt_file(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir: _pathlib.Path,
        use_script,
    ) -> None:
        provider = use_script([["<answer>ok</answer>"]])
        system_file = project_dir / "system.txt"
        system_file.write_text("You are a college advisor.")
        with isolated_env:
            result = cli_runner.invoke(
                cli.cli, ["chat", "--json", "--system", str(system_file), "hi"]
            )

        assert result.exit_code == 0
        assert provider.requests[0].system.startswith("You are a college advisor.")

    def test_provider_error_exits_nonzero(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        use_script,
    ) -> None:
        use_script([[api_types.StreamEvent(type="error", error="overloaded")]])
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["chat", "--json", "hi"])

        assert result.exit_code == 1
        assert [e["type"] for e in _json_events(result.output)] == ["error", "complete"]

    def test_tool_handler_from_config(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        use_script,
        tmp_path: _pathlib.Path,
        monkeypatch: _pytest.MonkeyPatch,
    ) -> None:
        (tmp_path / "parley_cli_handlers.py").write_text(
            _textwrap.dedent(
                """
                async def handle(tool_name, parameters, identity):
                    return {"content": [{"text": '{"school": "MIT", "who": "%s"}' % identity}]}
                """
            )
        )
        monkeypatch.syspath_prepend(str(tmp_path))
        _write_user_config(
            tmp_path,
            """
            tools:
              servers:
                college-data: [get_cds_data]
              handlers:
                college-data: parley_cli_handlers:handle
            """,
        )
        provider = use_script(
            [
                [conftest.tool_call("get_cds_data", '{"school": "MIT"}')],
                ["<answer>Done</answer>"],
            ]
        )
        with isolated_env:
            result = cli_runner.invoke(
                cli.cli, ["chat", "--json", "--identity", "user-7", "MIT data"]
            )

        assert result.exit_code == 0
        types = [e["type"] for e in _json_events(result.output)]
        assert types[-2:] == ["response", "complete"]
        assert "thinking" in types
        assert provider.rounds == 2
        assert "user-7" in provider.requests[1].messages[-1]["content"]

    def test_bad_handler_path(
        self,
        cli_runner: _click_testing.CliRunner,
        isolated_env,
        project_dir,
        use_script,
        tmp_path: _pathlib.Path,
    ) -> None:
        use_script([])
        _write_user_config(
            tmp_path,
            """
            tools:
              handlers:
                fetch: not-a-path
            """,
        )
        with isolated_env:
            result = cli_runner.invoke(cli.cli, ["chat", "hi"])

        assert result.exit_code == 1
        assert "module:callable" in result.output
