"""
Main CLI entry point for Parley.

Provides the command-line interface using Click. ``parley chat`` runs one
request through the turn loop and renders its UI events with rich, or
prints them as JSON lines.
"""

import asyncio as _asyncio
import json as _json
import pathlib as _pathlib
import sys as _sys
import typing as _typing

import click as _click
import rich.console as _rich_console
import rich.markdown as _rich_markdown
import rich.markup as _rich_markup
import rich.syntax as _rich_syntax
import yaml as _yaml

import parley
import parley.api as api
import parley.config as config
import parley.core as core
import parley.core.events as events
import parley.core.request as request
import parley.tools as tools

# Custom Click context settings for better help formatting
CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}


def _run_async(coro: _typing.Coroutine[_typing.Any, _typing.Any, _typing.Any]) -> _typing.Any:
    """Run an async coroutine synchronously."""
    return _asyncio.run(coro)


@_click.group(context_settings=CONTEXT_SETTINGS)
@_click.version_option(parley.__version__, "-v", "--version", prog_name="parley")
@_click.pass_context
def cli(ctx: _click.Context) -> None:
    """
    Parley - LLM orchestration engine.

    \b
    Examples:
        parley chat "Which colleges fit a marine biology major?"
        parley chat --json "hello"             # Events as JSON lines
        echo "hello" | parley chat             # Message from stdin
        parley providers                       # Provider types and keys
        parley tools                           # Tool -> server mapping
        parley config                          # Effective configuration
    """
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = config.Settings()
    except config.ConfigFileError as e:
        raise _click.ClickException(str(e)) from None


class RichEventRenderer(events.EventSink):
    """Renders UI events to a rich console as they arrive."""

    def __init__(self, console: _rich_console.Console, *, show_tool_data: bool = True) -> None:
        self._console = console
        self._show_tool_data = show_tool_data

    def emit(self, event: events.UIEvent) -> None:
        if event.type == "thinking":
            self._console.print(event.content, style="dim italic", markup=False, highlight=False)
            if event.tool_data and self._show_tool_data:
                self._console.print(_rich_syntax.Syntax(event.tool_data, "json", theme="monokai"))
        elif event.type == "response":
            if event.content:
                self._console.print(_rich_markdown.Markdown(event.content))
            if event.suggested_title:
                self._print_title(event.suggested_title)
            for task in event.research_tasks or []:
                label = _rich_markup.escape(f"{task['type']} - {task['name']}")
                self._console.print(f"[magenta]Research task:[/] {label}")
        elif event.type == "title" and event.suggested_title:
            self._print_title(event.suggested_title)
        elif event.type == "system":
            self._console.print(event.content, style="yellow", markup=False)
        elif event.type == "error":
            self._console.print(f"Error: {event.content}", style="bold red", markup=False)

    def _print_title(self, title: str) -> None:
        self._console.print(f"[bold cyan]Title:[/] {_rich_markup.escape(title)}")


def _json_lines_sink() -> events.EventSink:
    return events.CallbackSink(lambda data: _click.echo(_json.dumps(data)))


def _read_message(message: str | None) -> str:
    if message:
        return message
    if not _sys.stdin.isatty():
        text = _sys.stdin.read().strip()
        if text:
            return text
    raise _click.UsageError("No message given (pass MESSAGE or pipe it on stdin)")


@cli.command()
@_click.argument("message", required=False)
@_click.option("--provider", type=_click.Choice(sorted(api.BUILTIN_PROVIDER_TYPES)), default=None)
@_click.option("--model", type=str, default=None, help="Model to use for completions")
@_click.option(
    "--system",
    "system_file",
    type=_click.Path(exists=True, dir_okay=False, path_type=_pathlib.Path),
    default=None,
    help="File holding the system prompt",
)
@_click.option("--identity", type=str, default=None, help="Caller identity passed to tools")
@_click.option("--json", "json_output", is_flag=True, help="Print UI events as JSON lines")
@_click.option("--log/--no-log", "log_enabled", default=None, help="Write a conversation log")
@_click.pass_context
def chat(
    ctx: _click.Context,
    message: str | None,
    provider: str | None,
    model: str | None,
    system_file: _pathlib.Path | None,
    identity: str | None,
    json_output: bool,
    log_enabled: bool | None,
) -> None:
    """Send one message and run the turn loop until the model answers."""
    settings: config.Settings = ctx.obj["settings"]
    text = _read_message(message)
    system_prompt = system_file.read_text() if system_file else ""

    if log_enabled is not None:
        settings.logging.enabled = log_enabled

    try:
        provider_instance = api.create_provider(provider, model, settings=settings)
        invoker = tools.HandlerInvoker.from_import_paths(settings.tools.handlers)
    except (ValueError, ImportError, AttributeError) as e:
        raise _click.ClickException(str(e)) from None

    conversation_logger = request.create_conversation_logger(settings, provider_instance)
    controller = request.create_controller(
        settings,
        invoker,
        provider=provider_instance,
        logger=conversation_logger,
    )

    if json_output:
        sink = _json_lines_sink()
    else:
        sink = RichEventRenderer(_rich_console.Console())

    async def _run() -> core.TurnLoopResult | None:
        try:
            return await request.handle_request(
                controller,
                [{"role": "user", "content": text}],
                system_prompt,
                sink,
                identity=identity,
                logger=conversation_logger,
            )
        finally:
            await provider_instance.aclose()

    try:
        result = _run_async(_run())
    finally:
        conversation_logger.close()

    if result is None:
        raise SystemExit(1)


@cli.command(name="providers")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def providers_cmd(ctx: _click.Context, json_output: bool) -> None:
    """List available LLM providers."""
    providers = api.get_available_providers(ctx.obj["settings"])

    if json_output:
        _click.echo(_json.dumps(providers, indent=2))
        return

    _click.echo("Available Providers:")
    for p in providers:
        status = "✓" if p["key_configured"] else "✗"
        _click.echo(f"  {status} {p['name']}: {p['description']}")
        if p["key_env_var"]:
            _click.echo(f"      Key: {p['key_env_var']}")
        _click.echo(f"      Default model: {p['default_model']}")


@cli.command(name="tools")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def tools_cmd(ctx: _click.Context, json_output: bool) -> None:
    """List the configured tool -> server mapping."""
    settings: config.Settings = ctx.obj["settings"]
    registry = tools.ToolServerRegistry.from_settings(settings)

    if json_output:
        _click.echo(_json.dumps(registry.to_dict(), indent=2))
        return

    if not len(registry):
        _click.echo("No tools configured (set tools.servers in .parley/config.yaml)")
        return

    for server_id, tool_names in registry.to_dict().items():
        handler = settings.tools.handlers.get(server_id, "no handler")
        _click.echo(f"{server_id} ({handler}):")
        for name in tool_names:
            _click.echo(f"  {name}")


@cli.command(name="config")
@_click.option("--json", "as_json", is_flag=True, help="Output as JSON instead of YAML")
@_click.option(
    "--section",
    type=_click.Choice(["providers", "behavior", "logging", "tools"]),
    default=None,
    help="Show only this section",
)
@_click.pass_context
def config_cmd(ctx: _click.Context, as_json: bool, section: str | None) -> None:
    """Show effective configuration from all sources."""
    settings: config.Settings = ctx.obj["settings"]
    full_config = settings.to_dict()
    if section:
        full_config = {section: full_config[section]}

    if as_json:
        _click.echo(_json.dumps(full_config, indent=2))
        return

    yaml_text = _yaml.dump(full_config, default_flow_style=False, sort_keys=False)
    console = _rich_console.Console()
    if console.is_terminal:
        console.print(
            _rich_syntax.Syntax(yaml_text, "yaml", theme="monokai", background_color="default")
        )
    else:
        _click.echo(yaml_text)

    unknown = settings.collect_all_extra_fields()
    if unknown:
        _click.echo(f"Warning: unknown config keys: {', '.join(sorted(unknown))}", err=True)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
