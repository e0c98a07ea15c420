"""Configuration type definitions for Parley settings.

This module defines the Pydantic models used to represent configuration
sections nested within the main Settings class:

- ProvidersConfig: default provider, per-provider model and base URL
- BehaviorConfig: turn-loop limits, timeouts, sampling, tag policies
- LoggingConfig: conversation log switch, directory, level
- ToolsConfig: tool server mapping (server id -> tool names)

All types use `extra="allow"` so unknown keys are preserved and can be
reported with `collect_all_extra_fields()` instead of silently dropped.
"""

import typing as _typing

import pydantic as _pydantic

import parley.constants as _constants

# =============================================================================
# Base class with introspection
# =============================================================================


class ConfigBase(_pydantic.BaseModel):
    """
    Base class for all config types.

    Unknown fields are kept in `model_extra` so typos in config files can
    be audited rather than silently ignored.
    """

    model_config = _pydantic.ConfigDict(extra="allow")

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Return fields that were provided but not in the schema."""
        return dict(self.model_extra) if self.model_extra else {}

    def collect_all_extra_fields(
        self,
        prefix: str = "",
    ) -> dict[str, _typing.Any]:
        """
        Recursively collect extra fields from this config and nested configs.

        Returns a flat dict with dotted paths as keys, e.g.
        {"behavior.max_step": 10}.
        """
        result: dict[str, _typing.Any] = {}

        for key, value in self.get_extra_fields().items():
            path = f"{prefix}.{key}" if prefix else key
            result[path] = value

        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            if isinstance(value, ConfigBase):
                child_prefix = f"{prefix}.{field_name}" if prefix else field_name
                result.update(value.collect_all_extra_fields(child_prefix))

        return result


# =============================================================================
# Provider Settings
# =============================================================================


class ProvidersConfig(ConfigBase):
    """
    Provider-related configuration.

    YAML section: providers.*

    YAML shape:
        providers:
          default: anthropic
          models:
            anthropic: claude-3-5-sonnet-20241022
          base_urls:
            ollama: http://gpu-server:11434
    """

    default: str = _constants.DEFAULT_PROVIDER
    """Provider used when none is specified."""

    models: dict[str, str] = _pydantic.Field(
        default_factory=lambda: dict(_constants.DEFAULT_MODELS)
    )
    """Model to use per provider type."""

    base_urls: dict[str, str] = _pydantic.Field(default_factory=dict)
    """Endpoint overrides per provider type (proxies, self-hosted servers)."""

    def get_model(self, provider: str) -> str | None:
        """Model configured for a provider, or None."""
        return self.models.get(provider)

    def get_base_url(self, provider: str) -> str | None:
        """Base URL override for a provider, or None."""
        return self.base_urls.get(provider)


# =============================================================================
# Behavior Settings
# =============================================================================


class BehaviorConfig(ConfigBase):
    """
    Turn-loop behavior settings.

    YAML section: behavior.*
    """

    max_steps: int = _pydantic.Field(default=_constants.MAX_STEPS, ge=1)
    """Provider rounds allowed before the circuit breaker forces a final answer."""

    provider_timeout: float = _pydantic.Field(
        default=_constants.PROVIDER_TIMEOUT_SECONDS, gt=0
    )
    """Seconds allowed for one provider streaming call."""

    tool_timeout: float = _pydantic.Field(default=_constants.TOOL_TIMEOUT_SECONDS, gt=0)
    """Seconds allowed for one tool invocation."""

    max_tokens: int = _pydantic.Field(
        default=_constants.DEFAULT_MAX_TOKENS, ge=1, le=200000
    )
    """Maximum tokens for completions."""

    temperature: float = _pydantic.Field(
        default=_constants.DEFAULT_TEMPERATURE, ge=0.0, le=2.0
    )
    """Sampling temperature."""

    title_mode: _typing.Literal["separate", "bundled"] = "separate"
    """How a title arriving after the answer is delivered."""

    late_tool_policy: _typing.Literal["execute", "discard"] = "execute"
    """What to do with a tool call that completes after an answer was saved."""

    request_title: bool = True
    """Ask the model for a conversation title on the first answer."""


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingConfig(ConfigBase):
    """
    Logging settings.

    YAML section: logging.*
    """

    enabled: bool = False
    """Write a JSONL conversation log per request."""

    dir: str | None = None
    """Log directory. None = use default."""

    level: _typing.Literal["debug", "info", "warning", "error"] = "warning"
    """Diagnostic log level for the CLI."""


# =============================================================================
# Tool Settings
# =============================================================================


class ToolsConfig(ConfigBase):
    """
    Tool resolution configuration.

    YAML section: tools.*

    YAML shape:
        tools:
          servers:
            college-data: [search_college_data, get_cds_data]
            fetch: [fetch_txt]
          handlers:
            fetch: mytools.fetch:handle
    """

    servers: dict[str, list[str]] = _pydantic.Field(default_factory=dict)
    """Mapping of server id -> tool names it serves."""

    handlers: dict[str, str] = _pydantic.Field(default_factory=dict)
    """Mapping of server id -> "module:callable" import path of its in-process handler."""

    @_pydantic.field_validator("servers")
    @classmethod
    def _check_unique_tools(
        cls,
        servers: dict[str, list[str]],
    ) -> dict[str, list[str]]:
        """A tool name may belong to one server only."""
        owners: dict[str, str] = {}
        for server_id, tools in servers.items():
            for tool in tools:
                if tool in owners and owners[tool] != server_id:
                    raise ValueError(
                        f"Tool '{tool}' is listed under both "
                        f"'{owners[tool]}' and '{server_id}'"
                    )
                owners[tool] = server_id
        return servers
