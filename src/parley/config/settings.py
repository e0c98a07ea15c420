"""
Settings configuration using pydantic-settings.

Loads configuration from:
1. Constructor arguments (highest precedence)
2. Environment variables with PARLEY_ prefix
3. .env file (if PARLEY_ENV_FILE points at one)
4. Layered YAML config files:
   - Project config: .parley/config.yaml (highest)
   - User config: ~/.config/parley/config.yaml

Nested config uses double underscore delimiter:
  PARLEY_BEHAVIOR__MAX_STEPS=20
  PARLEY_PROVIDERS__DEFAULT=openai
"""

import getpass as _getpass
import os as _os
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import parley.config.sources as sources
import parley.config.types as types


def _get_env_file() -> str | None:
    """Use PARLEY_ENV_FILE when it names an existing file, otherwise no .env."""
    env_file = _os.environ.get("PARLEY_ENV_FILE")
    if env_file and _pathlib.Path(env_file).exists():
        return env_file
    return None


def _get_username() -> str:
    """Get the current username for directory naming."""
    try:
        return _getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class Settings(_pydantic_settings.BaseSettings):
    """
    Parley configuration settings.

    All settings can be overridden via environment variables with PARLEY_ prefix.
    For nested config, use double underscore: PARLEY_BEHAVIOR__TOOL_TIMEOUT=10

    Config precedence (highest to lowest):
    1. Constructor arguments
    2. Environment variables (PARLEY_*)
    3. .env file
    4. Project config (.parley/config.yaml)
    5. User config (~/.config/parley/config.yaml)
    6. Field defaults
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="PARLEY_",
        env_file=_get_env_file(),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # PARLEY_BEHAVIOR__MAX_STEPS
        extra="allow",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[_pydantic_settings.BaseSettings],
        init_settings: _pydantic_settings.PydanticBaseSettingsSource,
        env_settings: _pydantic_settings.PydanticBaseSettingsSource,
        dotenv_settings: _pydantic_settings.PydanticBaseSettingsSource,
        file_secret_settings: _pydantic_settings.PydanticBaseSettingsSource,
    ) -> tuple[_pydantic_settings.PydanticBaseSettingsSource, ...]:
        """
        Configure settings sources with precedence:
        1. init_settings (constructor args), highest
        2. env_settings (PARLEY_* env vars)
        3. dotenv_settings (.env file)
        4. yaml settings (project over user)
        5. (defaults via Field definitions), lowest
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            sources.LayeredYamlSettingsSource(settings_cls, _pathlib.Path.cwd()),
            file_secret_settings,
        )

    @classmethod
    def construct_without_dotenv(cls, **kwargs: _typing.Any) -> "Settings":
        """Create Settings from environment variables only, without loading .env file.

        Used for test isolation and for reproducing issues without .env
        interference.
        """
        return cls(_env_file=None, **kwargs)  # type: ignore[call-arg]

    # =========================================================================
    # Nested config sections
    # =========================================================================

    providers: types.ProvidersConfig = _pydantic.Field(
        default_factory=types.ProvidersConfig
    )
    """Provider configuration (default provider, per-provider model and URL)."""

    behavior: types.BehaviorConfig = _pydantic.Field(
        default_factory=types.BehaviorConfig
    )
    """Turn-loop behavior (max steps, timeouts, tag policies)."""

    logging: types.LoggingConfig = _pydantic.Field(default_factory=types.LoggingConfig)
    """Logging settings."""

    tools: types.ToolsConfig = _pydantic.Field(default_factory=types.ToolsConfig)
    """Tool server mapping."""

    # =========================================================================
    # API keys (loaded from env without PARLEY_ prefix for compatibility)
    # =========================================================================

    anthropic_api_key: str | None = _pydantic.Field(
        default=None,
        description="Anthropic API key",
        validation_alias="ANTHROPIC_API_KEY",
    )

    openai_api_key: str | None = _pydantic.Field(
        default=None,
        description="OpenAI API key",
        validation_alias="OPENAI_API_KEY",
    )

    gemini_api_key: str | None = _pydantic.Field(
        default=None,
        description="Google Gemini API key",
        validation_alias="GEMINI_API_KEY",
    )

    # =========================================================================
    # Convenience accessors
    # =========================================================================

    @property
    def provider(self) -> str:
        """Default provider (alias to providers.default)."""
        return self.providers.default

    @property
    def model(self) -> str | None:
        """Model for the default provider."""
        return self.providers.get_model(self.providers.default)

    @property
    def config_dir(self) -> _pathlib.Path:
        """User configuration directory (~/.config/parley/)."""
        return sources.get_user_config_dir()

    @property
    def logs_dir(self) -> _pathlib.Path:
        """Directory for conversation log files.

        Default: /tmp/parley-logs-{username}
        """
        if self.logging.dir:
            return _pathlib.Path(self.logging.dir)
        return _pathlib.Path(f"/tmp/parley-logs-{_get_username()}")

    def get_api_key(self, provider: str | None = None) -> str | None:
        """Get the API key for a provider (default: the configured provider)."""
        provider = provider or self.provider
        if provider == "anthropic":
            return self.anthropic_api_key
        if provider == "openai":
            return self.openai_api_key
        if provider == "gemini":
            return self.gemini_api_key
        return None

    def collect_all_extra_fields(self) -> dict[str, _typing.Any]:
        """
        Recursively collect unknown fields from Settings and nested configs.

        Returns a flat dict with dotted paths as keys.
        """
        result: dict[str, _typing.Any] = dict(self.model_extra) if self.model_extra else {}
        for field_name in ["providers", "behavior", "logging", "tools"]:
            nested = getattr(self, field_name)
            result.update(nested.collect_all_extra_fields(prefix=field_name))
        return result

    def to_dict(self) -> dict[str, _typing.Any]:
        """Effective settings as plain data, with API keys reduced to presence flags."""
        return {
            "providers": self.providers.model_dump(),
            "behavior": self.behavior.model_dump(),
            "logging": {**self.logging.model_dump(), "dir": str(self.logs_dir)},
            "tools": self.tools.model_dump(),
            "has_anthropic_api_key": self.anthropic_api_key is not None,
            "has_openai_api_key": self.openai_api_key is not None,
            "has_gemini_api_key": self.gemini_api_key is not None,
            "config_dir": str(self.config_dir),
        }
