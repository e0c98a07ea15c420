"""Tests for configuration type definitions."""

import pydantic as _pydantic
import pytest as _pytest

import parley.config.types as types


class TestConfigBaseIntrospection:
    """Tests for extra field auditing."""

    def test_no_extra_fields(self) -> None:
        assert types.BehaviorConfig().get_extra_fields() == {}

    def test_extra_fields_kept(self) -> None:
        behavior = types.BehaviorConfig.model_validate({"max_steps": 4, "typo_field": 1})
        assert behavior.get_extra_fields() == {"typo_field": 1}
        assert behavior.collect_all_extra_fields(prefix="behavior") == {
            "behavior.typo_field": 1
        }


class TestBehaviorConfig:
    """Tests for BehaviorConfig validation."""

    def test_max_steps_must_be_positive(self) -> None:
        with _pytest.raises(_pydantic.ValidationError):
            types.BehaviorConfig(max_steps=0)

    def test_timeouts_must_be_positive(self) -> None:
        with _pytest.raises(_pydantic.ValidationError):
            types.BehaviorConfig(provider_timeout=0)

    def test_title_mode_values(self) -> None:
        assert types.BehaviorConfig(title_mode="bundled").title_mode == "bundled"
        with _pytest.raises(_pydantic.ValidationError):
            types.BehaviorConfig(title_mode="inline")


class TestProvidersConfig:
    """Tests for ProvidersConfig accessors."""

    def test_model_and_base_url(self) -> None:
        providers = types.ProvidersConfig(base_urls={"ollama": "http://box:11434"})
        assert providers.get_model("openai") == "gpt-4o"
        assert providers.get_base_url("ollama") == "http://box:11434"
        assert providers.get_base_url("anthropic") is None


class TestToolsConfig:
    """Tests for ToolsConfig validation."""

    def test_tool_under_two_servers_rejected(self) -> None:
        with _pytest.raises(_pydantic.ValidationError, match="fetch_txt"):
            types.ToolsConfig(servers={"a": ["fetch_txt"], "b": ["fetch_txt"]})

    def test_repeated_tool_in_same_server_allowed(self) -> None:
        tools = types.ToolsConfig(servers={"a": ["fetch_txt", "fetch_txt"]})
        assert tools.servers == {"a": ["fetch_txt", "fetch_txt"]}
