"""
Tool server registry.

Maps each tool name the model may call to the id of the server that owns
it. A name that is not registered is an "unknown tool" for the engine.
"""

from __future__ import annotations

import logging as _logging
import pathlib as _pathlib
import typing as _typing

import yaml as _yaml

if _typing.TYPE_CHECKING:
    import parley.config as config

_logger = _logging.getLogger(__name__)


class ToolServerRegistry:
    """
    Registry of tool name -> server id.

    Tools can be registered one at a time or a whole server at once, and
    looked up by name when a tool call is parsed.
    """

    def __init__(self) -> None:
        self._servers: dict[str, str] = {}

    @classmethod
    def from_mapping(cls, servers: _typing.Mapping[str, _typing.Iterable[str]]) -> ToolServerRegistry:
        """
        Build a registry from ``{server_id: [tool_name, ...]}``.

        Raises:
            ValueError: If a tool is listed under more than one server
        """
        registry = cls()
        for server_id, tool_names in servers.items():
            registry.register_server(server_id, tool_names)
        return registry

    @classmethod
    def from_settings(cls, settings: config.Settings) -> ToolServerRegistry:
        """Build a registry from the ``tools.servers`` config section."""
        return cls.from_mapping(settings.tools.servers)

    @classmethod
    def from_yaml(cls, path: _pathlib.Path) -> ToolServerRegistry:
        """
        Build a registry from a YAML file shaped like ``tools.servers``.

        Raises:
            ValueError: If the file is not a mapping of server id to a list
                of tool names, or lists a tool twice
        """
        data = _yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict) or not all(
            isinstance(tools, list) for tools in data.values()
        ):
            raise ValueError(
                f"{path}: expected a mapping of server id to a list of tool names"
            )
        return cls.from_mapping(data)

    def register(self, tool_name: str, server_id: str) -> None:
        """
        Register a tool under a server.

        Raises:
            ValueError: If the tool is already registered
        """
        if tool_name in self._servers:
            raise ValueError(
                f"Tool '{tool_name}' is already registered "
                f"(server '{self._servers[tool_name]}')"
            )
        self._servers[tool_name] = server_id

    def register_server(self, server_id: str, tool_names: _typing.Iterable[str]) -> None:
        for tool_name in tool_names:
            self.register(tool_name, server_id)

    def get(self, tool_name: str) -> str | None:
        """Server id for a tool, or None if the tool is unknown."""
        return self._servers.get(tool_name)

    def list_names(self) -> list[str]:
        """Sorted list of registered tool names."""
        return sorted(self._servers)

    def to_dict(self) -> dict[str, list[str]]:
        """Registry as ``{server_id: [tool_name, ...]}`` with sorted tool lists."""
        servers: dict[str, list[str]] = {}
        for tool_name in self.list_names():
            servers.setdefault(self._servers[tool_name], []).append(tool_name)
        return servers

    def __len__(self) -> int:
        return len(self._servers)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._servers
