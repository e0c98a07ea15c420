"""
Parley - LLM orchestration engine

Streams model output, recognizes tagged thinking, answers, questions and
tool calls in it, runs the requested tools, and loops until the model
has answered.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("parley")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)
__author__ = "Parley Contributors"

from parley.config import Settings  # noqa: E402
from parley.core import TurnController, handle_request  # noqa: E402

__all__ = ["__version__", "__version_info__", "Settings", "TurnController", "handle_request"]
