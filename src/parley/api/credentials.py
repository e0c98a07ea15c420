"""
API key lookup for providers.

A key can come from a credentials file (a JSON object with an ``api_key``
field, handy for keeping secrets out of the environment), from an explicit
argument, or from the provider's usual environment variable.
"""

import json as _json
import os as _os
import pathlib as _pathlib
import typing as _typing


def _expand(path: str) -> _pathlib.Path:
    """Resolve ``~`` and ``$VAR`` references in a path."""
    return _pathlib.Path(_os.path.expandvars(path)).expanduser()


def load_credentials_from_path(path: str) -> dict[str, _typing.Any]:
    """
    Read a credentials JSON file.

    Args:
        path: File path; ``~`` and ``$VAR`` are expanded.

    Returns:
        The decoded object, e.g. ``{"api_key": "..."}``.

    Raises:
        ValueError: The file is missing, unreadable, not JSON, or not an object.
    """
    creds_path = _expand(path)

    try:
        with creds_path.open(encoding="utf-8") as f:
            credentials = _json.load(f)
    except FileNotFoundError as e:
        raise ValueError(f"Credentials file not found: {creds_path}") from e
    except PermissionError as e:
        raise ValueError(f"Permission denied reading credentials file: {creds_path}") from e
    except _json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in credentials file {creds_path}: {e}") from e

    if not isinstance(credentials, dict):
        raise ValueError(f"Credentials file must contain a JSON object: {creds_path}")
    return credentials


def resolve_api_key(
    *,
    api_key: str | None = None,
    credentials_path: str | None = None,
    env_var: str | None = None,
) -> str | None:
    """
    Pick the API key for a provider.

    Precedence: credentials file, then the explicit ``api_key`` argument,
    then the ``env_var`` environment variable. Returns None when none of
    them yields a non-empty key.
    """
    if credentials_path:
        from_file = load_credentials_from_path(credentials_path).get("api_key")
        if from_file:
            return str(from_file)
    if api_key:
        return api_key
    if env_var:
        return _os.environ.get(env_var) or None
    return None
