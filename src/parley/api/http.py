"""
Shared HTTP helpers for providers that stream server-sent events over httpx.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import typing as _typing

import httpx as _httpx

import parley.exceptions as _exceptions

_logger = _logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def build_client(
    base_url: str,
    headers: dict[str, str],
    *,
    timeout: float,
    transport: _httpx.AsyncBaseTransport | None = None,
) -> _httpx.AsyncClient:
    """Create the AsyncClient a provider keeps for its lifetime."""
    return _httpx.AsyncClient(
        base_url=base_url,
        headers={"User-Agent": "Parley/1.0", **headers},
        timeout=timeout,
        transport=transport,
    )


async def raise_for_status(response: _httpx.Response, provider: str) -> None:
    """
    Raise ProviderError for a non-2xx streaming response.

    The body of a streaming response has not been read yet, so read it
    first to surface the provider's error message.
    """
    if response.is_success:
        return

    body = (await response.aread()).decode("utf-8", errors="replace")
    message = body
    try:
        data = _json.loads(body)
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            message = error.get("message") or body
        elif isinstance(error, str):
            message = error
    except _json.JSONDecodeError:
        pass

    raise _exceptions.ProviderError(
        f"{provider} API error ({response.status_code}): {message}",
        provider=provider,
        status_code=response.status_code,
    )


async def iter_sse_json(
    response: _httpx.Response,
) -> _typing.AsyncIterator[dict[str, _typing.Any] | None]:
    """
    Yield decoded JSON payloads from the ``data:`` lines of an SSE stream.

    Yields None for the ``[DONE]`` sentinel. Lines that are not data lines
    (``event:``, comments, blank keep-alives) and undecodable payloads are
    skipped.
    """
    async for line in response.aiter_lines():
        if not line.startswith(SSE_DATA_PREFIX):
            continue

        data_str = line[len(SSE_DATA_PREFIX):].strip()
        if not data_str:
            continue
        if data_str == SSE_DONE:
            yield None
            continue

        try:
            payload = _json.loads(data_str)
        except _json.JSONDecodeError:
            _logger.debug("Skipping undecodable SSE payload: %.200s", data_str)
            continue

        if isinstance(payload, dict):
            yield payload


def transport_error(provider: str, error: _httpx.HTTPError) -> _exceptions.ProviderError:
    """Wrap an httpx failure in a ProviderError."""
    if isinstance(error, _httpx.TimeoutException):
        return _exceptions.ProviderTimeoutError(
            f"{provider} request timed out: {error}",
            provider=provider,
        )
    return _exceptions.ProviderError(
        f"{provider} request failed: {error}",
        provider=provider,
    )
