"""
Anthropic Messages API provider implementation.

Streams ``/v1/messages`` over server-sent events. History is sent as a list
of role-tagged messages; the system prompt is sent as a content block so it
can carry a prompt-cache marker, and the most recent user turn is marked as
well so each round re-uses the cached prefix of the previous one.
"""

from __future__ import annotations

import typing as _typing

import httpx as _httpx

import parley.api.base as base
import parley.api.credentials as _credentials
import parley.api.http as _http
import parley.api.types as types
import parley.constants as _constants


ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"

_CACHE_MARKER: dict[str, str] = {"type": "ephemeral"}


class AnthropicProvider(base.LLMProvider):
    """
    Anthropic API provider.

    Adapts Anthropic's stream events (message_start, content_block_delta,
    message_delta, message_stop, error) to the shared StreamEvent taxonomy.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = _constants.DEFAULT_MODELS["anthropic"],
        *,
        base_url: str | None = None,
        timeout: float = _constants.PROVIDER_TIMEOUT_SECONDS,
        credentials_path: str | None = None,
        prompt_caching: bool = True,
        transport: _httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Anthropic provider.

        Args:
            api_key: API key. Defaults to ANTHROPIC_API_KEY.
            model: Model to use.
            base_url: Override the API endpoint (proxies, tests).
            timeout: HTTP timeout in seconds.
            credentials_path: JSON file containing {"api_key": "..."}.
            prompt_caching: Attach cache_control markers to the request.
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: If no API key can be found.
        """
        resolved_key = _credentials.resolve_api_key(
            api_key=api_key,
            credentials_path=credentials_path,
            env_var=API_KEY_ENV_VAR,
        )
        if not resolved_key:
            raise ValueError(
                f"Anthropic API key required. Set {API_KEY_ENV_VAR} or pass api_key."
            )

        self._model = model
        self._prompt_caching = prompt_caching
        self._client = _http.build_client(
            base_url or ANTHROPIC_API_URL,
            {
                "x-api-key": resolved_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def model(self) -> str:
        return self._model

    def _format_messages(
        self,
        messages: list[dict[str, _typing.Any]],
    ) -> list[dict[str, _typing.Any]]:
        """Map history to Anthropic roles and mark the last user turn for caching."""
        formatted: list[dict[str, _typing.Any]] = [
            {
                "role": "user" if msg.get("role") == "user" else "assistant",
                "content": msg.get("content") or "",
            }
            for msg in messages
        ]

        if not self._prompt_caching:
            return formatted

        for msg in reversed(formatted):
            if msg["role"] == "user":
                msg["content"] = [
                    {"type": "text", "text": msg["content"], "cache_control": _CACHE_MARKER}
                ]
                break
        return formatted

    def _shape_payload(self, request: types.StreamRequest) -> dict[str, _typing.Any]:
        payload: dict[str, _typing.Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": self._format_messages(request.messages),
            "stream": True,
        }
        if request.system:
            system_block: dict[str, _typing.Any] = {"type": "text", "text": request.system}
            if self._prompt_caching:
                system_block["cache_control"] = _CACHE_MARKER
            payload["system"] = [system_block]
        return payload

    async def _stream_events(
        self,
        request: types.StreamRequest,
    ) -> _typing.AsyncGenerator[types.StreamEvent, None]:
        payload = self._shape_payload(request)
        usage = types.Usage()
        stop_reason: str | None = None

        try:
            async with self._client.stream("POST", "/v1/messages", json=payload) as response:
                await _http.raise_for_status(response, self.name)

                async for data in _http.iter_sse_json(response):
                    if data is None:
                        continue
                    event_type = data.get("type")

                    if event_type == "message_start":
                        message = data.get("message", {})
                        message_usage = message.get("usage", {})
                        usage.input_tokens = message_usage.get("input_tokens", 0)
                        usage.cache_read_tokens = message_usage.get("cache_read_input_tokens")
                        yield types.StreamEvent(
                            type="message_start",
                            message_id=message.get("id"),
                        )

                    elif event_type == "content_block_delta":
                        delta = data.get("delta", {})
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield types.StreamEvent(type="text_delta", text=delta["text"])

                    elif event_type == "message_delta":
                        stop_reason = data.get("delta", {}).get("stop_reason") or stop_reason
                        usage.output_tokens = data.get("usage", {}).get(
                            "output_tokens", usage.output_tokens
                        )

                    elif event_type == "message_stop":
                        yield types.StreamEvent(
                            type="message_stop",
                            stop_reason=stop_reason,
                            usage=usage,
                        )

                    elif event_type == "error":
                        error = data.get("error", {})
                        yield types.StreamEvent(
                            type="error",
                            error=error.get("message") or "Unknown error",
                        )
        except _httpx.HTTPError as e:
            raise _http.transport_error(self.name, e) from e

    async def aclose(self) -> None:
        await self._client.aclose()
