"""
OpenAI Responses API provider implementation.

The Responses API takes a single ``input`` rather than a role list, so the
consolidated history is flattened into one labelled transcript and the
system prompt travels as ``instructions``.
"""

from __future__ import annotations

import typing as _typing

import httpx as _httpx

import parley.api.base as base
import parley.api.credentials as _credentials
import parley.api.http as _http
import parley.api.types as types
import parley.constants as _constants

OPENAI_API_URL = "https://api.openai.com"
API_KEY_ENV_VAR = "OPENAI_API_KEY"

_ROLE_LABELS: dict[str, str] = {
    "user": "USER",
    "assistant": "ASSISTANT",
}


def flatten_messages(messages: list[dict[str, _typing.Any]]) -> str:
    """
    Render history as one input string.

    A single user message is passed through unlabelled; longer histories
    become ``ROLE: content`` blocks separated by blank lines.
    """
    if len(messages) == 1 and messages[0].get("role") == "user":
        return str(messages[0].get("content") or "")

    blocks = []
    for msg in messages:
        label = _ROLE_LABELS.get(msg.get("role", ""), "ASSISTANT")
        blocks.append(f"{label}: {msg.get('content') or ''}")
    return "\n\n".join(blocks)


class OpenAIProvider(base.LLMProvider):
    """
    OpenAI API provider.

    Adapts Responses API stream events (response.created,
    response.output_text.delta, response.completed, response.failed, error)
    to the shared StreamEvent taxonomy.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = _constants.DEFAULT_MODELS["openai"],
        *,
        base_url: str | None = None,
        timeout: float = _constants.PROVIDER_TIMEOUT_SECONDS,
        credentials_path: str | None = None,
        transport: _httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_key = _credentials.resolve_api_key(
            api_key=api_key,
            credentials_path=credentials_path,
            env_var=API_KEY_ENV_VAR,
        )
        if not resolved_key:
            raise ValueError(
                f"OpenAI API key required. Set {API_KEY_ENV_VAR} or pass api_key."
            )

        self._model = model
        self._client = _http.build_client(
            base_url or OPENAI_API_URL,
            {
                "Authorization": f"Bearer {resolved_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    def _shape_payload(self, request: types.StreamRequest) -> dict[str, _typing.Any]:
        payload: dict[str, _typing.Any] = {
            "model": request.model,
            "input": flatten_messages(request.messages),
            "max_output_tokens": request.max_tokens,
            "temperature": request.temperature,
            "stream": True,
        }
        if request.system:
            payload["instructions"] = request.system
        return payload

    async def _stream_events(
        self,
        request: types.StreamRequest,
    ) -> _typing.AsyncGenerator[types.StreamEvent, None]:
        payload = self._shape_payload(request)

        try:
            async with self._client.stream("POST", "/v1/responses", json=payload) as response:
                await _http.raise_for_status(response, self.name)

                async for data in _http.iter_sse_json(response):
                    if data is None:
                        continue
                    event_type = data.get("type")

                    if event_type == "response.created":
                        yield types.StreamEvent(
                            type="message_start",
                            message_id=data.get("response", {}).get("id"),
                        )

                    elif event_type == "response.output_text.delta":
                        if data.get("delta"):
                            yield types.StreamEvent(type="text_delta", text=data["delta"])

                    elif event_type in ("response.completed", "response.incomplete"):
                        body = data.get("response", {})
                        usage_data = body.get("usage") or {}
                        details = body.get("incomplete_details") or {}
                        yield types.StreamEvent(
                            type="message_stop",
                            stop_reason=details.get("reason") or body.get("status"),
                            usage=types.Usage(
                                input_tokens=usage_data.get("input_tokens", 0),
                                output_tokens=usage_data.get("output_tokens", 0),
                            ),
                        )

                    elif event_type == "response.failed":
                        error = data.get("response", {}).get("error") or {}
                        yield types.StreamEvent(
                            type="error",
                            error=error.get("message") or "Response failed",
                        )

                    elif event_type == "error":
                        yield types.StreamEvent(
                            type="error",
                            error=data.get("message") or "Unknown error",
                        )
        except _httpx.HTTPError as e:
            raise _http.transport_error(self.name, e) from e

    async def aclose(self) -> None:
        await self._client.aclose()
