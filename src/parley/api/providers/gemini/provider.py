"""
Google Gemini API provider implementation.

Gemini calls the assistant role ``model`` and takes the system prompt as a
separate ``systemInstruction`` rather than a message. With ``alt=sse`` the
``streamGenerateContent`` endpoint sends each chunk as a full
GenerateContentResponse; finish reason and usage ride on the last chunk.
"""

from __future__ import annotations

import typing as _typing

import httpx as _httpx

import parley.api.base as base
import parley.api.credentials as _credentials
import parley.api.http as _http
import parley.api.types as types
import parley.constants as _constants

GEMINI_API_URL = "https://generativelanguage.googleapis.com"
API_KEY_ENV_VAR = "GEMINI_API_KEY"


def to_contents(messages: list[dict[str, _typing.Any]]) -> list[dict[str, _typing.Any]]:
    """Map canonical history onto Gemini ``contents`` (user/model roles)."""
    return [
        {
            "role": "user" if msg.get("role") == "user" else "model",
            "parts": [{"text": msg.get("content") or ""}],
        }
        for msg in messages
    ]


def _chunk_text(chunk: dict[str, _typing.Any]) -> str:
    candidates = chunk.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if not part.get("thought"))


class GeminiProvider(base.LLMProvider):
    """
    Gemini API provider.

    Adapts streamGenerateContent chunks to the shared StreamEvent taxonomy.
    A blocked prompt or an in-stream ``error`` object becomes an error event.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = _constants.DEFAULT_MODELS["gemini"],
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
                f"Gemini API key required. Set {API_KEY_ENV_VAR} or pass api_key."
            )

        self._model = model
        self._client = _http.build_client(
            base_url or GEMINI_API_URL,
            {
                "x-goog-api-key": resolved_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def model(self) -> str:
        return self._model

    def _shape_payload(self, request: types.StreamRequest) -> dict[str, _typing.Any]:
        payload: dict[str, _typing.Any] = {
            "contents": to_contents(request.messages),
            "generationConfig": {
                "maxOutputTokens": request.max_tokens,
                "temperature": request.temperature,
            },
        }
        if request.system:
            payload["systemInstruction"] = {"parts": [{"text": request.system}]}
        return payload

    async def _stream_events(
        self,
        request: types.StreamRequest,
    ) -> _typing.AsyncGenerator[types.StreamEvent, None]:
        payload = self._shape_payload(request)
        path = f"/v1beta/models/{request.model}:streamGenerateContent"
        started = False
        stop_reason: str | None = None
        usage: types.Usage | None = None

        try:
            async with self._client.stream(
                "POST", path, params={"alt": "sse"}, json=payload
            ) as response:
                await _http.raise_for_status(response, self.name)

                async for chunk in _http.iter_sse_json(response):
                    if chunk is None:
                        continue

                    if "error" in chunk:
                        error = chunk["error"]
                        message = error.get("message") if isinstance(error, dict) else error
                        yield types.StreamEvent(type="error", error=str(message))
                        return

                    block_reason = (chunk.get("promptFeedback") or {}).get("blockReason")
                    if block_reason:
                        yield types.StreamEvent(
                            type="error",
                            error=f"Prompt blocked by Gemini: {block_reason}",
                        )
                        return

                    if not started:
                        started = True
                        yield types.StreamEvent(
                            type="message_start",
                            message_id=chunk.get("responseId"),
                        )

                    text = _chunk_text(chunk)
                    if text:
                        yield types.StreamEvent(type="text_delta", text=text)

                    for candidate in chunk.get("candidates") or []:
                        if candidate.get("finishReason"):
                            stop_reason = candidate["finishReason"]

                    usage_data = chunk.get("usageMetadata")
                    if usage_data:
                        usage = types.Usage(
                            input_tokens=usage_data.get("promptTokenCount", 0),
                            output_tokens=usage_data.get("candidatesTokenCount", 0),
                            cache_read_tokens=usage_data.get("cachedContentTokenCount"),
                        )

                if started:
                    yield types.StreamEvent(
                        type="message_stop",
                        stop_reason=stop_reason,
                        usage=usage,
                    )
        except _httpx.HTTPError as e:
            raise _http.transport_error(self.name, e) from e

    async def aclose(self) -> None:
        await self._client.aclose()
