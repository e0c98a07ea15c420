"""
Ollama API provider implementation.

Ollama provides local model inference via an OpenAI-compatible API.
Supports both local servers and remote Ollama instances.
"""

from __future__ import annotations

import os as _os
import typing as _typing

import httpx as _httpx

import parley.api.base as base
import parley.api.credentials as _credentials
import parley.api.http as _http
import parley.api.types as types
import parley.constants as _constants


def resolve_base_url(host: str | None = None, port: int | None = None) -> str:
    """
    Work out the server URL.

    PARLEY_OLLAMA_HOST (preferred) or OLLAMA_HOST may be "hostname",
    "hostname:port" or a full "http(s)://hostname:port" URL. Explicit
    arguments are used when neither is set.
    """
    env_host = _os.environ.get("PARLEY_OLLAMA_HOST") or _os.environ.get("OLLAMA_HOST", "")
    default_port = port or OllamaProvider.DEFAULT_PORT

    if env_host:
        if env_host.startswith(("http://", "https://")):
            return env_host.rstrip("/")
        if ":" in env_host:
            return f"http://{env_host}"
        return f"http://{env_host}:{default_port}"

    return f"http://{host or OllamaProvider.DEFAULT_HOST}:{default_port}"


class OllamaProvider(base.LLMProvider):
    """
    Ollama API provider.

    Uses OpenAI-compatible chat completions with Ollama's endpoint. The
    history is sent as a flat role list with the system prompt prepended
    as a ``system`` message.
    """

    DEFAULT_HOST = "localhost"
    DEFAULT_PORT = 11434

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        model: str = _constants.DEFAULT_MODELS["ollama"],
        *,
        base_url: str | None = None,
        timeout: float = _constants.PROVIDER_TIMEOUT_SECONDS,
        credentials_path: str | None = None,
        api_key: str | None = None,
        transport: _httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Ollama provider.

        Args:
            host: Ollama server hostname. Defaults to PARLEY_OLLAMA_HOST or
                  OLLAMA_HOST env var, or 'localhost'.
            port: Ollama server port. Defaults to 11434.
            model: Model to use.
            base_url: Full server URL, overrides host/port resolution.
            timeout: Request timeout in seconds.
            credentials_path: JSON file with {"api_key": "..."} for
                authenticated Ollama servers.
            api_key: API key for authenticated Ollama servers.
            transport: Optional httpx transport (used by tests).
        """
        effective_api_key = _credentials.resolve_api_key(
            api_key=api_key,
            credentials_path=credentials_path,
        )

        self._base_url = base_url or resolve_base_url(host, port)
        self._model = model

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if effective_api_key:
            headers["Authorization"] = f"Bearer {effective_api_key}"

        self._client = _http.build_client(
            self._base_url,
            headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        """Base URL being used for the Ollama server."""
        return self._base_url

    def _shape_payload(self, request: types.StreamRequest) -> dict[str, _typing.Any]:
        messages: list[dict[str, _typing.Any]] = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        for msg in request.messages:
            messages.append({
                "role": "user" if msg.get("role") == "user" else "assistant",
                "content": msg.get("content") or "",
            })

        return {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

    async def _stream_events(
        self,
        request: types.StreamRequest,
    ) -> _typing.AsyncGenerator[types.StreamEvent, None]:
        payload = self._shape_payload(request)
        stop_reason: str | None = None
        usage: types.Usage | None = None

        try:
            async with self._client.stream(
                "POST", "/v1/chat/completions", json=payload
            ) as response:
                await _http.raise_for_status(response, self.name)

                yield types.StreamEvent(type="message_start")

                async for data in _http.iter_sse_json(response):
                    if data is None:
                        yield types.StreamEvent(
                            type="message_stop",
                            stop_reason=stop_reason,
                            usage=usage,
                        )
                        break

                    if "error" in data:
                        error = data["error"]
                        message = error.get("message") if isinstance(error, dict) else error
                        yield types.StreamEvent(type="error", error=str(message))
                        continue

                    for choice in data.get("choices", []):
                        delta = choice.get("delta", {})
                        if delta.get("content"):
                            yield types.StreamEvent(type="text_delta", text=delta["content"])
                        if choice.get("finish_reason"):
                            stop_reason = choice["finish_reason"]

                    # Ollama includes usage in the final chunk
                    if data.get("usage"):
                        usage_data = data["usage"]
                        usage = types.Usage(
                            input_tokens=usage_data.get("prompt_tokens", 0),
                            output_tokens=usage_data.get("completion_tokens", 0),
                        )
        except _httpx.HTTPError as e:
            raise _http.transport_error(self.name, e) from e

    async def aclose(self) -> None:
        await self._client.aclose()
