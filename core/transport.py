# core/transport.py
"""
HTTP transports for generation providers.

A transport knows how to reach one provider family: where its API lives, how
credentials are attached, and how streamed server-sent events are turned into
text fragments. It exposes two operations to the provider adapters:
``send_request`` for one-shot JSON calls (retried with backoff on transient
failures) and ``stream_request`` for SSE streams (never retried).
"""

from __future__ import annotations

# Standard library imports
import asyncio
import json
import random
from collections.abc import AsyncIterator
from typing import Any

# Third-party imports
import httpx
import structlog

# Local imports
from config import settings

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class ProviderRequestError(Exception):
    """Non-success HTTP status returned by a provider."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body[:200]}")

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


class HttpTransport:
    """Shared request, retry and SSE plumbing for provider transports."""

    provider_name = "provider"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = settings.HTTPX_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        # One client per transport so connections are reused across calls
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.request_count = 0

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _backoff_delay(self, attempt: int) -> None:
        """Sleep for an exponentially increasing delay with jitter."""
        delay = settings.LLM_RETRY_DELAY_SECONDS * (2**attempt)
        jitter = random.uniform(0, delay / 2)
        await asyncio.sleep(delay + jitter)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _fragments_from_event(self, event: dict[str, Any]) -> list[str]:
        raise NotImplementedError

    def _usage_from_body(self, body: dict[str, Any]) -> dict[str, Any] | None:
        return None

    def _log_usage(
        self, model_name: str, usage: dict[str, Any] | None, streamed: bool = False
    ) -> None:
        stream_prefix = "Streamed " if streamed else ""
        if usage:
            logger.info(
                f"{stream_prefix}{self.provider_name} ('{model_name}') Usage - Prompt: {usage.get('prompt_tokens', 'N/A')} tk, "
                f"Comp: {usage.get('completion_tokens', 'N/A')} tk, Total: {usage.get('total_tokens', 'N/A')} tk"
            )
        else:
            logger.debug(
                f"{stream_prefix}{self.provider_name} ('{model_name}') response carried no usage information."
            )

    async def _request_once(
        self, path: str, payload: dict[str, Any] | None
    ) -> dict[str, Any]:
        self.request_count += 1
        url = self._url(path)
        if payload is None:
            response = await self._client.get(url, headers=self._headers())
        else:
            response = await self._client.post(url, json=payload, headers=self._headers())
        if response.status_code >= 400:
            raise ProviderRequestError(response.status_code, response.text)
        return response.json()

    async def send_request(
        self, path: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """POST ``payload`` to ``path`` (GET when there is no payload) and return the JSON body.

        Network errors, HTTP 429 and 5xx responses are retried with exponential
        backoff; any other failure is raised straight away.
        """
        last_exc: Exception | None = None
        for attempt in range(settings.LLM_RETRY_ATTEMPTS):
            try:
                body = await self._request_once(path, payload)
                if payload is not None:
                    self._log_usage(str(payload.get("model", path)), self._usage_from_body(body))
                return body
            except ProviderRequestError as exc:
                if not exc.retryable:
                    raise
                last_exc = exc
            except httpx.RequestError as exc:
                last_exc = exc
            logger.warning(
                f"{self.provider_name} request to '{path}' failed (Attempt {attempt + 1}/{settings.LLM_RETRY_ATTEMPTS}): {last_exc}"
            )
            if attempt < settings.LLM_RETRY_ATTEMPTS - 1:
                await self._backoff_delay(attempt)

        logger.error(
            f"{self.provider_name}: All {settings.LLM_RETRY_ATTEMPTS} attempts for '{path}' failed. Last error: {last_exc}"
        )
        assert last_exc is not None
        raise last_exc

    async def stream_request(
        self, path: str, payload: dict[str, Any]
    ) -> AsyncIterator[str]:
        """Yield text fragments decoded from the SSE stream at ``path``."""
        self.request_count += 1
        usage: dict[str, Any] | None = None
        async with self._client.stream(
            "POST", self._url(path), json=payload, headers=self._headers()
        ) as response_stream:
            if response_stream.status_code >= 400:
                await response_stream.aread()
                raise ProviderRequestError(
                    response_stream.status_code, response_stream.text
                )
            async for line in response_stream.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data_json_str = line[len("data:") :].strip()
                if not data_json_str:
                    continue
                if data_json_str == "[DONE]":
                    break
                event = json.loads(data_json_str)
                usage = self._usage_from_body(event) or usage
                for fragment in self._fragments_from_event(event):
                    yield fragment
        self._log_usage(str(payload.get("model", path)), usage, streamed=True)


class OpenAITransport(HttpTransport):
    """OpenAI and OpenAI-compatible chat completion endpoints."""

    provider_name = "OpenAI"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = settings.HTTPX_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(api_key, base_url or settings.OPENAI_API_BASE, timeout, client)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _fragments_from_event(self, event: dict[str, Any]) -> list[str]:
        choices = event.get("choices") or []
        if not choices:
            return []
        content_piece = (choices[0].get("delta") or {}).get("content")
        return [content_piece] if content_piece else []

    def _usage_from_body(self, body: dict[str, Any]) -> dict[str, Any] | None:
        usage = body.get("usage")
        return usage if isinstance(usage, dict) else None


class GeminiTransport(HttpTransport):
    """Google Generative Language REST API."""

    provider_name = "Gemini"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = settings.HTTPX_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(api_key, base_url or settings.GEMINI_API_BASE, timeout, client)

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    def _fragments_from_event(self, event: dict[str, Any]) -> list[str]:
        candidates = event.get("candidates") or []
        if not candidates:
            return []
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return [part["text"] for part in parts if part.get("text")]

    def _usage_from_body(self, body: dict[str, Any]) -> dict[str, Any] | None:
        meta = body.get("usageMetadata")
        if not isinstance(meta, dict):
            return None
        return {
            "prompt_tokens": meta.get("promptTokenCount"),
            "completion_tokens": meta.get("candidatesTokenCount"),
            "total_tokens": meta.get("totalTokenCount"),
        }
