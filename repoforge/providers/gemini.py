"""Gemini REST client: structured JSON generation and SSE text streaming."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import anyio
import httpx

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

ENDPOINTS: dict[str, str] = {
    "generate": API_BASE + "/models/{model}:generateContent",
    "stream": API_BASE + "/models/{model}:streamGenerateContent",
}

_MAX_RETRIES = 3
_RETRY_STATUSES = {429, 500, 502, 503, 529}

logger = logging.getLogger(__name__)


class GeminiError(Exception):
    """The model answered, but not with anything usable."""


def _candidate_text(payload: dict) -> str:
    feedback = payload.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise GeminiError(f"Prompt blocked: {feedback['blockReason']}")
    candidates = payload.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)


class GeminiClient:
    """HTTP client for the Gemini generateContent endpoints.

    Holds the API key for its whole lifetime; build a new client via
    ``with_api_key`` when the credential changes.
    """

    def __init__(self, api_key: str, timeout: float = 120, max_retries: int = _MAX_RETRIES):
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries

    def with_api_key(self, api_key: str) -> GeminiClient:
        return GeminiClient(api_key, timeout=self.timeout, max_retries=self.max_retries)

    def _headers(self) -> dict[str, str]:
        # httpx logs request URLs at INFO, so the key stays out of the query string
        return {"x-goog-api-key": self.api_key}

    async def generate_json(self, model: str, prompt: str, schema: dict) -> Any:
        """Request output constrained to *schema* and return the parsed JSON."""
        resp = await self._call_with_retry(
            "POST",
            ENDPOINTS["generate"].format(model=model),
            headers=self._headers(),
            json={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "responseMimeType": "application/json",
                    "responseSchema": schema,
                    "temperature": 0.0,
                    "topP": 0.95,
                    "topK": 64,
                },
            },
        )
        text = _candidate_text(resp.json()).strip()
        if not text:
            raise GeminiError("AI returned an empty response.")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GeminiError(f"AI returned invalid JSON: {exc}") from exc

    async def stream_text(
        self,
        model: str,
        prompt: str,
        on_chunk: Callable[[str], None],
    ) -> str:
        """Stream a completion, calling *on_chunk* for every text fragment.

        Returns the concatenated text. Transport errors propagate; there is
        no retry once a stream has been opened.
        """
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.1, "topP": 0.95, "topK": 64},
        }
        received: list[str] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream(
                "POST",
                ENDPOINTS["stream"].format(model=model),
                params={"alt": "sse"},
                headers=self._headers(),
                json=body,
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if not data:
                        continue
                    text = _candidate_text(json.loads(data))
                    if text:
                        received.append(text)
                        on_chunk(text)
        return "".join(received)

    async def _call_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Run one request with exponential-backoff retry. Creates a fresh
        httpx.AsyncClient per call so there is no shared state to clean up."""
        last_exc = None
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries + 1):
                try:
                    resp = await client.request(method, url, **kwargs)
                    if resp.status_code in _RETRY_STATUSES and attempt < self.max_retries:
                        await resp.aclose()  # Release connection before sleeping
                        logger.debug("Gemini returned %s, retrying (%d)", resp.status_code, attempt + 1)
                        await anyio.sleep(2 ** attempt)
                        continue
                    resp.raise_for_status()
                    return resp
                except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError) as exc:
                    last_exc = exc
                    if attempt < self.max_retries:
                        logger.debug("Gemini transport error %s, retrying (%d)", exc, attempt + 1)
                        await anyio.sleep(2 ** attempt)
                        continue
                    raise
        raise last_exc  # type: ignore[misc]
