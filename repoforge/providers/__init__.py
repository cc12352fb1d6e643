"""AI backend providers."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from .gemini import GeminiClient, GeminiError


class AIBackend(Protocol):
    """The two call shapes every orchestration step relies on."""

    async def generate_json(self, model: str, prompt: str, schema: dict) -> Any: ...

    async def stream_text(
        self, model: str, prompt: str, on_chunk: Callable[[str], None],
    ) -> str: ...


__all__ = ["AIBackend", "GeminiClient", "GeminiError"]
