"""Single-file edit: one streamed rewrite, no planning and no commit."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from ..generation import stream_single_file_edit
from ..providers import AIBackend
from ..sanitize import clean_ai_code_response


async def edit_single_file(
    ai: AIBackend,
    models: Sequence[str],
    content: str,
    instruction: str,
    path: str,
    on_chunk: Callable[[str], None] | None = None,
) -> str:
    """Rewrite *content* with the primary model and return the sanitized text."""
    received: list[str] = []

    def sink(chunk: str) -> None:
        received.append(chunk)
        if on_chunk is not None:
            on_chunk(chunk)

    await stream_single_file_edit(ai, content, instruction, path, sink, models[0])
    return clean_ai_code_response("".join(received))
