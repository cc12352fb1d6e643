"""Build the file-content block embedded in planning prompts."""

from __future__ import annotations

from collections.abc import Iterable

from .models import RemoteFile

# Roughly 250k tokens; keeps planning prompts under the model's input limit.
MAX_CONTEXT_CHARACTERS = 1_000_000


def render_file(path: str, content: str) -> str:
    return f"--- START OF FILE {path} ---\n{content}\n"


def prepare_file_context(
    files: Iterable[RemoteFile],
    active_path: str | None = None,
    budget: int = MAX_CONTEXT_CHARACTERS,
) -> str:
    """Concatenate whole files until the next one would exceed *budget*.

    The active file goes first if it fits on its own; the others follow in
    the order given. Files are never truncated: once a file does not fit,
    assembly stops.
    """
    rendered = [(f.path, render_file(f.path, f.content)) for f in files]
    active = next((r for p, r in rendered if active_path and p == active_path), None)
    others = [r for p, r in rendered if not active_path or p != active_path]

    parts: list[str] = []
    remaining = budget
    if active is not None and len(active) <= remaining:
        parts.append(active)
        remaining -= len(active)

    for block in others:
        if len(block) > remaining:
            break
        parts.append(block)
        remaining -= len(block)

    return "".join(parts)
