"""AI content streaming: per-file prompts whose output is the file itself."""

from __future__ import annotations

from collections.abc import Callable

from .providers import AIBackend

_RAW_OUTPUT_RULES = """\
CRITICAL RULE: Your entire response must be ONLY the raw source code for the file.
- Do NOT output markdown code fences (like ```tsx), any explanatory text, or any preamble.
- Your response will be saved directly to a file, so it must be 100% valid code."""

_BULK_EDIT_PROMPT = """\
You are an expert AI programmer. Your task is to modify a file based on a high-level instruction.

{rules}
- If the instruction does not require any changes to this specific file, return the original content verbatim.
- Ensure the new code is syntactically correct and preserves the overall structure and logic where appropriate.

Instruction: "{instruction}"
File Path: "{path}"
Original Content:
---
{original}
---
"""

_NEW_FILE_PROMPT = """\
You are an expert AI programmer generating code for a new project.
The overall project goal is: "{project_prompt}"
You are creating the file at this path: "{path}"
The purpose of this file is: "{description}"

Your task is to generate the complete, production-quality code for this single file.

{rules}
- The code should be fully functional and align with the file's described purpose within the larger project.
"""

_SINGLE_EDIT_PROMPT = """\
You are an AI code assistant. Rewrite the following file content based on the user's instruction.

CRITICAL RULE: Your entire response must be ONLY the new, complete file content.
- Do NOT output markdown code fences (e.g., ```).
- The output will be saved directly to a file, so it must be clean.

Instruction: "{instruction}"
File Path: "{path}"
Original Content:
---
{original}
---
"""

_PLANNED_EDIT_PROMPT = """\
You are an expert AI programmer. Your task is to meticulously modify a single file based on a detailed change instruction.

{rules}
- Follow the instructions exactly to produce the final version of the file.

Instruction: "{changes}"
File Path: "{path}"
Original Content:
---
{original}
---
"""

ChunkSink = Callable[[str], None]


async def bulk_edit_file(
    ai: AIBackend,
    original: str,
    instruction: str,
    path: str,
    on_chunk: ChunkSink,
    model: str,
) -> str:
    prompt = _BULK_EDIT_PROMPT.format(
        rules=_RAW_OUTPUT_RULES, instruction=instruction, path=path, original=original,
    )
    return await ai.stream_text(model, prompt, on_chunk)


async def generate_file_content(
    ai: AIBackend,
    project_prompt: str,
    path: str,
    description: str,
    on_chunk: ChunkSink,
    model: str,
) -> str:
    prompt = _NEW_FILE_PROMPT.format(
        rules=_RAW_OUTPUT_RULES, project_prompt=project_prompt, path=path, description=description,
    )
    return await ai.stream_text(model, prompt, on_chunk)


async def stream_single_file_edit(
    ai: AIBackend,
    original: str,
    instruction: str,
    path: str,
    on_chunk: ChunkSink,
    model: str,
) -> str:
    prompt = _SINGLE_EDIT_PROMPT.format(instruction=instruction, path=path, original=original)
    return await ai.stream_text(model, prompt, on_chunk)


async def stream_repository_file_edit(
    ai: AIBackend,
    original: str,
    changes: str,
    path: str,
    on_chunk: ChunkSink,
    model: str,
) -> str:
    prompt = _PLANNED_EDIT_PROMPT.format(
        rules=_RAW_OUTPUT_RULES, changes=changes, path=path, original=original,
    )
    return await ai.stream_text(model, prompt, on_chunk)
