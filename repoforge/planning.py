"""AI planning protocol: structured plan requests and their validation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .context import MAX_CONTEXT_CHARACTERS, prepare_file_context
from .models import (
    AppliedEdit,
    ExpansionPlan,
    FileEdit,
    FileSpec,
    ProjectPlan,
    RemoteFile,
    RepositoryEditPlan,
)
from .providers import AIBackend

logger = logging.getLogger(__name__)

MAX_AGENT_INDEX = 7


class PlanError(Exception):
    """The model's plan did not match the requested schema."""


# ---------------------------------------------------------------------------
# Schemas (Gemini responseSchema dialect)
# ---------------------------------------------------------------------------

_FILE_EDIT_ITEM = {
    "type": "OBJECT",
    "properties": {
        "path": {"type": "STRING", "description": "Path of the file to edit."},
        "changes": {
            "type": "STRING",
            "description": "Detailed, step-by-step instructions for the code modifications.",
        },
    },
    "required": ["path", "changes"],
}

PROJECT_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "files": {
            "type": "ARRAY",
            "description": "A list of files to be created for the project.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "path": {
                        "type": "STRING",
                        "description": 'The full path of the file, including directories. '
                                       'E.g., "src/components/Button.tsx".',
                    },
                    "description": {
                        "type": "STRING",
                        "description": "A concise, one-sentence description of what this "
                                       "file will contain or its purpose.",
                    },
                },
                "required": ["path", "description"],
            },
        },
    },
    "required": ["files"],
}

EXPANSION_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "filesToEdit": {
            "type": "ARRAY",
            "description": "Must be empty. Do not edit the seed file.",
            "items": _FILE_EDIT_ITEM,
        },
        "filesToCreate": {
            "type": "ARRAY",
            "description": "A massive list of new files to create.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "path": {"type": "STRING", "description": "Full path of the new file to create."},
                    "description": {
                        "type": "STRING",
                        "description": "Detailed description of the new file's purpose and content.",
                    },
                    "agentIndex": {
                        "type": "NUMBER",
                        "description": "Agent index (0-7) assigned to create this file.",
                    },
                },
                "required": ["path", "description", "agentIndex"],
            },
        },
    },
}

REPOSITORY_EDIT_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "reasoning": {
            "type": "STRING",
            "description": "A high-level explanation of the plan, which files will be edited, and why.",
        },
        "filesToEdit": {
            "type": "ARRAY",
            "description": "A list of files to modify and the specific changes for each.",
            "items": _FILE_EDIT_ITEM,
        },
    },
    "required": ["reasoning", "filesToEdit"],
}


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_PROJECT_PLAN_PROMPT = """\
You are a 10x software architect. A user wants to create a new project.
Your task is to analyze their prompt and generate a file structure and a brief description for each file.
- The user prompt is: "{prompt}"
- Based on the prompt, create a logical file structure.
- For each file, provide a concise one-sentence description of its purpose.
- The output must be a JSON object that adheres to the provided schema.
- Only include files that would contain code or text. Do not include directories as separate entries.
- Be comprehensive. Create all the necessary files for a basic, runnable version of the described project.
"""

_EXPANSION_PROMPT = """\
You are an AI software architect and large-scale project generator.
Your task is to take a single seed file and generate a project expansion around it.
The user's high-level goal is: "{prompt}"

You have been given the content of the SEED FILE.
Based on this seed, generate a comprehensive plan that creates new files to build out a complete, production-grade system.

OBJECTIVES:
1. Analyze the seed file to understand the core domain and patterns.
2. Plan a large expansion. Create as many files as the complexity warrants.
3. 'filesToCreate': a list of NEW files. Assign an agent index (0-{max_agent}) to each for parallel creation.
4. 'filesToEdit': MUST BE EMPTY. Do not touch the seed file. The seed file is immutable.

Your response must be a JSON object adhering to the provided schema.

Here is the SEED FILE context:
{context}"""

_REPOSITORY_EDIT_PROMPT = """\
You are an autonomous AI software engineer. Your task is to implement a user's request by planning a series of file edits.

CRITICAL DIRECTIVE:
You have the full source code of the repository files provided below.
You MUST use this context to inform your plan. Do not claim you cannot see a file or that the code is incomplete.

User Request: "{instruction}"
(The user was viewing this file when they made the request: "{active_path}")

Your Task:
1. reasoning: in a few sentences, explain your plan. Describe which files you will edit and why.
2. filesToEdit: a precise list of files to edit. For each file, give a detailed, step-by-step description of the exact changes needed. This is not the code itself but instructions for another AI to execute. Be specific.

Your output must be a single JSON object that strictly follows the provided schema.

These are the existing files in the app:
{context}"""

_CORRECTION_PROMPT = """\
You are an autonomous AI software engineer. Your previous attempt to modify the code resulted in a failed build. Analyze the build logs, understand the error, and create a NEW plan to fix it.

CRITICAL DIRECTIVE:
You have the full source code of the repository files provided below.
You MUST use this context. Your fix must be based on the actual code provided.

Original User Request: "{instruction}"

Build Error Logs:
---
{build_logs}
---

My Previous (Failed) Edits:
{previous_edits}

Your Corrective Task:
1. reasoning: read the build logs and the previous edits. Explain the root cause of the failure, then describe your new plan to fix it.
2. filesToEdit: a new, precise list of files to edit to fix the error, each with detailed step-by-step changes. This plan completely replaces the previous one. If a change must be reverted in one file and another file edited, specify both.

Your output must be a single JSON object that strictly follows the provided schema.

These are the current files in the app (reflecting the previous failed attempt):
{context}"""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _require_mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise PlanError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _require_str(item: dict, key: str, what: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value.strip():
        raise PlanError(f"{what}: missing or empty '{key}'")
    return value.strip() if key == "path" else value


def _items(data: dict, key: str, what: str, required: bool = True) -> list[dict]:
    if key not in data or data[key] is None:
        if required:
            raise PlanError(f"{what}: missing '{key}'")
        return []
    value = data[key]
    if not isinstance(value, list):
        raise PlanError(f"{what}: '{key}' must be an array")
    return [_require_mapping(v, f"{what}.{key}[]") for v in value]


def _unique_by_path(entries: list, what: str) -> list:
    seen: set[str] = set()
    unique = []
    for entry in entries:
        if entry.path in seen:
            logger.warning("%s: dropping duplicate entry for %s", what, entry.path)
            continue
        seen.add(entry.path)
        unique.append(entry)
    return unique


def _parse_file_edits(data: dict, what: str, required: bool) -> list[FileEdit]:
    edits = [
        FileEdit(path=_require_str(item, "path", what), changes=_require_str(item, "changes", what))
        for item in _items(data, "filesToEdit", what, required=required)
    ]
    return _unique_by_path(edits, what)


def parse_project_plan(data: Any) -> ProjectPlan:
    data = _require_mapping(data, "project plan")
    files = [
        FileSpec(
            path=_require_str(item, "path", "project plan"),
            description=_require_str(item, "description", "project plan"),
        )
        for item in _items(data, "files", "project plan")
    ]
    return ProjectPlan(files=_unique_by_path(files, "project plan"))


def _agent_index(value: Any) -> int:
    try:
        index = int(value)
    except (TypeError, ValueError) as exc:
        raise PlanError(f"expansion plan: invalid agentIndex {value!r}") from exc
    return max(0, min(MAX_AGENT_INDEX, index))


def parse_expansion_plan(data: Any) -> ExpansionPlan:
    data = _require_mapping(data, "expansion plan")
    creates = [
        FileSpec(
            path=_require_str(item, "path", "expansion plan"),
            description=_require_str(item, "description", "expansion plan"),
            agent_index=_agent_index(item.get("agentIndex", 0)),
        )
        for item in _items(data, "filesToCreate", "expansion plan")
    ]
    return ExpansionPlan(
        files_to_create=_unique_by_path(creates, "expansion plan"),
        files_to_edit=_parse_file_edits(data, "expansion plan", required=False),
    )


def parse_repository_edit_plan(data: Any) -> RepositoryEditPlan:
    data = _require_mapping(data, "edit plan")
    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str):
        raise PlanError("edit plan: missing 'reasoning'")
    return RepositoryEditPlan(
        reasoning=reasoning,
        files_to_edit=_parse_file_edits(data, "edit plan", required=True),
    )


# ---------------------------------------------------------------------------
# Plan requests (one model attempt each)
# ---------------------------------------------------------------------------

async def generate_project_plan(ai: AIBackend, prompt: str, model: str) -> ProjectPlan:
    data = await ai.generate_json(model, _PROJECT_PLAN_PROMPT.format(prompt=prompt), PROJECT_PLAN_SCHEMA)
    return parse_project_plan(data)


async def plan_project_expansion(
    ai: AIBackend,
    seed_files: Sequence[RemoteFile],
    prompt: str,
    model: str,
) -> ExpansionPlan:
    context = "".join(
        f"--- START OF SEED FILE {f.path} ---\n{f.content}\n" for f in seed_files
    )
    text = _EXPANSION_PROMPT.format(prompt=prompt, max_agent=MAX_AGENT_INDEX, context=context)
    data = await ai.generate_json(model, text, EXPANSION_PLAN_SCHEMA)
    return parse_expansion_plan(data)


async def plan_repository_edit(
    ai: AIBackend,
    instruction: str,
    active_path: str | None,
    files: Sequence[RemoteFile],
    model: str,
    budget: int = MAX_CONTEXT_CHARACTERS,
) -> RepositoryEditPlan:
    text = _REPOSITORY_EDIT_PROMPT.format(
        instruction=instruction,
        active_path=active_path or "",
        context=prepare_file_context(files, active_path, budget),
    )
    data = await ai.generate_json(model, text, REPOSITORY_EDIT_PLAN_SCHEMA)
    return parse_repository_edit_plan(data)


def _describe_previous_edits(edits: Sequence[AppliedEdit]) -> str:
    if not edits:
        return "(none recorded)\n"
    return "\n".join(
        f'I previously tried to edit "{e.path}" to have this content:\n---\n{e.new_content}\n---\n'
        for e in edits
    )


async def correct_code_from_build_error(
    ai: AIBackend,
    instruction: str,
    files: Sequence[RemoteFile],
    previous_edits: Sequence[AppliedEdit],
    build_logs: str,
    model: str,
    budget: int = MAX_CONTEXT_CHARACTERS,
) -> RepositoryEditPlan:
    text = _CORRECTION_PROMPT.format(
        instruction=instruction,
        build_logs=build_logs,
        previous_edits=_describe_previous_edits(previous_edits),
        context=prepare_file_context(files, None, budget),
    )
    data = await ai.generate_json(model, text, REPOSITORY_EDIT_PLAN_SCHEMA)
    return parse_repository_edit_plan(data)
