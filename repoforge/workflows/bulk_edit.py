"""Bulk edit: apply one instruction to many selected files."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import partial

from ..executor import execute_job
from ..generation import bulk_edit_file
from ..github import GitHubClient, split_full_name
from ..models import BulkEditSession, Job, JobKind, JobStatus
from ..providers import AIBackend
from ..scheduler import run_bounded

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


@dataclass
class BulkEditTarget:
    repo_full_name: str
    path: str
    branch: str


def job_id(repo_full_name: str, path: str) -> str:
    return f"{repo_full_name}::{path}"


def make_jobs(targets: Sequence[BulkEditTarget]) -> list[Job]:
    for t in targets:
        split_full_name(t.repo_full_name)
    return [
        Job(
            id=job_id(t.repo_full_name, t.path),
            path=t.path,
            kind=JobKind.EDIT,
            repo_full_name=t.repo_full_name,
        )
        for t in targets
    ]


async def run_bulk_edit(
    github: GitHubClient,
    ai: AIBackend,
    models: Sequence[str],
    targets: Sequence[BulkEditTarget],
    instruction: str,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_update: Callable[[BulkEditSession], None] | None = None,
) -> BulkEditSession:
    """Rewrite every target with *instruction* and commit each result."""
    session = BulkEditSession(jobs=make_jobs(targets))
    branches = {job_id(t.repo_full_name, t.path): t.branch for t in targets}
    message = f"AI Edit: {instruction[:50]}..."

    def emit(_job: Job | None = None) -> None:
        if on_update is not None:
            on_update(session)

    emit()

    async def process(job: Job) -> None:
        owner, repo = split_full_name(job.repo_full_name)
        branch = branches[job.id]

        async def produce(model: str, original: str, on_chunk) -> None:
            await bulk_edit_file(ai, original, instruction, job.path, on_chunk, model)

        async def commit(content: str, sha: str | None) -> None:
            await github.commit_file(owner, repo, branch, job.path, content, message, sha=sha)

        await execute_job(
            job,
            models=models,
            fetch=partial(github.get_file, owner, repo, job.path, branch),
            produce=produce,
            commit=commit,
            on_update=emit,
        )

    await run_bounded(session.jobs, process, concurrency)

    done = sum(1 for j in session.jobs if j.status == JobStatus.SUCCESS)
    logger.info("Bulk edit finished: %d/%d files committed", done, len(session.jobs))
    return session
