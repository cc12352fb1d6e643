"""Project expansion: grow a project around a single, untouchable seed file."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from functools import partial

from ..executor import execute_job
from ..fallback import with_model_fallback
from ..generation import generate_file_content
from ..github import GitHubClient, split_full_name
from ..models import (
    ExpansionPhase,
    ExpansionPlan,
    ExpansionSession,
    FileEdit,
    Job,
    JobKind,
    JobStatus,
    RemoteFile,
)
from ..notifier import Notifier
from ..planning import plan_project_expansion
from ..providers import AIBackend
from ..scheduler import run_bounded

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8


async def _new_file(path: str) -> RemoteFile:
    # No version token: the store rejects a create that would overwrite an existing file.
    return RemoteFile(path=path, content="", sha=None)


def screen_plan(plan: ExpansionPlan, seed_path: str) -> tuple[list[Job], list[FileEdit]]:
    """Split *plan* into create jobs and the entries that must not run.

    Any requested edit, and any "create" aimed at the seed itself, is
    returned as flagged instead of being turned into a job.
    """
    flagged = list(plan.files_to_edit)
    jobs: list[Job] = []
    for entry in plan.files_to_create:
        if entry.path == seed_path:
            flagged.append(FileEdit(path=entry.path, changes=entry.description))
            continue
        jobs.append(Job(
            id=entry.path,
            path=entry.path,
            kind=JobKind.CREATE,
            description=entry.description,
            agent_index=entry.agent_index,
        ))
    return jobs, flagged


async def run_project_expansion(
    github: GitHubClient,
    ai: AIBackend,
    models: Sequence[str],
    notifier: Notifier,
    repo_full_name: str,
    branch: str,
    seed_paths: Sequence[str],
    prompt: str,
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_update: Callable[[ExpansionSession], None] | None = None,
) -> ExpansionSession:
    """Plan new files around the seed and generate them in parallel."""
    session = ExpansionSession()

    def emit(_job: Job | None = None) -> None:
        if on_update is not None:
            on_update(session)

    if len(seed_paths) != 1:
        session.phase = ExpansionPhase.COMPLETE
        session.error = "Please select exactly one seed file."
        emit()
        await notifier.alert("error", session.error)
        return session

    seed_path = seed_paths[0]
    session.seed_path = seed_path
    session.phase = ExpansionPhase.PLANNING
    emit()

    try:
        owner, repo = split_full_name(repo_full_name)
        seed = await github.get_file(owner, repo, seed_path, branch)
        plan = await with_model_fallback(
            lambda model: plan_project_expansion(ai, [seed], prompt, model),
            models,
            label="expansion plan",
        )
    except Exception as exc:
        session.error = str(exc) or type(exc).__name__
        session.phase = ExpansionPhase.COMPLETE
        emit()
        await notifier.alert("error", f"Expansion failed: {session.error}", event="workflow.failed")
        return session

    session.jobs, session.flagged_edits = screen_plan(plan, seed_path)
    if session.flagged_edits:
        paths = ", ".join(e.path for e in session.flagged_edits)
        logger.warning("Expansion plan requested edits that were not applied: %s", paths)
        await notifier.alert(
            "warning", f"Expansion plan tried to modify existing files; skipped: {paths}",
        )

    session.phase = ExpansionPhase.GENERATING
    emit()

    async def process(job: Job) -> None:
        async def produce(model: str, _original: str, on_chunk) -> None:
            await generate_file_content(ai, prompt, job.path, job.description, on_chunk, model)

        async def commit(content: str, sha: str | None) -> None:
            await github.commit_file(
                owner, repo, branch, job.path, content, f"AI Expansion: {job.path}", sha=sha,
            )

        await execute_job(
            job,
            models=models,
            fetch=partial(_new_file, job.path),
            produce=produce,
            commit=commit,
            on_update=emit,
        )

    await run_bounded(session.jobs, process, concurrency)

    session.phase = ExpansionPhase.COMPLETE
    emit()
    done = sum(1 for j in session.jobs if j.status == JobStatus.SUCCESS)
    level = "success" if done == len(session.jobs) else "warning"
    await notifier.alert(
        level, f"Expansion created {done}/{len(session.jobs)} files", event="workflow.completed",
    )
    return session
