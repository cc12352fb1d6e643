"""Project generation: create a repository and fill it from an AI file plan."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from functools import partial

from ..executor import execute_job
from ..fallback import with_model_fallback
from ..generation import generate_file_content
from ..github import GitHubClient
from ..models import Job, JobKind, JobStatus, ProjectGenerationSession, ProjectPlan
from ..notifier import Notifier
from ..planning import generate_project_plan
from ..providers import AIBackend
from ..scheduler import run_bounded

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 4


def make_jobs(plan: ProjectPlan) -> list[Job]:
    return [
        Job(id=f.path, path=f.path, kind=JobKind.CREATE, description=f.description)
        for f in plan.files
    ]


async def run_project_generation(
    github: GitHubClient,
    ai: AIBackend,
    models: Sequence[str],
    notifier: Notifier,
    repo_name: str,
    prompt: str,
    *,
    private: bool = False,
    concurrency: int = DEFAULT_CONCURRENCY,
    on_update: Callable[[ProjectGenerationSession], None] | None = None,
) -> ProjectGenerationSession:
    """Create *repo_name*, plan its files from *prompt*, generate and commit them."""
    session = ProjectGenerationSession()

    def emit(_job: Job | None = None) -> None:
        if on_update is not None:
            on_update(session)

    def status(message: str) -> None:
        session.status_message = message
        logger.info("%s", message)
        emit()

    status("Initializing repository...")
    try:
        repo = await github.create_repo(
            repo_name, description=f"AI Generated: {prompt[:50]}...", private=private,
        )
        session.repo_full_name = repo["full_name"]
        owner, name, branch = repo["owner"]["login"], repo["name"], repo["default_branch"]
        status(f"Repository {session.repo_full_name} created. Planning structure...")

        plan = await with_model_fallback(
            lambda model: generate_project_plan(ai, prompt, model), models, label="project plan",
        )
    except Exception as exc:
        session.error = str(exc) or type(exc).__name__
        status(f"Error: {session.error}")
        await notifier.alert("error", f"Project generation failed: {session.error}", event="workflow.failed")
        return session

    session.jobs = make_jobs(plan)
    status("Generating files...")

    async def process(job: Job) -> None:
        async def produce(model: str, _original: str, on_chunk) -> None:
            await generate_file_content(ai, prompt, job.path, job.description, on_chunk, model)

        async def commit(content: str, sha: str | None) -> None:
            await github.commit_file(owner, name, branch, job.path, content, f"AI Create: {job.path}", sha=sha)

        await execute_job(
            job,
            models=models,
            fetch=partial(github.get_file_if_exists, owner, name, job.path, branch),
            produce=produce,
            commit=commit,
            on_update=emit,
        )

    await run_bounded(session.jobs, process, concurrency)

    done = sum(1 for j in session.jobs if j.status == JobStatus.SUCCESS)
    status("Complete")
    level = "success" if done == len(session.jobs) else "warning"
    await notifier.alert(
        level,
        f"Generated {done}/{len(session.jobs)} files in {session.repo_full_name}",
        event="workflow.completed",
    )
    return session
