"""Advanced edit: plan, edit, commit, then verify through a CI workflow.

Each attempt plans a set of file edits, applies them one at a time,
triggers the configured workflow on the branch and waits for its run to
complete. A failed run feeds its logs into the next attempt's plan.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import anyio

from ..config import VerificationConfig
from ..context import MAX_CONTEXT_CHARACTERS
from ..fallback import with_model_fallback
from ..generation import stream_repository_file_edit
from ..github import GitHubClient, split_full_name
from ..models import (
    AdvancedEditSession,
    AdvancedPhase,
    AppliedEdit,
    FileEdit,
    Job,
    JobKind,
    JobStatus,
    RemoteFile,
    RepositoryEditPlan,
)
from ..notifier import Notifier
from ..planning import correct_code_from_build_error, plan_repository_edit
from ..providers import AIBackend
from ..sanitize import clean_ai_code_response

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_MESSAGE = "Max verification attempts reached. Build still failing."


class VerificationTimeoutError(Exception):
    """The triggered workflow run did not complete in time."""


def guess_deployment_url(template: str, owner: str, repo: str) -> str | None:
    """Best-effort URL of the deployed site; None when guessing is disabled."""
    if not template:
        return None
    return template.format(owner=owner.lower(), repo=repo)


async def _wait_for_run(
    github: GitHubClient,
    owner: str,
    repo: str,
    workflow_id: str | int,
    branch: str,
    stale_ids: set,
    cfg: VerificationConfig,
    session: AdvancedEditSession,
    emit: Callable[[], None],
) -> dict:
    """Poll until the run started by our trigger reports ``completed``."""
    await anyio.sleep(cfg.settle_delay_sec)

    async def poll() -> dict:
        while True:
            runs = await github.list_workflow_runs(owner, repo, workflow_id, branch)
            fresh = [r for r in runs if r.get("id") not in stale_ids]
            if fresh:
                run = fresh[0]
                url = run.get("html_url")
                if url and url != session.workflow_run_url:
                    session.workflow_run_url = url
                    emit()
                if run.get("status") == "completed":
                    return run
            await anyio.sleep(cfg.poll_interval_sec)

    if cfg.poll_timeout_sec <= 0:
        return await poll()
    try:
        with anyio.fail_after(cfg.poll_timeout_sec):
            return await poll()
    except TimeoutError as exc:
        raise VerificationTimeoutError(
            f"Workflow run did not complete within {cfg.poll_timeout_sec:g} seconds."
        ) from exc


async def run_advanced_edit(
    github: GitHubClient,
    ai: AIBackend,
    models: Sequence[str],
    notifier: Notifier,
    *,
    repo_full_name: str,
    branch: str,
    instruction: str,
    workflow_id: str | int,
    files: Sequence[RemoteFile],
    active_path: str | None = None,
    verification: VerificationConfig | None = None,
    context_budget: int = MAX_CONTEXT_CHARACTERS,
    on_update: Callable[[AdvancedEditSession], None] | None = None,
) -> AdvancedEditSession:
    """Run the edit/verify loop until the workflow passes or attempts run out.

    *files* is the repository content the planner may see; it is updated
    with every committed edit so later files and later attempts read the
    current content and version token.
    """
    cfg = verification or VerificationConfig()
    session = AdvancedEditSession()
    known: dict[str, RemoteFile] = {f.path: f for f in files}

    def emit(_job: Job | None = None) -> None:
        if on_update is not None:
            on_update(session)

    def enter(phase: AdvancedPhase) -> None:
        session.enter(phase)
        logger.info("Advanced edit: %s (attempt %d)", phase.value, session.attempt)
        emit()

    async def plan_attempt() -> RepositoryEditPlan:
        snapshot = list(known.values())
        previous = [e for e in session.edits if e.attempt == session.attempt - 1]
        logs = session.build_logs or ""

        async def step(model: str) -> RepositoryEditPlan:
            if session.attempt == 1:
                return await plan_repository_edit(
                    ai, instruction, active_path, snapshot, model, context_budget,
                )
            return await correct_code_from_build_error(
                ai, instruction, snapshot, previous, logs, model, context_budget,
            )

        return await with_model_fallback(step, models, label="repository edit plan")

    async def apply_edit(edit: FileEdit, job: Job) -> None:
        job.transition(JobStatus.GENERATING)
        emit()
        original = known.get(edit.path)
        if original is None:
            original = await github.get_file_if_exists(owner, repo, edit.path, branch)
        if original.sha is None:
            job.kind = JobKind.CREATE

        received: list[str] = []

        def sink(chunk: str) -> None:
            received.append(chunk)
            job.streamed_content = "".join(received)
            emit()

        await stream_repository_file_edit(
            ai, original.content, edit.changes, edit.path, sink, models[0],
        )
        content = clean_ai_code_response("".join(received))
        job.streamed_content = content

        enter(AdvancedPhase.COMMITTING)
        job.transition(JobStatus.COMMITTING)
        emit()
        sha = await github.commit_file(
            owner, repo, branch, edit.path, content,
            f"AI Advanced Edit (Attempt {session.attempt}): {edit.path}",
            sha=original.sha,
        )
        known[edit.path] = RemoteFile(path=edit.path, content=content, sha=sha)
        session.edits.append(AppliedEdit(edit.path, content, session.attempt))
        job.transition(JobStatus.SUCCESS)
        emit()

    try:
        owner, repo = split_full_name(repo_full_name)
        enter(AdvancedPhase.ANALYZING)

        while True:
            enter(AdvancedPhase.PLANNING)
            plan = await plan_attempt()
            session.plan_rounds += 1
            session.reasoning = plan.reasoning

            session.jobs = [
                Job(
                    id=f"{session.attempt}:{e.path}",
                    path=e.path,
                    kind=JobKind.EDIT,
                    description=e.changes,
                    repo_full_name=repo_full_name,
                )
                for e in plan.files_to_edit
            ]
            enter(AdvancedPhase.EDITING)
            for edit, job in zip(plan.files_to_edit, session.jobs):
                try:
                    await apply_edit(edit, job)
                except Exception as exc:
                    job.transition(JobStatus.FAILED, str(exc) or type(exc).__name__)
                    emit()
                    raise
                enter(AdvancedPhase.EDITING)

            # Runs that predate our trigger must not be mistaken for ours
            stale_ids = {
                r.get("id") for r in await github.list_workflow_runs(owner, repo, workflow_id, branch)
            }
            enter(AdvancedPhase.TRIGGERING_WORKFLOW)
            await github.trigger_workflow(owner, repo, workflow_id, branch)

            enter(AdvancedPhase.WAITING_FOR_WORKFLOW)
            session.workflow_run_url = None
            timeout_message = ""
            try:
                run = await _wait_for_run(
                    github, owner, repo, workflow_id, branch, stale_ids, cfg, session, emit,
                )
            except VerificationTimeoutError as exc:
                logger.warning("%s", exc)
                run = None
                timeout_message = str(exc)

            if run is not None and run.get("conclusion") == "success":
                session.succeeded = True
                session.deployment_url = guess_deployment_url(
                    cfg.deployment_url_template, owner, repo,
                )
                enter(AdvancedPhase.COMPLETE)
                await notifier.alert(
                    "success",
                    f"Build passed after {session.attempt} attempt(s)",
                    event="workflow.completed",
                )
                return session

            enter(AdvancedPhase.ANALYZING_FAILURE)
            if run is None:
                session.build_logs = timeout_message
            else:
                session.build_logs = await github.get_workflow_run_logs(owner, repo, run["id"])
            emit()

            if session.attempt >= cfg.max_attempts:
                break
            session.attempt += 1

    except Exception as exc:
        session.error = str(exc) or type(exc).__name__
        logger.exception("Advanced edit aborted")
        enter(AdvancedPhase.COMPLETE)
        await notifier.alert(
            "error", f"Advanced edit failed: {session.error}", event="workflow.failed",
        )
        return session

    enter(AdvancedPhase.COMPLETE)
    await notifier.alert("error", MAX_ATTEMPTS_MESSAGE, event="workflow.failed")
    return session
