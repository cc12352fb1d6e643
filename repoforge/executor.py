"""Per-job execution shared by the pooled workflows."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from .fallback import AllModelsFailedError, with_model_fallback
from .models import Job, JobStatus, RemoteFile
from .sanitize import clean_ai_code_response

logger = logging.getLogger(__name__)

ALL_MODELS_FAILED = "All AI models failed to generate valid code."

ChunkSink = Callable[[str], None]
FetchStep = Callable[[], Awaitable[RemoteFile]]
ProduceStep = Callable[[str, str, ChunkSink], Awaitable[object]]
CommitStep = Callable[[str, "str | None"], Awaitable[object]]
JobListener = Callable[[Job], None]


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def execute_job(
    job: Job,
    *,
    models: Sequence[str],
    fetch: FetchStep,
    produce: ProduceStep,
    commit: CommitStep,
    on_update: JobListener | None = None,
) -> None:
    """Drive *job* from ``queued`` to ``success`` or ``failed``.

    ``fetch()`` returns the current remote file (content + version token),
    ``produce(model, original, on_chunk)`` streams one generation attempt,
    ``commit(content, sha)`` persists the sanitized result. Generation is
    retried across *models*; fetch and commit failures are not.
    Never raises for job-scoped failures; they are recorded on the job.
    """

    def emit() -> None:
        if on_update is not None:
            on_update(job)

    job.transition(JobStatus.GENERATING)
    emit()

    try:
        remote = await fetch()
    except Exception as exc:
        logger.warning("Could not read %s: %s", job.path, exc)
        job.transition(JobStatus.FAILED, _describe(exc))
        emit()
        return

    async def attempt(model: str) -> str:
        received: list[str] = []

        def sink(chunk: str) -> None:
            received.append(chunk)
            job.streamed_content = "".join(received)
            emit()

        await produce(model, remote.content, sink)
        return clean_ai_code_response("".join(received))

    def before_retry(model: str, error: BaseException) -> None:
        job.transition(JobStatus.RETRYING, f"Retrying with {model}...")
        job.streamed_content = ""
        emit()
        job.transition(JobStatus.GENERATING)
        emit()

    try:
        content = await with_model_fallback(attempt, models, on_retry=before_retry, label=job.path)
    except AllModelsFailedError:
        job.transition(JobStatus.FAILED, ALL_MODELS_FAILED)
        emit()
        return

    job.streamed_content = content
    job.transition(JobStatus.COMMITTING)
    emit()

    try:
        await commit(content, remote.sha)
    except Exception as exc:
        logger.warning("Commit failed for %s: %s", job.path, exc)
        job.transition(JobStatus.FAILED, _describe(exc))
        emit()
        return

    job.transition(JobStatus.SUCCESS)
    emit()
    logger.info("Job %s succeeded", job.id)
