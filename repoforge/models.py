"""Core data models for repoforge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class InvalidTransitionError(Exception):
    """Raised when a job or workflow phase is moved along an undeclared edge."""


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    QUEUED = "queued"
    PLANNING = "planning"
    GENERATING = "generating"
    RETRYING = "retrying"
    COMMITTING = "committing"
    SUCCESS = "success"
    FAILED = "failed"


class JobKind(str, Enum):
    CREATE = "create"
    EDIT = "edit"


JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PLANNING, JobStatus.GENERATING, JobStatus.FAILED}),
    JobStatus.PLANNING: frozenset({JobStatus.GENERATING, JobStatus.FAILED}),
    JobStatus.GENERATING: frozenset({
        JobStatus.RETRYING, JobStatus.COMMITTING, JobStatus.SUCCESS, JobStatus.FAILED,
    }),
    JobStatus.RETRYING: frozenset({JobStatus.GENERATING, JobStatus.FAILED}),
    JobStatus.COMMITTING: frozenset({JobStatus.SUCCESS, JobStatus.FAILED}),
    JobStatus.SUCCESS: frozenset(),
    JobStatus.FAILED: frozenset(),
}

_ERROR_STATUSES = (JobStatus.RETRYING, JobStatus.FAILED)


@dataclass
class Job:
    """A single file-level unit of AI work."""

    id: str
    path: str
    kind: JobKind = JobKind.EDIT
    description: str = ""
    repo_full_name: str = ""
    agent_index: int = 0

    # Runtime
    status: JobStatus = JobStatus.QUEUED
    streamed_content: str = ""
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCESS, JobStatus.FAILED)

    @property
    def is_active(self) -> bool:
        """True while the job holds a runner slot."""
        return not self.is_terminal and self.status != JobStatus.QUEUED

    def transition(self, status: JobStatus, error: str | None = None) -> None:
        """Move to *status*, validating against JOB_TRANSITIONS.

        Entering ``retrying`` or ``failed`` requires an error message; every
        other status clears it.
        """
        if status not in JOB_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Job {self.id}: {self.status.value} -> {status.value} is not allowed"
            )
        if status in _ERROR_STATUSES:
            if not error:
                raise InvalidTransitionError(
                    f"Job {self.id}: entering {status.value} requires an error message"
                )
            self.error = error
        else:
            self.error = None
        self.status = status


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass
class FileSpec:
    """A file to be created, with its one-line purpose."""

    path: str
    description: str
    agent_index: int = 0


@dataclass
class FileEdit:
    """A file to be edited, with instructions for the edit."""

    path: str
    changes: str


@dataclass
class ProjectPlan:
    files: list[FileSpec] = field(default_factory=list)


@dataclass
class ExpansionPlan:
    files_to_create: list[FileSpec] = field(default_factory=list)
    files_to_edit: list[FileEdit] = field(default_factory=list)


@dataclass
class RepositoryEditPlan:
    reasoning: str = ""
    files_to_edit: list[FileEdit] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Remote content
# ---------------------------------------------------------------------------

@dataclass
class RemoteFile:
    """A file as read from the remote store; ``sha`` is its version token."""

    path: str
    content: str
    sha: str | None = None


@dataclass
class AppliedEdit:
    """Content an advanced-edit attempt committed to one path."""

    path: str
    new_content: str
    attempt: int


# ---------------------------------------------------------------------------
# Workflow phases
# ---------------------------------------------------------------------------

class ExpansionPhase(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    GENERATING = "generating"
    COMPLETE = "complete"


class AdvancedPhase(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    PLANNING = "planning"
    EDITING = "editing"
    COMMITTING = "committing"
    TRIGGERING_WORKFLOW = "triggering_workflow"
    WAITING_FOR_WORKFLOW = "waiting_for_workflow"
    ANALYZING_FAILURE = "analyzing_failure"
    COMPLETE = "complete"


# COMPLETE is reachable from every non-terminal phase (fatal abort).
ADVANCED_TRANSITIONS: dict[AdvancedPhase, frozenset[AdvancedPhase]] = {
    AdvancedPhase.IDLE: frozenset({AdvancedPhase.ANALYZING}),
    AdvancedPhase.ANALYZING: frozenset({AdvancedPhase.PLANNING}),
    AdvancedPhase.PLANNING: frozenset({AdvancedPhase.EDITING}),
    AdvancedPhase.EDITING: frozenset({
        AdvancedPhase.COMMITTING, AdvancedPhase.TRIGGERING_WORKFLOW,
    }),
    AdvancedPhase.COMMITTING: frozenset({
        AdvancedPhase.EDITING, AdvancedPhase.TRIGGERING_WORKFLOW,
    }),
    AdvancedPhase.TRIGGERING_WORKFLOW: frozenset({AdvancedPhase.WAITING_FOR_WORKFLOW}),
    AdvancedPhase.WAITING_FOR_WORKFLOW: frozenset({AdvancedPhase.ANALYZING_FAILURE}),
    AdvancedPhase.ANALYZING_FAILURE: frozenset({AdvancedPhase.PLANNING}),
    AdvancedPhase.COMPLETE: frozenset(),
}


# ---------------------------------------------------------------------------
# Alerts & sessions
# ---------------------------------------------------------------------------

@dataclass
class Alert:
    level: str  # "success" | "error" | "warning"
    message: str


@dataclass
class BulkEditSession:
    jobs: list[Job] = field(default_factory=list)


@dataclass
class ProjectGenerationSession:
    repo_full_name: str = ""
    status_message: str = ""
    jobs: list[Job] = field(default_factory=list)
    error: str | None = None


@dataclass
class ExpansionSession:
    seed_path: str = ""
    phase: ExpansionPhase = ExpansionPhase.IDLE
    jobs: list[Job] = field(default_factory=list)
    flagged_edits: list[FileEdit] = field(default_factory=list)
    error: str | None = None


@dataclass
class AdvancedEditSession:
    phase: AdvancedPhase = AdvancedPhase.IDLE
    attempt: int = 1
    plan_rounds: int = 0
    build_logs: str | None = None
    workflow_run_url: str | None = None
    reasoning: str | None = None
    deployment_url: str | None = None
    deployment_url_is_guess: bool = True
    succeeded: bool = False
    error: str | None = None
    jobs: list[Job] = field(default_factory=list)
    edits: list[AppliedEdit] = field(default_factory=list)

    def enter(self, phase: AdvancedPhase) -> None:
        """Move to *phase*, validating against ADVANCED_TRANSITIONS."""
        if self.phase == phase:
            return
        if self.phase == AdvancedPhase.COMPLETE:
            raise InvalidTransitionError("Advanced edit session is already complete")
        if phase != AdvancedPhase.COMPLETE and phase not in ADVANCED_TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"Advanced edit: {self.phase.value} -> {phase.value} is not allowed"
            )
        self.phase = phase
