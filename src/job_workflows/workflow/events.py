from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class JobFinished:
    """A job of a running workflow reported success."""

    workflow_id: str
    job_id: str


@dataclass(frozen=True, slots=True)
class JobFailed:
    """A job of a running workflow reported failure.

    Emitted once per failure report, right before the catch callback runs.
    """

    workflow_id: str
    job_id: str
    error: BaseException | None


@dataclass(frozen=True, slots=True)
class WorkflowFinished:
    workflow_id: str
    jobs_failed: int


WorkflowEvent = JobFinished | JobFailed | WorkflowFinished
