"""Job handles as seen by the workflow engine.

The engine never looks inside a job. It only needs a small capability set to
stamp ids, dependency lists and an optional delay onto the handle before it
is handed to the execution collaborator.
"""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

Delay = int | float | timedelta | datetime


class WorkflowStep:
    """Base class for jobs that take part in a workflow.

    This is the capability set the engine relies on. Subclasses carry their own
    payload; the attributes below are owned by the engine and filled in while
    the workflow is defined and built.
    """

    job_id: str | None = None
    step_id: str | None = None
    workflow_id: str | None = None
    dependencies: Sequence[str] = ()
    dependent_jobs: Sequence[str] = ()
    _delay: Delay | None = None

    def with_job_id(self, job_id: str) -> WorkflowStep:
        self.job_id = job_id
        return self

    def with_step_id(self, step_id: str) -> WorkflowStep:
        self.step_id = step_id
        return self

    def with_workflow_id(self, workflow_id: str) -> WorkflowStep:
        self.workflow_id = workflow_id
        return self

    def with_dependencies(self, dependencies: list[str]) -> WorkflowStep:
        self.dependencies = list(dependencies)
        return self

    def with_dependent_jobs(self, dependents: list[str]) -> WorkflowStep:
        self.dependent_jobs = list(dependents)
        return self

    def delay(self, delay: Delay | None) -> WorkflowStep:
        self._delay = delay
        return self

    def get_delay(self) -> Delay | None:
        return self._delay


class LegacyStepAdapter(WorkflowStep):
    """Wrap a job object that does not extend `WorkflowStep`."""

    def __init__(self, job: Any) -> None:
        self._job = job

    @property
    def wrapped(self) -> Any:
        return self._job

    def __repr__(self) -> str:
        return f"LegacyStepAdapter({self._job!r})"


def as_workflow_step(job: Any) -> WorkflowStep:
    """Resolve a job handle to the step capability set, once, at definition time."""

    if isinstance(job, WorkflowStep):
        return job

    warnings.warn(
        f"{type(job).__qualname__} does not extend WorkflowStep; "
        "it is wrapped in a LegacyStepAdapter. Extend WorkflowStep instead.",
        DeprecationWarning,
        stacklevel=3,
    )
    return LegacyStepAdapter(job)


def step_identifier(job: Any) -> str:
    """Default id for a job: the dotted path of its class."""

    if isinstance(job, LegacyStepAdapter):
        job = job.wrapped
    cls = job if isinstance(job, type) else type(job)
    return f"{cls.__module__}.{cls.__qualname__}"
