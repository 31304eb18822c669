"""Completion tracking for one running workflow.

`WorkflowRunState` turns job success/failure reports into decisions: which
jobs became dispatchable, whether the workflow finished and which callback
should run. It performs no I/O; the caller dispatches jobs and invokes
callbacks after the call returns.

Reports may arrive concurrently and more than once. Every mutation happens
under the instance lock. Duplicate reports, reports for unknown jobs and
reports for jobs that were never dispatched are ignored with a warning
instead of raising, so a job is never dispatched twice.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .graph import DependencyGraph

if TYPE_CHECKING:
    from .definition import WorkflowPlan

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What a failed job means for the jobs that depend on it.

    BLOCK_DEPENDENTS: dependents never become dispatchable.
    SKIP_DEPENDENTS: like BLOCK_DEPENDENTS, and every job that can no longer
        run is marked skipped and counted as processed, so the workflow still
        completes.
    CONTINUE_DEPENDENTS: a failure satisfies dependency edges like a success.

    In all cases the failed job itself counts once toward `jobs_processed`
    and is never added to the finished set.
    """

    BLOCK_DEPENDENTS = "block_dependents"
    SKIP_DEPENDENTS = "skip_dependents"
    CONTINUE_DEPENDENTS = "continue_dependents"


@dataclass(frozen=True, slots=True)
class RecordResult:
    """Outcome of a single success/failure report."""

    job_id: str
    dispatchable: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    workflow_finished: bool = False
    invoke_then: bool = False
    invoke_catch: bool = False
    error: BaseException | None = None
    ignored: bool = False


class WorkflowRunState:
    def __init__(
        self,
        graph: DependencyGraph,
        *,
        workflow_id: str | None = None,
        policy: FailurePolicy = FailurePolicy.BLOCK_DEPENDENTS,
        invoke_then_after_failures: bool = True,
    ) -> None:
        self._graph = graph
        self._lock = threading.Lock()
        self.workflow_id = workflow_id
        self.policy = FailurePolicy(policy)
        self.invoke_then_after_failures = invoke_then_after_failures

        self.job_count = len(graph)
        self.jobs_processed = 0
        self.jobs_failed = 0
        self._finished: dict[str, None] = {}
        self._failed: dict[str, None] = {}
        self._skipped: dict[str, None] = {}
        self._dispatched: dict[str, None] = {}

    @classmethod
    def for_plan(
        cls,
        plan: WorkflowPlan,
        *,
        policy: FailurePolicy = FailurePolicy.BLOCK_DEPENDENTS,
        invoke_then_after_failures: bool = True,
    ) -> WorkflowRunState:
        return cls(
            plan.graph,
            workflow_id=plan.workflow_id,
            policy=policy,
            invoke_then_after_failures=invoke_then_after_failures,
        )

    @property
    def finished_job_ids(self) -> list[str]:
        return list(self._finished)

    @property
    def failed_job_ids(self) -> list[str]:
        return list(self._failed)

    @property
    def skipped_job_ids(self) -> list[str]:
        return list(self._skipped)

    @property
    def dispatched_job_ids(self) -> list[str]:
        return list(self._dispatched)

    @property
    def is_completed(self) -> bool:
        return self.jobs_processed >= self.job_count

    def start(self) -> list[str]:
        """Mark the root jobs as dispatched and return them.

        Roots that were dispatched before (e.g. on a restored state) are not
        returned again.
        """

        with self._lock:
            roots = [job_id for job_id in self._graph.root_ids() if job_id not in self._dispatched]
            self._dispatched.update(dict.fromkeys(roots))
            return roots

    def record_success(self, job_id: str) -> RecordResult:
        with self._lock:
            if not self._accepts(job_id, "success"):
                return RecordResult(job_id=job_id, ignored=True)

            self._finished[job_id] = None
            self.jobs_processed += 1
            dispatchable = self._release_dependents(job_id)
            return self._result(job_id, dispatchable=dispatchable)

    def record_failure(self, job_id: str, error: BaseException | None = None) -> RecordResult:
        with self._lock:
            if not self._accepts(job_id, "failure"):
                return RecordResult(job_id=job_id, ignored=True)

            self._failed[job_id] = None
            self.jobs_failed += 1
            self.jobs_processed += 1

            dispatchable: list[str] = []
            skipped: list[str] = []
            if self.policy is FailurePolicy.CONTINUE_DEPENDENTS:
                dispatchable = self._release_dependents(job_id)
            elif self.policy is FailurePolicy.SKIP_DEPENDENTS:
                skipped = self._skip_descendants(job_id)

            return self._result(
                job_id,
                dispatchable=dispatchable,
                skipped=skipped,
                invoke_catch=True,
                error=error,
            )

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "job_count": self.job_count,
                "jobs_processed": self.jobs_processed,
                "jobs_failed": self.jobs_failed,
                "finished_jobs": list(self._finished),
                "failed_jobs": list(self._failed),
                "skipped_jobs": list(self._skipped),
                "dispatched_jobs": list(self._dispatched),
            }

    def restore(self, snapshot: dict[str, Any]) -> WorkflowRunState:
        """Load counters and sets previously produced by `snapshot()`."""

        with self._lock:
            self.job_count = int(snapshot.get("job_count", self.job_count))
            self.jobs_processed = int(snapshot.get("jobs_processed", 0))
            self.jobs_failed = int(snapshot.get("jobs_failed", 0))
            self._finished = dict.fromkeys(snapshot.get("finished_jobs", []))
            self._failed = dict.fromkeys(snapshot.get("failed_jobs", []))
            self._skipped = dict.fromkeys(snapshot.get("skipped_jobs", []))
            self._dispatched = dict.fromkeys(snapshot.get("dispatched_jobs", []))
        return self

    def _accepts(self, job_id: str, outcome: str) -> bool:
        extra = {"workflow_id": self.workflow_id, "job_id": job_id, "outcome": outcome}
        if self.is_completed:
            logger.warning("Ignoring job report for a completed workflow", extra=extra)
            return False
        if job_id not in self._graph:
            logger.warning("Ignoring job report for an unknown job", extra=extra)
            return False
        if self._processed(job_id):
            logger.warning("Ignoring duplicate job report", extra=extra)
            return False
        if job_id not in self._dispatched:
            logger.warning("Ignoring job report for a job that was never dispatched", extra=extra)
            return False
        return True

    def _processed(self, job_id: str) -> bool:
        return job_id in self._finished or job_id in self._failed or job_id in self._skipped

    def _satisfied(self, job_id: str) -> bool:
        if job_id in self._finished:
            return True
        return self.policy is FailurePolicy.CONTINUE_DEPENDENTS and job_id in self._failed

    def _release_dependents(self, job_id: str) -> list[str]:
        released: list[str] = []
        for dependent in self._graph.dependents_of(job_id):
            if dependent in self._dispatched or self._processed(dependent):
                continue
            if all(self._satisfied(dep) for dep in self._graph.dependencies_of(dependent)):
                self._dispatched[dependent] = None
                released.append(dependent)
        return released

    def _skip_descendants(self, job_id: str) -> list[str]:
        skipped: list[str] = []
        pending = self._graph.dependents_of(job_id)
        while pending:
            current = pending.pop(0)
            if self._processed(current):
                continue
            self._skipped[current] = None
            self.jobs_processed += 1
            skipped.append(current)
            pending.extend(self._graph.dependents_of(current))
        return skipped

    def _result(
        self,
        job_id: str,
        *,
        dispatchable: list[str],
        skipped: list[str] | None = None,
        invoke_catch: bool = False,
        error: BaseException | None = None,
    ) -> RecordResult:
        finished = self.is_completed
        invoke_then = finished and (self.invoke_then_after_failures or self.jobs_failed == 0)
        if finished:
            logger.info(
                "Workflow completed",
                extra={
                    "workflow_id": self.workflow_id,
                    "jobs_processed": self.jobs_processed,
                    "jobs_failed": self.jobs_failed,
                },
            )
        return RecordResult(
            job_id=job_id,
            dispatchable=tuple(dispatchable),
            skipped=tuple(skipped or ()),
            workflow_finished=finished,
            invoke_then=invoke_then,
            invoke_catch=invoke_catch,
            error=error,
        )
