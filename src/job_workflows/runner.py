"""In-process glue between the engine and its collaborators.

`WorkflowRunner` owns the running workflows of one process. For every job
report it updates the run state and persists it while holding the workflow's
lock, then releases the lock before dispatching jobs, invoking callbacks or
notifying listeners. Released jobs are dispatched first; exceptions raised by
listeners and callbacks are logged and do not propagate.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from job_workflows.config import WorkflowSettings
from job_workflows.store import WorkflowRecord, WorkflowStore
from job_workflows.workflow.callbacks import resolve_callback
from job_workflows.workflow.definition import AbstractWorkflow, WorkflowDefinition, WorkflowPlan
from job_workflows.workflow.events import JobFailed, JobFinished, WorkflowEvent, WorkflowFinished
from job_workflows.workflow.jobs import JobDefinition
from job_workflows.workflow.run_state import RecordResult, WorkflowRunState

logger = logging.getLogger(__name__)

Listener = Callable[[WorkflowEvent], None]


class Dispatcher(Protocol):
    """Puts a job on whatever queue or worker pool actually runs it.

    The job must eventually be reported back through `WorkflowRunner.job_succeeded`
    or `WorkflowRunner.job_failed`.
    """

    def dispatch(self, workflow_id: str, job: JobDefinition) -> None: ...


@dataclass(slots=True)
class _Run:
    plan: WorkflowPlan
    state: WorkflowRunState
    lock: threading.Lock = field(default_factory=threading.Lock)


class WorkflowRunner:
    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        store: WorkflowStore | None = None,
        settings: WorkflowSettings | None = None,
        listeners: Iterable[Listener] = (),
    ) -> None:
        self._dispatcher = dispatcher
        self._store = store
        self._settings = settings or WorkflowSettings()
        self._listeners = list(listeners)
        self._runs: dict[str, _Run] = {}
        self._runs_lock = threading.Lock()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def start(
        self,
        workflow: AbstractWorkflow | WorkflowDefinition,
        before_create: Callable[[WorkflowPlan], None] | None = None,
    ) -> WorkflowPlan:
        """Build, persist and kick off a workflow."""

        definition = workflow.definition() if isinstance(workflow, AbstractWorkflow) else workflow
        plan, _ = definition.build(before_create)
        state = self._new_state(plan)
        roots = state.start()

        if self._store is not None:
            self._store.create(WorkflowRecord.from_run(plan, state))
        self._register(_Run(plan=plan, state=state))

        logger.info(
            "Workflow started",
            extra={"workflow_id": plan.workflow_id, "job_count": plan.job_count, "roots": roots},
        )

        self._dispatch(plan, roots)
        if plan.job_count == 0:
            self._finish(plan, state)
        return plan

    def resume(self, plan: WorkflowPlan) -> WorkflowRunState:
        """Re-attach a plan whose run state was persisted by a previous process."""

        if self._store is None:
            raise RuntimeError("Resuming a workflow requires a WorkflowStore")
        record = self._store.get(plan.workflow_id)
        if record is None:
            raise KeyError(plan.workflow_id)

        state = self._new_state(plan).restore(record.model_dump())
        self._register(_Run(plan=plan, state=state))
        logger.info(
            "Workflow resumed",
            extra={"workflow_id": plan.workflow_id, "jobs_processed": state.jobs_processed},
        )
        return state

    def state(self, workflow_id: str) -> WorkflowRunState:
        return self._run(workflow_id).state

    def plan(self, workflow_id: str) -> WorkflowPlan:
        return self._run(workflow_id).plan

    def job_succeeded(self, workflow_id: str, job_id: str) -> RecordResult:
        run = self._run(workflow_id)
        with run.lock:
            result = run.state.record_success(job_id)
            self._persist(run, result)

        if result.ignored:
            return result

        self._dispatch(run.plan, result.dispatchable)
        self._emit(JobFinished(workflow_id=workflow_id, job_id=job_id))
        if result.workflow_finished:
            self._finish(run.plan, run.state, invoke_then=result.invoke_then)
        return result

    def job_failed(
        self, workflow_id: str, job_id: str, error: BaseException | None = None
    ) -> RecordResult:
        run = self._run(workflow_id)
        with run.lock:
            result = run.state.record_failure(job_id, error)
            self._persist(run, result)

        if result.ignored:
            return result

        logger.warning(
            "Job failed",
            extra={"workflow_id": workflow_id, "job_id": job_id, "error": repr(error)},
        )
        self._dispatch(run.plan, result.dispatchable)
        self._emit(JobFailed(workflow_id=workflow_id, job_id=job_id, error=error))
        if result.invoke_catch and run.plan.catch_callback is not None:
            definition = run.plan.job(job_id)
            step = definition.job if definition is not None else None
            self._invoke(
                "catch callback",
                workflow_id,
                lambda: resolve_callback(run.plan.catch_callback)(run.plan, step, error),
            )

        if result.workflow_finished:
            self._finish(run.plan, run.state, invoke_then=result.invoke_then)
        return result

    def _new_state(self, plan: WorkflowPlan) -> WorkflowRunState:
        return WorkflowRunState.for_plan(
            plan,
            policy=self._settings.failure_policy,
            invoke_then_after_failures=self._settings.invoke_then_after_failures,
        )

    def _register(self, run: _Run) -> None:
        with self._runs_lock:
            self._runs[run.plan.workflow_id] = run

    def _run(self, workflow_id: str) -> _Run:
        with self._runs_lock:
            try:
                return self._runs[workflow_id]
            except KeyError:
                raise KeyError(f"Unknown workflow: {workflow_id}") from None

    def _persist(self, run: _Run, result: RecordResult) -> None:
        if self._store is None or result.ignored:
            return
        self._store.save_state(run.plan.workflow_id, run.state)

    def _dispatch(self, plan: WorkflowPlan, job_ids: Iterable[str]) -> None:
        for job_id in job_ids:
            definition = plan.job(job_id)
            if definition is None:
                logger.error(
                    "Dispatchable job missing from plan",
                    extra={"workflow_id": plan.workflow_id, "job_id": job_id},
                )
                continue
            logger.debug(
                "Dispatching job",
                extra={
                    "workflow_id": plan.workflow_id,
                    "job_id": job_id,
                    "delay": definition.delay,
                },
            )
            self._dispatcher.dispatch(plan.workflow_id, definition)

    def _finish(
        self, plan: WorkflowPlan, state: WorkflowRunState, invoke_then: bool = True
    ) -> None:
        self._emit(WorkflowFinished(workflow_id=plan.workflow_id, jobs_failed=state.jobs_failed))
        if invoke_then and plan.then_callback is not None:
            self._invoke(
                "then callback",
                plan.workflow_id,
                lambda: resolve_callback(plan.then_callback)(plan),
            )

    def _emit(self, event: WorkflowEvent) -> None:
        for listener in self._listeners:
            self._invoke("listener", event.workflow_id, lambda: listener(event))

    def _invoke(self, kind: str, workflow_id: str, call: Callable[[], object]) -> None:
        # Hooks run after dispatch; their exceptions never reach the reporter.
        try:
            call()
        except Exception:
            logger.exception("Workflow %s raised", kind, extra={"workflow_id": workflow_id})
