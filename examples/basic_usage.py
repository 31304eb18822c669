#!/usr/bin/env python3
"""Programmatic workflow example.

This demonstrates using the engine components directly:

* define a workflow with a nested sub-workflow
* start it with an in-memory dispatcher
* report jobs back until the workflow completes
* persist run state to `workflow_state/workflows.json`
"""

from __future__ import annotations

import argparse
import logging
from collections import deque
from collections.abc import Sequence

from job_workflows.config import WorkflowSettings
from job_workflows.logging import configure_logging
from job_workflows.runner import WorkflowRunner
from job_workflows.store import WorkflowStore
from job_workflows.workflow.definition import AbstractWorkflow, WorkflowDefinition, WorkflowPlan
from job_workflows.workflow.jobs import JobDefinition
from job_workflows.workflow.steps import WorkflowStep

logger = logging.getLogger(__name__)


class Shell(WorkflowStep):
    def __init__(self, command: str) -> None:
        self.command = command


class PublishWorkflow(AbstractWorkflow):
    def definition(self) -> WorkflowDefinition:
        return (
            WorkflowDefinition("publish")
            .add_job(Shell("build wheel"), job_id="wheel")
            .add_job(Shell("upload wheel"), ["wheel"], job_id="upload", delay=5)
        )


def report_done(plan: WorkflowPlan) -> None:
    logger.info("Workflow done", extra={"workflow_id": plan.workflow_id})


class QueueDispatcher:
    def __init__(self) -> None:
        self.queue: deque[tuple[str, JobDefinition]] = deque()

    def dispatch(self, workflow_id: str, job: JobDefinition) -> None:
        self.queue.append((workflow_id, job))


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a small example workflow in-process.")
    parser.add_argument(
        "--fail",
        default=None,
        help='Job id to report as failed, e.g. "test"',
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = WorkflowSettings()
    configure_logging(settings.log_level)

    definition = (
        WorkflowDefinition("release")
        .add_job(Shell("ruff check ."), job_id="lint")
        .add_job(Shell("pytest"), job_id="test")
        .add_workflow(PublishWorkflow(), ["lint", "test"], workflow_id="publish")
        .then(report_done)
    )

    dispatcher = QueueDispatcher()
    runner = WorkflowRunner(dispatcher, store=WorkflowStore(settings.state_path), settings=settings)
    plan = runner.start(definition)

    while dispatcher.queue:
        workflow_id, job = dispatcher.queue.popleft()
        print(f"running {job.id}: {job.job.command} (delay={job.delay})")
        if job.id == args.fail:
            runner.job_failed(workflow_id, job.id, RuntimeError(f"{job.id} failed"))
        else:
            runner.job_succeeded(workflow_id, job.id)

    state = runner.state(plan.workflow_id)
    print(f"processed {state.jobs_processed}/{state.job_count}, failed {state.jobs_failed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
