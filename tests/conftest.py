"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from job_workflows.config import WorkflowSettings
from job_workflows.store import WorkflowStore
from job_workflows.workflow.definition import WorkflowDefinition
from job_workflows.workflow.jobs import JobDefinition
from job_workflows.workflow.steps import WorkflowStep


class NamedStep(WorkflowStep):
    """A job that carries nothing but a label."""

    def __init__(self, label: str = "") -> None:
        self.label = label


class RecordingDispatcher:
    def __init__(self) -> None:
        self.dispatched: list[tuple[str, JobDefinition]] = []

    def dispatch(self, workflow_id: str, job: JobDefinition) -> None:
        self.dispatched.append((workflow_id, job))

    @property
    def job_ids(self) -> list[str]:
        return [job.id for _, job in self.dispatched]


@pytest.fixture
def diamond() -> WorkflowDefinition:
    """A -> (B, C) -> D."""
    return (
        WorkflowDefinition("diamond")
        .add_job(NamedStep("a"), job_id="A")
        .add_job(NamedStep("b"), ["A"], job_id="B")
        .add_job(NamedStep("c"), ["A"], job_id="C")
        .add_job(NamedStep("d"), ["B", "C"], job_id="D")
    )


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def workflow_store(tmp_path: Path) -> WorkflowStore:
    """Provide a store backed by a temporary file."""
    return WorkflowStore(tmp_path / "workflow_state" / "workflows.json")


@pytest.fixture
def settings(tmp_path: Path) -> WorkflowSettings:
    return WorkflowSettings(_env_file=None, state_path=tmp_path / "workflows.json")
