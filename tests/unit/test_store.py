"""Unit tests for workflow run persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from job_workflows.store import WorkflowRecord, WorkflowStore
from job_workflows.workflow.definition import WorkflowDefinition
from job_workflows.workflow.run_state import WorkflowRunState


def test_store_roundtrip(workflow_store: WorkflowStore, diamond: WorkflowDefinition) -> None:
    assert workflow_store.list() == []

    plan, _ = diamond.build()
    state = WorkflowRunState.for_plan(plan)
    state.start()
    workflow_store.create(WorkflowRecord.from_run(plan, state))

    loaded = workflow_store.list()
    assert len(loaded) == 1
    assert loaded[0].workflow_id == plan.workflow_id
    assert loaded[0].job_count == 4
    assert loaded[0].dispatched_jobs == ["A"]
    assert loaded[0].jobs_processed == 0


def test_create_rejects_duplicates(
    workflow_store: WorkflowStore, diamond: WorkflowDefinition
) -> None:
    plan, _ = diamond.build()
    record = WorkflowRecord.from_run(plan, WorkflowRunState.for_plan(plan))
    workflow_store.create(record)

    with pytest.raises(ValueError):
        workflow_store.create(record)


def test_update_unknown_workflow_raises(workflow_store: WorkflowStore) -> None:
    with pytest.raises(KeyError):
        workflow_store.update("missing", jobs_processed=1)


def test_save_state_marks_completion(
    workflow_store: WorkflowStore, diamond: WorkflowDefinition
) -> None:
    plan, _ = diamond.build()
    state = WorkflowRunState.for_plan(plan)
    state.start()
    workflow_store.create(WorkflowRecord.from_run(plan, state))

    for job_id in ["A", "B", "C", "D"]:
        state.record_success(job_id)
    record = workflow_store.save_state(plan.workflow_id, state)

    assert record.jobs_processed == 4
    assert record.finished_at is not None


def test_invalid_json_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "workflows.json"
    path.write_text("{not json", encoding="utf-8")

    assert WorkflowStore(path).list() == []


def test_save_state_keeps_first_finished_at(
    workflow_store: WorkflowStore, diamond: WorkflowDefinition
) -> None:
    plan, _ = diamond.build()
    state = WorkflowRunState.for_plan(plan)
    state.start()
    workflow_store.create(WorkflowRecord.from_run(plan, state))
    for job_id in ["A", "B", "C", "D"]:
        state.record_success(job_id)

    first = workflow_store.save_state(plan.workflow_id, state)
    second = workflow_store.save_state(plan.workflow_id, state)

    assert second.finished_at == first.finished_at
    assert workflow_store.get(plan.workflow_id) == second


def test_save_state_requires_existing_record(
    workflow_store: WorkflowStore, diamond: WorkflowDefinition
) -> None:
    plan, _ = diamond.build()

    with pytest.raises(KeyError):
        workflow_store.save_state(plan.workflow_id, WorkflowRunState.for_plan(plan))
