"""Unit tests for workflow completion tracking."""

from __future__ import annotations

import logging
import threading

import pytest
from conftest import NamedStep

from job_workflows.workflow.definition import WorkflowDefinition
from job_workflows.workflow.run_state import FailurePolicy, WorkflowRunState


def _state(
    definition: WorkflowDefinition,
    policy: FailurePolicy = FailurePolicy.BLOCK_DEPENDENTS,
    invoke_then_after_failures: bool = True,
) -> WorkflowRunState:
    plan, _ = definition.build()
    return WorkflowRunState.for_plan(
        plan, policy=policy, invoke_then_after_failures=invoke_then_after_failures
    )


def _chain() -> WorkflowDefinition:
    """A -> B -> C, plus an unrelated root X."""
    return (
        WorkflowDefinition("chain")
        .add_job(NamedStep(), job_id="A")
        .add_job(NamedStep(), ["A"], job_id="B")
        .add_job(NamedStep(), ["B"], job_id="C")
        .add_job(NamedStep(), job_id="X")
    )


def test_diamond_scenario(diamond: WorkflowDefinition) -> None:
    state = _state(diamond)

    assert state.start() == ["A"]

    result = state.record_success("A")
    assert result.dispatchable == ("B", "C")
    assert not result.workflow_finished

    result = state.record_success("B")
    assert result.dispatchable == ()

    result = state.record_success("C")
    assert result.dispatchable == ("D",)

    result = state.record_success("D")
    assert result.dispatchable == ()
    assert result.workflow_finished
    assert result.invoke_then
    assert state.is_completed
    assert state.finished_job_ids == ["A", "B", "C", "D"]
    assert state.jobs_processed == state.job_count == 4


def test_report_for_undispatched_job_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    state = _state(_chain())
    state.start()

    with caplog.at_level(logging.WARNING):
        result = state.record_success("B")

    assert result.ignored
    assert result.dispatchable == ()
    assert state.jobs_processed == 0
    assert state.finished_job_ids == []
    assert "never dispatched" in caplog.text

    assert state.record_success("A").dispatchable == ("B",)
    assert state.record_success("B").dispatchable == ("C",)


def test_failure_for_undispatched_job_is_ignored() -> None:
    state = _state(_chain(), FailurePolicy.CONTINUE_DEPENDENTS)
    state.start()

    result = state.record_failure("C", RuntimeError("boom"))

    assert result.ignored
    assert not result.invoke_catch
    assert state.jobs_failed == 0


def test_start_is_not_repeated() -> None:
    state = _state(_chain())

    assert state.start() == ["A", "X"]
    assert state.start() == []
    assert state.dispatched_job_ids == ["A", "X"]


def test_duplicate_success_is_ignored(
    diamond: WorkflowDefinition, caplog: pytest.LogCaptureFixture
) -> None:
    state = _state(diamond)
    state.start()
    state.record_success("A")

    with caplog.at_level(logging.WARNING):
        result = state.record_success("A")

    assert result.ignored
    assert result.dispatchable == ()
    assert state.jobs_processed == 1
    assert "duplicate" in caplog.text


def test_unknown_job_is_ignored(diamond: WorkflowDefinition) -> None:
    state = _state(diamond)

    assert state.record_success("nope").ignored
    assert state.record_failure("nope", RuntimeError("x")).ignored
    assert state.jobs_processed == 0
    assert state.jobs_failed == 0


def test_reports_after_completion_are_ignored() -> None:
    state = _state(WorkflowDefinition().add_job(NamedStep(), job_id="only"))
    state.start()

    assert state.record_success("only").workflow_finished

    late = state.record_failure("only", RuntimeError("late"))
    assert late.ignored
    assert not late.workflow_finished
    assert state.jobs_failed == 0


def test_completion_is_signalled_exactly_once_for_any_mix(diamond: WorkflowDefinition) -> None:
    state = _state(diamond, policy=FailurePolicy.CONTINUE_DEPENDENTS)
    state.start()

    results = [
        state.record_success("A"),
        state.record_failure("B", RuntimeError("boom")),
        state.record_success("C"),
        state.record_success("D"),
        state.record_success("D"),
        state.record_failure("A", RuntimeError("late")),
    ]

    assert [r.workflow_finished for r in results] == [False, False, False, True, False, False]
    assert sum(r.invoke_then for r in results) == 1


def test_block_policy_counts_failure_but_keeps_dependents_blocked() -> None:
    state = _state(_chain())
    state.start()

    error = RuntimeError("boom")
    result = state.record_failure("A", error)

    assert result.invoke_catch
    assert result.error is error
    assert result.dispatchable == ()
    assert result.skipped == ()
    assert state.jobs_failed == 1
    assert state.jobs_processed == 1
    assert state.failed_job_ids == ["A"]
    assert "A" not in state.finished_job_ids
    assert not state.is_completed


def test_skip_policy_skips_descendants_and_completes() -> None:
    state = _state(_chain(), policy=FailurePolicy.SKIP_DEPENDENTS)
    state.start()

    result = state.record_failure("A", RuntimeError("boom"))
    assert result.skipped == ("B", "C")
    assert state.jobs_processed == 3
    assert not result.workflow_finished

    result = state.record_success("X")
    assert result.workflow_finished
    assert result.invoke_then
    assert state.skipped_job_ids == ["B", "C"]

    # A skipped job reporting in anyway changes nothing.
    assert state.record_success("B").ignored


def test_skip_policy_finishes_workflow_when_last_path_fails(
    diamond: WorkflowDefinition,
) -> None:
    state = _state(diamond, policy=FailurePolicy.SKIP_DEPENDENTS)
    state.start()
    state.record_success("A")
    state.record_success("B")

    result = state.record_failure("C", RuntimeError("boom"))

    assert result.skipped == ("D",)
    assert result.workflow_finished


def test_continue_policy_releases_dependents_of_failed_jobs() -> None:
    state = _state(_chain(), policy=FailurePolicy.CONTINUE_DEPENDENTS)
    state.start()

    result = state.record_failure("A", RuntimeError("boom"))

    assert result.dispatchable == ("B",)
    assert result.invoke_catch
    assert state.finished_job_ids == []


def test_then_can_be_suppressed_after_failures() -> None:
    state = _state(
        _chain(), policy=FailurePolicy.SKIP_DEPENDENTS, invoke_then_after_failures=False
    )
    state.start()
    state.record_failure("A", RuntimeError("boom"))

    result = state.record_success("X")

    assert result.workflow_finished
    assert not result.invoke_then


def test_empty_workflow_is_completed_from_the_start() -> None:
    state = _state(WorkflowDefinition())

    assert state.is_completed
    assert state.start() == []


def test_snapshot_restore_roundtrip(diamond: WorkflowDefinition) -> None:
    plan, _ = diamond.build()
    state = WorkflowRunState.for_plan(plan)
    state.start()
    state.record_success("A")
    state.record_success("B")

    restored = WorkflowRunState.for_plan(plan).restore(state.snapshot())

    assert restored.finished_job_ids == ["A", "B"]
    assert restored.jobs_processed == 2
    assert restored.start() == []
    assert restored.record_success("C").dispatchable == ("D",)


def test_concurrent_reports_dispatch_shared_dependent_once() -> None:
    definition = WorkflowDefinition().add_job(NamedStep(), job_id="root")
    upstream = [f"up-{i}" for i in range(32)]
    for job_id in upstream:
        definition.add_job(NamedStep(), ["root"], job_id=job_id)
    definition.add_job(NamedStep(), upstream, job_id="join")

    state = _state(definition)
    state.start()
    state.record_success("root")

    released: list[str] = []
    released_lock = threading.Lock()
    barrier = threading.Barrier(len(upstream))

    def report(job_id: str) -> None:
        barrier.wait()
        result = state.record_success(job_id)
        with released_lock:
            released.extend(result.dispatchable)

    threads = [threading.Thread(target=report, args=(job_id,)) for job_id in upstream]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert released == ["join"]
    assert state.jobs_processed == len(upstream) + 1
