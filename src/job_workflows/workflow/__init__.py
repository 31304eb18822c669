"""Workflow definition and completion tracking.

This package contains the engine proper:
- a dependency graph that is acyclic by construction
- a builder that flattens nested workflows into that graph
- a run state that turns job reports into dispatch decisions

It never runs jobs itself. Dispatching, persistence and callback invocation
are left to the caller (see `job_workflows.runner` for an in-process version).
"""

from .callbacks import CallbackHandle, callback_handle, resolve_callback
from .definition import AbstractWorkflow, WorkflowDefinition, WorkflowPlan
from .errors import (
    CallbackSerializationError,
    DuplicateJobError,
    DuplicateWorkflowError,
    UnknownJobError,
    UnresolvedDependencyError,
    WorkflowError,
)
from .events import JobFailed, JobFinished, WorkflowEvent, WorkflowFinished
from .graph import DependencyGraph
from .jobs import JobCollection, JobDefinition
from .run_state import FailurePolicy, RecordResult, WorkflowRunState
from .steps import LegacyStepAdapter, WorkflowStep, as_workflow_step, step_identifier

__all__ = [
    "AbstractWorkflow",
    "CallbackHandle",
    "CallbackSerializationError",
    "DependencyGraph",
    "DuplicateJobError",
    "DuplicateWorkflowError",
    "FailurePolicy",
    "JobCollection",
    "JobDefinition",
    "JobFailed",
    "JobFinished",
    "LegacyStepAdapter",
    "RecordResult",
    "UnknownJobError",
    "UnresolvedDependencyError",
    "WorkflowDefinition",
    "WorkflowError",
    "WorkflowEvent",
    "WorkflowFinished",
    "WorkflowPlan",
    "WorkflowRunState",
    "WorkflowStep",
    "as_workflow_step",
    "callback_handle",
    "resolve_callback",
    "step_identifier",
]
