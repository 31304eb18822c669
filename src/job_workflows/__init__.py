"""Job workflows.

Define workflows as dependency graphs of jobs, nest workflows into each other,
and track completion of a running workflow:
- `WorkflowDefinition` builds a flat, acyclic job graph
- `WorkflowRunState` decides which jobs become dispatchable as jobs report back
- `WorkflowRunner` wires both to a dispatcher, a JSON store and callbacks
"""

__version__ = "0.1.0"

from job_workflows.config import WorkflowSettings
from job_workflows.runner import Dispatcher, WorkflowRunner
from job_workflows.workflow import (
    AbstractWorkflow,
    FailurePolicy,
    WorkflowDefinition,
    WorkflowPlan,
    WorkflowRunState,
    WorkflowStep,
)

__all__ = [
    "__version__",
    "AbstractWorkflow",
    "Dispatcher",
    "FailurePolicy",
    "WorkflowDefinition",
    "WorkflowPlan",
    "WorkflowRunState",
    "WorkflowRunner",
    "WorkflowSettings",
    "WorkflowStep",
]
