from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow definition errors."""


class DuplicateJobError(WorkflowError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"A job with id '{job_id}' already exists in this workflow")
        self.job_id = job_id


class DuplicateWorkflowError(WorkflowError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"A nested workflow with id '{workflow_id}' already exists")
        self.workflow_id = workflow_id


class UnresolvedDependencyError(WorkflowError):
    """A job depends on an id that has not been added to the graph (yet)."""

    def __init__(self, job_id: str, dependency_id: str) -> None:
        super().__init__(
            f"Job '{job_id}' depends on unknown job '{dependency_id}'. "
            "Dependencies must be added before their dependents."
        )
        self.job_id = job_id
        self.dependency_id = dependency_id


class UnknownJobError(WorkflowError, KeyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Unknown job '{job_id}'")
        self.job_id = job_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0])


class CallbackSerializationError(WorkflowError, ValueError):
    pass
