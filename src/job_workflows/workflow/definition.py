"""Workflow builder.

A `WorkflowDefinition` accumulates jobs and nested workflows into one flat
dependency graph. Nested workflows do not survive as separate objects: their
jobs are copied into the parent under a dotted namespace (`<workflow id>.<job id>`)
and behave exactly like jobs added directly.

Calling `build()` freezes the definition into a `WorkflowPlan`, which is what
gets persisted and executed.
"""

from __future__ import annotations

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from .callbacks import CallbackHandle, callback_handle
from .errors import DuplicateWorkflowError
from .graph import DependencyGraph, namespaced
from .jobs import JobCollection, JobDefinition
from .steps import Delay, WorkflowStep, as_workflow_step, step_identifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkflowPlan:
    """The built, ready-to-run form of a workflow.

    `before_create` hooks may still adjust `name` and `metadata`; after
    `build()` returns, the plan is treated as immutable.
    """

    name: str
    job_count: int
    graph: DependencyGraph
    root_ids: tuple[str, ...]
    then_callback: CallbackHandle | None = None
    catch_callback: CallbackHandle | None = None
    jobs: JobCollection = field(default_factory=JobCollection)
    workflow_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    metadata: dict[str, Any] = field(default_factory=dict)

    def job(self, job_id: str) -> JobDefinition | None:
        return self.jobs.find(job_id)


class AbstractWorkflow(ABC):
    """A reusable workflow.

    Subclasses describe their jobs in `definition()`. When the workflow is
    nested into another one, `before_nesting()` receives the job handles
    before they are renamed into the parent's namespace.
    """

    @abstractmethod
    def definition(self) -> WorkflowDefinition: ...

    def before_nesting(self, jobs: list[WorkflowStep]) -> None:
        return None


class WorkflowDefinition:
    def __init__(self, name: str = "") -> None:
        self._name = name
        self._graph = DependencyGraph()
        self._jobs = JobCollection()
        self._nested_workflows: dict[str, list[str]] = {}
        self._then_callback: CallbackHandle | None = None
        self._catch_callback: CallbackHandle | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def then_callback(self) -> CallbackHandle | None:
        return self._then_callback

    @property
    def catch_callback(self) -> CallbackHandle | None:
        return self._catch_callback

    def add_job(
        self,
        job: Any,
        dependencies: Iterable[str] = (),
        name: str | None = None,
        delay: Delay | None = None,
        job_id: str | None = None,
    ) -> WorkflowDefinition:
        """Add a job that runs once all of `dependencies` have finished.

        The id defaults to the dotted class path of the job, so adding two
        jobs of the same class requires an explicit `job_id` for at least one
        of them.

        Raises:
            DuplicateJobError: the id is already taken.
            UnresolvedDependencyError: a dependency has not been added yet.
        """

        step = as_workflow_step(job)
        job_id = job_id if job_id is not None else step_identifier(step)

        self._graph.add_node(job_id, dependencies)

        if delay is not None:
            step.delay(delay)
        step.with_job_id(job_id).with_step_id(str(uuid.uuid4()))

        self._jobs.add(JobDefinition(id=job_id, name=name or step_identifier(step), job=step))
        return self

    def add_workflow(
        self,
        workflow: AbstractWorkflow | WorkflowDefinition,
        dependencies: Iterable[str] = (),
        workflow_id: str | None = None,
    ) -> WorkflowDefinition:
        """Flatten another workflow into this one.

        Every job of the nested workflow is re-added as `<workflow_id>.<job id>`.
        Its root jobs depend on `dependencies`; its internal edges are kept.

        Raises:
            DuplicateWorkflowError: `workflow_id` is already used for nesting.
            DuplicateJobError: a rewritten job id is already taken.
            UnresolvedDependencyError: a dependency has not been added yet.
        """

        if isinstance(workflow, AbstractWorkflow):
            definition = workflow.definition()
            before_nesting: Callable[[list[WorkflowStep]], None] | None = workflow.before_nesting
            default_id = step_identifier(workflow)
        else:
            definition = workflow
            before_nesting = None
            default_id = workflow.name

        workflow_id = workflow_id if workflow_id is not None else default_id
        if not workflow_id:
            raise ValueError("Nesting an unnamed WorkflowDefinition requires a workflow_id")
        if workflow_id in self._nested_workflows:
            raise DuplicateWorkflowError(workflow_id)

        dependencies = list(dict.fromkeys(dependencies))

        # Copies, so the nested definition stays reusable.
        sub_jobs = [(job_id, copy.copy(job.job), job.name) for job_id, job in definition._jobs]
        if before_nesting is not None:
            before_nesting([step for _, step, _ in sub_jobs])

        self._graph.merge(definition._graph, workflow_id, dependencies)

        for job_id, step, name in sub_jobs:
            new_id = namespaced(workflow_id, job_id)
            step.with_job_id(new_id)
            self._jobs.add(JobDefinition(id=new_id, name=name, job=step))

        self._nested_workflows[workflow_id] = dependencies
        for nested_id, nested_dependencies in definition._nested_workflows.items():
            self._nested_workflows[namespaced(workflow_id, nested_id)] = [
                namespaced(workflow_id, dep) for dep in nested_dependencies
            ] or dependencies

        logger.debug(
            "Nested workflow",
            extra={"workflow_id": workflow_id, "jobs": len(sub_jobs), "dependencies": dependencies},
        )
        return self

    def then(self, callback: Callable[..., Any] | str) -> WorkflowDefinition:
        """Run `callback(plan)` once every job of the workflow has been processed."""

        self._then_callback = callback_handle(callback)
        return self

    def catch(self, callback: Callable[..., Any] | str) -> WorkflowDefinition:
        """Run `callback(plan, step, error)` whenever a job fails."""

        self._catch_callback = callback_handle(callback)
        return self

    def build(
        self, before_create: Callable[[WorkflowPlan], None] | None = None
    ) -> tuple[WorkflowPlan, list[str]]:
        """Materialise the plan.

        Returns:
            The plan and the ids of the jobs to dispatch first. Persisting the
            plan and dispatching those jobs is up to the caller. Each plan holds
            its own copies of the step handles.
        """

        root_ids = self._graph.root_ids()
        plan = WorkflowPlan(
            name=self._name,
            job_count=self._jobs.count(),
            graph=self._graph.copy(),
            root_ids=tuple(root_ids),
            then_callback=self._then_callback,
            catch_callback=self._catch_callback,
        )

        if before_create is not None:
            before_create(plan)

        for job_id, definition in self._jobs:
            dependencies = plan.graph.dependencies_of(job_id)
            dependents = plan.graph.dependents_of(job_id)
            step = copy.copy(definition.job)
            step.with_workflow_id(plan.workflow_id).with_dependencies(dependencies)
            step.with_dependent_jobs(dependents)
            plan.jobs.add(
                replace(
                    definition,
                    job=step,
                    dependencies=tuple(dependencies),
                    dependents=tuple(dependents),
                )
            )

        logger.debug(
            "Built workflow plan",
            extra={"workflow_id": plan.workflow_id, "job_count": plan.job_count},
        )
        return plan, root_ids

    def job_ids(self) -> list[str]:
        return [job_id for job_id, _ in self._jobs]

    def nested_workflows(self) -> dict[str, list[str]]:
        return {workflow_id: list(deps) for workflow_id, deps in self._nested_workflows.items()}

    def has_job(
        self,
        job_id: str,
        dependencies: Iterable[str] | None = None,
        delay: Delay | None = None,
    ) -> bool:
        if dependencies is None and delay is None:
            return job_id in self._jobs
        if dependencies is not None and not self.has_job_with_dependencies(job_id, dependencies):
            return False
        if delay is not None and not self.has_job_with_delay(job_id, delay):
            return False
        return True

    def has_job_with_dependencies(self, job_id: str, dependencies: Iterable[str]) -> bool:
        if job_id not in self._graph:
            return False
        return set(dependencies) <= set(self._graph.dependencies_of(job_id))

    def has_job_with_delay(self, job_id: str, delay: Delay) -> bool:
        definition = self._jobs.find(job_id)
        if definition is None:
            return False
        return definition.delay == delay

    def has_workflow(self, workflow_id: str, dependencies: Iterable[str] | None = None) -> bool:
        if workflow_id not in self._nested_workflows:
            return False
        if dependencies is None:
            return True
        return self._nested_workflows[workflow_id] == list(dependencies)
