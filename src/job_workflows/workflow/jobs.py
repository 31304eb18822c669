from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from .errors import DuplicateJobError
from .steps import Delay, WorkflowStep


@dataclass(frozen=True, slots=True)
class JobDefinition:
    """A job registered in a workflow.

    `dependencies` and `dependents` stay empty while the workflow is being
    defined; they are fixed when the plan is built.
    """

    id: str
    name: str
    job: WorkflowStep
    dependencies: tuple[str, ...] = ()
    dependents: tuple[str, ...] = ()

    @property
    def delay(self) -> Delay | None:
        return self.job.get_delay()


class JobCollection:
    """Insertion-ordered registry of job definitions keyed by id."""

    def __init__(self, definitions: list[JobDefinition] | None = None) -> None:
        self._definitions: dict[str, JobDefinition] = {}
        for definition in definitions or []:
            self.add(definition)

    def add(self, definition: JobDefinition) -> None:
        if definition.id in self._definitions:
            raise DuplicateJobError(definition.id)
        self._definitions[definition.id] = definition

    def find(self, job_id: str) -> JobDefinition | None:
        return self._definitions.get(job_id)

    def items(self) -> Iterator[tuple[str, JobDefinition]]:
        """Iterate `(id, definition)` pairs in insertion order.

        Every call starts a fresh iteration.
        """

        return iter(self._definitions.items())

    def instances(self) -> list[WorkflowStep]:
        return [definition.job for definition in self._definitions.values()]

    def count(self) -> int:
        return len(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[tuple[str, JobDefinition]]:
        return self.items()

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._definitions
