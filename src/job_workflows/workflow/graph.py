"""The job dependency graph.

Nodes are plain string ids. Each node keeps two insertion-ordered sets:

- dependencies: ids that must finish before the node may run
- dependents: ids that wait on the node (derived reverse edges)

The graph is acyclic by construction. A node can only depend on ids that are
already registered, so there is no way to declare a forward (or self)
reference, and therefore no way to close a cycle.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .errors import DuplicateJobError, UnknownJobError, UnresolvedDependencyError

logger = logging.getLogger(__name__)

NAMESPACE_SEPARATOR = "."


def namespaced(namespace: str, job_id: str) -> str:
    """Rewrite a nested job id into its parent's id space."""

    return f"{namespace}{NAMESPACE_SEPARATOR}{job_id}"


@dataclass(slots=True)
class JobNode:
    # dicts double as ordered sets
    dependencies: dict[str, None] = field(default_factory=dict)
    dependents: dict[str, None] = field(default_factory=dict)

    def copy(self) -> JobNode:
        return JobNode(dependencies=dict(self.dependencies), dependents=dict(self.dependents))


class DependencyGraph:
    def __init__(self) -> None:
        self._nodes: dict[str, JobNode] = {}

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def add_node(self, job_id: str, dependency_ids: Iterable[str] = ()) -> None:
        """Register `job_id` depending on the (already registered) `dependency_ids`.

        Raises:
            DuplicateJobError: `job_id` is already registered.
            UnresolvedDependencyError: a dependency is not registered yet.
        """

        dependencies = dict.fromkeys(dependency_ids)
        self._check_available(job_id)
        self._check_resolved(job_id, dependencies)

        self._nodes[job_id] = JobNode(dependencies=dependencies)
        for dependency_id in dependencies:
            self._nodes[dependency_id].dependents[job_id] = None

        logger.debug(
            "Added graph node",
            extra={"job_id": job_id, "dependencies": list(dependencies)},
        )

    def dependencies_of(self, job_id: str) -> list[str]:
        return list(self._node(job_id).dependencies)

    def dependents_of(self, job_id: str) -> list[str]:
        return list(self._node(job_id).dependents)

    def root_ids(self) -> list[str]:
        """Ids without dependencies, in registration order."""

        return [job_id for job_id, node in self._nodes.items() if not node.dependencies]

    def merge(
        self,
        sub_graph: DependencyGraph,
        namespace: str,
        external_dependencies: Iterable[str] = (),
    ) -> list[str]:
        """Copy every node of `sub_graph` into this graph under `namespace`.

        Ids and all edges are rewritten to `<namespace>.<id>`. Roots of the
        sub-graph depend on `external_dependencies` instead of nothing. The
        sub-graph itself is left untouched, so it can be merged again elsewhere.

        Everything is validated before the first node is written: on error
        this graph is unchanged.

        Returns:
            The rewritten ids, in the sub-graph's registration order.
        """

        external = dict.fromkeys(external_dependencies)
        rewritten = {job_id: namespaced(namespace, job_id) for job_id in sub_graph._nodes}

        for new_id in rewritten.values():
            self._check_available(new_id)
        for original_id, new_id in rewritten.items():
            if not sub_graph._nodes[original_id].dependencies:
                self._check_resolved(new_id, external)

        for original_id, node in sub_graph._nodes.items():
            new_id = rewritten[original_id]
            if node.dependencies:
                dependencies = {rewritten[dep]: None for dep in node.dependencies}
            else:
                dependencies = dict(external)
                for dependency_id in external:
                    self._nodes[dependency_id].dependents[new_id] = None
            self._nodes[new_id] = JobNode(
                dependencies=dependencies,
                dependents={rewritten[dep]: None for dep in node.dependents},
            )

        logger.debug(
            "Merged nested graph",
            extra={"namespace": namespace, "jobs": len(rewritten), "dependencies": list(external)},
        )
        return list(rewritten.values())

    def copy(self) -> DependencyGraph:
        clone = DependencyGraph()
        clone._nodes = {job_id: node.copy() for job_id, node in self._nodes.items()}
        return clone

    def to_json(self) -> dict[str, dict[str, list[str]]]:
        return {
            job_id: {
                "dependencies": list(node.dependencies),
                "dependents": list(node.dependents),
            }
            for job_id, node in self._nodes.items()
        }

    def _node(self, job_id: str) -> JobNode:
        try:
            return self._nodes[job_id]
        except KeyError:
            raise UnknownJobError(job_id) from None

    def _check_available(self, job_id: str) -> None:
        if job_id in self._nodes:
            raise DuplicateJobError(job_id)

    def _check_resolved(self, job_id: str, dependency_ids: Iterable[str]) -> None:
        for dependency_id in dependency_ids:
            if dependency_id not in self._nodes:
                raise UnresolvedDependencyError(job_id, dependency_id)
