"""JSON-file persistence for workflow runs.

One record per started workflow: the plan's identity and callbacks plus the
run state counters. Job payloads are not persisted; they belong to whatever
queue the jobs were dispatched to.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from job_workflows.workflow.definition import WorkflowPlan
from job_workflows.workflow.run_state import WorkflowRunState

logger = logging.getLogger(__name__)


class WorkflowRecord(BaseModel):
    workflow_id: str
    name: str
    created_at: str
    updated_at: str

    job_count: int
    jobs_processed: int = 0
    jobs_failed: int = 0
    finished_jobs: list[str] = Field(default_factory=list)
    failed_jobs: list[str] = Field(default_factory=list)
    skipped_jobs: list[str] = Field(default_factory=list)
    dispatched_jobs: list[str] = Field(default_factory=list)

    then_callback: str | None = None
    catch_callback: str | None = None
    finished_at: str | None = None
    metadata: dict[str, object] = Field(default_factory=dict)

    @classmethod
    def from_run(cls, plan: WorkflowPlan, state: WorkflowRunState) -> WorkflowRecord:
        now = _utc_iso_now()
        return cls(
            workflow_id=plan.workflow_id,
            name=plan.name,
            created_at=now,
            updated_at=now,
            then_callback=plan.then_callback,
            catch_callback=plan.catch_callback,
            metadata=dict(plan.metadata),
            finished_at=now if state.is_completed else None,
            **state.snapshot(),
        )


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class WorkflowStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[WorkflowRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Workflow state file is not valid JSON", extra={"path": str(self.path)})
            return []
        if not isinstance(raw, list):
            return []
        return [WorkflowRecord.model_validate(item) for item in raw]

    def _save_unlocked(self, records: list[WorkflowRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in records]
        self.path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
        )

    def list(self) -> list[WorkflowRecord]:
        with self._lock:
            return self._load_unlocked()

    def get(self, workflow_id: str) -> WorkflowRecord | None:
        with self._lock:
            for record in self._load_unlocked():
                if record.workflow_id == workflow_id:
                    return record
            return None

    def create(self, record: WorkflowRecord) -> WorkflowRecord:
        with self._lock:
            records = self._load_unlocked()
            if any(r.workflow_id == record.workflow_id for r in records):
                raise ValueError(f"Workflow {record.workflow_id} is already persisted")
            records.append(record)
            self._save_unlocked(records)
            return record

    def update(self, workflow_id: str, **updates: object) -> WorkflowRecord:
        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.workflow_id != workflow_id:
                    continue
                merged = record.model_copy(update={"updated_at": _utc_iso_now(), **updates})
                records[idx] = merged
                self._save_unlocked(records)
                return merged
            raise KeyError(workflow_id)

    def save_state(self, workflow_id: str, state: WorkflowRunState) -> WorkflowRecord:
        """Write the run state counters; stamps `finished_at` the first time it completes."""

        snapshot = state.snapshot()
        completed = snapshot["jobs_processed"] >= snapshot["job_count"]
        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.workflow_id != workflow_id:
                    continue
                now = _utc_iso_now()
                updates: dict[str, object] = {"updated_at": now, **snapshot}
                if completed and record.finished_at is None:
                    updates["finished_at"] = now
                records[idx] = record.model_copy(update=updates)
                self._save_unlocked(records)
                return records[idx]
            raise KeyError(workflow_id)
