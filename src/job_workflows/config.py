"""Configuration for the workflow runner.

Configuration is loaded from:
- environment variables (prefix `WORKFLOW_`)
- and a local `.env` file (if present)

The engine itself takes its options as plain arguments; these settings are
only read by `WorkflowRunner` and by applications wiring it up.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from job_workflows.workflow.run_state import FailurePolicy


class WorkflowSettings(BaseSettings):
    """Settings for running workflows.

    Environment variables:
    - WORKFLOW_LOG_LEVEL                   (optional)
    - WORKFLOW_FAILURE_POLICY              (optional)
    - WORKFLOW_INVOKE_THEN_AFTER_FAILURES  (optional)
    - WORKFLOW_STATE_PATH                  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `WorkflowSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
    )

    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.BLOCK_DEPENDENTS,
        description=(
            "What a failed job means for its dependents: "
            "'block_dependents', 'skip_dependents' or 'continue_dependents'"
        ),
    )

    invoke_then_after_failures: bool = Field(
        default=True,
        description="Run the then-callback when a workflow completes with failed jobs",
    )

    state_path: Path = Field(
        default=Path("workflow_state/workflows.json"),
        description="File where workflow run state is persisted",
    )

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_",
        env_file=".env",
        extra="ignore",
    )
