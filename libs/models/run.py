# =============================================================================
# Run Models Module
# =============================================================================
# Defines models for dbt Cloud job runs as returned by the runs API:
# - RunStatus: Closed vocabulary of remote run statuses
# - StepDescriptor: One run step with its growing log stream
# - RunDescriptor: Immutable snapshot of a run, replaced on every poll
# =============================================================================

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


__all__ = ["RunStatus", "StepDescriptor", "RunDescriptor"]


class RunStatus(str, Enum):
    """Humanized status of a dbt Cloud run."""

    QUEUED = "Queued"
    STARTING = "Starting"
    RUNNING = "Running"
    SUCCESS = "Success"
    ERROR = "Error"
    CANCELLED = "Cancelled"

    @classmethod
    def from_code(cls, code: int) -> "RunStatus":
        """
        Map the numeric ``status`` field of the API to a RunStatus.

        Raises:
            ValueError: If the code is not part of the documented vocabulary
        """
        try:
            return _STATUS_CODES[int(code)]
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Unknown dbt Cloud run status code: {code!r}") from None

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCESS, RunStatus.ERROR, RunStatus.CANCELLED)


_STATUS_CODES = {
    1: RunStatus.QUEUED,
    2: RunStatus.STARTING,
    3: RunStatus.RUNNING,
    10: RunStatus.SUCCESS,
    20: RunStatus.ERROR,
    30: RunStatus.CANCELLED,
}


class StepDescriptor(BaseModel):
    """
    A single step of a run.

    ``logs`` only ever grows between polls. ``truncated_debug_logs`` is set
    by the API once the step's logs are fully captured.

    Attributes:
        id: Step id, unique within the account
        name: Display name (e.g. "Invoke dbt with `dbt build`")
        logs: Log text captured so far
        truncated_debug_logs: Marker that the logs will not grow further
        status_humanized: Step status as reported by the API (informational)
        duration_humanized: Step duration as reported by the API (informational)
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., description="Step id")
    name: str = Field("", description="Step display name")
    logs: str = Field("", description="Log text captured so far")
    truncated_debug_logs: Optional[str] = Field(
        None, description="Set once the step logs are complete"
    )
    status_humanized: Optional[str] = Field(None, description="Step status")
    duration_humanized: Optional[str] = Field(None, description="Step duration")

    @field_validator("logs", "name", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def logs_complete(self) -> bool:
        return self.truncated_debug_logs is not None


class RunDescriptor(BaseModel):
    """
    Immutable snapshot of a dbt Cloud run.

    A new descriptor is built from every successful poll; callers never
    mutate one in place.

    Attributes:
        id: Run id
        status: Normalized run status
        duration_humanized: Human-readable run duration (e.g. "2 minutes")
        run_steps: Ordered run steps
        job_id: Job the run belongs to
        status_message: Free-form status message from dbt Cloud
        git_branch: Branch checked out for the run
        git_sha: Commit checked out for the run
        href: Link to the run in the dbt Cloud UI
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., description="Run id")
    status: RunStatus = Field(..., description="Normalized run status")
    duration_humanized: str = Field("", description="Humanized duration")
    run_steps: list[StepDescriptor] = Field(default_factory=list)
    job_id: Optional[int] = Field(None, description="Job id")
    status_message: Optional[str] = Field(None, description="Status message")
    git_branch: Optional[str] = Field(None, description="Git branch")
    git_sha: Optional[str] = Field(None, description="Git sha")
    href: Optional[str] = Field(None, description="dbt Cloud UI link")

    @model_validator(mode="before")
    @classmethod
    def resolve_status(cls, data: Any) -> Any:
        """
        Prefer ``status_humanized``; fall back to the numeric ``status`` code.

        The raw API payload carries both fields, with ``status`` holding the
        integer code. Already-normalized input passes through unchanged.
        """
        if not isinstance(data, dict):
            return data

        data = dict(data)
        humanized = data.pop("status_humanized", None)
        if humanized is not None:
            data["status"] = RunStatus(humanized)
        elif isinstance(data.get("status"), int):
            data["status"] = RunStatus.from_code(data["status"])

        if data.get("run_steps") is None:
            data["run_steps"] = []
        if data.get("duration_humanized") is None:
            data["duration_humanized"] = ""
        return data

    @classmethod
    def from_response(cls, payload: dict) -> "RunDescriptor":
        """
        Build a descriptor from the API envelope ``{"data": ..., "status": ...}``.

        Raises:
            ValueError: If the envelope carries no ``data`` object
        """
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ValueError(f"Run response has no 'data' object: {payload!r}")
        return cls.model_validate(data)

    @property
    def logs_complete(self) -> bool:
        """True when every step carries the truncated-debug-logs marker."""
        return all(step.logs_complete for step in self.run_steps)

    @property
    def is_complete(self) -> bool:
        """Sole completion predicate: terminal status and all step logs captured."""
        return self.status.is_terminal and self.logs_complete
