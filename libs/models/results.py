# =============================================================================
# Run Results Models Module
# =============================================================================
# Defines models for the dbt `run_results.json` artifact:
# - StateType: Normalized per-node execution state
# - Timing: One named timing interval (compile, execute)
# - NodeResult: Result of one node of the run
# - RunResultDocument: The whole artifact
# =============================================================================

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


__all__ = ["StateType", "Timing", "NodeResult", "RunResultDocument"]


class StateType(str, Enum):
    """Lifecycle state recorded in an execution timeline."""

    CREATED = "Created"
    RUNNING = "Running"
    SUCCESS = "Success"
    FAILED = "Failed"
    WARNING = "Warning"
    SKIPPED = "Skipped"


class Timing(BaseModel):
    """A named timing interval of a node (dbt emits `compile` and `execute`)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., description="Timing name")
    started_at: Optional[datetime] = Field(None, description="Interval start")
    completed_at: Optional[datetime] = Field(None, description="Interval end")


class NodeResult(BaseModel):
    """
    Result of a single node in `run_results.json`.

    ``status`` is kept raw here; normalization happens in the transcoder so
    an unknown value surfaces as an artifact parse error.

    Attributes:
        unique_id: dbt unique id (e.g. "model.jaffle_shop.stg_orders")
        status: Raw dbt status string
        timing: Timing intervals
        thread_id: Worker thread that executed the node
        execution_time: Execution time in seconds
        adapter_response: Adapter-specific key/value response
        message: Optional result message
        failures: Optional failure count (tests)
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    unique_id: str = Field(..., description="dbt unique id")
    status: str = Field(..., description="Raw dbt status")
    timing: list[Timing] = Field(default_factory=list)
    thread_id: Optional[str] = Field(None, description="Executing thread")
    execution_time: Optional[float] = Field(None, description="Seconds")
    adapter_response: dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = Field(None, description="Result message")
    failures: Optional[int] = Field(None, description="Failure count")

    @field_validator("timing", "adapter_response", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any, info) -> Any:
        if v is None:
            return [] if info.field_name == "timing" else {}
        return v


class RunResultDocument(BaseModel):
    """Top-level `run_results.json` document."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    results: list[NodeResult] = Field(default_factory=list)
    elapsed_time: Optional[float] = Field(None, description="Total seconds")
    args: dict[str, Any] = Field(default_factory=dict)
