# =============================================================================
# Timeline Models Module
# =============================================================================
# Derived records handed to the workflow-state collaborator:
# - HistoryEvent: One (state, timestamp) lifecycle entry
# - Counter: One named numeric resource-usage counter
# - AssetProjection: Lineage entity for a materialized model
# - ExecutionTimeline: Reconstructed lifecycle of one node
# =============================================================================

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .results import StateType

__all__ = ["HistoryEvent", "Counter", "AssetProjection", "ExecutionTimeline"]


class HistoryEvent(BaseModel):
    """A lifecycle state entered at a given time."""

    model_config = ConfigDict(frozen=True)

    state: StateType
    timestamp: datetime


class Counter(BaseModel):
    """A numeric counter extracted from an adapter response."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: float


class AssetProjection(BaseModel):
    """
    Lineage projection of a materialized dbt model.

    Attributes:
        unique_id: dbt unique id of the originating manifest node
        asset_id: ``database.schema.name`` identifier
        metadata: system (adapter type), database, schema, name
        inputs: Asset ids of upstream materialized models
    """

    model_config = ConfigDict(frozen=True)

    unique_id: str
    asset_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    inputs: list[str] = Field(default_factory=list)


class ExecutionTimeline(BaseModel):
    """
    Reconstructed execution history of one result node.

    History is chronologically non-decreasing and may be empty when the
    node reported no timings.
    """

    model_config = ConfigDict(frozen=True)

    unique_id: str
    state: StateType
    history: list[HistoryEvent] = Field(default_factory=list)
    counters: list[Counter] = Field(default_factory=list)
    thread_id: Optional[str] = None
    execution_time: Optional[float] = None
    message: Optional[str] = None
    failures: Optional[int] = None
    asset: Optional[AssetProjection] = None

    @model_validator(mode="after")
    def check_history_order(self) -> "ExecutionTimeline":
        timestamps = [event.timestamp for event in self.history]
        if any(later < earlier for earlier, later in zip(timestamps, timestamps[1:])):
            raise ValueError(
                f"History of '{self.unique_id}' is not chronologically ordered"
            )
        return self

    @property
    def started_at(self) -> Optional[datetime]:
        return self.history[0].timestamp if self.history else None

    @property
    def ended_at(self) -> Optional[datetime]:
        return self.history[-1].timestamp if self.history else None
