# =============================================================================
# Manifest Models Module
# =============================================================================
# Defines models for the dbt `manifest.json` artifact:
# - ManifestNode: One node of the project graph
# - ManifestDocument: Adapter metadata plus the node map
# =============================================================================

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "RESOURCE_TYPE_MODEL",
    "ManifestNode",
    "ManifestDocument",
]


RESOURCE_TYPE_MODEL = "model"
"""Resource type of materialized dbt models."""


class ManifestNode(BaseModel):
    """
    A node of the dbt project graph.

    Only the fields needed for the lineage projection are modelled; the
    rest of the (large) node payload is ignored.

    Attributes:
        unique_id: dbt unique id, shared with run results
        resource_type: model, test, seed, snapshot, ...
        database: Target database
        schema_name: Target schema (``schema`` in the artifact)
        name: Node name
        alias: Relation name override, if configured
        depends_on: Dependency map, ``nodes`` holds referenced unique ids
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    unique_id: Optional[str] = Field(None, description="dbt unique id")
    resource_type: Optional[str] = Field(None, description="Resource type")
    database: Optional[str] = Field(None, description="Target database")
    schema_name: Optional[str] = Field(
        None, alias="schema", description="Target schema"
    )
    name: Optional[str] = Field(None, description="Node name")
    alias: Optional[str] = Field(None, description="Relation alias")
    depends_on: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("depends_on", mode="before")
    @classmethod
    def keep_list_entries(cls, v: Any) -> Any:
        """Drop non-list entries (``macros`` is a list, but older artifacts vary)."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {k: val for k, val in v.items() if isinstance(val, list)}
        return v

    @property
    def is_model(self) -> bool:
        return (self.resource_type or "").lower() == RESOURCE_TYPE_MODEL

    @property
    def dependency_ids(self) -> list[str]:
        return list(self.depends_on.get("nodes", []))


class ManifestDocument(BaseModel):
    """Top-level `manifest.json` document (metadata and nodes only)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    metadata: dict[str, Any] = Field(default_factory=dict)
    nodes: dict[str, Optional[ManifestNode]] = Field(default_factory=dict)

    @field_validator("metadata", "nodes", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def adapter_type(self) -> Optional[str]:
        value = self.metadata.get("adapter_type")
        return None if value is None else str(value)
