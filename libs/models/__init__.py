# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and schemas for the dbt Cloud run observer.
# =============================================================================

"""
Data models for the dbt Cloud run observer.

This library provides:
- Run models: RunStatus, StepDescriptor, RunDescriptor
- Run results: StateType, Timing, NodeResult, RunResultDocument
- Manifest: ManifestNode, ManifestDocument
- Derived records: ExecutionTimeline, AssetProjection, Counter
- Configuration models
"""

__version__ = "0.1.0"

# Run models
from .run import (
    RunStatus,
    StepDescriptor,
    RunDescriptor,
)

# Run results models
from .results import (
    StateType,
    Timing,
    NodeResult,
    RunResultDocument,
)

# Manifest models
from .manifest import (
    RESOURCE_TYPE_MODEL,
    ManifestNode,
    ManifestDocument,
)

# Derived timeline and lineage records
from .timeline import (
    HistoryEvent,
    Counter,
    AssetProjection,
    ExecutionTimeline,
)

# Configuration models
from .config import (
    DbtCloudSettings,
    MinIOSettings,
)

__all__ = [
    # Run models
    "RunStatus",
    "StepDescriptor",
    "RunDescriptor",
    # Run results models
    "StateType",
    "Timing",
    "NodeResult",
    "RunResultDocument",
    # Manifest models
    "RESOURCE_TYPE_MODEL",
    "ManifestNode",
    "ManifestDocument",
    # Derived records
    "HistoryEvent",
    "Counter",
    "AssetProjection",
    "ExecutionTimeline",
    # Configuration models
    "DbtCloudSettings",
    "MinIOSettings",
]
