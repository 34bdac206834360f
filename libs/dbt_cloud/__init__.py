# =============================================================================
# dbt Cloud Library
# =============================================================================
# Resilient client, poll engine, artifact transcoder and trigger wiring for
# observing dbt Cloud job runs.
# =============================================================================

"""
dbt Cloud run observation.

Sub-modules:
- client: ResilientClient and DbtCloudClient
- polling: PollEngine and PollSession
- transcoder: run_results/manifest -> timelines and assets
- trigger: DbtCloudRunner entry point
- errors: Error taxonomy
"""

from .errors import (
    DbtCloudError,
    TransientNetworkError,
    PermanentNetworkError,
    MissingArtifactError,
    PollTimeoutError,
    PollCancelledError,
    RemoteJobFailedError,
    ArtifactParseError,
)
from .client import (
    AttemptOutcome,
    ExponentialBackoff,
    ResilientClient,
    DbtCloudClient,
)
from .polling import LogChunk, PollSession, TickResult, PollEngine
from .transcoder import (
    TranscodedRun,
    map_status,
    build_timeline,
    build_timelines,
    project_assets,
    transcode,
)
from .trigger import TriggerRequest, RunOutcome, DbtCloudRunner

__all__ = [
    # Errors
    "DbtCloudError",
    "TransientNetworkError",
    "PermanentNetworkError",
    "MissingArtifactError",
    "PollTimeoutError",
    "PollCancelledError",
    "RemoteJobFailedError",
    "ArtifactParseError",
    # Client
    "AttemptOutcome",
    "ExponentialBackoff",
    "ResilientClient",
    "DbtCloudClient",
    # Polling
    "LogChunk",
    "PollSession",
    "TickResult",
    "PollEngine",
    # Transcoder
    "TranscodedRun",
    "map_status",
    "build_timeline",
    "build_timelines",
    "project_assets",
    "transcode",
    # Trigger
    "TriggerRequest",
    "RunOutcome",
    "DbtCloudRunner",
]
