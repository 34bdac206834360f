# =============================================================================
# dbt Cloud Trigger - Run Entry Point
# =============================================================================
# Starts a job run, optionally waits for it through the poll engine, then
# downloads and transcodes the run artifacts.
# =============================================================================

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field

from libs.models import AssetProjection, ExecutionTimeline, RunDescriptor

from .client import DbtCloudClient
from .errors import MissingArtifactError
from .polling import PollEngine
from .transcoder import MANIFEST_ARTIFACT, RUN_RESULTS_ARTIFACT, transcode

__all__ = ["TriggerRequest", "RunOutcome", "DbtCloudRunner"]

logger = logging.getLogger(__name__)


class TriggerRequest(BaseModel):
    """
    Overrides sent when triggering a job run.

    Unset fields are left out of the request body so the job's own
    configuration applies.
    """

    cause: str = Field("Triggered by Dagster", description="Reason for running the job")
    git_sha: Optional[str] = Field(None, description="Git sha to check out")
    git_branch: Optional[str] = Field(None, description="Git branch to check out")
    schema_override: Optional[str] = Field(None, description="Destination schema override")
    dbt_version_override: Optional[str] = Field(None, description="dbt version override")
    threads_override: Optional[int] = Field(None, description="Thread count override")
    target_name_override: Optional[str] = Field(None, description="target.name override")
    generate_docs_override: Optional[bool] = Field(None, description="Docs generation override")
    timeout_seconds_override: Optional[int] = Field(None, description="Job timeout override")
    steps_override: Optional[list[str]] = Field(None, description="Commands replacing the job steps")

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@dataclass
class RunOutcome:
    """
    Everything produced for the workflow-state collaborator.

    Attributes:
        run_id: dbt Cloud run id
        run: Final RunDescriptor (None when the trigger did not wait)
        run_results: Raw `run_results.json` bytes, if downloaded
        manifest: Raw `manifest.json` bytes, if downloaded
        timelines: Per-node execution timelines
        assets: Asset projections keyed by dbt unique id
        collisions: Asset ids claimed by several models
    """

    run_id: int
    run: Optional[RunDescriptor] = None
    run_results: Optional[bytes] = None
    manifest: Optional[bytes] = None
    timelines: list[ExecutionTimeline] = field(default_factory=list)
    assets: dict[str, AssetProjection] = field(default_factory=dict)
    collisions: dict[str, list[str]] = field(default_factory=dict)


class DbtCloudRunner:
    """
    Wires the client, poll engine and transcoder together.

    Args:
        client: dbt Cloud API client
        engine: Poll engine built on the same client
        parse_run_results: Whether artifacts are transcoded (default: True)
        log: Logger (e.g. Dagster context.log)
    """

    def __init__(
        self,
        client: DbtCloudClient,
        engine: PollEngine,
        parse_run_results: bool = True,
        log: Any = None,
    ) -> None:
        self._client = client
        self._engine = engine
        self.parse_run_results = parse_run_results
        self._log = log or logger

    def trigger(
        self, job_id: str, request: Optional[TriggerRequest] = None, wait: bool = True
    ) -> RunOutcome:
        """
        Trigger a run of ``job_id``.

        Args:
            job_id: Numeric job id
            request: Run overrides (default: cause only)
            wait: Poll until completion and collect artifacts (default: True)

        Returns:
            RunOutcome; only ``run_id`` and the queued ``run`` when not waiting

        Raises:
            RemoteJobFailedError: The run ended in Error or Cancelled
            PollTimeoutError: The run did not complete in time
        """
        request = request or TriggerRequest()
        queued = self._client.trigger_job_run(job_id, request.to_body())
        self._log.info(f"Triggered job {job_id}: run {queued.id} is {queued.status.value}")

        if not wait:
            return RunOutcome(run_id=queued.id, run=queued)
        return self.check(queued.id)

    def check(self, run_id: int) -> RunOutcome:
        """
        Wait for an existing run to succeed and collect its artifacts.

        Raises:
            RemoteJobFailedError: The run ended in Error or Cancelled
            PollTimeoutError: The run did not complete in time
        """
        run = self._engine.wait_for_success(run_id)
        self._log.info(f"Run {run_id} succeeded after {run.duration_humanized}")
        return self.collect(run)

    def _download(self, run_id: int, path: str) -> Optional[bytes]:
        try:
            return self._client.get_artifact(run_id, path)
        except MissingArtifactError:
            self._log.warning(f"Run {run_id} has no '{path}' artifact")
            return None

    def collect(self, run: RunDescriptor) -> RunOutcome:
        """Download both artifacts of ``run`` and transcode them when enabled."""
        outcome = RunOutcome(
            run_id=run.id,
            run=run,
            run_results=self._download(run.id, RUN_RESULTS_ARTIFACT),
            manifest=self._download(run.id, MANIFEST_ARTIFACT),
        )

        if self.parse_run_results and outcome.run_results is not None:
            transcoded = transcode(outcome.run_results, outcome.manifest)
            outcome.timelines = transcoded.timelines
            outcome.assets = transcoded.assets
            outcome.collisions = transcoded.collisions
            self._log.info(
                f"Run {run.id}: {len(outcome.timelines)} node timeline(s), "
                f"{len(outcome.assets)} asset(s)"
            )
        return outcome
