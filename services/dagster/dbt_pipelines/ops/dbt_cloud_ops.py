# =============================================================================
# dbt Cloud Ops - Trigger, Poll and Record Runs
# =============================================================================
# Triggers (or checks) a dbt Cloud run, archives its raw artifacts to MinIO and
# records the derived node timelines and model assets in Dagster.
# =============================================================================

from typing import Any, Dict, List, Optional

from dagster import (
    AssetKey,
    AssetMaterialization,
    Config,
    MetadataValue,
    OpExecutionContext,
    op,
)

from libs.dbt_cloud import RunOutcome, TriggerRequest
from libs.dbt_cloud.transcoder import MANIFEST_ARTIFACT, RUN_RESULTS_ARTIFACT
from libs.models import ExecutionTimeline, StateType


__all__ = [
    "TriggerRunConfig",
    "CheckRunConfig",
    "trigger_dbt_cloud_run",
    "check_dbt_cloud_run",
]


MATERIALIZED_STATES = frozenset([StateType.SUCCESS, StateType.WARNING])


class TriggerRunConfig(Config):
    """Run config for trigger_dbt_cloud_run."""

    job_id: str
    wait: bool = True
    cause: str = "Triggered by Dagster"
    git_sha: Optional[str] = None
    git_branch: Optional[str] = None
    schema_override: Optional[str] = None
    dbt_version_override: Optional[str] = None
    threads_override: Optional[int] = None
    target_name_override: Optional[str] = None
    generate_docs_override: Optional[bool] = None
    timeout_seconds_override: Optional[int] = None
    steps_override: Optional[List[str]] = None

    def to_trigger_request(self) -> TriggerRequest:
        return TriggerRequest(**self.model_dump(exclude={"job_id", "wait"}))


class CheckRunConfig(Config):
    """Run config for check_dbt_cloud_run."""

    run_id: int


# =============================================================================
# Core Logic (testable without a Dagster context)
# =============================================================================


def _timeline_metadata(timeline: ExecutionTimeline) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "unique_id": MetadataValue.text(timeline.unique_id),
        "state": MetadataValue.text(timeline.state.value),
    }
    if timeline.started_at is not None:
        metadata["started_at"] = MetadataValue.text(timeline.started_at.isoformat())
    if timeline.ended_at is not None:
        metadata["ended_at"] = MetadataValue.text(timeline.ended_at.isoformat())
    if timeline.execution_time is not None:
        metadata["execution_time"] = MetadataValue.float(timeline.execution_time)
    for counter in timeline.counters:
        metadata[counter.name] = MetadataValue.float(counter.value)
    return metadata


def _build_materializations(outcome: RunOutcome) -> List[AssetMaterialization]:
    """
    Build one AssetMaterialization per model node that ran successfully.

    Lineage inputs are attached as ``upstream`` metadata; nodes without an
    asset projection (tests, seeds, ...) and failed or skipped nodes are not
    materialized.

    Args:
        outcome: Collected run outcome with timelines and assets

    Returns:
        List of AssetMaterialization events, in result order
    """
    materializations = []
    for timeline in outcome.timelines:
        asset = timeline.asset
        if asset is None or timeline.state not in MATERIALIZED_STATES:
            continue

        metadata = {key: MetadataValue.text(str(value)) for key, value in asset.metadata.items()}
        metadata.update(_timeline_metadata(timeline))
        metadata["upstream"] = MetadataValue.json(list(asset.inputs))
        metadata["dbt_cloud_run_id"] = MetadataValue.int(outcome.run_id)

        materializations.append(
            AssetMaterialization(
                asset_key=AssetKey(asset.asset_id.split(".")),
                description=f"Materialized by dbt Cloud run {outcome.run_id}",
                metadata=metadata,
            )
        )
    return materializations


def _record_run_outcome(minio, outcome: RunOutcome, log) -> Dict[str, Any]:
    """
    Archive raw artifacts and summarize the run for the op output.

    Args:
        minio: MinIOResource instance
        outcome: Collected run outcome
        log: Logger instance (context.log)

    Returns:
        Summary dict with run status, archive paths and node counts
    """
    archived: Dict[str, Optional[str]] = {}
    for name, content in (
        (RUN_RESULTS_ARTIFACT, outcome.run_results),
        (MANIFEST_ARTIFACT, outcome.manifest),
    ):
        if content is None:
            archived[name] = None
            continue
        archived[name] = minio.archive_artifact(outcome.run_id, name, content)
        log.info(f"Archived {name} to {archived[name]}")

    failed = [t.unique_id for t in outcome.timelines if t.state is StateType.FAILED]
    for timeline in outcome.timelines:
        history = ", ".join(
            f"{event.state.value}@{event.timestamp.isoformat()}" for event in timeline.history
        )
        log.debug(f"{timeline.unique_id}: {history or 'no history'}")

    for asset_id, unique_ids in outcome.collisions.items():
        log.warning(f"Asset id {asset_id} is claimed by {len(unique_ids)} models: {unique_ids}")

    run = outcome.run
    return {
        "run_id": outcome.run_id,
        "status": run.status.value if run else None,
        "duration": run.duration_humanized if run else None,
        "run_results_path": archived.get(RUN_RESULTS_ARTIFACT),
        "manifest_path": archived.get(MANIFEST_ARTIFACT),
        "node_count": len(outcome.timelines),
        "asset_count": len(outcome.assets),
        "failed_nodes": failed,
    }


def _trigger_dbt_cloud_run(dbt_cloud, config: TriggerRunConfig, log) -> RunOutcome:
    """
    Trigger a job run and, when configured to wait, poll and collect it.

    Raises:
        RemoteJobFailedError: The run ended in Error or Cancelled
        PollTimeoutError: The run did not complete in time
    """
    with dbt_cloud.get_client() as client:
        runner = dbt_cloud.get_runner(client, log=log)
        return runner.trigger(config.job_id, config.to_trigger_request(), wait=config.wait)


def _check_dbt_cloud_run(dbt_cloud, run_id: int, log) -> RunOutcome:
    """Poll an existing run until it succeeds and collect its artifacts."""
    with dbt_cloud.get_client() as client:
        runner = dbt_cloud.get_runner(client, log=log)
        return runner.check(run_id)


def _publish(context: OpExecutionContext, outcome: RunOutcome) -> Dict[str, Any]:
    for materialization in _build_materializations(outcome):
        context.log_event(materialization)
    return _record_run_outcome(context.resources.minio, outcome, context.log)


# =============================================================================
# Ops
# =============================================================================


@op(
    required_resource_keys={"dbt_cloud", "minio"},
    description="Trigger a dbt Cloud job run, stream its logs and record its nodes",
)
def trigger_dbt_cloud_run(context: OpExecutionContext, config: TriggerRunConfig) -> dict:
    """
    Trigger a dbt Cloud job and record the resulting run.

    Flow:
    1. POST the run with the configured overrides
    2. Poll until Success/Error/Cancelled with all step logs captured
    3. Download and archive run_results.json and manifest.json
    4. Log an AssetMaterialization per successful model

    Args:
        context: Dagster op execution context
        config: Job id, wait flag and run overrides

    Returns:
        Run summary dict (see _record_run_outcome)
    """
    context.log.info(f"Triggering dbt Cloud job {config.job_id}")
    outcome = _trigger_dbt_cloud_run(context.resources.dbt_cloud, config, context.log)
    return _publish(context, outcome)


@op(
    required_resource_keys={"dbt_cloud", "minio"},
    description="Wait for an existing dbt Cloud run and record its nodes",
)
def check_dbt_cloud_run(context: OpExecutionContext, config: CheckRunConfig) -> dict:
    """
    Check the status of an already-triggered dbt Cloud run.

    Args:
        context: Dagster op execution context
        config: Run id to check

    Returns:
        Run summary dict (see _record_run_outcome)
    """
    context.log.info(f"Checking dbt Cloud run {config.run_id}")
    outcome = _check_dbt_cloud_run(context.resources.dbt_cloud, config.run_id, context.log)
    return _publish(context, outcome)
