# =============================================================================
# Artifact Transcoder
# =============================================================================
# Turns dbt `run_results.json` and `manifest.json` into per-node execution
# timelines, counters and a lineage/asset projection.
# =============================================================================

"""
Pure transformations over downloaded dbt artifacts.

- Result document -> ExecutionTimeline per node (history + counters)
- Manifest document -> AssetProjection per materialized model
"""

import json
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from libs.models import (
    AssetProjection,
    Counter,
    ExecutionTimeline,
    HistoryEvent,
    ManifestDocument,
    NodeResult,
    RunResultDocument,
    StateType,
)

from .errors import ArtifactParseError

__all__ = [
    "RUN_RESULTS_ARTIFACT",
    "MANIFEST_ARTIFACT",
    "COUNTER_NAMES",
    "TranscodedRun",
    "map_status",
    "parse_run_results",
    "parse_manifest",
    "extract_counters",
    "build_timeline",
    "build_timelines",
    "project_assets",
    "find_asset_id_collisions",
    "transcode",
]

logger = logging.getLogger(__name__)

RUN_RESULTS_ARTIFACT = "run_results.json"
MANIFEST_ARTIFACT = "manifest.json"

_STATUS_MAP = {
    "error": StateType.FAILED,
    "fail": StateType.FAILED,
    "runtime_error": StateType.FAILED,
    "warn": StateType.WARNING,
    "skipped": StateType.SKIPPED,
    "success": StateType.SUCCESS,
    "pass": StateType.SUCCESS,
}

COUNTER_NAMES = {
    "rows_affected": "rows.affected",
    "bytes_processed": "bytes.processed",
}
"""Adapter response keys kept as counters. Other keys are dropped on purpose."""

Artifact = Union[bytes, str]


def map_status(status: str) -> StateType:
    """
    Map a raw dbt node status to a StateType.

    Raises:
        ArtifactParseError: For any status outside the known vocabulary
    """
    try:
        return _STATUS_MAP[status]
    except (KeyError, TypeError):
        raise ArtifactParseError(
            f"No suitable state for node status '{status}'",
            artifact=RUN_RESULTS_ARTIFACT,
            status=str(status),
        ) from None


# =============================================================================
# Parsing
# =============================================================================


def _load_json(content: Artifact, artifact: str) -> Any:
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
        raise ArtifactParseError(
            f"'{artifact}' contains invalid JSON: {exc}", artifact=artifact
        ) from exc


def parse_run_results(content: Artifact) -> RunResultDocument:
    """
    Parse `run_results.json` content.

    Raises:
        ArtifactParseError: If the content is not valid JSON or not a result document
    """
    data = _load_json(content, RUN_RESULTS_ARTIFACT)
    try:
        return RunResultDocument.model_validate(data)
    except ValidationError as exc:
        raise ArtifactParseError(
            f"'{RUN_RESULTS_ARTIFACT}' does not match the result schema: {exc}",
            artifact=RUN_RESULTS_ARTIFACT,
        ) from exc


def parse_manifest(content: Artifact) -> ManifestDocument:
    """
    Parse `manifest.json` content.

    Raises:
        ArtifactParseError: If the content is not valid JSON or not a manifest
    """
    data = _load_json(content, MANIFEST_ARTIFACT)
    try:
        return ManifestDocument.model_validate(data)
    except ValidationError as exc:
        raise ArtifactParseError(
            f"'{MANIFEST_ARTIFACT}' does not match the manifest schema: {exc}",
            artifact=MANIFEST_ARTIFACT,
        ) from exc


# =============================================================================
# Result -> Timeline
# =============================================================================


def extract_counters(adapter_response: Mapping[str, Any]) -> list[Counter]:
    """
    Translate known adapter response keys into counters.

    Raises:
        ArtifactParseError: If a known key holds a boolean, non-numeric or
            non-finite value
    """
    counters = []
    for key, value in adapter_response.items():
        name = COUNTER_NAMES.get(key)
        if name is None:
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = None
        if isinstance(value, bool) or number is None or not math.isfinite(number):
            raise ArtifactParseError(
                f"Adapter response '{key}' is not a finite number: {value!r}",
                artifact=RUN_RESULTS_ARTIFACT,
            )
        counters.append(Counter(name=name, value=number))
    return counters


def build_timeline(
    node: NodeResult, asset: Optional[AssetProjection] = None
) -> ExecutionTimeline:
    """
    Reconstruct the lifecycle history of one node from its timings.

    History:
    1. Created at the earliest start of any timing
    2. Running at the earliest start of an ``execute`` timing, if any
    3. Final state at the latest start of any timing

    Timings without a start are ignored; no usable timing means no history.
    """
    state = map_status(node.status)

    starts = [t.started_at for t in node.timing if t.started_at is not None]
    execute_starts = [
        t.started_at
        for t in node.timing
        if t.name == "execute" and t.started_at is not None
    ]

    history = []
    try:
        if starts:
            history.append(HistoryEvent(state=StateType.CREATED, timestamp=min(starts)))
        if execute_starts:
            history.append(HistoryEvent(state=StateType.RUNNING, timestamp=min(execute_starts)))
        if starts:
            history.append(HistoryEvent(state=state, timestamp=max(starts)))
    except TypeError as exc:
        # naive and offset-aware timestamps cannot be ordered
        raise ArtifactParseError(
            f"Timings of '{node.unique_id}' cannot be ordered: {exc}",
            artifact=RUN_RESULTS_ARTIFACT,
        ) from exc

    return ExecutionTimeline(
        unique_id=node.unique_id,
        state=state,
        history=history,
        counters=extract_counters(node.adapter_response),
        thread_id=node.thread_id,
        execution_time=node.execution_time,
        message=node.message,
        failures=node.failures,
        asset=asset,
    )


def build_timelines(
    results: RunResultDocument,
    assets: Optional[Mapping[str, AssetProjection]] = None,
) -> list[ExecutionTimeline]:
    """Build one timeline per result node, attaching its asset projection when known."""
    assets = assets or {}
    return [build_timeline(node, assets.get(node.unique_id)) for node in results.results]


# =============================================================================
# Manifest -> Assets
# =============================================================================


def _has_value(value: Optional[str]) -> bool:
    return value is not None and bool(value.strip())


def _first_non_blank(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if _has_value(value):
            return value
    return None


def project_assets(manifest: ManifestDocument) -> dict[str, AssetProjection]:
    """
    Project materialized model nodes to lineage assets.

    Non-model nodes (tests, seeds, sources, macros, ...) are excluded, and
    lineage inputs are restricted to dependencies that are models too.

    Returns:
        Mapping of dbt unique id to AssetProjection
    """
    system = manifest.adapter_type
    projected: dict[str, tuple[str, dict[str, Any], list[str]]] = {}

    for key, node in manifest.nodes.items():
        if node is None or not node.is_model:
            continue

        unique_id = _first_non_blank(node.unique_id, key)
        if unique_id is None:
            continue

        name = _first_non_blank(node.alias, node.name, unique_id)
        parts = [p for p in (node.database, node.schema_name, name) if _has_value(p)]
        asset_id = ".".join(parts) if parts else unique_id

        metadata: dict[str, Any] = {}
        if _has_value(system):
            metadata["system"] = system
        if _has_value(node.database):
            metadata["database"] = node.database
        if _has_value(node.schema_name):
            metadata["schema"] = node.schema_name
        if _has_value(name):
            metadata["name"] = name

        projected[unique_id] = (asset_id, metadata, node.dependency_ids)

    assets = {}
    for unique_id, (asset_id, metadata, depends_on) in projected.items():
        inputs = [projected[dep][0] for dep in depends_on if dep in projected]
        assets[unique_id] = AssetProjection(
            unique_id=unique_id, asset_id=asset_id, metadata=metadata, inputs=inputs
        )

    collisions = find_asset_id_collisions(assets)
    for asset_id, unique_ids in collisions.items():
        logger.warning(
            f"Asset id '{asset_id}' is shared by several models: {', '.join(unique_ids)}"
        )

    logger.info(f"dbt assets extracted from manifest: {len(assets)}")
    return assets


def find_asset_id_collisions(
    assets: Mapping[str, AssetProjection],
) -> dict[str, list[str]]:
    """Return asset ids claimed by more than one model, with the claiming unique ids."""
    owners: dict[str, list[str]] = defaultdict(list)
    for unique_id, asset in assets.items():
        owners[asset.asset_id].append(unique_id)
    return {asset_id: sorted(ids) for asset_id, ids in owners.items() if len(ids) > 1}


# =============================================================================
# Whole Run
# =============================================================================


@dataclass
class TranscodedRun:
    """Timelines and assets derived from one run's artifacts."""

    timelines: list[ExecutionTimeline] = field(default_factory=list)
    assets: dict[str, AssetProjection] = field(default_factory=dict)
    collisions: dict[str, list[str]] = field(default_factory=dict)


def transcode(
    run_results: Optional[Artifact], manifest: Optional[Artifact] = None
) -> TranscodedRun:
    """
    Transcode both artifacts of a run.

    Either artifact may be absent: without a manifest, timelines carry no
    assets; without run results, only the asset projection is produced.
    """
    assets = project_assets(parse_manifest(manifest)) if manifest is not None else {}
    timelines = (
        build_timelines(parse_run_results(run_results), assets)
        if run_results is not None
        else []
    )
    return TranscodedRun(
        timelines=timelines,
        assets=assets,
        collisions=find_asset_id_collisions(assets),
    )
