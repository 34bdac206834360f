"""Dagster Ops - Reusable Computation Units."""

from .dbt_cloud_ops import (
    CheckRunConfig,
    TriggerRunConfig,
    check_dbt_cloud_run,
    trigger_dbt_cloud_run,
)

__all__ = [
    "CheckRunConfig",
    "TriggerRunConfig",
    "check_dbt_cloud_run",
    "trigger_dbt_cloud_run",
]
