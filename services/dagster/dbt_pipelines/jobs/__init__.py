"""Dagster Jobs - Executable Workflows."""

from .dbt_cloud_jobs import dbt_cloud_check_job, dbt_cloud_run_job

__all__ = ["dbt_cloud_check_job", "dbt_cloud_run_job"]
