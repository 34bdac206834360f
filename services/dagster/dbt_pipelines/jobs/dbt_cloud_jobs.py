"""dbt Cloud jobs (op-based).

Both jobs end with the run's model assets materialized in Dagster and the
raw artifacts archived to MinIO.
"""

from dagster import job

from ..ops import check_dbt_cloud_run, trigger_dbt_cloud_run


@job(
    name="dbt_cloud_run_job",
    description="Trigger a dbt Cloud job run, wait for it and record its node timelines and assets",
)
def dbt_cloud_run_job():
    """
    Trigger a dbt Cloud job.

    The job id and run overrides are passed via run config to
    trigger_dbt_cloud_run.
    """
    trigger_dbt_cloud_run()


@job(
    name="dbt_cloud_check_job",
    description="Wait for an existing dbt Cloud run and record its node timelines and assets",
)
def dbt_cloud_check_job():
    """Check an already-triggered dbt Cloud run given its run id in run config."""
    check_dbt_cloud_run()
