"""Dagster Definitions - Repository Configuration.

Defines jobs and resources for observing dbt Cloud runs.
"""

from dagster import Definitions, EnvVar

from .jobs import dbt_cloud_check_job, dbt_cloud_run_job
from .resources import DbtCloudResource, MinIOResource


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        dbt_cloud_run_job,
        dbt_cloud_check_job,
    ],
    resources={
        "dbt_cloud": DbtCloudResource(
            base_url=EnvVar("DBT_CLOUD_BASE_URL"),
            token=EnvVar("DBT_CLOUD_TOKEN"),
            account_id=EnvVar("DBT_CLOUD_ACCOUNT_ID"),
            poll_frequency_seconds=5.0,
            max_duration_seconds=3600.0,
            max_retries=3,
            initial_delay_seconds=1.0,
            parse_run_results=True,
        ),
        "minio": MinIOResource(
            endpoint=EnvVar("MINIO_ENDPOINT"),
            access_key=EnvVar("MINIO_ROOT_USER"),
            secret_key=EnvVar("MINIO_ROOT_PASSWORD"),
            use_ssl=False,
            artifact_bucket="dbt-artifacts",
        ),
    },
)
