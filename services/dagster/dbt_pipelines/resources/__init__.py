"""Dagster Resources - External Service Connections."""

from .dbt_cloud_resource import DbtCloudResource
from .minio_resource import MinIOResource

__all__ = [
    "DbtCloudResource",
    "MinIOResource",
]
