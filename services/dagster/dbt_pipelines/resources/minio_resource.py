# =============================================================================
# MinIO Resource - Artifact Archival
# =============================================================================
# Archives raw dbt Cloud artifacts (run_results.json, manifest.json) to an
# S3-compatible bucket so every observed run keeps its source documents.
# =============================================================================

import io
from typing import Optional

from dagster import ConfigurableResource
from minio import Minio
from minio.error import S3Error
from pydantic import Field


class MinIOResource(ConfigurableResource):
    """
    Dagster resource for MinIO (S3-compatible object storage) operations.

    Provides methods for:
    - Archiving raw run artifacts under a per-run prefix
    - Reading archived artifacts back

    Configuration matches MinIOSettings from libs.models.config.

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key for authentication
        secret_key: Secret key for authentication
        use_ssl: Whether to use SSL/TLS (default: False)
        artifact_bucket: Archive bucket name (default: "dbt-artifacts")
        prefix: Key prefix for archived runs (default: "dbt_cloud")
    """

    endpoint: str = Field(..., description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., description="Access key for authentication")
    secret_key: str = Field(..., description="Secret key for authentication")
    use_ssl: bool = Field(False, description="Whether to use SSL/TLS")
    artifact_bucket: str = Field("dbt-artifacts", description="Archive bucket name")
    prefix: str = Field("dbt_cloud", description="Key prefix for archived runs")

    def get_client(self) -> Minio:
        """
        Create a MinIO client instance.

        Returns:
            Configured Minio client
        """
        return Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl,
        )

    def artifact_key(self, run_id: int, name: str) -> str:
        """
        Build the object key of an archived artifact.

        Examples:
            >>> resource.artifact_key(42, "manifest.json")
            'dbt_cloud/42/manifest.json'
        """
        return f"{self.prefix.strip('/')}/{run_id}/{name}"

    def archive_artifact(self, run_id: int, name: str, content: bytes) -> str:
        """
        Upload raw artifact bytes for a run.

        Overwrites any previous upload of the same artifact, so re-archiving
        a run is idempotent.

        Args:
            run_id: dbt Cloud run id
            name: Artifact file name (e.g., "run_results.json")
            content: Raw artifact bytes

        Returns:
            Archive path (e.g., "s3://dbt-artifacts/dbt_cloud/42/run_results.json")

        Raises:
            RuntimeError: If the archive bucket does not exist
            S3Error: For other upload failures
        """
        client = self.get_client()
        key = self.artifact_key(run_id, name)

        try:
            client.put_object(
                self.artifact_bucket,
                key,
                io.BytesIO(content),
                length=len(content),
                content_type="application/json",
            )
        except S3Error as exc:
            if exc.code == "NoSuchBucket":
                raise RuntimeError(
                    f"Artifact bucket '{self.artifact_bucket}' does not exist"
                ) from exc
            raise

        return f"s3://{self.artifact_bucket}/{key}"

    def get_artifact(self, run_id: int, name: str) -> Optional[bytes]:
        """
        Read back an archived artifact.

        Returns:
            Artifact bytes, or None if the run has no such archived artifact

        Raises:
            S3Error: For failures other than a missing object
        """
        client = self.get_client()

        try:
            response = client.get_object(self.artifact_bucket, self.artifact_key(run_id, name))
        except S3Error as exc:
            if exc.code == "NoSuchKey":
                return None
            raise

        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()
