# =============================================================================
# Configuration Models Module
# =============================================================================
# Provides Pydantic Settings models for all service configurations:
# - DbtCloudSettings: dbt Cloud API, polling and retry configuration
# - MinIOSettings: S3-compatible object storage for artifact archival
# =============================================================================

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "DbtCloudSettings",
    "MinIOSettings",
]


# =============================================================================
# dbt Cloud Settings (Remote Job API)
# =============================================================================

class DbtCloudSettings(BaseSettings):
    """
    Configuration for the dbt Cloud administrative API.

    Maps environment variables with prefix "DBT_CLOUD_":
    - DBT_CLOUD_BASE_URL → base_url
    - DBT_CLOUD_TOKEN → token
    - DBT_CLOUD_ACCOUNT_ID → account_id
    - DBT_CLOUD_POLL_FREQUENCY → poll_frequency_seconds
    - DBT_CLOUD_MAX_DURATION → max_duration_seconds
    - DBT_CLOUD_MAX_RETRIES → max_retries
    - DBT_CLOUD_INITIAL_RETRY_DELAY → initial_delay_seconds
    - DBT_CLOUD_PARSE_RUN_RESULTS → parse_run_results

    Attributes:
        base_url: Tenant base URL (default: "https://cloud.getdbt.com")
        token: Static bearer token (service token or personal API key)
        account_id: Numeric account id
        poll_frequency_seconds: Delay between status polls (default: 5)
        max_duration_seconds: Overall poll deadline (default: 3600)
        max_retries: Retries per request on transient failures (default: 3)
        initial_delay_seconds: First backoff delay (default: 1.0)
        parse_run_results: Whether run results are transcoded (default: True)
    """

    base_url: str = Field(
        "https://cloud.getdbt.com", validation_alias="DBT_CLOUD_BASE_URL", description="Tenant base URL"
    )
    token: str = Field(..., validation_alias="DBT_CLOUD_TOKEN", description="Bearer token")
    account_id: str = Field(..., validation_alias="DBT_CLOUD_ACCOUNT_ID", description="Numeric account id")
    poll_frequency_seconds: float = Field(
        5.0, validation_alias="DBT_CLOUD_POLL_FREQUENCY", ge=0, description="Delay between polls"
    )
    max_duration_seconds: float = Field(
        3600.0, validation_alias="DBT_CLOUD_MAX_DURATION", gt=0, description="Overall poll deadline"
    )
    max_retries: int = Field(3, validation_alias="DBT_CLOUD_MAX_RETRIES", ge=0, description="Retries per request")
    initial_delay_seconds: float = Field(
        1.0, validation_alias="DBT_CLOUD_INITIAL_RETRY_DELAY", ge=0, description="First backoff delay"
    )
    parse_run_results: bool = Field(
        True, validation_alias="DBT_CLOUD_PARSE_RUN_RESULTS", description="Transcode run results"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# =============================================================================
# MinIO Settings (S3-Compatible Object Storage)
# =============================================================================

class MinIOSettings(BaseSettings):
    """
    Configuration for MinIO (S3-compatible object storage).

    Raw dbt artifacts are archived here after each run.

    Maps environment variables with prefix "MINIO_":
    - MINIO_ENDPOINT → endpoint
    - MINIO_ROOT_USER → access_key
    - MINIO_ROOT_PASSWORD → secret_key
    - MINIO_USE_SSL → use_ssl
    - MINIO_ARTIFACT_BUCKET → artifact_bucket

    Attributes:
        endpoint: MinIO server endpoint (host:port)
        access_key: Access key (maps from MINIO_ROOT_USER)
        secret_key: Secret key (maps from MINIO_ROOT_PASSWORD)
        use_ssl: Whether to use SSL/TLS (default: False)
        artifact_bucket: Bucket for archived artifacts (default: "dbt-artifacts")
    """

    endpoint: str = Field(..., validation_alias="MINIO_ENDPOINT", description="MinIO server endpoint (host:port)")
    access_key: str = Field(..., validation_alias="MINIO_ROOT_USER", description="Access key (maps from MINIO_ROOT_USER)")
    secret_key: str = Field(..., validation_alias="MINIO_ROOT_PASSWORD", description="Secret key (maps from MINIO_ROOT_PASSWORD)")
    use_ssl: bool = Field(False, validation_alias="MINIO_USE_SSL", description="Whether to use SSL/TLS")
    artifact_bucket: str = Field(
        "dbt-artifacts", validation_alias="MINIO_ARTIFACT_BUCKET", description="Artifact archive bucket"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Ignore unrelated env vars from shared .env files
    )
