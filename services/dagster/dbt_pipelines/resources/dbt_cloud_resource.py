# =============================================================================
# dbt Cloud Resource - Remote Job API
# =============================================================================
# Provides configured clients, poll engines and runners for dbt Cloud jobs.
# =============================================================================

from typing import Any

from dagster import ConfigurableResource
from pydantic import Field

from libs.dbt_cloud import DbtCloudClient, DbtCloudRunner, PollEngine


class DbtCloudResource(ConfigurableResource):
    """
    Dagster resource for the dbt Cloud administrative API.

    Configuration matches DbtCloudSettings from libs.models.config.

    Attributes:
        base_url: Tenant base URL (default: "https://cloud.getdbt.com")
        token: Static bearer token
        account_id: Numeric account id
        poll_frequency_seconds: Delay between status polls (default: 5)
        max_duration_seconds: Overall poll deadline (default: 3600)
        max_retries: Retries per request on transient failures (default: 3)
        initial_delay_seconds: First backoff delay (default: 1.0)
        parse_run_results: Whether run results are transcoded (default: True)
    """

    base_url: str = Field("https://cloud.getdbt.com", description="Tenant base URL")
    token: str = Field(..., description="Bearer token")
    account_id: str = Field(..., description="Numeric account id")
    poll_frequency_seconds: float = Field(5.0, description="Delay between polls")
    max_duration_seconds: float = Field(3600.0, description="Overall poll deadline")
    max_retries: int = Field(3, description="Retries per request")
    initial_delay_seconds: float = Field(1.0, description="First backoff delay")
    parse_run_results: bool = Field(True, description="Transcode run results")

    def get_client(self) -> DbtCloudClient:
        """
        Create a dbt Cloud API client.

        Returns:
            Configured DbtCloudClient (caller closes it)
        """
        return DbtCloudClient(
            base_url=self.base_url,
            token=self.token,
            account_id=self.account_id,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay_seconds,
        )

    def get_poll_engine(self, client: DbtCloudClient, log: Any = None) -> PollEngine:
        return PollEngine(
            client,
            poll_frequency=self.poll_frequency_seconds,
            max_duration=self.max_duration_seconds,
            log=log,
        )

    def get_runner(self, client: DbtCloudClient, log: Any = None) -> DbtCloudRunner:
        """
        Create a runner wiring ``client`` to a fresh poll engine.

        Args:
            client: Client from ``get_client``
            log: Logger for status and step log lines (e.g. context.log)
        """
        return DbtCloudRunner(
            client,
            self.get_poll_engine(client, log),
            parse_run_results=self.parse_run_results,
            log=log,
        )
