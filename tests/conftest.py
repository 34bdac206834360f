"""
Shared pytest fixtures for dbt Cloud tests.

Provides payload factories for the runs API and the dbt artifacts, a fake
monotonic clock and a fake dbt Cloud API served through httpx.MockTransport.
"""

import json
from typing import Callable, Optional

import httpx
import pytest

from libs.models import RunStatus


_STATUS_CODES = {
    RunStatus.QUEUED: 1,
    RunStatus.STARTING: 2,
    RunStatus.RUNNING: 3,
    RunStatus.SUCCESS: 10,
    RunStatus.ERROR: 20,
    RunStatus.CANCELLED: 30,
}


# =============================================================================
# Runs API Payload Fixtures
# =============================================================================

@pytest.fixture
def make_step():
    """Factory for a run step payload."""

    def _make_step(step_id: int, logs: str = "", truncated: Optional[str] = None, name: str = "dbt build"):
        return {
            "id": step_id,
            "run_id": 42,
            "account_id": 1,
            "name": name,
            "logs": logs,
            "debug_logs": None,
            "truncated_debug_logs": truncated,
            "status_humanized": "Running",
            "duration_humanized": "1 second",
        }

    return _make_step


@pytest.fixture
def make_run_payload():
    """Factory for a runs API envelope ``{"data": ..., "status": ...}``."""

    def _make_run_payload(
        status: str = "Running",
        steps: Optional[list] = None,
        run_id: int = 42,
        duration: str = "10 seconds",
    ):
        return {
            "status": {"code": 200, "is_success": True, "user_message": "Success!"},
            "data": {
                "id": run_id,
                "account_id": 1,
                "job_id": 7,
                "status": _STATUS_CODES[RunStatus(status)],
                "status_humanized": status,
                "status_message": None,
                "git_branch": "main",
                "git_sha": "abc123",
                "duration_humanized": duration,
                "run_steps": steps if steps is not None else [],
                "href": f"https://cloud.getdbt.com/#/accounts/1/runs/{run_id}/",
            },
        }

    return _make_run_payload


# =============================================================================
# Artifact Fixtures
# =============================================================================

@pytest.fixture
def run_results_dict():
    """run_results.json with a model, a test and a skipped model."""
    return {
        "metadata": {"dbt_version": "1.7.0"},
        "elapsed_time": 3.2,
        "args": {"which": "build"},
        "results": [
            {
                "unique_id": "model.shop.stg_orders",
                "status": "success",
                "thread_id": "Thread-1",
                "execution_time": 1.5,
                "message": "CREATE VIEW",
                "failures": None,
                "adapter_response": {"_message": "CREATE VIEW", "code": "CREATE VIEW", "rows_affected": -1},
                "timing": [
                    {"name": "compile", "started_at": "2024-01-01T10:00:00Z", "completed_at": "2024-01-01T10:00:01Z"},
                    {"name": "execute", "started_at": "2024-01-01T10:00:01Z", "completed_at": "2024-01-01T10:00:02Z"},
                ],
            },
            {
                "unique_id": "model.shop.orders",
                "status": "success",
                "thread_id": "Thread-2",
                "execution_time": 2.0,
                "message": "SELECT 120",
                "adapter_response": {"rows_affected": 120, "bytes_processed": "2048"},
                "timing": [
                    {"name": "compile", "started_at": "2024-01-01T10:00:02Z", "completed_at": "2024-01-01T10:00:03Z"},
                    {"name": "execute", "started_at": "2024-01-01T10:00:03Z", "completed_at": "2024-01-01T10:00:05Z"},
                ],
            },
            {
                "unique_id": "test.shop.not_null_orders_id",
                "status": "fail",
                "thread_id": "Thread-1",
                "execution_time": 0.4,
                "message": "Got 3 results, configured to fail if != 0",
                "failures": 3,
                "adapter_response": {},
                "timing": [
                    {"name": "compile", "started_at": "2024-01-01T10:00:05Z", "completed_at": "2024-01-01T10:00:06Z"},
                ],
            },
            {
                "unique_id": "model.shop.customers",
                "status": "skipped",
                "thread_id": "Thread-2",
                "execution_time": 0,
                "adapter_response": {},
                "timing": [],
            },
        ],
    }


@pytest.fixture
def manifest_dict():
    """manifest.json with three models, a test and a seed."""
    return {
        "metadata": {"adapter_type": "postgres", "dbt_version": "1.7.0"},
        "nodes": {
            "model.shop.stg_orders": {
                "unique_id": "model.shop.stg_orders",
                "resource_type": "model",
                "database": "analytics",
                "schema": "staging",
                "name": "stg_orders",
                "alias": "stg_orders",
                "depends_on": {"macros": [], "nodes": ["seed.shop.raw_orders"]},
            },
            "model.shop.orders": {
                "unique_id": "model.shop.orders",
                "resource_type": "model",
                "database": "analytics",
                "schema": "marts",
                "name": "orders",
                "alias": None,
                "depends_on": {"macros": ["macro.dbt.run_query"], "nodes": ["model.shop.stg_orders"]},
            },
            "model.shop.customers": {
                "unique_id": "model.shop.customers",
                "resource_type": "model",
                "database": "analytics",
                "schema": "marts",
                "name": "customers",
                "alias": "dim_customers",
                "depends_on": {"nodes": ["model.shop.orders", "model.shop.stg_orders"]},
            },
            "test.shop.not_null_orders_id": {
                "unique_id": "test.shop.not_null_orders_id",
                "resource_type": "test",
                "database": "analytics",
                "schema": "marts_dbt_test__audit",
                "name": "not_null_orders_id",
                "depends_on": {"nodes": ["model.shop.orders"]},
            },
            "seed.shop.raw_orders": {
                "unique_id": "seed.shop.raw_orders",
                "resource_type": "seed",
                "database": "analytics",
                "schema": "raw",
                "name": "raw_orders",
                "depends_on": {"nodes": []},
            },
        },
    }


@pytest.fixture
def run_results_bytes(run_results_dict):
    return json.dumps(run_results_dict).encode()


@pytest.fixture
def manifest_bytes(manifest_dict):
    return json.dumps(manifest_dict).encode()


# =============================================================================
# Clock and Fake API Fixtures
# =============================================================================

class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


class FakeDbtCloudApi:
    """
    In-memory dbt Cloud API behind httpx.MockTransport.

    Run polls are answered from ``run_responses`` in order, the last one
    repeating; artifacts are served from ``artifacts``; every request is
    recorded in ``requests``.
    """

    def __init__(self):
        self.run_responses = []
        self.trigger_response = None
        self.artifacts = {}
        self.requests = []
        self._polls = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.endswith("/run/"):
            return httpx.Response(200, json=self.trigger_response)

        if "/artifacts/" in path:
            name = path.rsplit("/artifacts/", 1)[1]
            if name not in self.artifacts:
                return httpx.Response(404, json={"status": {"code": 404, "is_success": False}})
            return httpx.Response(200, content=self.artifacts[name])

        if "/runs/" in path:
            index = min(self._polls, len(self.run_responses) - 1)
            self._polls += 1
            return httpx.Response(200, json=self.run_responses[index])

        return httpx.Response(404)

    def requests_to(self, fragment: str) -> list:
        return [r for r in self.requests if fragment in r.url.path]


@pytest.fixture
def fake_api():
    return FakeDbtCloudApi()


@pytest.fixture
def make_client(fake_api, fake_clock) -> Callable:
    """Factory for a DbtCloudClient wired to the fake API and clock."""
    from libs.dbt_cloud import DbtCloudClient

    def _make_client(max_retries: int = 3, initial_delay: float = 1.0):
        return DbtCloudClient(
            base_url="https://cloud.getdbt.com/",
            token="dbt_token",
            account_id="1",
            max_retries=max_retries,
            initial_delay=initial_delay,
            transport=fake_api.transport,
            sleep=fake_clock.sleep,
            clock=fake_clock,
        )

    return _make_client
