#!/usr/bin/env python3
# =============================================================================
# dbt Cloud Run Trigger
# =============================================================================
# Triggers a dbt Cloud job (or checks an existing run) from the command line,
# streaming step logs and printing a per-node summary once the run ends.
# Configuration comes from DBT_CLOUD_* environment variables (see
# libs.models.config.DbtCloudSettings).
# =============================================================================

import argparse
import logging
import sys

from pydantic import ValidationError

from libs.dbt_cloud import (
    DbtCloudClient,
    DbtCloudError,
    DbtCloudRunner,
    PollEngine,
    RunOutcome,
    TriggerRequest,
)
from libs.models import DbtCloudSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trigger or check a dbt Cloud run")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--job-id", help="Job to trigger")
    target.add_argument("--run-id", type=int, help="Existing run to check")
    parser.add_argument("--cause", default="Triggered from the command line", help="Run cause")
    parser.add_argument("--git-branch", help="Git branch to check out")
    parser.add_argument("--git-sha", help="Git sha to check out")
    parser.add_argument("--steps", nargs="+", help="Commands overriding the job steps")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Return once the run is queued instead of polling it",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show status changes")
    return parser


def print_summary(outcome: RunOutcome) -> None:
    """Print run status and one line per node timeline."""
    status = outcome.run.status.value if outcome.run else "unknown"
    print(f"Run {outcome.run_id}: {status}")
    for timeline in outcome.timelines:
        counters = ", ".join(f"{c.name}={c.value:g}" for c in timeline.counters)
        asset = f" -> {timeline.asset.asset_id}" if timeline.asset else ""
        print(f"  {timeline.state.value:<8} {timeline.unique_id}{asset} {counters}".rstrip())


def main(argv=None) -> int:
    """
    Command line entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        settings = DbtCloudSettings()
    except ValidationError as e:
        missing = ", ".join(
            str(error["loc"][0]) for error in e.errors() if error.get("loc")
        )
        print(f"Invalid dbt Cloud configuration ({missing}): {e}", file=sys.stderr)
        return 1

    client = DbtCloudClient(
        base_url=settings.base_url,
        token=settings.token,
        account_id=settings.account_id,
        max_retries=settings.max_retries,
        initial_delay=settings.initial_delay_seconds,
    )

    try:
        engine = PollEngine(
            client,
            poll_frequency=settings.poll_frequency_seconds,
            max_duration=settings.max_duration_seconds,
        )
        runner = DbtCloudRunner(client, engine, parse_run_results=settings.parse_run_results)

        if args.run_id is not None:
            outcome = runner.check(args.run_id)
        else:
            request = TriggerRequest(
                cause=args.cause,
                git_branch=args.git_branch,
                git_sha=args.git_sha,
                steps_override=args.steps,
            )
            outcome = runner.trigger(args.job_id, request, wait=not args.no_wait)

        print_summary(outcome)
        return 0

    except DbtCloudError as e:
        print(f"dbt Cloud run failed: {e}", file=sys.stderr)
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
