"""
Drift Monitor Orchestrator

Sequences one monitoring run:
1. Concurrently provisions the Terraform binary, provisions the repository
   snapshot and measures the scratch directory (first failure wins)
2. Runs terraform init and plan, strictly one after the other
3. Builds the metrics record and ships it to every enabled sink

Any failure before dispatch aborts the run without shipping anything, so a
failed plan can never show up as "zero pending changes" in monitoring.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import boto3
import requests

from .archives import ArtifactCache
from .binary_provisioner import BinaryProvisioner
from .config import Config, load_config
from .errors import ConfigurationError, DriftMonitorError, ExecutionError
from .http_client import create_http_session
from .logging_config import setup_logging
from .metrics import MetricsDispatcher
from .models import Metric, MetricsRecord, PlanOutcome, RepositorySnapshot
from .plan_executor import PlanExecutor
from .plan_parser import parse_plan_output
from .process import ProcessRunner
from .repo_snapshot import RepositorySnapshotProvider

logger = logging.getLogger(__name__)


def build_record(
    repo: str,
    outcome: PlanOutcome,
    scratch_space_bytes: int,
    total_duration_ms: int,
    timestamp_ms: Optional[int] = None,
) -> MetricsRecord:
    """Assemble the final metrics of a successful run."""
    return MetricsRecord(
        repo=repo,
        timestamp_ms=timestamp_ms,
        values={
            Metric.PLAN_STATUS: outcome.status.metric_value,
            Metric.RESOURCES_REFRESHED: outcome.resources_refreshed,
            Metric.PENDING_ADD: outcome.pending_add,
            Metric.PENDING_CHANGE: outcome.pending_change,
            Metric.PENDING_DESTROY: outcome.pending_destroy,
            Metric.PENDING_TOTAL: outcome.pending_total,
            Metric.SCRATCH_SPACE_BYTES: scratch_space_bytes,
            Metric.TOTAL_DURATION_MS: total_duration_ms,
            Metric.INIT_DURATION_MS: outcome.timing.init_ms,
            Metric.PLAN_DURATION_MS: outcome.timing.plan_ms,
        },
    )


class DriftMonitor:
    """One configured pipeline; every external client is injected."""

    def __init__(
        self,
        config: Config,
        provisioner: BinaryProvisioner,
        snapshots: RepositorySnapshotProvider,
        executor: PlanExecutor,
        dispatcher: MetricsDispatcher,
        runner: ProcessRunner,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.provisioner = provisioner
        self.snapshots = snapshots
        self.executor = executor
        self.dispatcher = dispatcher
        self.runner = runner
        self.clock = clock
        self.wall_clock = wall_clock

    @classmethod
    def from_config(
        cls,
        config: Config,
        session: Optional[requests.Session] = None,
        s3_client=None,
        cloudwatch_client=None,
        runner: Optional[ProcessRunner] = None,
    ) -> "DriftMonitor":
        """Construct every collaborator once, defaulting to real AWS/HTTP clients."""
        session = session or create_http_session()
        runner = runner or ProcessRunner(debug=config.debug)
        if s3_client is None:
            s3_client = boto3.client("s3", region_name=config.aws_region)
        if cloudwatch_client is None and config.namespace_sink_enabled:
            cloudwatch_client = boto3.client("cloudwatch", region_name=config.aws_region)

        cache = ArtifactCache(config.scratch_dir)
        return cls(
            config=config,
            provisioner=BinaryProvisioner(
                s3_client, session, cache, config.state_bucket, config.state_key
            ),
            snapshots=RepositorySnapshotProvider(
                session, cache, config.repo_identifier, config.repo_token
            ),
            executor=PlanExecutor(runner, debug=config.debug),
            dispatcher=MetricsDispatcher.from_config(config, session, cloudwatch_client),
            runner=runner,
        )

    def provision_binary(self) -> Path:
        version = self.provisioner.resolve_version()
        return self.provisioner.ensure_binary(version)

    def provision_snapshot(self) -> RepositorySnapshot:
        sha = self.snapshots.get_head(self.config.repo_branch)
        return self.snapshots.ensure_snapshot(sha)

    def measure_scratch_space(self) -> int:
        """Disk usage of the scratch directory in bytes, via ``du``."""
        output = self.runner.run_strict("du", ["-sk", str(self.config.scratch_dir)])
        try:
            return int(output.split()[0]) * 1024
        except (IndexError, ValueError) as e:
            raise ExecutionError(f"Unexpected du output: {output!r}", stdout=output) from e

    def acquire(self) -> Tuple[Path, RepositorySnapshot, int]:
        """
        Run the three acquisition steps concurrently.

        The first step to fail aborts the wait; steps still in flight are not
        interrupted, their results are simply discarded.
        """
        steps = {
            "binary": self.provision_binary,
            "snapshot": self.provision_snapshot,
            "scratch": self.measure_scratch_space,
        }
        pool = ThreadPoolExecutor(max_workers=len(steps), thread_name_prefix="acquire")
        results: Dict[str, Any] = {}
        try:
            futures = {pool.submit(fn): name for name, fn in steps.items()}
            for future in as_completed(futures):
                name = futures[future]
                try:
                    results[name] = future.result()
                except Exception:
                    logger.error(f"Acquisition step '{name}' failed")
                    raise
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return results["binary"], results["snapshot"], results["scratch"]

    def run(self) -> MetricsRecord:
        """
        Execute one full run and ship its metrics.

        Raises:
            DriftMonitorError: On any acquisition, execution, API or sink failure
        """
        started = self.clock()
        timestamp_ms = int(self.wall_clock() * 1000)

        binary, snapshot, scratch_bytes = self.acquire()
        plan_run = self.executor.execute(binary, snapshot)
        outcome = parse_plan_output(plan_run.result.stdout, plan_run.status, plan_run.timing)

        total_ms = int(round((self.clock() - started) * 1000))
        record = build_record(
            self.config.repo_identifier, outcome, scratch_bytes, total_ms, timestamp_ms
        )
        self.dispatcher.ship(record)
        return record


def run_monitor(monitor: DriftMonitor) -> Dict[str, Any]:
    """
    Run the monitor once and report the outcome as a status dict.

    Never raises: failures are logged and reported with status "failed" so
    the invoking scheduler always sees a completed run.
    """
    start_time = datetime.now()
    logger.info("=" * 80)
    logger.info(f"🚀 Drift monitor run for {monitor.config.repo_identifier}@{monitor.config.repo_branch}")
    logger.info("=" * 80)

    try:
        record = monitor.run()
    except DriftMonitorError as e:
        logger.error(f"❌ Drift monitor run failed ({type(e).__name__}): {e}")
        return {"status": "failed", "error": str(e), "error_type": type(e).__name__}
    except Exception as e:
        logger.exception(f"❌ Drift monitor run failed unexpectedly: {e}")
        return {"status": "failed", "error": str(e), "error_type": type(e).__name__}

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"✅ Run complete in {duration:.1f}s: {record.values[Metric.PENDING_TOTAL]} pending change(s)")
    return {
        "status": "success",
        "duration": duration,
        "repo": record.repo,
        "metrics": record.as_fields(),
    }


def lambda_handler(event, context):
    """
    Scheduler-facing entry point.

    Always returns normally, whatever happened during the run.
    """
    try:
        config = load_config()
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"❌ Invalid configuration: {e}")
        return {"status": "failed", "error": str(e), "error_type": type(e).__name__}
    except Exception as e:
        setup_logging()
        logger.exception(f"❌ Could not load configuration: {e}")
        return {"status": "failed", "error": str(e), "error_type": type(e).__name__}

    setup_logging(config.log_level)
    try:
        monitor = DriftMonitor.from_config(config)
    except Exception as e:
        logger.exception(f"❌ Could not initialise drift monitor: {e}")
        return {"status": "failed", "error": str(e), "error_type": type(e).__name__}
    return run_monitor(monitor)
