#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Terraform Drift Monitor - Service Entry Point

Runs the drift monitor on its configured schedule and exposes a small HTTP
API for health checks and manual runs.

Server configuration via environment variables (defaults to 0.0.0.0:3000).
Set HOST and PORT in .env to customize. Use ``--once`` for a single run
without the server.
"""

import argparse
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException

from drift_monitor import __version__
from drift_monitor.config import load_config
from drift_monitor.errors import ConfigurationError
from drift_monitor.logging_config import setup_logging
from drift_monitor.orchestrator import DriftMonitor, run_monitor
from drift_monitor.schedule import start_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Terraform Drift Monitor",
    description="Read-only terraform plan of a configuration repository, reported as metrics",
    version=__version__
)

# Global state
scheduler = None
latest_result: Optional[Dict[str, Any]] = None
_monitor: Optional[DriftMonitor] = None
_run_lock = threading.Lock()


def get_monitor() -> DriftMonitor:
    """Build the monitor on first use and reuse it afterwards."""
    global _monitor
    if _monitor is None:
        config = load_config()
        _monitor = DriftMonitor.from_config(config)
    return _monitor


def execute_run(trigger: str) -> Optional[Dict[str, Any]]:
    """
    Run the monitor once unless a run is already in progress.

    Args:
        trigger: What started the run ("scheduled", "manual", "cli")

    Returns:
        Result dict, or None if the run was skipped
    """
    global latest_result

    if not _run_lock.acquire(blocking=False):
        logger.warning(f"⚠️  Run already in progress - skipping {trigger} run")
        return None

    try:
        try:
            monitor = get_monitor()
        except Exception as e:
            logger.error(f"❌ Could not initialise drift monitor: {e}")
            result = {"status": "failed", "error": str(e), "error_type": type(e).__name__}
        else:
            result = run_monitor(monitor)

        result["trigger"] = trigger
        result["finished_at"] = datetime.now(timezone.utc).isoformat()
        latest_result = result
        return result
    finally:
        _run_lock.release()


def scheduled_run():
    """Scheduled drift monitor run"""
    logger.info("⏰ Scheduled drift monitor run triggered")
    execute_run("scheduled")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Terraform Drift Monitor",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "run_in_progress": _run_lock.locked(),
        "scheduler_running": bool(scheduler and scheduler.running),
        "has_results": latest_result is not None
    }


@app.post("/api/run", status_code=202)
async def trigger_run(background_tasks: BackgroundTasks):
    """Start a monitor run in the background."""
    if _run_lock.locked():
        raise HTTPException(
            status_code=409,
            detail="Drift monitor run already in progress. Please wait for completion."
        )
    background_tasks.add_task(execute_run, "manual")
    return {"status": "accepted"}


@app.get("/api/last-run")
async def get_last_run():
    """Result of the most recent completed run."""
    if latest_result is None:
        raise HTTPException(status_code=404, detail="No run has completed yet")
    return latest_result


def start_monitoring():
    """Start the drift monitor scheduler"""
    global scheduler

    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(f"❌ Invalid configuration - scheduler disabled: {e}")
        return

    setup_logging(config.log_level)
    try:
        scheduler = start_scheduler(scheduled_run, config.schedule_expression)
    except ConfigurationError as e:
        logger.error(f"❌ Invalid schedule - scheduler disabled: {e}")


def stop_monitoring():
    """Stop the drift monitor scheduler"""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("✅ Scheduler stopped")
    scheduler = None


@app.on_event("startup")
async def startup_event():
    """Start scheduled runs on server startup"""
    start_monitoring()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop scheduled runs on server shutdown"""
    stop_monitoring()


def main():
    """Start the drift monitor server, or run once with --once"""
    parser = argparse.ArgumentParser(description="Terraform Drift Monitor")
    parser.add_argument('--once', action='store_true', help='Run the monitor once and exit')
    args = parser.parse_args()

    setup_logging()

    if args.once:
        result = execute_run("cli")
        logger.info(f"Run finished with status: {result['status']}")
        return

    # Get host and port from environment or use defaults
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))

    logger.info("=" * 80)
    logger.info("🚀 TERRAFORM DRIFT MONITOR")
    logger.info("=" * 80)
    logger.info(f"   Health:   http://localhost:{port}/health")
    logger.info(f"   Run now:  POST http://localhost:{port}/api/run")
    logger.info(f"   Last run: http://localhost:{port}/api/last-run")
    logger.info("=" * 80)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
