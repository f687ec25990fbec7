#!/usr/bin/env python3
"""
Drift Monitor Scheduler - runs the monitor without the HTTP server

Runs the drift monitor:
1. Once immediately on startup (as a scheduled job, so runs never overlap)
2. Then on TERRAFORM_MONITOR_SCHEDULE (default: rate(5 minutes))

Usage:
    python scripts/drift_scheduler.py
"""

import sys
import time
import logging
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv()

from drift_monitor.config import load_config
from drift_monitor.errors import ConfigurationError
from drift_monitor.logging_config import setup_logging
from drift_monitor.orchestrator import DriftMonitor, run_monitor
from drift_monitor.schedule import start_scheduler

logger = logging.getLogger(__name__)


def main():
    """Main scheduler loop"""
    setup_logging()
    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        return 1

    setup_logging(config.log_level)
    monitor = DriftMonitor.from_config(config)

    logger.info("="*80)
    logger.info("🚀 TERRAFORM DRIFT MONITOR SCHEDULER STARTING")
    logger.info("="*80)
    logger.info(f"📦 Repository: {config.repo_identifier}@{config.repo_branch}")
    logger.info(f"📅 Schedule:   {config.schedule_expression}")
    logger.info("🛑 Press Ctrl+C to stop")
    logger.info("="*80)

    logger.info("🔄 Initial check runs now, then on schedule")
    try:
        scheduler = start_scheduler(
            lambda: run_monitor(monitor),
            config.schedule_expression,
            run_immediately=True,
        )
    except ConfigurationError as e:
        logger.error(f"❌ Invalid schedule: {e}")
        return 1

    # Keep running
    try:
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        logger.info("🛑 Stopping scheduler...")
        scheduler.shutdown()
        logger.info("✅ Scheduler stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
