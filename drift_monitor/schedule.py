"""
Scheduling for the drift monitor.

Schedule expressions follow the familiar ``rate(...)`` / ``cron(...)`` form:

    rate(5 minutes)      -> every 5 minutes
    rate(1 hour)         -> every hour
    cron(0 * * * *)      -> standard 5-field crontab
    0 * * * *            -> same, without the wrapper
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

JOB_ID = "terraform_drift_monitor"

RATE_RE = re.compile(r"^rate\(\s*(\d+)\s+(minute|minutes|hour|hours|day|days)\s*\)$", re.IGNORECASE)
CRON_RE = re.compile(r"^cron\((.*)\)$", re.IGNORECASE)

_RATE_UNITS = {
    "minute": "minutes",
    "minutes": "minutes",
    "hour": "hours",
    "hours": "hours",
    "day": "days",
    "days": "days",
}


def build_trigger(expression: str) -> BaseTrigger:
    """
    Translate a schedule expression into an APScheduler trigger.

    Raises:
        ConfigurationError: If the expression cannot be parsed
    """
    expression = (expression or "").strip()

    rate = RATE_RE.match(expression)
    if rate:
        amount = int(rate.group(1))
        if amount < 1:
            raise ConfigurationError(f"Schedule rate must be positive: {expression}")
        unit = _RATE_UNITS[rate.group(2).lower()]
        return IntervalTrigger(**{unit: amount})

    cron = CRON_RE.match(expression)
    crontab = cron.group(1).strip() if cron else expression
    try:
        return CronTrigger.from_crontab(crontab)
    except ValueError as e:
        raise ConfigurationError(f"Invalid schedule expression '{expression}': {e}") from e


def start_scheduler(
    job: Callable[[], object],
    expression: str,
    run_immediately: bool = False,
) -> BackgroundScheduler:
    """
    Start a background scheduler running ``job`` on the given schedule.

    ``max_instances=1`` keeps runs in this process from overlapping; a run
    that is still busy when the next one is due makes the scheduler skip it.
    With ``run_immediately`` the first run is also made by the scheduler, so
    it is covered by the same limit.
    """
    trigger = build_trigger(expression)

    extra = {"next_run_time": datetime.now(timezone.utc)} if run_immediately else {}

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        job,
        trigger,
        id=JOB_ID,
        name='Terraform drift monitor',
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        **extra
    )
    scheduler.start()
    logger.info(f"✅ Scheduler started: {expression}")
    return scheduler
