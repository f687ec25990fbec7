"""Extracts structured counts from ``terraform plan`` text output."""

import logging
import re
from typing import Optional

from .models import PhaseTiming, PlanOutcome, PlanStatus

logger = logging.getLogger(__name__)

REFRESH_MARKER = ": Refreshing state..."
SUMMARY_PREFIX = "Plan:"
SUMMARY_RE = re.compile(r"(\d+) to add, (\d+) to change, (\d+) to destroy")
NO_CHANGES_RE = re.compile(r"^\s*No changes\.", re.MULTILINE)


def parse_plan_output(
    stdout: str,
    status: PlanStatus,
    timing: Optional[PhaseTiming] = None,
) -> PlanOutcome:
    """
    Build a PlanOutcome from plan stdout.

    A missing summary line means zero pending changes; the tool's text format
    gives no stronger guarantee. When the exit code says changes are pending
    but no summary was found the output format has probably changed, which
    is logged as a warning rather than failing the run.
    """
    refreshed = 0
    counts = None
    for line in stdout.splitlines():
        if REFRESH_MARKER in line:
            refreshed += 1
        if counts is None and line.lstrip().startswith(SUMMARY_PREFIX):
            match = SUMMARY_RE.search(line)
            if match:
                counts = tuple(int(n) for n in match.groups())

    summary_found = counts is not None
    add, change, destroy = counts if summary_found else (0, 0, 0)

    if not summary_found:
        if status is PlanStatus.CHANGES_PENDING:
            logger.warning(
                "Plan reported pending changes but no summary line was found; "
                "counting 0 pending changes (output format may have changed)"
            )
        elif not NO_CHANGES_RE.search(stdout):
            logger.warning("Plan output had neither a summary line nor a 'No changes.' line")

    return PlanOutcome(
        status=status,
        resources_refreshed=refreshed,
        pending_add=add,
        pending_change=change,
        pending_destroy=destroy,
        pending_total=add + change + destroy,
        timing=timing or PhaseTiming(),
        summary_found=summary_found,
    )
