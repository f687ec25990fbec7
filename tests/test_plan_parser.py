from __future__ import annotations

import logging

import pytest

from drift_monitor.models import PhaseTiming, PlanStatus
from drift_monitor.plan_parser import parse_plan_output

PLAN_OUTPUT = """\
aws_s3_bucket.logs: Refreshing state... (ID: acme-logs)

An execution plan has been generated and is shown below.

  + aws_instance.web
  - aws_eip.old
  + aws_route53_record.www

Plan: 2 to add, 0 to change, 1 to destroy.
"""


def test_changes_pending_example() -> None:
    outcome = parse_plan_output(PLAN_OUTPUT, PlanStatus.CHANGES_PENDING)

    assert outcome.status is PlanStatus.CHANGES_PENDING
    assert outcome.resources_refreshed == 1
    assert outcome.pending_add == 2
    assert outcome.pending_change == 0
    assert outcome.pending_destroy == 1
    assert outcome.pending_total == 3
    assert outcome.summary_found


@pytest.mark.parametrize("add,change,destroy", [(0, 0, 0), (1, 2, 3), (10, 0, 250), (7, 7, 7)])
def test_summary_counts_are_recovered(add: int, change: int, destroy: int) -> None:
    stdout = f"Plan: {add} to add, {change} to change, {destroy} to destroy.\n"

    outcome = parse_plan_output(stdout, PlanStatus.CHANGES_PENDING)

    assert (outcome.pending_add, outcome.pending_change, outcome.pending_destroy) == (add, change, destroy)
    assert outcome.pending_total == add + change + destroy


def test_no_markers_and_no_summary_is_all_zero() -> None:
    outcome = parse_plan_output("No changes. Infrastructure is up-to-date.\n", PlanStatus.CLEAN)

    assert outcome.resources_refreshed == 0
    assert outcome.pending_add == outcome.pending_change == outcome.pending_destroy == 0
    assert outcome.pending_total == 0
    assert not outcome.summary_found


def test_only_first_summary_line_counts() -> None:
    stdout = (
        "Plan: 1 to add, 1 to change, 1 to destroy.\n"
        "Plan: 9 to add, 9 to change, 9 to destroy.\n"
    )
    outcome = parse_plan_output(stdout, PlanStatus.CHANGES_PENDING)
    assert outcome.pending_total == 3


def test_every_refresh_line_is_counted() -> None:
    stdout = "\n".join(f"null_resource.n{i}: Refreshing state... (ID: {i})" for i in range(5))
    assert parse_plan_output(stdout, PlanStatus.CLEAN).resources_refreshed == 5


def test_missing_summary_with_pending_changes_warns(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="drift_monitor.plan_parser"):
        outcome = parse_plan_output("garbled output\n", PlanStatus.CHANGES_PENDING)

    assert outcome.pending_total == 0
    assert "no summary line" in caplog.text


def test_timing_is_carried_over() -> None:
    timing = PhaseTiming(init_ms=1200, plan_ms=3400)
    assert parse_plan_output("", PlanStatus.CLEAN, timing).timing == timing


def test_summary_with_import_count() -> None:
    stdout = "aws_s3_bucket.logs: Refreshing state...\n\nPlan: 1 to import, 2 to add, 0 to change, 1 to destroy.\n"

    outcome = parse_plan_output(stdout, PlanStatus.CHANGES_PENDING)

    assert (outcome.pending_add, outcome.pending_change, outcome.pending_destroy) == (2, 0, 1)
    assert outcome.pending_total == 3
    assert outcome.summary_found


def test_counts_outside_a_plan_line_are_ignored() -> None:
    stdout = 'resource "x" { description = "3 to add, 0 to change, 0 to destroy" }\n'
    assert not parse_plan_output(stdout, PlanStatus.CLEAN).summary_found
