"""
Plan Executor - runs Terraform's init and plan phases against a snapshot.

Phases run strictly in order: INIT -> PLAN -> DONE, with FAILED absorbing.
Both phases pass ``-lock=false`` so the monitor never takes (and can never
leak) the remote state lock; it performs no writes.
"""

import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import ExecutionError
from .models import PhaseTiming, PlanStatus, ProcessResult, RepositorySnapshot
from .process import ProcessRunner, log_output

logger = logging.getLogger(__name__)

COMMON_FLAGS = ("-input=false", "-lock=false", "-no-color")
INIT_DIR = ".terraform"
# Written only after init exits 0; terraform creates INIT_DIR before it can fail
INIT_MARKER = ".drift-monitor-init-ok"


class PlanPhase(Enum):
    INIT = "init"
    PLAN = "plan"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PlanRun:
    """Raw result of a successful plan, ready for parsing."""
    status: PlanStatus
    result: ProcessResult
    timing: PhaseTiming


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))


class PlanExecutor:
    """Drives the init/plan protocol; no retries, each phase at most once per call."""

    def __init__(self, runner: ProcessRunner, debug: bool = False):
        self.runner = runner
        self.debug = debug
        self.phase: Optional[PlanPhase] = None

    def _env(self) -> dict:
        env = dict(os.environ)
        env["TF_IN_AUTOMATION"] = "1"
        return env

    def _fail(self, phase: PlanPhase, result: ProcessResult) -> None:
        self.phase = PlanPhase.FAILED
        if not self.debug:
            log_output(f"terraform {phase.value}", result, level=logging.ERROR)
        raise ExecutionError(
            f"terraform {phase.value} failed with exit code {result.exit_code}",
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def execute(self, binary: Path, snapshot: RepositorySnapshot) -> PlanRun:
        """
        Run init (unless already initialised) and then plan.

        Args:
            binary: Path to the provisioned terraform executable
            snapshot: Snapshot to run in

        Returns:
            PlanRun with the plan output, derived status and phase timings

        Raises:
            ExecutionError: If either phase fails or plan exits with an
                unexpected code
        """
        workdir = snapshot.path
        env = self._env()

        self.phase = PlanPhase.INIT
        init_ms = 0
        if (workdir / INIT_DIR / INIT_MARKER).is_file():
            logger.info(f"Snapshot {snapshot.sha[:7]} already initialised, skipping terraform init")
        else:
            logger.info(f"Running terraform init in {workdir}")
            started = time.monotonic()
            try:
                result = self.runner.run(binary, ["init", *COMMON_FLAGS], env=env, cwd=workdir)
            except ExecutionError:
                self.phase = PlanPhase.FAILED
                raise
            init_ms = _elapsed_ms(started)
            if result.exit_code != 0:
                self._fail(PlanPhase.INIT, result)
            (workdir / INIT_DIR).mkdir(exist_ok=True)
            (workdir / INIT_DIR / INIT_MARKER).touch()

        self.phase = PlanPhase.PLAN
        logger.info("Running terraform plan")
        started = time.monotonic()
        try:
            result = self.runner.run(
                binary, ["plan", "-detailed-exitcode", *COMMON_FLAGS], env=env, cwd=workdir
            )
        except ExecutionError:
            self.phase = PlanPhase.FAILED
            raise
        plan_ms = _elapsed_ms(started)

        status = PlanStatus.from_exit_code(result.exit_code)
        if status is PlanStatus.ERROR:
            self._fail(PlanPhase.PLAN, result)

        self.phase = PlanPhase.DONE
        logger.info(f"terraform plan finished in {plan_ms} ms: {status.value}")
        return PlanRun(status=status, result=result, timing=PhaseTiming(init_ms=init_ms, plan_ms=plan_ms))
