"""
Process Runner - executes external commands for the pipeline.

``run`` captures exit code and output without raising on a non-zero exit;
``run_strict`` is reserved for trusted local utilities where any stderr
output is itself a failure.
"""

import logging
import subprocess
from typing import Mapping, Optional, Sequence, Union
from pathlib import Path

from .errors import ExecutionError, SpawnError
from .models import ProcessResult

logger = logging.getLogger(__name__)


class ProcessRunner:
    """Runs commands; safe to call from several threads for independent commands."""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> ProcessResult:
        """
        Run a command and capture its result.

        Args:
            command: Executable name or path
            args: Arguments passed to the executable
            env: Full environment for the child (inherits ours when None)
            cwd: Working directory

        Returns:
            ProcessResult with exit code, stdout and stderr

        Raises:
            SpawnError: If the executable cannot be launched
        """
        argv = [str(command), *[str(a) for a in args]]
        logger.debug(f"Running: {' '.join(argv)} (cwd={cwd})")
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
                env=dict(env) if env is not None else None,
                cwd=str(cwd) if cwd is not None else None,
            )
        except OSError as e:
            raise SpawnError(f"Could not launch {command}: {e}") from e

        result = ProcessResult(exit_code=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
        if self.debug:
            log_output(argv[0], result)
        return result

    def run_strict(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: Optional[Union[str, Path]] = None,
    ) -> str:
        """Run a trusted utility and return its stdout; fail on non-zero exit or any stderr."""
        result = self.run(command, args, cwd=cwd)
        if result.exit_code != 0 or result.stderr:
            raise ExecutionError(
                f"{command} failed with exit code {result.exit_code}: {result.stderr.strip()}",
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result.stdout


def log_output(name: str, result: ProcessResult, level: int = logging.INFO) -> None:
    """Log the captured output of a finished process."""
    logger.log(level, f"{name} exited with code {result.exit_code}")
    if result.stdout.strip():
        logger.log(level, f"{name} stdout:\n{result.stdout.rstrip()}")
    if result.stderr.strip():
        logger.log(level, f"{name} stderr:\n{result.stderr.rstrip()}")
