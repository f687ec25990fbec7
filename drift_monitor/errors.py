"""Error taxonomy for the drift monitor pipeline.

Every acquisition, execution or API error is fatal to the current run.
Nothing is retried; the run logs the error and ships no metrics.
"""

from typing import Optional


class DriftMonitorError(Exception):
    """Base class for all drift monitor errors"""
    pass


class ConfigurationError(DriftMonitorError):
    """Configuration is missing or invalid"""
    pass


class StateFormatError(DriftMonitorError):
    """Remote state descriptor is absent, unparsable or lacks a version"""
    pass


class DownloadError(DriftMonitorError):
    """A remote artifact could not be fetched"""
    pass


class ExtractionError(DriftMonitorError):
    """A downloaded archive could not be unpacked"""
    pass


class ArchiveLayoutError(DriftMonitorError):
    """An extracted archive does not contain the expected folder"""
    pass


class ApiError(DriftMonitorError):
    """Source-control API returned an unusable response"""
    pass


class ExecutionError(DriftMonitorError):
    """
    A subprocess failed or exited with an unexpected code.

    Carries whatever output was captured so it can be logged by the caller.
    """

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class SpawnError(ExecutionError):
    """The executable could not be launched at all"""
    pass


class SinkError(DriftMonitorError):
    """A single metrics sink failed"""
    pass


class DispatchError(DriftMonitorError):
    """One or more metrics sinks failed during dispatch"""

    def __init__(self, failures):
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(f"Metrics dispatch failed for sink(s): {names}")
