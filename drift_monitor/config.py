"""Configuration management for the Terraform drift monitor."""

import os
import re
import tempfile
import logging
from typing import Mapping, Optional
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "TERRAFORM_MONITOR_"

DEFAULT_BRANCH = "master"
DEFAULT_SCHEDULE = "rate(5 minutes)"
DEFAULT_INFLUX_MEASUREMENT = "terraform_monitor"
SCRATCH_SUBDIR = "terraform-drift-monitor"

REPO_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

_TRUTHY = {"1", "true", "yes", "on"}


def default_scratch_dir() -> Path:
    # du runs over the scratch dir, so it must only hold files this service owns
    return Path(tempfile.gettempdir()) / SCRATCH_SUBDIR


def get_scratch_dir(override: Optional[str] = None) -> Path:
    """
    Get the base directory for the artifact cache.

    Selection priority:
    1. Explicit override (TERRAFORM_MONITOR_SCRATCH_DIR)
    2. A dedicated directory under the system temp directory

    Returns:
        Path object pointing to the scratch directory (created if missing)
    """
    if override:
        scratch = Path(override)
        logger.debug(f"Using scratch directory from {ENV_PREFIX}SCRATCH_DIR: {scratch}")
    else:
        scratch = default_scratch_dir()
        logger.debug(f"Using default scratch directory: {scratch}")
    try:
        scratch.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Cannot create scratch directory {scratch}: {e}") from e
    return scratch


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Config:
    """Central configuration for one drift monitor deployment."""

    # Remote state descriptor
    state_bucket: str = ""
    state_key: str = ""

    # Source control
    repo_identifier: str = ""
    repo_token: str = ""
    repo_branch: str = DEFAULT_BRANCH

    # Namespace (CloudWatch) sink
    metrics_namespace: Optional[str] = None

    # Line-protocol (InfluxDB) sink; validated only when the sink is used
    influx_url: Optional[str] = None
    influx_db: Optional[str] = None
    influx_auth: Optional[str] = None
    influx_measurement: str = DEFAULT_INFLUX_MEASUREMENT

    # Runtime
    schedule_expression: str = DEFAULT_SCHEDULE
    debug: bool = False
    scratch_dir: Path = field(default_factory=default_scratch_dir)
    aws_region: str = "us-east-1"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Unvalidated Config; call ``validate()`` before use
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            return env.get(ENV_PREFIX + name, default)

        return cls(
            state_bucket=(get("S3_BUCKET") or "").strip(),
            state_key=(get("S3_KEY") or "").strip(),
            repo_identifier=(get("GITHUB_REPO") or "").strip(),
            repo_token=(get("GITHUB_TOKEN") or "").strip(),
            repo_branch=_optional(get("GITHUB_BRANCH")) or DEFAULT_BRANCH,
            metrics_namespace=_optional(get("CLOUDWATCH_NAMESPACE")),
            influx_url=_optional(get("INFLUXDB_URL")),
            influx_db=_optional(get("INFLUXDB_DB")),
            influx_auth=_optional(get("INFLUXDB_AUTH")),
            influx_measurement=_optional(get("INFLUXDB_MEASUREMENT")) or DEFAULT_INFLUX_MEASUREMENT,
            schedule_expression=_optional(get("SCHEDULE")) or DEFAULT_SCHEDULE,
            debug=_parse_bool(get("DEBUG")),
            scratch_dir=get_scratch_dir(_optional(get("SCRATCH_DIR"))),
            aws_region=_optional(env.get("AWS_REGION")) or "us-east-1",
            log_level=(_optional(env.get("LOG_LEVEL")) or "INFO").upper(),
        )

    def validate(self) -> None:
        """Validate configuration and raise ConfigurationError for missing or malformed values."""
        required_fields = [
            ("state_bucket", self.state_bucket),
            ("state_key", self.state_key),
            ("repo_identifier", self.repo_identifier),
            ("repo_token", self.repo_token),
        ]

        missing = [name for name, value in required_fields if not value]
        if missing:
            raise ConfigurationError(f"Missing required configuration fields: {missing}")

        if not REPO_IDENTIFIER_RE.match(self.repo_identifier):
            raise ConfigurationError(
                f"repo_identifier must look like 'owner/name', got '{self.repo_identifier}'"
            )

        if self.log_level not in logging.getLevelNamesMapping():
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

    @property
    def namespace_sink_enabled(self) -> bool:
        return bool(self.metrics_namespace)

    @property
    def influx_sink_enabled(self) -> bool:
        return bool(self.influx_url)


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build and validate the configuration in one step."""
    config = Config.from_env(environ)
    config.validate()
    return config
