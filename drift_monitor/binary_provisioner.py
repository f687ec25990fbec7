"""
Binary Provisioner - makes the Terraform version that produced the remote
state available as a local executable.

The version is read from the state file in S3 (read-only ``get_object``,
never the lock table). Binaries are cached per version under the scratch
directory, so each version is downloaded at most once.
"""

import logging
import re
from pathlib import Path

import requests
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .archives import ArtifactCache, extract_zip, make_executable
from .errors import DownloadError, ExtractionError, StateFormatError
from .http_client import download_to_file

logger = logging.getLogger(__name__)

TOOL_NAME = "terraform"
DISTRIBUTION_URL = "https://releases.hashicorp.com/terraform/{version}/{archive_name}.zip"

VERSION_RE = re.compile(r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?$")


class StateDescriptor(BaseModel):
    """The fields of a Terraform state file this monitor relies on."""

    model_config = ConfigDict(extra="allow")

    terraform_version: str

    @field_validator("terraform_version")
    @classmethod
    def validate_terraform_version(cls, v):
        v = v.strip()
        if not VERSION_RE.match(v):
            raise ValueError(f"not a release version: {v!r}")
        return v


def archive_name(version: str, platform: str = "linux", arch: str = "amd64") -> str:
    """Distribution naming convention: ``<tool>_<version>_<platform>_<arch>``."""
    return f"{TOOL_NAME}_{version}_{platform}_{arch}"


class BinaryProvisioner:
    """Resolves the required Terraform version and provisions its binary."""

    def __init__(
        self,
        s3_client,
        session: requests.Session,
        cache: ArtifactCache,
        state_bucket: str,
        state_key: str,
        platform: str = "linux",
        arch: str = "amd64",
    ):
        self.s3 = s3_client
        self.session = session
        self.cache = cache
        self.state_bucket = state_bucket
        self.state_key = state_key
        self.platform = platform
        self.arch = arch

    def resolve_version(self) -> str:
        """
        Read the Terraform version recorded in the remote state.

        Returns:
            Version string, e.g. "1.2.3"

        Raises:
            DownloadError: If the state object cannot be fetched
            StateFormatError: If it is not JSON or lacks a usable version
        """
        location = f"s3://{self.state_bucket}/{self.state_key}"
        try:
            response = self.s3.get_object(Bucket=self.state_bucket, Key=self.state_key)
            body = response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise DownloadError(f"Failed to fetch remote state {location}: {e}") from e

        try:
            descriptor = StateDescriptor.model_validate_json(body)
        except ValidationError as e:
            raise StateFormatError(f"Remote state {location} has no usable terraform_version: {e}") from e

        logger.info(f"Remote state was written by Terraform {descriptor.terraform_version}")
        return descriptor.terraform_version

    def binary_path(self, version: str) -> Path:
        return self.cache.path_for(archive_name(version, self.platform, self.arch)) / TOOL_NAME

    def ensure_binary(self, version: str) -> Path:
        """
        Return the path of the Terraform binary for ``version``, downloading
        and extracting it on a cache miss.

        Raises:
            DownloadError: If the archive cannot be downloaded
            ExtractionError: If the archive is invalid or lacks the binary
        """
        if not VERSION_RE.match(version):
            raise StateFormatError(f"Refusing to provision unexpected version string: {version!r}")

        key = archive_name(version, self.platform, self.arch)
        entry = self.cache.lookup(key)
        if entry.exists:
            logger.info(f"Terraform {version} found in cache: {entry.path}")
            return entry.path / TOOL_NAME

        url = DISTRIBUTION_URL.format(version=version, archive_name=key)
        logger.info(f"Downloading Terraform {version} from {url}")
        archive = download_to_file(self.session, url, self.cache.root, suffix=".zip")
        try:
            entry = self.cache.publish(key, lambda staging: self._unpack(archive, staging))
        finally:
            archive.unlink(missing_ok=True)

        logger.info(f"Terraform {version} ready at {entry.path / TOOL_NAME}")
        return entry.path / TOOL_NAME

    def _unpack(self, archive: Path, staging: Path) -> None:
        extract_zip(archive, staging)
        binary = staging / TOOL_NAME
        if not binary.is_file():
            raise ExtractionError(f"Archive {archive.name} did not contain a {TOOL_NAME} binary")
        make_executable(binary)
