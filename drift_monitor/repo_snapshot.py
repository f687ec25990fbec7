"""
Repository Snapshot Provider - immutable, commit-addressed checkouts of the
configuration repository.

Branch heads are looked up through the GitHub REST API; snapshots are
fetched as commit-addressed tarballs. The API answers the tarball request
with a redirect to the actual asset, which is followed exactly once.
"""

import logging
import re
from typing import Optional
from urllib.parse import quote, urljoin

import requests
from pydantic import BaseModel, ValidationError, field_validator

from .archives import ArtifactCache, extract_tarball
from .errors import ApiError, ArchiveLayoutError, DownloadError
from .http_client import download_to_file
from .models import RepositorySnapshot

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
REDIRECT_CODES = (301, 302, 303, 307, 308)

SHA_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


class BranchCommit(BaseModel):
    sha: str

    @field_validator("sha")
    @classmethod
    def validate_sha(cls, v):
        v = v.strip().lower()
        if not SHA_RE.match(v):
            raise ValueError(f"not a commit SHA: {v!r}")
        return v


class BranchResponse(BaseModel):
    """Subset of the GitHub "get a branch" response."""
    name: Optional[str] = None
    commit: BranchCommit


class RepositorySnapshotProvider:
    """Resolves branch heads and provisions per-commit repository snapshots."""

    def __init__(
        self,
        session: requests.Session,
        cache: ArtifactCache,
        repo: str,
        token: str,
        api_url: str = GITHUB_API_URL,
    ):
        self.session = session
        self.cache = cache
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> dict:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def get_head(self, branch: str) -> str:
        """
        Look up the tip commit of ``branch``.

        Args:
            branch: Branch name, e.g. "master"

        Returns:
            Full commit SHA

        Raises:
            ApiError: On transport failure, error status, non-JSON body or a
                body without a commit identifier
        """
        url = f"{self.api_url}/repos/{self.repo}/branches/{quote(branch, safe='')}"
        try:
            response = self.session.get(url, headers=self._headers())
        except requests.exceptions.RequestException as e:
            raise ApiError(f"Failed to query branch {branch} of {self.repo}: {e}") from e

        if response.status_code == 401:
            raise ApiError(
                f"Authentication failed for {self.repo}. "
                f"GitHub token is invalid or expired."
            )
        if response.status_code == 404:
            raise ApiError(f"Branch '{branch}' of {self.repo} not found (or token lacks access)")
        if not 200 <= response.status_code < 300:
            raise ApiError(f"GitHub API returned HTTP {response.status_code} for {url}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ApiError(f"GitHub API response for {url} is not valid JSON") from e

        try:
            head = BranchResponse.model_validate(payload)
        except ValidationError as e:
            raise ApiError(f"GitHub API response for {url} has no commit identifier: {e}") from e

        logger.info(f"Head of {self.repo}@{branch} is {head.commit.sha}")
        return head.commit.sha

    def snapshot_key(self, sha: str) -> str:
        return f"repo_{self.repo.replace('/', '-')}_{sha}"

    def archive_folder(self, sha: str) -> str:
        """Top-level folder GitHub uses inside commit tarballs."""
        return f"{self.repo.replace('/', '-')}-{sha[:7]}"

    def ensure_snapshot(self, sha: str) -> RepositorySnapshot:
        """
        Return the local snapshot of commit ``sha``, downloading it on a miss.

        Raises:
            ApiError: If ``sha`` is not a commit SHA
            DownloadError: If the archive cannot be fetched
            ExtractionError: If the archive cannot be unpacked
            ArchiveLayoutError: If the archive lacks the expected folder
        """
        if not SHA_RE.match(sha):
            raise ApiError(f"Not a commit SHA: {sha!r}")

        key = self.snapshot_key(sha)
        folder = self.archive_folder(sha)
        entry = self.cache.lookup(key)
        if entry.exists:
            logger.info(f"Snapshot of {self.repo}@{sha[:7]} found in cache: {entry.path}")
            return RepositorySnapshot(repo=self.repo, sha=sha, path=entry.path / folder)

        asset_url = self._resolve_archive_location(sha)
        logger.info(f"Downloading snapshot of {self.repo}@{sha[:7]}")
        archive = download_to_file(self.session, asset_url, self.cache.root, suffix=".tar.gz")
        try:
            entry = self.cache.publish(key, lambda staging: self._unpack(archive, staging, folder))
        finally:
            archive.unlink(missing_ok=True)

        snapshot = RepositorySnapshot(repo=self.repo, sha=sha, path=entry.path / folder)
        logger.info(f"Snapshot ready at {snapshot.path}")
        return snapshot

    def _resolve_archive_location(self, sha: str) -> str:
        url = f"{self.api_url}/repos/{self.repo}/tarball/{sha}"
        try:
            response = self.session.get(url, headers=self._headers(), allow_redirects=False)
        except requests.exceptions.RequestException as e:
            raise DownloadError(f"Failed to request archive of {self.repo}@{sha[:7]}: {e}") from e

        with response:
            location = response.headers.get("Location")
            if response.status_code not in REDIRECT_CODES or not location:
                raise DownloadError(
                    f"Expected a redirect for {url}, got HTTP {response.status_code}"
                )
        return urljoin(url, location)

    def _unpack(self, archive, staging, folder: str) -> None:
        extract_tarball(archive, staging)
        if not (staging / folder).is_dir():
            found = sorted(p.name for p in staging.iterdir())
            raise ArchiveLayoutError(
                f"Expected folder '{folder}' in archive of {self.repo}, found: {found}"
            )
