"""
Artifact Cache - append-only on-disk cache of extracted archives.

Each key maps to one directory under the scratch root. Content is extracted
into a private staging directory first and renamed into place in one step,
so an existing key path always holds complete content. Keys are written at
most once and never overwritten.
"""

import logging
import os
import shutil
import stat
import tarfile
import uuid
import zipfile
from pathlib import Path
from typing import Callable

from .errors import ExtractionError
from .models import CachedArtifact

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"


class ArtifactCache:
    """Directory-per-key cache rooted at the scratch directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.root / key

    def lookup(self, key: str) -> CachedArtifact:
        path = self.path_for(key)
        return CachedArtifact(key=key, path=path, exists=path.is_dir())

    def publish(self, key: str, fill: Callable[[Path], None]) -> CachedArtifact:
        """
        Populate ``key`` by calling ``fill`` on a fresh staging directory.

        If another writer published the same key first, the staged copy is
        discarded and the existing entry is returned.
        """
        final = self.path_for(key)
        staging = self.root / f"{STAGING_PREFIX}{key}-{uuid.uuid4().hex[:8]}"
        staging.mkdir(parents=True)
        try:
            fill(staging)
            try:
                os.rename(staging, final)
            except OSError:
                if not final.is_dir():
                    raise
                logger.info(f"Cache entry {key} was published concurrently, keeping existing copy")
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        return CachedArtifact(key=key, path=final, exists=True)


def _check_member_path(name: str) -> None:
    member_path = Path(name)
    if member_path.is_absolute() or any(part == ".." for part in member_path.parts):
        raise ExtractionError(f"Archive member resolves outside extraction directory: {name}")


def extract_zip(archive: Path, destination: Path) -> None:
    """Extract a zip archive, keeping the executable bits recorded in it."""
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                _check_member_path(info.filename)
            for info in zf.infolist():
                extracted = Path(zf.extract(info, path=destination))
                mode = (info.external_attr >> 16) & 0o777
                if mode and not info.is_dir():
                    extracted.chmod(mode)
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"Not a valid zip archive: {archive}: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Failed to extract {archive}: {e}") from e


def extract_tarball(archive: Path, destination: Path) -> None:
    """Extract a (compressed) tar archive."""
    try:
        with tarfile.open(archive, "r:*") as tar:
            for member in tar.getmembers():
                _check_member_path(member.name)
            tar.extractall(path=destination, filter="data")
    except tarfile.TarError as e:
        raise ExtractionError(f"Not a valid tar archive: {archive}: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Failed to extract {archive}: {e}") from e


def make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
